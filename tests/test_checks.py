import math

import pytest

from graphite_ch.checks import (
    FindMatch,
    RenderedMetric,
    compare_find_match,
    compare_render,
    compare_tags,
    is_find_cached,
    nearly_equal,
    nearly_equal_slice,
    request_id,
)

URL = "http://127.0.0.1:9090/metrics/find/?query=a.*"


def test_is_find_cached_missing_and_none():
    assert is_find_cached(None) == ("", False)
    assert is_find_cached({}) == ("", False)
    assert is_find_cached({"X-Cached-Find": []}) == ("", False)


def test_is_find_cached_present():
    assert is_find_cached({"X-Cached-Find": ["60"]}) == ("60", True)
    assert is_find_cached({"x-cached-find": "60"}) == ("60", True)


def test_request_id():
    assert request_id(None) == ""
    assert request_id({"X-Gch-Request-Id": ["abc"]}) == "abc"
    assert request_id({"Other": ["abc"]}) == ""


def test_nearly_equal():
    assert nearly_equal(1.0, 1.0)
    assert nearly_equal(math.nan, math.nan)
    assert not nearly_equal(math.nan, 1.0)
    assert not nearly_equal(1.0, 2.0)
    assert nearly_equal(0.1 + 0.2, 0.3)


def test_nearly_equal_slice():
    assert nearly_equal_slice([1.0, math.nan], [1.0, math.nan])
    assert not nearly_equal_slice([1.0], [1.0, 2.0])
    assert not nearly_equal_slice([1.0, 3.0], [1.0, 2.0])
    assert nearly_equal_slice([], [])


def test_compare_find_match_equal():
    matches = [FindMatch("a.b", True), FindMatch("a.c", False)]
    assert compare_find_match("", URL, matches, list(matches), False, 0, None) == []


def test_compare_find_match_missing_and_extra():
    expected = [FindMatch("a.b", True)]
    errors = compare_find_match("", URL, [], expected, False, 0, None)
    assert errors == [f"- TRY[]  {URL} [0] = {expected[0]}"]
    errors = compare_find_match("", URL, expected, [], False, 0, None)
    assert errors == [f"+ TRY[]  {URL} [0] = {expected[0]}"]


def test_compare_find_match_mismatch_reports_both():
    errors = compare_find_match(
        "", URL, [FindMatch("a.c", False)], [FindMatch("a.b", True)], False, 0, {"X-Gch-Request-Id": ["r1"]}
    )
    assert len(errors) == 2
    assert errors[0].startswith("- TRY[] r1 ")
    assert errors[1].startswith("+ TRY[] r1 ")


def test_compare_tags_cache_header_expected():
    header = {"X-Cached-Find": ["60"]}
    assert compare_tags("cache", URL, ["host"], ["host"], True, 60, header) == []
    errors = compare_tags("cache", URL, ["host"], ["host"], True, 60, {})
    assert errors == [f"TRY[cache]  {URL}: X-Cached-Find want '60', got ''"]


def test_compare_tags_unexpected_cache_header():
    errors = compare_tags("", URL, ["host"], ["host"], False, 60, {"X-Cached-Find": ["60"]})
    assert errors == [f"TRY[]  {URL}: X-Cached-Find want '', got '60'"]


def test_compare_tags_no_header_skips_cache_check():
    assert compare_tags("", URL, ["a"], ["a"], True, 60, None) == []


def _metric(name, **kwargs):
    return RenderedMetric(name=name, values=[1.0, math.nan], **kwargs)


def test_compare_render_sorts_actual():
    expected = [_metric("a"), _metric("b")]
    actual = [_metric("b"), _metric("a")]
    assert compare_render("", URL, actual, expected, False, None, 0) == []


def test_compare_render_field_mismatch():
    expected = [_metric("a", step_time=60)]
    actual = [_metric("a", step_time=10)]
    errors = compare_render("", URL, actual, expected, False, None, 0)
    assert errors == [f"TRY[]  {URL} 'a': mismatch [0].StepTime, got 10, want 60"]


def test_compare_render_values_mismatch():
    expected = [RenderedMetric(name="a", values=[1.0, 2.0])]
    actual = [RenderedMetric(name="a", values=[1.0])]
    errors = compare_render("", URL, actual, expected, False, None, 0)
    assert len(errors) == 1
    assert ".Values" in errors[0]


@pytest.mark.parametrize("field", ["path_expression", "consolidation_func"])
def test_compare_render_string_field_mismatch(field):
    expected = [RenderedMetric(name="a", **{field: "x"})]
    actual = [RenderedMetric(name="a", **{field: "y"})]
    errors = compare_render("", URL, actual, expected, False, None, 0)
    assert len(errors) == 1
    assert "got 'y', want 'x'" in errors[0]


def test_compare_render_name_mismatch():
    errors = compare_render("", URL, [_metric("b")], [_metric("a")], False, None, 0)
    assert len(errors) == 2
    assert errors[0].startswith("- ")
    assert errors[1].startswith("+ ")