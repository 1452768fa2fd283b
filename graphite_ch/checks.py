"""Comparison of service responses with the results a test config expects."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

CACHED_FIND_HEADER = "X-Cached-Find"
REQUEST_ID_HEADER = "X-Gch-Request-Id"

_REL_TOLERANCE = 1e-7
_ABS_TOLERANCE = 1e-12

Header = Mapping[str, Any]


@dataclass(frozen=True)
class FindMatch:
    """One entry of a /metrics/find answer."""

    path: str = ""
    is_leaf: bool = False

    def __str__(self) -> str:
        return f"{{Path:{self.path} IsLeaf:{'true' if self.is_leaf else 'false'}}}"


@dataclass
class RenderedMetric:
    """One series of a /render answer, with resolved timestamps."""

    name: str = ""
    path_expression: str = ""
    consolidation_func: str = ""
    start_time: int = 0
    stop_time: int = 0
    step_time: int = 0
    xfiles_factor: float = 0.0
    high_precision_timestamps: bool = False
    values: list[float] = field(default_factory=list)
    applied_functions: list[str] = field(default_factory=list)
    request_start_time: int = 0
    request_stop_time: int = 0

    def __str__(self) -> str:
        return (
            f"{{Name:{self.name} PathExpression:{self.path_expression} "
            f"ConsolidationFunc:{self.consolidation_func} StartTime:{self.start_time} "
            f"StopTime:{self.stop_time} StepTime:{self.step_time} "
            f"XFilesFactor:{_fmt_g(self.xfiles_factor)} "
            f"HighPrecisionTimestamps:{'true' if self.high_precision_timestamps else 'false'} "
            f"Values:{_fmt_floats(self.values)} AppliedFunctions:{_fmt_list(self.applied_functions)} "
            f"RequestStartTime:{self.request_start_time} RequestStopTime:{self.request_stop_time}}}"
        )


def _fmt_g(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == int(value) and abs(value) < 1e21:
        return str(int(value))
    return repr(float(value))


def _fmt_floats(values: Sequence[float]) -> str:
    return "[" + " ".join(_fmt_g(v) for v in values) + "]"


def _fmt_list(values: Sequence[Any]) -> str:
    return "[" + " ".join(str(v) for v in values) + "]"


def _header_values(header: Header | None, name: str) -> list[str] | None:
    if header is None:
        return None
    wanted = name.lower()
    for key, value in header.items():
        if key.lower() == wanted:
            if isinstance(value, str):
                return [value]
            return list(value)
    return None


def is_find_cached(header: Header | None) -> tuple[str, bool]:
    """Return the X-Cached-Find value and whether the header is present."""
    values = _header_values(header, CACHED_FIND_HEADER)
    if not values:
        return "", False
    return values[0], True


def request_id(header: Header | None) -> str:
    """Return the request id the server put in its response header, or ''."""
    values = _header_values(header, REQUEST_ID_HEADER)
    return values[0] if values else ""


def nearly_equal(a: float, b: float) -> bool:
    """Compare floats with a small relative tolerance; NaN equals NaN."""
    if math.isnan(a) or math.isnan(b):
        return math.isnan(a) and math.isnan(b)
    if a == b:
        return True
    return math.isclose(a, b, rel_tol=_REL_TOLERANCE, abs_tol=_ABS_TOLERANCE)


def nearly_equal_slice(a: Sequence[float], b: Sequence[float]) -> bool:
    """Element-wise nearly_equal of two sequences of the same length."""
    return len(a) == len(b) and all(nearly_equal(x, y) for x, y in zip(a, b))


def _cache_errors(
    name: str, url: str, find_cached: bool, cache_ttl: int, header: Header | None
) -> list[str]:
    if header is None:
        return []
    want = str(cache_ttl) if find_cached else ""
    got, cached = is_find_cached(header)
    if cached != find_cached or want != got:
        return [f"TRY[{name}] {request_id(header)} {url}: X-Cached-Find want '{want}', got '{got}'"]
    return []


def _diff_errors(
    name: str,
    rid: str,
    url: str,
    actual: Sequence[Any],
    expected: Sequence[Any],
    same,
) -> list[str]:
    errors: list[str] = []
    for i in range(max(len(expected), len(actual))):
        if i >= len(actual):
            errors.append(f"- TRY[{name}] {rid} {url} [{i}] = {expected[i]}")
        elif i >= len(expected):
            errors.append(f"+ TRY[{name}] {rid} {url} [{i}] = {actual[i]}")
        elif not same(actual[i], expected[i]):
            errors.append(f"- TRY[{name}] {rid} {url} [{i}] = {expected[i]}")
            errors.append(f"+ TRY[{name}] {rid} {url} [{i}] = {actual[i]}")
    return errors


def compare_find_match(
    name: str,
    url: str,
    actual: Sequence[FindMatch],
    expected: Sequence[FindMatch],
    find_cached: bool,
    cache_ttl: int,
    header: Header | None,
) -> list[str]:
    """Return the differences between a find answer and the expected matches."""
    errors = _cache_errors(name, url, find_cached, cache_ttl, header)
    errors += _diff_errors(name, request_id(header), url, actual, expected, lambda a, e: a == e)
    return errors


def compare_tags(
    name: str,
    url: str,
    actual: Sequence[str],
    expected: Sequence[str],
    find_cached: bool,
    cache_ttl: int,
    header: Header | None,
) -> list[str]:
    """Return the differences between a tags answer and the expected tags."""
    errors = _cache_errors(name, url, find_cached, cache_ttl, header)
    errors += _diff_errors(name, request_id(header), url, actual, expected, lambda a, e: a == e)
    return errors


def compare_render(
    name: str,
    url: str,
    actual: Sequence[RenderedMetric],
    expected: Sequence[RenderedMetric],
    find_cached: bool,
    header: Header | None,
    cache_ttl: int,
) -> list[str]:
    """Return the differences between render series (sorted by name) and the expected ones."""
    actual = sorted(actual, key=lambda m: m.name)
    rid = request_id(header)
    errors = _cache_errors(name, url, find_cached, cache_ttl, header)
    errors += _diff_errors(name, rid, url, actual, expected, lambda a, e: a.name == e.name)

    for i, (got, want) in enumerate(zip(actual, expected)):
        if got.name != want.name:
            continue
        prefix = f"TRY[{name}] {rid} {url} '{got.name}': mismatch [{i}]"
        if got.path_expression != want.path_expression:
            errors.append(
                f"{prefix}.PathExpression, got '{got.path_expression}', want '{want.path_expression}'"
            )
        if got.consolidation_func != want.consolidation_func:
            errors.append(
                f"{prefix}.ConsolidationFunc, got '{got.consolidation_func}', "
                f"want '{want.consolidation_func}'"
            )
        for attr, label in (
            ("start_time", "StartTime"),
            ("stop_time", "StopTime"),
            ("step_time", "StepTime"),
            ("request_start_time", "RequestStartTime"),
            ("request_stop_time", "RequestStopTime"),
        ):
            g, w = getattr(got, attr), getattr(want, attr)
            if g != w:
                errors.append(f"{prefix}.{label}, got {g}, want {w}")
        if got.high_precision_timestamps != want.high_precision_timestamps:
            g = "true" if got.high_precision_timestamps else "false"
            w = "true" if want.high_precision_timestamps else "false"
            errors.append(f"{prefix}.HighPrecisionTimestamps, got {g}, want {w}")
        if list(got.applied_functions) != list(want.applied_functions):
            errors.append(
                f"{prefix}.AppliedFunctions, got '{_fmt_list(got.applied_functions)}', "
                f"want '{_fmt_list(want.applied_functions)}'"
            )
        if not nearly_equal(float(got.xfiles_factor), float(want.xfiles_factor)):
            errors.append(
                f"{prefix}.XFilesFactor, got {_fmt_g(got.xfiles_factor)}, "
                f"want {_fmt_g(want.xfiles_factor)}"
            )
        if not nearly_equal_slice(got.values, want.values):
            errors.append(
                f"{prefix}.Values, got {_fmt_floats(got.values)}, want {_fmt_floats(want.values)}"
            )
    return errors