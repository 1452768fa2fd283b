"""Rendering of service config templates that use ``{{.FIELD}}`` placeholders."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Any

_ACTION = re.compile(r"\{\{(- )?(.*?)( -)?\}\}", re.S)
_FIELD = re.compile(r"\.([A-Za-z_]\w*)")


class TemplateError(ValueError):
    """A template could not be parsed or executed."""


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _check_literal(literal: str) -> None:
    if "{{" in literal:
        raise TemplateError("unclosed action")


def render_template(text: str, params: Mapping[str, Any]) -> str:
    """Substitute ``{{.NAME}}`` actions with values from ``params``.

    Comments (``{{/* ... */}}``) and whitespace trim markers (``{{- `` and `` -}}``)
    are understood; any other action is an error, as is a field missing from ``params``.
    """
    pieces: list[str] = []
    pos = 0
    trim_next = False
    for match in _ACTION.finditer(text):
        literal = text[pos:match.start()]
        _check_literal(literal)
        if trim_next:
            literal = literal.lstrip()
        if match.group(1):
            literal = literal.rstrip()
        pieces.append(literal)
        pos = match.end()
        trim_next = bool(match.group(3))

        body = match.group(2).strip()
        if body.startswith("/*") and body.endswith("*/"):
            continue
        field = _FIELD.fullmatch(body)
        if field is None:
            raise TemplateError(f"unsupported template action {{{{{body}}}}}")
        name = field.group(1)
        if name not in params:
            raise TemplateError(f"can't evaluate field {name}")
        pieces.append(_format_value(params[name]))

    tail = text[pos:]
    _check_literal(tail)
    if trim_next:
        tail = tail.lstrip()
    pieces.append(tail)
    return "".join(pieces)


def write_config(template_path: str, dest: str, params: Mapping[str, Any]) -> str:
    """Render the template file at ``template_path`` into ``dest`` and return ``dest``."""
    with open(template_path, encoding="utf-8") as fh:
        text = fh.read()
    rendered = render_template(text, params)
    fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    with os.fdopen(fd, "w", encoding="utf-8") as out:
        out.write(rendered)
    return dest