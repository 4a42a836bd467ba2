"""``{{field}}`` placeholder rendering for action messages."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from ghostwatch.rules.values import as_string, lookup

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")


def render_template(template: str | None, context: Mapping[str, Any]) -> str:
    """Substitute ``{{key}}`` placeholders from ``context``.

    Dotted keys resolve through nested dicts. Unknown keys, nulls and
    lists render as an empty string.

    Example:
        >>> render_template("{{username}} scored {{ghostScore}}", {"username": "x", "ghostScore": 91})
        'x scored 91'
    """
    if not template:
        return ""

    def _replace(match: re.Match) -> str:
        text = as_string(lookup(context, match.group(1)))
        return text if text is not None else ""

    return _PLACEHOLDER_RE.sub(_replace, template)


def placeholders(template: str | None) -> list[str]:
    """List placeholder keys in order of appearance."""
    if not template:
        return []
    return [m.group(1) for m in _PLACEHOLDER_RE.finditer(template)]
