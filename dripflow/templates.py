"""Merge-field rendering and wait-duration parsing."""

from __future__ import annotations

import re
from typing import Any, Mapping

# Only these contact fields are resolved; any other placeholder is left as-is.
CONTACT_PLACEHOLDERS = ("name", "email", "phone", "status")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

_UNIT_MINUTES = (
    ("minute", 1),
    ("hour", 60),
    ("day", 1440),
    ("week", 10080),
)
DEFAULT_UNIT_MINUTES = 1440


def render_template(template: str, contact: Mapping[str, Any]) -> str:
    """Replace ``{{contact.<field>}}`` placeholders with contact values.

    Substitution is literal: no escaping and no nested resolution.
    """
    rendered = template or ""
    for field in CONTACT_PLACEHOLDERS:
        value = contact.get(field)
        rendered = rendered.replace(
            "{{contact.%s}}" % field, "" if value is None else str(value)
        )
    return rendered


def parse_wait_minutes(wait_time: str) -> int:
    """Convert a free-text duration such as ``"3 Days"`` into minutes.

    A missing or non-numeric count counts as 1 and an unknown unit is
    treated as days, so ``"Immediately"`` waits one day.
    """
    lowered = (wait_time or "").lower().strip()
    match = _LEADING_INT.match(lowered)
    count = int(match.group(1)) if match else 0
    if count == 0:
        count = 1
    for unit, minutes in _UNIT_MINUTES:
        if unit in lowered:
            return count * minutes
    return count * DEFAULT_UNIT_MINUTES
