# weam/validation.py
"""
Input coercion helpers shared by the route handlers.

Request bodies are loose JSON objects; these helpers clamp them into the
shapes the tables expect instead of rejecting the whole request:

- clamp_str(v)        -> str, at most MAX_STRLEN chars ('' for None)
- is_non_empty_str(v) -> bool
- to_int_or_none(v)   -> int | None
- to_number_or_none(v)-> float | None
- parse_list(q)       -> ['a', 'b'] from "a, b" (capped)
- clamp_date_str(v)   -> '' (empty), None (bad format), 'YYYY-MM-DD'
- clamp_progress(v)   -> int in 0..100
"""

from __future__ import annotations

import math
import re
from typing import Any, List, Optional

MAX_STRLEN = 512
MAX_LIST_ITEMS = 200

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def clamp_str(value: Any, limit: int = MAX_STRLEN) -> str:
    if value is None:
        return ""
    return str(value)[:limit]


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def to_number_or_none(value: Any) -> Optional[float]:
    """Finite float from a number or numeric string; None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        n = float(value)
    else:
        s = str(value).strip()
        if not s:
            return None
        try:
            n = float(s)
        except ValueError:
            return None
    return n if math.isfinite(n) else None


def to_int_or_none(value: Any) -> Optional[int]:
    n = to_number_or_none(value)
    return int(n) if n is not None else None


def parse_list(value: Any, limit: int = MAX_LIST_ITEMS) -> List[str]:
    if not value:
        return []
    items = [s.strip() for s in str(value).split(",")]
    return [s for s in items if s][:limit]


def clamp_date_str(value: Any) -> Optional[str]:
    if value is None:
        return ""
    s = str(value).strip()
    if s == "":
        return ""
    if not DATE_RE.match(s):
        return None
    return s


def clamp_progress(value: Any) -> int:
    n = to_number_or_none(value)
    if n is None or n < 0:
        return 0
    if n > 100:
        return 100
    return int(math.floor(n + 0.5))  # half up
