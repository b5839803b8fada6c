# weam/policy.py
"""
Role-based patch policies.

Each resource declares which request keys a role may change and how each key
is coerced; PatchPolicy.apply() is the single place that filters a request
body. Keys outside the role's allow-list are dropped silently.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Mapping

from weam.errors import ApiError
from weam.models import ROLE_ADMIN, ROLE_USER, ROLES
from weam.validation import (
    clamp_date_str,
    clamp_progress,
    clamp_str,
    to_int_or_none,
    to_number_or_none,
)

SKIP = object()  # coercer result meaning "ignore this key"


@dataclass(frozen=True)
class FieldRule:
    column: str
    coerce: Callable[[str, Any], Any]


def _text(_key: str, value: Any) -> str:
    return clamp_str(value)


def _amount(_key: str, value: Any) -> float:
    return to_number_or_none(value) or 0


def _progress(_key: str, value: Any) -> int:
    return clamp_progress(value)


def _date(key: str, value: Any) -> str:
    d = clamp_date_str(value)
    if d is None:
        raise ApiError(400, f'Invalid date format for "{key}" (YYYY-MM-DD expected)')
    return d


def _user_ref(_key: str, value: Any):
    return to_int_or_none(value)


def _role(_key: str, value: Any):
    role = clamp_str(value)
    return role if role in ROLES else SKIP


class PatchPolicy:
    def __init__(
        self,
        rules: Mapping[str, FieldRule],
        allowed: Mapping[str, FrozenSet[str]],
    ):
        self.rules = dict(rules)
        self.allowed = dict(allowed)

    def allowed_keys(self, role: str) -> FrozenSet[str]:
        return self.allowed.get(role, frozenset())

    def apply(self, role: str, body: Mapping[str, Any]) -> Dict[str, Any]:
        """Return {column: coerced value} for the keys `role` may change."""
        allowed = self.allowed_keys(role)
        patch: Dict[str, Any] = {}
        for key, value in body.items():
            if key not in allowed:
                continue
            rule = self.rules[key]
            coerced = rule.coerce(key, value)
            if coerced is SKIP:
                continue
            patch[rule.column] = coerced
        return patch


PROJECT_PATCH_POLICY = PatchPolicy(
    rules={
        "contractor": FieldRule("contractor", _text),
        "project": FieldRule("project", _text),
        "section": FieldRule("section", _text),
        "direction": FieldRule("direction", _text),
        "grouping": FieldRule("grouping", _text),
        "note": FieldRule("note", _text),
        "name": FieldRule("name", _text),
        "status": FieldRule("status", _text),
        "amount": FieldRule("amount", _amount),
        "progress": FieldRule("progress", _progress),
        "start": FieldRule("start", _date),
        "end": FieldRule("end", _date),
        "user_id": FieldRule("user_id", _user_ref),
        "responsible": FieldRule("user_id", _user_ref),
    },
    allowed={
        ROLE_ADMIN: frozenset(
            {
                "contractor",
                "project",
                "section",
                "direction",
                "grouping",
                "amount",
                "note",
                "start",
                "end",
                "status",
                "progress",
                "user_id",
                "responsible",
                "name",
            }
        ),
        ROLE_USER: frozenset({"status", "start", "end", "progress"}),
    },
)

USER_PATCH_POLICY = PatchPolicy(
    rules={
        "login": FieldRule("login", _text),
        "nickname": FieldRule("nickname", _text),
        "role": FieldRule("role", _role),
        "type": FieldRule("role", _role),
    },
    allowed={
        ROLE_ADMIN: frozenset({"login", "nickname", "role", "type"}),
        ROLE_USER: frozenset({"login", "nickname"}),
    },
)
