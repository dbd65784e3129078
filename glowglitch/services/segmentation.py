# glowglitch/services/segmentation.py
"""
Customer segment evaluation.

Rules are evaluated against User.segment_attributes(). The base audience is
active customers with a verified email who have not opted out of marketing;
rule matching happens on top of that audience.
"""
from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.core.clock import utcnow
from glowglitch.models.marketing import CustomerSegment
from glowglitch.models.user import User

OPERATORS = (
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "greater_than",
    "less_than",
    "between",
    "in",
    "not_in",
)


class RuleError(ValueError):
    pass


def validate_rules(rules: Sequence[Mapping[str, Any]]) -> None:
    if not rules:
        raise RuleError("Criteria rules must be a non-empty array")
    for i, rule in enumerate(rules):
        if not rule.get("field"):
            raise RuleError(f"Rule {i + 1} is missing a field")
        op = rule.get("operator")
        if op not in OPERATORS:
            raise RuleError(f"Rule {i + 1} has an invalid operator: {op!r}")
        if op == "between":
            value = rule.get("value")
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                raise RuleError(f"Rule {i + 1}: 'between' needs a [min, max] value")
        logic = rule.get("logic")
        if logic is not None and str(logic).upper() not in {"AND", "OR"}:
            raise RuleError(f"Rule {i + 1} has an invalid logic: {logic!r}")


def _comparable(value: Any) -> Any:
    """Coerce numbers and ISO dates so rule values coming from JSON compare with model values."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=utcnow().tzinfo)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=utcnow().tzinfo)
    return value


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, list):
        return expected in actual
    if isinstance(actual, str) and isinstance(expected, str):
        return actual == expected
    return _comparable(actual) == _comparable(expected)


def _contains(actual: Any, needle: Any) -> bool:
    if actual is None:
        return False
    pattern = re.compile(re.escape(str(needle)), re.IGNORECASE)
    if isinstance(actual, list):
        return any(pattern.search(str(v)) for v in actual)
    return bool(pattern.search(str(actual)))


def _ordered(actual: Any, expected: Any, op) -> bool:
    a, b = _comparable(actual), _comparable(expected)
    if a is None or b is None:
        return False
    try:
        return op(a, b)
    except TypeError:
        return False


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else [value]


def rule_matches(attributes: Mapping[str, Any], rule: Mapping[str, Any]) -> bool:
    actual = attributes.get(rule["field"])
    op = rule["operator"]
    value = rule.get("value")

    if op == "equals":
        return _equals(actual, value)
    if op == "not_equals":
        return not _equals(actual, value)
    if op == "contains":
        return _contains(actual, value)
    if op == "not_contains":
        return not _contains(actual, value)
    if op == "greater_than":
        return _ordered(actual, value, lambda a, b: a > b)
    if op == "less_than":
        return _ordered(actual, value, lambda a, b: a < b)
    if op == "between":
        low, high = value
        return _ordered(actual, low, lambda a, b: a >= b) and _ordered(actual, high, lambda a, b: a <= b)
    if op == "in":
        return any(_equals(actual, v) for v in _as_list(value))
    if op == "not_in":
        return not any(_equals(actual, v) for v in _as_list(value))
    return False


def matches(attributes: Mapping[str, Any], rules: Sequence[Mapping[str, Any]]) -> bool:
    """Combination logic is taken from the first rule (AND unless it says OR)."""
    if not rules:
        return True
    logic = str(rules[0].get("logic") or "AND").upper()
    results = (rule_matches(attributes, r) for r in rules)
    return any(results) if logic == "OR" else all(results)


def _field_label(field: str) -> str:
    spaced = re.sub(r"([A-Z])", r" \1", field)
    return spaced[:1].upper() + spaced[1:]


def _describe(rule: Mapping[str, Any]) -> str:
    name = _field_label(rule["field"])
    op = rule["operator"]
    value = rule.get("value")
    if op == "equals":
        return f'{name} equals "{value}"'
    if op == "not_equals":
        return f'{name} does not equal "{value}"'
    if op == "contains":
        return f'{name} contains "{value}"'
    if op == "not_contains":
        return f'{name} does not contain "{value}"'
    if op == "greater_than":
        return f"{name} is greater than {value}"
    if op == "less_than":
        return f"{name} is less than {value}"
    if op == "between":
        return f"{name} is between {value[0]} and {value[1]}"
    if op == "in":
        return f"{name} is in [{', '.join(str(v) for v in _as_list(value))}]"
    if op == "not_in":
        return f"{name} is not in [{', '.join(str(v) for v in _as_list(value))}]"
    return f"{name} {op} {value}"


def conditions_text(rules: Sequence[Mapping[str, Any]]) -> str:
    logic = str(rules[0].get("logic") or "AND").upper() if rules else "AND"
    return f" {logic} ".join(_describe(r) for r in rules)


async def audience(db: AsyncSession) -> list[User]:
    stmt = (
        select(User)
        .where(
            User.is_active.is_(True),
            User.email_verified.is_(True),
            User.marketing_opt_in.is_(True),
        )
        .order_by(User.created_at.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def segment_members(
    db: AsyncSession,
    rules: Sequence[Mapping[str, Any]],
    limit: Optional[int] = None,
) -> list[User]:
    members: list[User] = []
    for user in await audience(db):
        if matches(user.segment_attributes(), rules):
            members.append(user)
            if limit is not None and len(members) >= limit:
                break
    return members


async def recalculate(db: AsyncSession, segment: CustomerSegment) -> CustomerSegment:
    segment.customer_count = len(await segment_members(db, segment.rules or []))
    segment.last_calculated = utcnow()
    return segment


async def users_in_segments(db: AsyncSession, segment_ids: Iterable[str]) -> dict[str, User]:
    """Union of the members of the given segments, keyed by user id."""
    ids = [s for s in segment_ids if s]
    if not ids:
        return {}

    segments = (
        await db.execute(select(CustomerSegment).where(CustomerSegment.id.in_([uuid.UUID(str(s)) for s in ids])))
    ).scalars().all()
    out: dict[str, User] = {}
    for segment in segments:
        for user in await segment_members(db, segment.rules or []):
            out[str(user.id)] = user
    return out


async def user_in_segments(db: AsyncSession, user: User, segment_ids: Iterable[str]) -> bool:
    """True when no segments are given, else whether the user matches any of them."""
    ids = [s for s in segment_ids if s]
    if not ids:
        return True
    if not (user.is_active and user.email_verified and user.marketing_opt_in):
        return False

    segments = (
        await db.execute(select(CustomerSegment).where(CustomerSegment.id.in_([uuid.UUID(str(s)) for s in ids])))
    ).scalars().all()
    attrs = user.segment_attributes()
    return any(matches(attrs, s.rules or []) for s in segments)


async def unknown_segment_ids(db: AsyncSession, segment_ids: Iterable[uuid.UUID]) -> list[str]:
    ids = list(dict.fromkeys(segment_ids))
    if not ids:
        return []
    found = set((await db.execute(select(CustomerSegment.id).where(CustomerSegment.id.in_(ids)))).scalars().all())
    return [str(s) for s in ids if s not in found]
