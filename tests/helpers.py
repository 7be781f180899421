"""Builders shared by the test modules."""

from datetime import UTC, datetime, timedelta

from hbknowledge.models import DynamicRule

BASE_TIME = datetime(2026, 1, 1, tzinfo=UTC)


def make_clock(start: datetime = BASE_TIME, step: timedelta = timedelta(seconds=1)):
    """A clock that advances by ``step`` on every call, for deterministic generated_at."""
    state = {"now": start - step}

    def clock() -> datetime:
        state["now"] += step
        return state["now"]

    return clock


def make_dynamic_rule(
    rule_id: str,
    pattern: str = r"\bLegacyThing\b",
    *,
    token: str | None = None,
    severity: str = "warning",
    correction_id: str | None = None,
    generated_at: datetime = BASE_TIME,
    review_status: str = "draft",
) -> DynamicRule:
    return DynamicRule(
        id=rule_id,
        pattern=pattern,
        description=f"Rule {rule_id}",
        severity=severity,
        correction_id=correction_id,
        deprecated_api=token or rule_id,
        source_release="2.0.0",
        review_status=review_status,
        generated_at=generated_at,
    )
