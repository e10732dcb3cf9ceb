"""Health check evaluator: classifies purge-limit and credential state.

Pure functions only: callers hand in the current values, the evaluator hands
back a CheckResult holding a severity, an untranslated message template and
its substitution values. Rendering/localisation happens in ``messages``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .messages import render

DEFAULT_WARNING_RATIO = 0.75

# ── Message templates ────────────────────────────────────────────────────────

MSG_BELOW_LIMIT = "Site is safely below the daily limit of :daily_limit tag purges/day."
MSG_APPROACHING_LIMIT = "Approaching Api limit of :daily_count/:daily_limit limit tag purges/day."
MSG_PAST_LIMIT = "Past Api limit of :daily_count/:daily_limit limit tag purges/day."
MSG_INVALID_CREDENTIALS = "Invalid Api credentials."
MSG_VALID_CREDENTIALS = "Valid Api credentials detected."


# ── Models ───────────────────────────────────────────────────────────────────


class Severity(str, Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def worst(cls, severities: list[Severity]) -> Severity:
        """Most severe of ``severities`` (OK for an empty list)."""
        return max(severities, key=lambda s: s.rank, default=cls.OK)


_SEVERITY_RANK = {Severity.OK: 0, Severity.WARNING: 1, Severity.ERROR: 2}


class RateLimitOrdering(str, Enum):
    """Branch order used when classifying the daily purge count.

    LEGACY checks the warning threshold before the hard limit, so a count past
    the limit is still reported as WARNING. CORRECTED checks the limit first.
    """

    LEGACY = "legacy"
    CORRECTED = "corrected"


class InvalidConfiguration(ValueError):
    """Raised when a check is configured with an impossible limit or ratio."""


@dataclass
class CheckResult:
    """Outcome of one evaluation.

    The evaluators leave ``check_id``, ``title`` and ``timestamp`` empty so that
    identical inputs compare equal; running a DiagnosticCheck fills them in.
    """

    severity: Severity
    message: str
    value: int | float | None = None
    params: dict[str, Any] = field(default_factory=dict)
    check_id: str = ""
    title: str = ""
    timestamp: str = ""

    @property
    def recommendation(self) -> str:
        """Message with its parameters substituted, untranslated."""
        return render(self.message, self.params)

    def to_dict(self) -> dict[str, Any]:
        return {
            "check_id": self.check_id,
            "title": self.title,
            "severity": self.severity.value,
            "message": self.message,
            "params": dict(self.params),
            "value": self.value,
            "recommendation": self.recommendation,
            "timestamp": self.timestamp,
        }


# ── Validation ───────────────────────────────────────────────────────────────


def validate_rate_limit_config(limit: int, warning_ratio: float) -> None:
    """Raise InvalidConfiguration unless limit > 0 and 0 < warning_ratio < 1."""
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidConfiguration(f"Daily limit must be an integer, got {limit!r}")
    if limit <= 0:
        raise InvalidConfiguration(f"Daily limit must be positive, got {limit}")
    if not 0 < warning_ratio < 1:
        raise InvalidConfiguration(
            f"Warning ratio must be strictly between 0 and 1, got {warning_ratio}"
        )


def parse_ordering(value: RateLimitOrdering | str) -> RateLimitOrdering:
    try:
        return RateLimitOrdering(value)
    except ValueError:
        choices = ", ".join(o.value for o in RateLimitOrdering)
        raise InvalidConfiguration(
            f"Unknown rate limit ordering {value!r} (expected one of: {choices})"
        ) from None


# ── Evaluators ───────────────────────────────────────────────────────────────


def evaluate_rate_limit(
    count: int,
    limit: int,
    warning_ratio: float = DEFAULT_WARNING_RATIO,
    ordering: RateLimitOrdering = RateLimitOrdering.LEGACY,
) -> CheckResult:
    """Classify today's purge count against the daily limit."""
    validate_rate_limit_config(limit, warning_ratio)
    if count < 0:
        raise InvalidConfiguration(f"Purge count cannot be negative, got {count}")

    threshold = warning_ratio * limit
    params = {":daily_limit": limit, ":daily_count": count}

    if parse_ordering(ordering) is RateLimitOrdering.CORRECTED:
        if count > limit:
            severity, message = Severity.ERROR, MSG_PAST_LIMIT
        elif count >= threshold:
            severity, message = Severity.WARNING, MSG_APPROACHING_LIMIT
        else:
            severity, message = Severity.OK, MSG_BELOW_LIMIT
        return CheckResult(severity=severity, message=message, value=count, params=params)

    if count < threshold:
        severity, message = Severity.OK, MSG_BELOW_LIMIT
    elif count >= threshold:
        severity, message = Severity.WARNING, MSG_APPROACHING_LIMIT
    elif count > limit:
        severity, message = Severity.ERROR, MSG_PAST_LIMIT
    else:
        severity, message = Severity.OK, MSG_BELOW_LIMIT

    return CheckResult(severity=severity, message=message, value=count, params=params)


def evaluate_credentials(is_valid: bool) -> CheckResult:
    """Classify the last recorded credential verification."""
    if not is_valid:
        return CheckResult(severity=Severity.ERROR, message=MSG_INVALID_CREDENTIALS)
    return CheckResult(severity=Severity.OK, message=MSG_VALID_CREDENTIALS)
