"""Diagnostic checks for the CloudFlare purger.

Each check receives the providers it reads from in its constructor and turns
their current values into a CheckResult via the pure evaluators in
``engine``. CloudFlare currently allows 200 tag purges per day, see
https://support.cloudflare.com/hc/en-us/articles/206596608-How-to-Purge-Cache-Using-Cache-Tags
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from .engine import (
    DEFAULT_WARNING_RATIO,
    CheckResult,
    RateLimitOrdering,
    Severity,
    evaluate_credentials,
    evaluate_rate_limit,
    parse_ordering,
    validate_rate_limit_config,
)

logger = logging.getLogger(__name__)


# ── Provider interfaces ──────────────────────────────────────────────────────


class CounterProvider(Protocol):
    def get_current_period_count(self) -> int: ...


class LimitProvider(Protocol):
    @property
    def daily_rate_limit(self) -> int: ...


class CredentialStateProvider(Protocol):
    def is_credential_valid(self) -> bool: ...


class CloudFlareApiLimits:
    """Rate limits published by CloudFlare for the purge API."""

    API_TAG_PURGE_DAILY_RATE_LIMIT = 200

    def __init__(self, daily_rate_limit: int | None = None) -> None:
        self._daily_rate_limit = (
            self.API_TAG_PURGE_DAILY_RATE_LIMIT if daily_rate_limit is None else daily_rate_limit
        )

    @property
    def daily_rate_limit(self) -> int:
        return self._daily_rate_limit


class CheckRunError(Exception):
    """Raised when a check could not read the state it evaluates."""

    def __init__(self, check_id: str, reason: str) -> None:
        self.check_id = check_id
        self.reason = reason
        super().__init__(f"Check '{check_id}' could not run: {reason}")


# ── Checks ───────────────────────────────────────────────────────────────────


class DiagnosticCheck:
    """Base class: metadata plus ``run()`` stamping the result."""

    id: str = ""
    title: str = ""
    description: str = ""
    dependent_purger_plugins: tuple[str, ...] = ()

    def __init__(self, interval_seconds: int = 300) -> None:
        self.interval_seconds = interval_seconds

    def evaluate(self) -> CheckResult:
        raise NotImplementedError

    def run(self) -> CheckResult:
        """Evaluate and tag the result with this check's id, title and time."""
        result = self.evaluate()
        result.check_id = self.id
        result.title = self.title
        result.timestamp = datetime.now(timezone.utc).isoformat()
        return result

    def describe(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "dependent_purger_plugins": list(self.dependent_purger_plugins),
            "interval_seconds": self.interval_seconds,
        }


class DailyLimitCheck(DiagnosticCheck):
    """Checks that the site is within CloudFlare's daily tag purge limit."""

    id = "cloudflare_daily_limit_check"
    title = "CloudFlare - Daily Tag Purge Limit"
    description = "Checks that the site is not violating CloudFlare's daily purge limit."

    def __init__(
        self,
        counter: CounterProvider,
        limits: LimitProvider,
        warning_ratio: float = DEFAULT_WARNING_RATIO,
        ordering: RateLimitOrdering | str = RateLimitOrdering.LEGACY,
        interval_seconds: int = 300,
    ) -> None:
        super().__init__(interval_seconds)
        self.counter = counter
        self.limits = limits
        self.warning_ratio = warning_ratio
        self.ordering = parse_ordering(ordering)
        validate_rate_limit_config(limits.daily_rate_limit, warning_ratio)

    def evaluate(self) -> CheckResult:
        try:
            daily_count = self.counter.get_current_period_count()
        except Exception as e:
            raise CheckRunError(self.id, f"purge counter unavailable: {e}") from e

        limit = self.limits.daily_rate_limit
        result = evaluate_rate_limit(daily_count, limit, self.warning_ratio, self.ordering)

        if daily_count > limit and result.severity is not Severity.ERROR:
            logger.warning(
                "Daily purge count %d exceeds limit %d but is reported as %s "
                "(rate_limit_ordering=%s)",
                daily_count, limit, result.severity.value, self.ordering.value,
            )
        return result

    def describe(self) -> dict[str, object]:
        d = super().describe()
        d.update({
            "daily_limit": self.limits.daily_rate_limit,
            "warning_ratio": self.warning_ratio,
            "ordering": self.ordering.value,
        })
        return d


class CredentialCheck(DiagnosticCheck):
    """Checks if valid Api credentials have been entered for CloudFlare."""

    id = "cloudflare_creds"
    title = "CloudFlare - Credentials"
    description = "Checks to see if the credentials for CloudFlare are valid."
    dependent_purger_plugins = ("cloudflare",)

    def __init__(self, credentials: CredentialStateProvider, interval_seconds: int = 300) -> None:
        super().__init__(interval_seconds)
        self.credentials = credentials

    def evaluate(self) -> CheckResult:
        try:
            is_valid = self.credentials.is_credential_valid()
        except Exception as e:
            raise CheckRunError(self.id, f"credential state unavailable: {e}") from e
        return evaluate_credentials(bool(is_valid))

