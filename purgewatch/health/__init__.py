"""Diagnostics subsystem: evaluator, checks, SQLite storage, scheduler."""

from .checks import CheckRunError, CredentialCheck, DailyLimitCheck, DiagnosticCheck
from .engine import (
    CheckResult,
    InvalidConfiguration,
    RateLimitOrdering,
    Severity,
    evaluate_credentials,
    evaluate_rate_limit,
)
from .scheduler import HealthScheduler
from .store import HealthStore
