"""Check definitions: loads checks.yaml and builds the configured checks.

Example::

    checks:
      - id: cloudflare_daily_limit_check
        type: daily_limit
        interval_seconds: 300
        warning_ratio: 0.75
        ordering: corrected
      - id: cloudflare_creds
        type: credentials
        enabled: false

Checks are built by calling their constructors directly with the providers
they read from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .checks import (
    CounterProvider,
    CredentialCheck,
    CredentialStateProvider,
    DailyLimitCheck,
    DiagnosticCheck,
    LimitProvider,
)
from .engine import DEFAULT_WARNING_RATIO, InvalidConfiguration, RateLimitOrdering

logger = logging.getLogger(__name__)

CHECK_TYPES = ("daily_limit", "credentials")


@dataclass
class CheckDef:
    """Definition of a single diagnostic check."""

    id: str
    type: str  # daily_limit | credentials
    enabled: bool = True
    interval_seconds: int = 300
    warning_ratio: float = DEFAULT_WARNING_RATIO  # daily_limit only
    ordering: str = RateLimitOrdering.LEGACY.value  # daily_limit only


def default_check_defs(
    warning_ratio: float = DEFAULT_WARNING_RATIO,
    ordering: str = RateLimitOrdering.LEGACY.value,
) -> list[CheckDef]:
    return [
        CheckDef(
            id=DailyLimitCheck.id, type="daily_limit",
            warning_ratio=warning_ratio, ordering=ordering,
        ),
        CheckDef(id=CredentialCheck.id, type="credentials"),
    ]


def load_check_defs(
    path: Path,
    warning_ratio: float = DEFAULT_WARNING_RATIO,
    ordering: str = RateLimitOrdering.LEGACY.value,
) -> list[CheckDef]:
    """Parse ``path`` into CheckDefs.

    ``warning_ratio`` and ``ordering`` are the defaults for entries that do
    not set their own. A missing file yields the two standard checks; any
    other problem with the file raises InvalidConfiguration.
    """
    if not path.exists():
        logger.info("Checks file not found: %s, using default checks", path)
        return default_check_defs(warning_ratio, ordering)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise InvalidConfiguration(f"Failed to parse {path}: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidConfiguration(f"{path}: expected a mapping with a 'checks' list")

    entries = raw.get("checks") or []
    if not isinstance(entries, list):
        raise InvalidConfiguration(f"{path}: 'checks' must be a list")

    defs: list[CheckDef] = []
    seen: set[str] = set()
    for i, entry in enumerate(entries):
        check_def = _parse_check_def(entry, i, warning_ratio, ordering)
        if check_def.id in seen:
            raise InvalidConfiguration(f"Duplicate check id '{check_def.id}'")
        seen.add(check_def.id)
        defs.append(check_def)

    logger.info("Loaded %d check definitions from %s", len(defs), path)
    return defs


def build_checks(
    defs: list[CheckDef],
    counter: CounterProvider,
    credentials: CredentialStateProvider,
    limits: LimitProvider,
) -> list[DiagnosticCheck]:
    """Construct every enabled check. Raises InvalidConfiguration on bad settings."""
    checks: list[DiagnosticCheck] = []
    for d in defs:
        if not d.enabled:
            logger.info("Check '%s' is disabled", d.id)
            continue

        check: DiagnosticCheck
        if d.type == "daily_limit":
            check = DailyLimitCheck(
                counter, limits,
                warning_ratio=d.warning_ratio,
                ordering=d.ordering,
                interval_seconds=d.interval_seconds,
            )
        elif d.type == "credentials":
            check = CredentialCheck(credentials, interval_seconds=d.interval_seconds)
        else:
            raise InvalidConfiguration(f"Check '{d.id}': unknown type '{d.type}'")

        # Instance attribute shadows the class-level id
        check.id = d.id
        checks.append(check)
    return checks


def _parse_check_def(
    raw: Any, index: int, warning_ratio: float, ordering: str,
) -> CheckDef:
    if not isinstance(raw, dict):
        raise InvalidConfiguration(f"Check entry #{index} must be a mapping, got {raw!r}")

    check_id = raw.get("id")
    if not check_id or not isinstance(check_id, str):
        raise InvalidConfiguration(f"Check entry #{index} has no id")

    check_type = raw.get("type")
    if check_type not in CHECK_TYPES:
        raise InvalidConfiguration(
            f"Check '{check_id}': unknown type {check_type!r} "
            f"(expected one of: {', '.join(CHECK_TYPES)})"
        )

    interval = raw.get("interval_seconds", 300)
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise InvalidConfiguration(
            f"Check '{check_id}': interval_seconds must be a positive integer, got {interval!r}"
        )

    ratio = raw.get("warning_ratio", warning_ratio)
    if isinstance(ratio, bool) or not isinstance(ratio, (int, float)):
        raise InvalidConfiguration(
            f"Check '{check_id}': warning_ratio must be a number, got {ratio!r}"
        )

    return CheckDef(
        id=check_id,
        type=check_type,
        enabled=bool(raw.get("enabled", True)),
        interval_seconds=interval,
        warning_ratio=float(ratio),
        ordering=str(raw.get("ordering", ordering)),
    )
