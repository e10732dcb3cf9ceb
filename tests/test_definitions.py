"""Tests for checks.yaml loading + check construction."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from purgewatch.health.checks import CloudFlareApiLimits, CredentialCheck, DailyLimitCheck
from purgewatch.health.definitions import (
    CheckDef,
    build_checks,
    default_check_defs,
    load_check_defs,
)
from purgewatch.health.engine import InvalidConfiguration, RateLimitOrdering, Severity
from purgewatch.state import PurgeState


@pytest.fixture
def checks_yaml(tmp_path: Path) -> Path:
    data = {
        "checks": [
            {
                "id": "daily",
                "type": "daily_limit",
                "interval_seconds": 60,
                "warning_ratio": 0.5,
                "ordering": "corrected",
            },
            {"id": "creds", "type": "credentials", "enabled": False},
        ]
    }
    path = tmp_path / "checks.yaml"
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


def _write(tmp_path: Path, data: object) -> Path:
    path = tmp_path / "checks.yaml"
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


class TestLoadCheckDefs:
    def test_parses_valid_entries(self, checks_yaml: Path) -> None:
        defs = load_check_defs(checks_yaml)
        assert [d.id for d in defs] == ["daily", "creds"]

        daily = defs[0]
        assert daily.interval_seconds == 60
        assert daily.warning_ratio == 0.5
        assert daily.ordering == "corrected"
        assert defs[1].enabled is False

    def test_defaults_apply_to_entries(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"checks": [{"id": "d", "type": "daily_limit"}]})
        (d,) = load_check_defs(path, warning_ratio=0.9, ordering="corrected")
        assert d.warning_ratio == 0.9
        assert d.ordering == "corrected"
        assert d.interval_seconds == 300

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        defs = load_check_defs(tmp_path / "nope.yaml")
        assert defs == default_check_defs()
        assert [d.id for d in defs] == ["cloudflare_daily_limit_check", "cloudflare_creds"]

    def test_unparseable_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "checks.yaml"
        path.write_text("checks: [oops", encoding="utf-8")
        with pytest.raises(InvalidConfiguration, match="Failed to parse"):
            load_check_defs(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "checks.yaml"
        path.write_text("", encoding="utf-8")
        assert load_check_defs(path) == []

    @pytest.mark.parametrize("data", [
        ["daily", "creds"],
        "checks",
        {"checks": {"id": "daily"}},
    ])
    def test_wrong_file_shape_raises(self, tmp_path: Path, data: object) -> None:
        with pytest.raises(InvalidConfiguration):
            load_check_defs(_write(tmp_path, data))

    @pytest.mark.parametrize("entry, match", [
        ({"id": "daily", "type": "daily_limit", "warning_ratio": "high"}, "warning_ratio"),
        ({"id": "daily", "type": "daily_limit", "interval_seconds": "often"}, "interval_seconds"),
        ({"id": "daily", "type": "daily_limit", "interval_seconds": 0}, "interval_seconds"),
        ({"type": "credentials"}, "no id"),
        ({"id": "mystery", "type": "ping"}, "unknown type"),
        ("daily_limit", "must be a mapping"),
    ])
    def test_malformed_entry_raises(self, tmp_path: Path, entry: object, match: str) -> None:
        path = _write(tmp_path, {"checks": [entry, {"id": "creds", "type": "credentials"}]})
        with pytest.raises(InvalidConfiguration, match=match):
            load_check_defs(path)

    def test_duplicate_id_raises(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"checks": [
            {"id": "daily", "type": "daily_limit"},
            {"id": "daily", "type": "daily_limit"},
        ]})
        with pytest.raises(InvalidConfiguration, match="Duplicate"):
            load_check_defs(path)


class TestBuildChecks:
    def test_builds_enabled_checks(self, purge_state: PurgeState) -> None:
        defs = [
            CheckDef(id="daily", type="daily_limit", ordering="corrected", interval_seconds=30),
            CheckDef(id="creds", type="credentials"),
            CheckDef(id="off", type="credentials", enabled=False),
        ]
        checks = build_checks(defs, purge_state, purge_state, CloudFlareApiLimits())

        assert [c.id for c in checks] == ["daily", "creds"]
        assert isinstance(checks[0], DailyLimitCheck)
        assert checks[0].ordering is RateLimitOrdering.CORRECTED
        assert checks[0].interval_seconds == 30
        assert isinstance(checks[1], CredentialCheck)

    def test_custom_id_does_not_leak_to_class(self, purge_state: PurgeState) -> None:
        build_checks([CheckDef(id="custom", type="credentials")], purge_state, purge_state, CloudFlareApiLimits())
        assert CredentialCheck.id == "cloudflare_creds"

    def test_checks_read_shared_state(self, purge_state: PurgeState) -> None:
        checks = build_checks(default_check_defs(), purge_state, purge_state, CloudFlareApiLimits())
        purge_state.increment_tag_purge_daily_count(180)
        purge_state.set_credentials_valid(True)

        results = {c.id: c.run() for c in checks}
        assert results["cloudflare_daily_limit_check"].severity == Severity.WARNING
        assert results["cloudflare_creds"].severity == Severity.OK

    def test_invalid_ratio_raises(self, purge_state: PurgeState) -> None:
        defs = [CheckDef(id="daily", type="daily_limit", warning_ratio=1.0)]
        with pytest.raises(InvalidConfiguration):
            build_checks(defs, purge_state, purge_state, CloudFlareApiLimits())

    def test_unknown_type_raises(self, purge_state: PurgeState) -> None:
        with pytest.raises(InvalidConfiguration, match="unknown type"):
            build_checks([CheckDef(id="x", type="ping")], purge_state, purge_state, CloudFlareApiLimits())
