"""Tests for the command line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from rich.console import Console

from purgewatch import main as cli
from purgewatch.config import Settings
from purgewatch.health.store import HealthStore
from purgewatch.state import PurgeState


def _state(cfg: Settings) -> PurgeState:
    return PurgeState(Path(cfg.state_db_path))


@pytest.fixture
def console(monkeypatch) -> Console:
    recorder = Console(record=True, width=200)
    monkeypatch.setattr(cli, "console", recorder)
    return recorder


def _unreadable_credentials(monkeypatch) -> None:
    def boom(self: PurgeState) -> bool:
        raise OSError("database is locked")

    monkeypatch.setattr(PurgeState, "is_credential_valid", boom)


class TestRunChecks:
    def test_error_when_credentials_never_verified(self, cfg: Settings) -> None:
        assert cli.run_checks(cfg) == cli.EXIT_ERROR

    def test_ok(self, cfg: Settings) -> None:
        cli.record_credentials(True, cfg)
        assert cli.run_checks(cfg) == cli.EXIT_OK

    def test_warning(self, cfg: Settings) -> None:
        cli.record_credentials(True, cfg)
        cli.record_purges(155, cfg)
        assert cli.run_checks(cfg) == cli.EXIT_WARNING

    def test_results_are_stored(self, cfg: Settings) -> None:
        cli.run_checks(cfg)
        store = HealthStore(Path(cfg.health_db_path))
        assert set(store.get_all_latest()) == {"cloudflare_daily_limit_check", "cloudflare_creds"}
        store.close()

    def test_invalid_configuration(self, tmp_path: Path) -> None:
        cfg = Settings(
            state_db_path=str(tmp_path / "s.db"),
            health_db_path=str(tmp_path / "h.db"),
            checks_file=str(tmp_path / "missing.yaml"),
            warning_ratio=1.0,
        )
        assert cli.run_checks(cfg) == cli.EXIT_INVALID_CONFIG

    def test_corrected_ordering_over_limit(self, cfg: Settings) -> None:
        Path(cfg.checks_file).write_text(yaml.dump({
            "checks": [{"id": "daily", "type": "daily_limit", "ordering": "corrected"}],
        }), encoding="utf-8")
        cli.record_purges(201, cfg)
        assert cli.run_checks(cfg) == cli.EXIT_ERROR

    def test_could_not_run(self, cfg: Settings, console: Console, monkeypatch) -> None:
        _unreadable_credentials(monkeypatch)
        assert cli.run_checks(cfg) == cli.EXIT_COULD_NOT_RUN
        output = console.export_text()
        assert "could not run" in output
        assert "database is locked" in output

    def test_error_outranks_could_not_run(self, cfg: Settings, console: Console, monkeypatch) -> None:
        Path(cfg.checks_file).write_text(yaml.dump({
            "checks": [
                {"id": "daily", "type": "daily_limit", "ordering": "corrected"},
                {"id": "creds", "type": "credentials"},
            ],
        }), encoding="utf-8")
        cli.record_purges(201, cfg)
        _unreadable_credentials(monkeypatch)

        assert cli.run_checks(cfg) == cli.EXIT_ERROR
        assert "could not run" in console.export_text()

    def test_malformed_checks_file(self, cfg: Settings, console: Console) -> None:
        Path(cfg.checks_file).write_text(yaml.dump({
            "checks": [
                {"id": "daily", "type": "daily_limit", "warning_ratio": "high"},
                {"id": "creds", "type": "credentials"},
            ],
        }), encoding="utf-8")
        cli.record_credentials(True, cfg)
        cli.record_purges(500, cfg)

        assert cli.run_checks(cfg) == cli.EXIT_INVALID_CONFIG
        assert "warning_ratio" in console.export_text()

    def test_unparseable_checks_file(self, cfg: Settings) -> None:
        Path(cfg.checks_file).write_text("checks: [oops", encoding="utf-8")
        assert cli.run_checks(cfg) == cli.EXIT_INVALID_CONFIG


class TestRecording:
    def test_record_purges_accumulates(self, cfg: Settings) -> None:
        cli.record_purges(3, cfg)
        assert cli.record_purges(4, cfg) == 7

    def test_record_credentials(self, cfg: Settings) -> None:
        cli.record_credentials(True, cfg)
        state = _state(cfg)
        assert state.is_credential_valid() is True
        state.close()


class TestArgParsing:
    def test_no_command_prints_help(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main([])
        assert exc_info.value.code == 1

    def test_check_exit_code(self, cfg: Settings, monkeypatch) -> None:
        monkeypatch.setattr(cli, "settings", cfg)
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["check"])
        assert exc_info.value.code == cli.EXIT_ERROR

    def test_negative_purge_count(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["record-purge", "-2"])
        assert exc_info.value.code == 2
