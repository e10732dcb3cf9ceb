"""Entry point for purgewatch."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from purgewatch.config import Settings, settings
from purgewatch.health.checks import CheckRunError, CloudFlareApiLimits
from purgewatch.health.definitions import build_checks, load_check_defs
from purgewatch.health.engine import InvalidConfiguration, Severity
from purgewatch.health.messages import MessageCatalog
from purgewatch.health.scheduler import execute_check
from purgewatch.health.store import HealthStore
from purgewatch.state import PurgeState

console = Console()
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_WARNING = 1
EXIT_ERROR = 2
EXIT_INVALID_CONFIG = 3
EXIT_COULD_NOT_RUN = 4

_SEVERITY_STYLE = {
    Severity.OK: "bold green",
    Severity.WARNING: "bold yellow",
    Severity.ERROR: "bold red",
}


def run_server(cfg: Settings = settings) -> None:
    """Start the FastAPI server."""
    console.print(f"[bold green]Starting purgewatch on {cfg.api_host}:{cfg.api_port}[/bold green]")
    uvicorn.run(
        "purgewatch.api.server:app",
        host=cfg.api_host,
        port=cfg.api_port,
        reload=False,
    )


def run_checks(cfg: Settings = settings, langcode: str | None = None) -> int:
    """Run every configured check once, print a table and return an exit code."""
    purge_state = PurgeState(Path(cfg.state_db_path))
    store = HealthStore(Path(cfg.health_db_path))
    catalog = (
        MessageCatalog.from_yaml(Path(cfg.translations_file))
        if cfg.translations_file else MessageCatalog()
    )

    try:
        defs = load_check_defs(
            Path(cfg.checks_file),
            warning_ratio=cfg.warning_ratio,
            ordering=cfg.rate_limit_ordering,
        )
        checks = build_checks(
            defs, counter=purge_state, credentials=purge_state,
            limits=CloudFlareApiLimits(cfg.daily_tag_purge_limit),
        )

        table = Table(title="CloudFlare purge diagnostics")
        table.add_column("Check")
        table.add_column("Severity")
        table.add_column("Recommendation")

        severities: list[Severity] = []
        could_not_run = False
        for check in checks:
            try:
                result = execute_check(check, store)
            except CheckRunError as e:
                could_not_run = True
                table.add_row(check.title, "[bold magenta]could not run[/bold magenta]", escape(e.reason))
                continue
            severities.append(result.severity)
            style = _SEVERITY_STYLE[result.severity]
            table.add_row(
                result.title,
                f"[{style}]{result.severity.value.upper()}[/{style}]",
                catalog.render(result, langcode),
            )

        console.print(table)
    except InvalidConfiguration as e:
        console.print(f"[bold red]Invalid configuration:[/bold red] {escape(str(e))}")
        return EXIT_INVALID_CONFIG
    finally:
        store.close()
        purge_state.close()

    worst = Severity.worst(severities)
    if worst is Severity.ERROR:
        return EXIT_ERROR
    if could_not_run:
        return EXIT_COULD_NOT_RUN
    if worst is Severity.WARNING:
        return EXIT_WARNING
    return EXIT_OK


def record_purges(count: int, cfg: Settings = settings) -> int:
    purge_state = PurgeState(Path(cfg.state_db_path))
    try:
        total = purge_state.increment_tag_purge_daily_count(count)
    finally:
        purge_state.close()
    console.print(f"Tag purges today: {total}/{cfg.daily_tag_purge_limit}")
    return total


def record_credentials(valid: bool, cfg: Settings = settings) -> None:
    purge_state = PurgeState(Path(cfg.state_db_path))
    try:
        purge_state.set_credentials_valid(valid)
    finally:
        purge_state.close()
    console.print(f"CloudFlare credentials recorded as {'valid' if valid else 'invalid'}")


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="CloudFlare purge diagnostics")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server")

    check_parser = sub.add_parser("check", help="Run all diagnostic checks once")
    check_parser.add_argument("--langcode", default=None, help="Translate messages to this language")

    purge_parser = sub.add_parser("record-purge", help="Record tag purges sent today")
    purge_parser.add_argument("count", nargs="?", type=int, default=1)

    creds_parser = sub.add_parser("credentials", help="Record credential verification outcome")
    creds_parser.add_argument("outcome", choices=["valid", "invalid"])

    args = parser.parse_args(argv)

    if args.command == "serve":
        run_server(settings)
    elif args.command == "check":
        sys.exit(run_checks(settings, langcode=args.langcode))
    elif args.command == "record-purge":
        if args.count < 0:
            parser.error("count must be non-negative")
        record_purges(args.count, settings)
    elif args.command == "credentials":
        record_credentials(args.outcome == "valid", settings)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
