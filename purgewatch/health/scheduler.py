"""Diagnostic check scheduler: runs checks at configured intervals.

Results are stored in HealthStore and broadcast via SSE callbacks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from .checks import CheckRunError, DiagnosticCheck
from .engine import CheckResult, InvalidConfiguration
from .store import HealthStore

logger = logging.getLogger(__name__)


def execute_check(check: DiagnosticCheck, store: HealthStore) -> CheckResult:
    """Run a single check and persist its result."""
    result = check.run()
    store.store_result(result)
    return result


class HealthScheduler:
    """Schedules and executes the diagnostic checks.

    Uses a simple asyncio loop per check; each run happens in a thread pool
    so SQLite access never blocks the event loop.
    """

    def __init__(
        self,
        checks: list[DiagnosticCheck],
        store: HealthStore,
        on_result: Callable[[CheckResult], Any] | None = None,
    ) -> None:
        self.checks = checks
        self.store = store
        self.on_result = on_result  # SSE broadcast callback
        self._executor = ThreadPoolExecutor(max_workers=4)
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False
        # Latest failure per check id, cleared by the next successful run
        self.failures: dict[str, dict[str, Any]] = {}

    def get(self, check_id: str) -> DiagnosticCheck | None:
        return next((c for c in self.checks if c.id == check_id), None)

    async def start(self) -> None:
        """Start scheduling all checks."""
        if self._running:
            return
        self._running = True

        if not self.checks:
            logger.info("No diagnostic checks configured, scheduler idle")
            return

        for check in self.checks:
            task = asyncio.create_task(self._check_loop(check), name=f"diagnostic-{check.id}")
            self._tasks.append(task)

        logger.info("Diagnostic scheduler started: %d checks", len(self.checks))

    async def stop(self) -> None:
        """Stop all check loops."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._executor.shutdown(wait=False)
        logger.info("Diagnostic scheduler stopped")

    async def run_check(self, check_id: str) -> CheckResult | None:
        """Run one check immediately. Returns None for an unknown id.

        CheckRunError and InvalidConfiguration propagate to the caller.
        """
        check = self.get(check_id)
        if check is None:
            return None
        return await self._run(check)

    async def run_all_now(self) -> tuple[list[CheckResult], list[dict[str, Any]]]:
        """Run every check immediately.

        Returns ``(results, failures)``; a check that could not run or is
        misconfigured shows up in ``failures`` instead of ``results``.
        """
        results: list[CheckResult] = []
        failures: list[dict[str, Any]] = []
        for check in self.checks:
            try:
                results.append(await self._run(check))
            except (CheckRunError, InvalidConfiguration):
                logger.exception("Diagnostic check failed: %s", check.id)
                failures.append(self.failures[check.id])
        return results, failures

    async def _run(self, check: DiagnosticCheck) -> CheckResult:
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(self._executor, execute_check, check, self.store)
        except (CheckRunError, InvalidConfiguration) as e:
            self.failures[check.id] = _failure(check, e)
            raise
        self.failures.pop(check.id, None)
        self._broadcast(result)
        return result

    def _broadcast(self, result: CheckResult) -> None:
        if self.on_result:
            try:
                self.on_result(result)
            except Exception:
                logger.exception("SSE callback error")

    async def _check_loop(self, check: DiagnosticCheck) -> None:
        """Persistent loop that runs a single check at its interval."""
        interval = check.interval_seconds

        # Run immediately on start
        try:
            await self._run(check)
        except Exception:
            logger.exception("Diagnostic check error: %s", check.id)

        # Then repeat at interval
        while self._running:
            try:
                await asyncio.sleep(interval)
                if not self._running:
                    break

                result = await self._run(check)
                logger.debug("Check %s: %s", check.id, result.severity.value)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Diagnostic check error: %s", check.id)
                await asyncio.sleep(min(interval, 60))


def _failure(check: DiagnosticCheck, error: Exception) -> dict[str, Any]:
    if isinstance(error, CheckRunError):
        state, reason = "could_not_run", error.reason
    else:
        state, reason = "invalid_configuration", str(error)
    return {
        "check_id": check.id,
        "title": check.title,
        "state": state,
        "reason": reason,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
