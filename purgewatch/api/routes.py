"""API routes for the CloudFlare purge diagnostics.

Endpoints:
  GET  /api/diagnostics                      - every check with its latest result
  POST /api/diagnostics/run                  - run all checks now
  POST /api/diagnostics/{check_id}/run       - run one check now
  GET  /api/diagnostics/{check_id}/history   - time series
  GET  /api/diagnostics/incidents            - open + recent incidents
  GET  /api/diagnostics/stream               - SSE stream of live results
  GET  /api/purges                           - today's tag purge count vs limit
  POST /api/purges                           - record tag purges
  PUT  /api/credentials                      - record credential verification
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from purgewatch.health.checks import CheckRunError
from purgewatch.health.engine import CheckResult, InvalidConfiguration, Severity
from purgewatch.health.messages import MessageCatalog, render

logger = logging.getLogger(__name__)

diagnostics_router = APIRouter()


# -- Request models ---------------------------------------------------------------


class PurgeRecord(BaseModel):
    count: int = Field(default=1, ge=0)


class CredentialRecord(BaseModel):
    valid: bool


# -- SSE subscriber list (in-memory) ------------------------------------------------

_sse_queues: list[asyncio.Queue[dict[str, Any]]] = []


def broadcast_result(result: CheckResult) -> None:
    """Push a check result to all SSE subscribers."""
    data = result.to_dict()
    for q in _sse_queues:
        try:
            q.put_nowait(data)
        except asyncio.QueueFull:
            pass  # slow consumer, drop


# -- Helpers ------------------------------------------------------------------------


def _render_result(result: CheckResult, catalog: MessageCatalog, langcode: str | None) -> dict[str, Any]:
    d = result.to_dict()
    d["recommendation"] = catalog.render(result, langcode)
    return d


def _render_row(row: dict[str, Any] | None, catalog: MessageCatalog, langcode: str | None) -> dict[str, Any] | None:
    if row is None:
        return None
    d = dict(row)
    d["recommendation"] = render(catalog.translate(row["message"], langcode), row["params"])
    return d


# -- Diagnostics ------------------------------------------------------------------


@diagnostics_router.get("/diagnostics")
def list_diagnostics(request: Request, langcode: str | None = None) -> dict[str, Any]:
    """Every configured check with its latest stored result."""
    scheduler = request.app.state.health_scheduler
    store = request.app.state.health_store
    catalog = request.app.state.catalog

    latest = store.get_all_latest()
    checks = []
    for check in scheduler.checks:
        entry = check.describe()
        entry["latest"] = _render_row(latest.get(check.id), catalog, langcode)
        entry["ok_ratio_24h"] = store.get_ok_ratio_24h(check.id)
        entry["failure"] = scheduler.failures.get(check.id)
        checks.append(entry)

    severities = [Severity(c["latest"]["severity"]) for c in checks if c["latest"]]
    overall = Severity.worst(severities).value if severities else "unknown"

    return {
        "overall": overall,
        "checks": checks,
        "open_incidents": len(store.get_open_incidents()),
        "failures": [c["failure"] for c in checks if c["failure"]],
    }


@diagnostics_router.post("/diagnostics/run")
async def run_all(request: Request, langcode: str | None = None) -> dict[str, Any]:
    """Run every check immediately."""
    scheduler = request.app.state.health_scheduler
    catalog = request.app.state.catalog
    results, failures = await scheduler.run_all_now()
    return {
        "results": [_render_result(r, catalog, langcode) for r in results],
        "failures": failures,
    }


@diagnostics_router.get("/diagnostics/incidents")
def list_incidents(
    request: Request, check_id: str | None = None, limit: int = 50,
) -> dict[str, Any]:
    """Get incidents (open + resolved)."""
    store = request.app.state.health_store
    return {
        "incidents": store.get_incidents(check_id, limit),
        "open": store.get_open_incidents(),
    }


@diagnostics_router.get("/diagnostics/stream")
async def diagnostics_stream(request: Request) -> StreamingResponse:
    """Server-Sent Events stream for real-time check results."""
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=50)
    _sse_queues.append(queue)

    async def event_generator():
        try:
            store = request.app.state.health_store
            yield f"event: init\ndata: {json.dumps(store.get_all_latest())}\n\n"

            while True:
                if await request.is_disconnected():
                    break
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=30)
                    yield f"event: check\ndata: {json.dumps(data)}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            _sse_queues.remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@diagnostics_router.post("/diagnostics/{check_id}/run")
async def run_one(check_id: str, request: Request, langcode: str | None = None) -> dict[str, Any]:
    """Run a single check immediately."""
    scheduler = request.app.state.health_scheduler
    catalog = request.app.state.catalog

    if scheduler.get(check_id) is None:
        raise HTTPException(status_code=404, detail=f"Check not found: {check_id}")

    try:
        result = await scheduler.run_check(check_id)
    except CheckRunError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except InvalidConfiguration as e:
        logger.error("Check %s is misconfigured: %s", check_id, e)
        raise HTTPException(status_code=500, detail=f"Invalid configuration: {e}")

    return _render_result(result, catalog, langcode)


@diagnostics_router.get("/diagnostics/{check_id}/history")
def check_history(
    check_id: str, request: Request, limit: int = 100, langcode: str | None = None,
) -> dict[str, Any]:
    """Get time-series history for a specific check."""
    scheduler = request.app.state.health_scheduler
    store = request.app.state.health_store
    catalog = request.app.state.catalog

    if scheduler.get(check_id) is None:
        raise HTTPException(status_code=404, detail=f"Check not found: {check_id}")

    return {
        "check_id": check_id,
        "ok_ratio_24h": store.get_ok_ratio_24h(check_id),
        "history": [_render_row(r, catalog, langcode) for r in store.get_history(check_id, limit)],
    }


# -- Purge state ------------------------------------------------------------------


@diagnostics_router.get("/purges")
def purge_status(request: Request) -> dict[str, Any]:
    """Today's tag purge count against the CloudFlare daily limit."""
    purge_state = request.app.state.purge_state
    limits = request.app.state.limits
    return {
        "daily_count": purge_state.get_tag_daily_count(),
        "daily_limit": limits.daily_rate_limit,
    }


@diagnostics_router.post("/purges")
def record_purges(body: PurgeRecord, request: Request) -> dict[str, Any]:
    """Record tag purges sent to CloudFlare."""
    purge_state = request.app.state.purge_state
    total = purge_state.increment_tag_purge_daily_count(body.count)
    return {"daily_count": total, "daily_limit": request.app.state.limits.daily_rate_limit}


@diagnostics_router.put("/credentials")
def record_credentials(body: CredentialRecord, request: Request) -> dict[str, Any]:
    """Record the outcome of the latest CloudFlare credential verification."""
    purge_state = request.app.state.purge_state
    purge_state.set_credentials_valid(body.valid)
    return {"valid": purge_state.is_credential_valid(), "checked_at": purge_state.credentials_checked_at()}
