"""FastAPI server for the purge diagnostics."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from purgewatch import __version__
from purgewatch.api.routes import broadcast_result, diagnostics_router
from purgewatch.config import Settings, settings
from purgewatch.health.checks import CloudFlareApiLimits
from purgewatch.health.definitions import build_checks, load_check_defs
from purgewatch.health.messages import MessageCatalog
from purgewatch.health.scheduler import HealthScheduler
from purgewatch.health.store import HealthStore
from purgewatch.state import PurgeState

logger = logging.getLogger(__name__)


def init_services(
    app: FastAPI,
    cfg: Settings = settings,
    purge_state: PurgeState | None = None,
    health_store: HealthStore | None = None,
) -> HealthScheduler:
    """Build the state, store, checks and scheduler and attach them to ``app.state``.

    Raises InvalidConfiguration when a check is configured with an impossible
    limit or warning ratio.
    """
    purge_state = purge_state or PurgeState(Path(cfg.state_db_path))
    health_store = health_store or HealthStore(Path(cfg.health_db_path))
    limits = CloudFlareApiLimits(cfg.daily_tag_purge_limit)

    defs = load_check_defs(
        Path(cfg.checks_file),
        warning_ratio=cfg.warning_ratio,
        ordering=cfg.rate_limit_ordering,
    )
    checks = build_checks(defs, counter=purge_state, credentials=purge_state, limits=limits)

    catalog = (
        MessageCatalog.from_yaml(Path(cfg.translations_file))
        if cfg.translations_file else MessageCatalog()
    )

    scheduler = HealthScheduler(checks, health_store, on_result=broadcast_result)

    app.state.purge_state = purge_state
    app.state.health_store = health_store
    app.state.limits = limits
    app.state.catalog = catalog
    app.state.health_scheduler = scheduler
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup."""
    scheduler = init_services(app)
    logger.info(
        "Diagnostics ready: %d checks, daily limit %d, ordering=%s",
        len(scheduler.checks), app.state.limits.daily_rate_limit, settings.rate_limit_ordering,
    )

    removed = app.state.health_store.cleanup_old(settings.history_retention_days)
    logger.debug("Startup cleanup removed %d old results", removed)

    try:
        await scheduler.start()
    except Exception:
        logger.exception("Diagnostic scheduler failed to start")

    yield

    # Shutdown
    await scheduler.stop()
    app.state.health_store.close()
    app.state.purge_state.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="purgewatch - CloudFlare purge diagnostics",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(diagnostics_router, prefix="/api")

    @app.get("/health")
    def liveness() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
