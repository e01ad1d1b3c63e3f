"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance that OWNS its runtime state: the broadcast hub, the clock and
the Vault API client are built here and hung on app.state. Nothing is an
ambient singleton, so two apps (or two tests) never share subscribers.

Lifespan manages the background workers (keepalive ping, presence
sweeper) and teardown (close every stream, Redis, DB engine).
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vaultsync import __version__
from vaultsync.api import api_router
from vaultsync.clock import Clock, SystemClock
from vaultsync.config import Settings, settings as default_settings
from vaultsync.realtime.hub import BroadcastHub
from vaultsync.realtime.keepalive import KeepaliveWorker
from vaultsync.services.presence_sweeper import PresenceSweeper
from vaultsync.services.vault_client import VaultClient

logger = structlog.get_logger()


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    cfg: Settings = app.state.settings
    logger.info(
        "vaultsync.starting",
        version=__version__,
        environment=cfg.environment,
        port=cfg.port,
    )

    from vaultsync.redis_pool import close_redis, init_redis
    try:
        await init_redis(cfg.redis_url)
        logger.info("vaultsync.redis_connected", url=cfg.redis_url)
    except Exception as e:
        logger.warning("vaultsync.redis_unavailable", error=str(e))
        # Redis is optional; only rate limiting depends on it

    keepalive = KeepaliveWorker(
        app.state.hub, interval=cfg.ping_interval_seconds, clock=app.state.clock
    )
    keepalive_task = asyncio.create_task(keepalive.run_loop())

    sweeper = PresenceSweeper(
        ttl=timedelta(seconds=cfg.presence_ttl_seconds),
        retention_windows=cfg.presence_retention_windows,
        interval=cfg.presence_sweep_interval_seconds,
        clock=app.state.clock,
    )
    sweeper_task = asyncio.create_task(sweeper.run_loop())

    yield

    logger.info("vaultsync.shutdown")

    keepalive.stop()
    sweeper.stop()
    await _cancel(keepalive_task)
    await _cancel(sweeper_task)

    # Ends every open /events generator
    app.state.hub.close()

    await app.state.vault.aclose()
    await close_redis()

    from vaultsync.db.engine import engine
    await engine.dispose()


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    """Missing/malformed fields are a 400, not FastAPI's default 422."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid {field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"detail": message, "errors": _jsonable_errors(errors)},
    )


def _jsonable_errors(errors) -> list[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in errors
    ]


def create_app(
    config: Optional[Settings] = None,
    *,
    hub: Optional[BroadcastHub] = None,
    clock: Optional[Clock] = None,
    vault: Optional[VaultClient] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    cfg = config or default_settings

    app = FastAPI(
        title="vaultsync",
        description="Real-time sync for the time-lock vault: event stream, presence, preferences",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = cfg
    # `is None` checks: an empty hub is falsy (len 0)
    if hub is None:
        hub = BroadcastHub(max_queue=cfg.subscriber_queue_size)
    if vault is None:
        vault = VaultClient(
            base_url=cfg.vault_api_url,
            token=cfg.vault_api_token,
            timeout=cfg.vault_timeout_seconds,
        )
    app.state.hub = hub
    app.state.clock = clock if clock is not None else SystemClock()
    app.state.vault = vault

    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → RateLimit → CORS → handler

    from vaultsync.middleware.rate_limit import RateLimitMiddleware
    from vaultsync.middleware.request_id import RequestIdMiddleware
    from vaultsync.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RateLimitMiddleware, rpm=cfg.rate_limit_rpm)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: vaultsync.main:app)
app = create_app()
