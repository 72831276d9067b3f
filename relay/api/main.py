"""
FastAPI application for the live broadcast relay (in-memory; no Redis/DB).

- Health: /health/live, /health/ready
- API: /api/v1/audio-relay, /api/v1/sessions/{id}/frames, /api/v1/status,
  /api/v1/broadcasts, /api/v1/debug

The relay and its reaper are built in the lifespan and handed to routes through
``app.state``; shutdown stops the reaper and cancels pending teardowns.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from relay.core.config import Settings, settings
from relay.api.health import router as health_router
from relay.api.router import router as api_router
from relay.services import AsyncioTimerScheduler, InvalidArgument, LiveBroadcastRelay, Reaper

logger = logging.getLogger("relay.api")


def _setup_logging(config: Settings) -> None:
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _setup_logging(config)

        scheduler = AsyncioTimerScheduler(asyncio.get_running_loop())
        relay = LiveBroadcastRelay(scheduler, **config.relay_options())
        reaper = Reaper(relay, interval=config.CLEANUP_INTERVAL_SEC)

        app.state.relay = relay
        app.state.reaper = reaper
        await reaper.start()

        yield

        await reaper.stop()
        relay.shutdown()
        scheduler.cancel_all()
        app.state.relay = None
        app.state.reaper = None

    app = FastAPI(
        title="Live Broadcast Relay",
        description="Polling relay for live admin-to-driver audio",
        lifespan=lifespan,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        """Malformed bodies are caller errors: 400, same shape as relay failures."""
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request",
                "code": InvalidArgument.code,
                "detail": _error_list(exc),
            },
        )

    app.include_router(health_router)
    app.include_router(api_router, prefix=config.API_PREFIX)
    return app


def _error_list(exc: RequestValidationError) -> list:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
        for e in exc.errors()
    ]


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
