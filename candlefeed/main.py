import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from candlefeed.api.routes import router as api_router
from candlefeed.config import Settings, get_settings
from candlefeed.jobs.broadcast import Broadcaster
from candlefeed.providers.base import MarketDataProvider
from candlefeed.providers.loader import get_provider
from candlefeed.realtime.subscribers import SubscriberRegistry

log = logging.getLogger("main")

# Relative PUBLIC_DIR values are taken from the repo root, not the CWD
REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def resolve_public_dir(public_dir: str) -> str:
    if os.path.isabs(public_dir):
        return public_dir
    return os.path.join(REPO_ROOT, public_dir)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[MarketDataProvider] = None,
) -> FastAPI:
    """
    Builds the app with its own provider, subscriber registry and broadcaster.
    Nothing here is module-global, so tests can build as many apps as they like.
    """
    settings = settings or get_settings()
    provider = provider or get_provider(settings)
    registry = SubscriberRegistry()
    broadcaster = Broadcaster(
        provider=provider,
        registry=registry,
        interval_s=settings.broadcast_interval_seconds,
    )

    app = FastAPI(title="Candle Feed API", version="0.1.0")
    app.state.settings = settings
    app.state.provider = provider
    app.state.registry = registry
    app.state.broadcaster = broadcaster

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.include_router(api_router)

    @app.on_event("startup")
    async def _startup():
        # Pushes the newest candle to /ws subscribers every interval
        broadcaster.start()

    @app.on_event("shutdown")
    async def _shutdown():
        await broadcaster.stop()
        provider.close()

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "app_env": settings.app_env,
            "provider_config": settings.provider,
            "provider_loaded": provider.__class__.__name__,
            "broadcaster": broadcaster.state.value,
            "subscribers": len(registry),
        }

    # Must stay last: catches every path the routes above did not.
    public_dir = resolve_public_dir(settings.public_dir)
    if os.path.isdir(public_dir):
        app.mount("/", StaticFiles(directory=public_dir, html=True), name="public")
    else:
        log.warning("PUBLIC_DIR=%s not found, static files disabled", public_dir)

    return app


settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
