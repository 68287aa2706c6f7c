"""
Service bootstrap.

Builds the FastAPI application with permissive CORS and JSON body parsing,
opens the Redis connection at startup, and serves the app with uvicorn.
No application routes are registered; every request gets the default 404.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import start_http_server

from src.api.config import Settings, load_settings
from src.api.middleware import JSONBodyMiddleware
from src.api.redis_client import RedisConnector

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    # Connection attempt runs in the background; startup does not wait for it
    connector = RedisConnector(settings.redis)
    app.state.redis = connector
    connector.start()

    logger.info("Starting server at %s", settings.base_url)
    logger.info("Redis status: %s", connector.status.value)

    yield

    await connector.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Service settings (loaded from the environment if omitted)

    Returns:
        FastAPI app with middleware installed and no routes
    """
    if settings is None:
        settings = load_settings()

    app = FastAPI(
        title="Service Bootstrap",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Middleware added last runs first, so CORS wraps JSON parsing errors too
    app.add_middleware(JSONBodyMiddleware, limit=settings.json_body_limit)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


app = create_app()


def run() -> None:
    """Process entry point: serve the app on the configured port."""
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)

    if settings.metrics_port is not None:
        start_http_server(settings.metrics_port)
        logger.info("Metrics available at http://localhost:%d/metrics", settings.metrics_port)

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
