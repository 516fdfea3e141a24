"""FastAPI application factory and server entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import DEFAULT_PROMPT_TEMPLATE, LOG_FORMAT, LOG_LEVEL, validate_config
from ..utils.logging import configure_logging
from .config import ApiSettings
from .deps.providers import (
    get_queue_manager,
    get_score_recorder,
    get_score_store,
    get_settings,
)
from .errors import register_error_handlers

logger = logging.getLogger(__name__)


async def _load_prompt_template() -> str:
    """Read the shared template from the store, seeding the default once."""
    store = get_score_store()
    template = await store.get_prompt_template()
    if template is None:
        await store.set_prompt_template(DEFAULT_PROMPT_TEMPLATE)
        template = DEFAULT_PROMPT_TEMPLATE
    return template


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings: ApiSettings = get_settings()

    # MODLAB_API_LOG_LEVEL overrides the config default
    configure_logging(settings.log_level or LOG_LEVEL, LOG_FORMAT)
    logger.info("Starting moderation_lab API on %s:%s", settings.host, settings.port)

    issues = validate_config()
    for issue in issues:
        level = logging.ERROR if issue["level"] == "ERROR" else logging.WARNING
        logger.log(level, "Config validation: %s", issue["message"])
    if not issues:
        logger.info("Config validation: all checks passed")

    store = get_score_store()
    await store.initialize()

    manager = get_queue_manager()
    manager.set_prompt_template(await _load_prompt_template())
    manager.initialize()
    recorder = get_score_recorder()

    yield

    await manager.shutdown()
    await recorder.drain()
    await store.close()
    logger.info("Shutting down moderation_lab API")


def create_app(settings: ApiSettings | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Moderation Lab API",
        description="Classroom AI-moderation lab: queued moderation test runs across AI providers.",
        version="1.0.0",
        lifespan=_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS
    origins = [o.strip() for o in settings.cors_origins.split(",")]
    allow_creds = "*" not in origins
    if not allow_creds:
        logger.warning(
            "CORS_ORIGINS contains '*'. Credentials will NOT be allowed. "
            "Set explicit origins (e.g. 'http://localhost:5173') for "
            "credentialed cross-origin requests."
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_creds,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    from .routers import all_routers

    for router in all_routers():
        app.include_router(router)

    return app


def run_server() -> None:
    """CLI entry point: ``python -m moderation_lab.api.main``."""
    import uvicorn

    settings = get_settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run_server()
