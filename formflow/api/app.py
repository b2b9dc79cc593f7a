"""
FastAPI application factory for formflow.

Run with:
    uvicorn formflow.api.app:app --reload
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formflow.api.routes import router
from formflow.config import get_settings

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    application = FastAPI(
        title="formflow",
        description="Dynamic form engine: schema validation, visibility and submission",
        version="0.1.0",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router, prefix="/api")

    @application.on_event("startup")
    async def on_startup():
        logger.info("formflow backend starting up")
        logger.info("Storage API: %s", settings.api_base_url or "not set")

    return application


# Create the app instance (used by uvicorn)
app = create_app()
