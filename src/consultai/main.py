"""FastAPI application entry point."""

import logging

from fastapi import FastAPI

from consultai import __version__
from consultai.api import ai_router, knowledge_router, usage_router
from consultai.settings import get_settings

settings = get_settings()

logging.basicConfig(level=settings.log_level.upper())

app = FastAPI(
    title=settings.app_name,
    version=__version__,
    debug=settings.debug,
)

app.include_router(ai_router, prefix=settings.api_v1_prefix)
app.include_router(usage_router, prefix=settings.api_v1_prefix)
app.include_router(knowledge_router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "ConsultAI API", "status": "ok"}


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
