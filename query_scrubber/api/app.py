"""Query Scrubber - FastAPI application entry point.

Entry Points:
    - /health - Health check endpoint
    - /api/cron/query-stats - Scheduled anonymization trigger (GET only)
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from query_scrubber.api.routes import router as query_stats_router
from query_scrubber.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Application factory returning a configured FastAPI instance."""

    setup_logging()

    app = FastAPI(
        title="Query Scrubber",
        description="Scheduled anonymization of stored query logs",
        version="0.1.0",
    )

    @app.exception_handler(StarletteHTTPException)
    async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
        """Answer any unsupported method with an ``error`` body and the ``Allow`` header."""

        if exc.status_code != status.HTTP_405_METHOD_NOT_ALLOWED:
            return await http_exception_handler(request, exc)

        logger.warning("[QUERY-STATS] Rejected %s request to %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            content={"error": f"Method {request.method} Not Allowed"},
            headers=exc.headers,
        )

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "healthy"}

    app.include_router(query_stats_router)

    logger.info("Application created with query-stats router")
    return app
