# server/app.py
"""FastAPI application factory."""

from __future__ import annotations

from core.errors import FineFormatError
from core.llm_interface import LLMService, llm_service
from core.rate_limit import InMemoryRateLimitStore, RateLimitStore
from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException

from server.responses import (
    fine_format_error_handler,
    http_error_handler,
    unexpected_error_handler,
)
from server.routes import router


def create_app(
    service: LLMService | None = None,
    rate_limit_store: RateLimitStore | None = None,
) -> FastAPI:
    app = FastAPI(title="Fine Format API", version="1.0.0")
    app.state.llm_service = service or llm_service
    app.state.rate_limit_store = rate_limit_store or InMemoryRateLimitStore()

    app.add_exception_handler(FineFormatError, fine_format_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.middleware("http")
    async def allow_any_origin(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Access-Control-Allow-Origin", "*")
        return response

    app.include_router(router)
    app.include_router(router, prefix="/api")
    return app
