"""
FastAPI application entry point for the FamHub backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from famhub.config import get_settings
from famhub.errors import ValidationError, error_response
from famhub.routes import router

logger = logging.getLogger(__name__)


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "loc": list(error.get("loc", ())),
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, details)
    return error_response(ValidationError("Invalid request", details=details))


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="FamHub Backend (FastAPI)", version="0.1.0")
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
