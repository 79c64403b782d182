"""Middleware registration."""

from fastapi import FastAPI

from matchpoint.config import Settings
from matchpoint.middleware.cors import setup_cors
from matchpoint.middleware.error_handler import setup_error_handlers
from matchpoint.middleware.logging import setup_logging
from matchpoint.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware. Starlette runs them in reverse-add order, so CORS goes last."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
