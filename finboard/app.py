"""
FastAPI application entry point for the dashboard backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from finboard import payments
from finboard.config import get_settings
from finboard.routes import auth_router, router


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title="Finboard Backend (FastAPI)", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(payments.router, prefix=settings.api_prefix)
    app.include_router(auth_router)
    return app


app = create_app()
