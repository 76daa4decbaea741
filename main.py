# main.py
import logging
from contextlib import asynccontextmanager

import psycopg2
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.errors import DomainError
from db import close_pool
from middleware import RequestContextMiddleware
from routes.admin import router as admin_router
from routes.agency import router as agency_router
from routes.health import router as health_router
from routes.orders import router as orders_router
from routes.vendor import router as vendor_router
from routes.webhooks import router as webhooks_router
from services.db_errors import translate_db_error
from services.observability import get_request_id
from settings import settings, validate_env_settings

logger = logging.getLogger("jemo")


def _configure_logging() -> None:
    level = getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    close_pool()


def create_app() -> FastAPI:
    _configure_logging()
    validate_env_settings()

    app = FastAPI(title="Jemo Marketplace API", version="1.0.0", lifespan=_lifespan)
    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(health_router)
    app.include_router(vendor_router)
    app.include_router(orders_router)
    app.include_router(agency_router)
    app.include_router(admin_router)
    app.include_router(webhooks_router)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})

    @app.exception_handler(psycopg2.Error)
    async def db_error_handler(request: Request, exc: psycopg2.Error):
        translated = translate_db_error(exc)
        if translated is not None:
            return JSONResponse(status_code=translated.status_code, content={"detail": translated.to_detail()})
        logger.error(
            "db_error request_id=%s pgcode=%s path=%s",
            get_request_id(),
            getattr(exc, "pgcode", None),
            request.url.path,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error request_id=%s path=%s", get_request_id(), request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()
