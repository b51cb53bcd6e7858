# ricambi/main.py
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from ricambi.auth.sessions import InMemorySessionStore
from ricambi.config import Settings, get_settings
from ricambi.logging_config import get_logger, setup_logging
from ricambi.pricing.api.dependencies import PricingServices
from ricambi.pricing.api.pricing import ricambi_error_handler, router as pricing_router
from ricambi.pricing.domain.errors import RicambiError
from ricambi.pricing.storage.catalog_loader import Catalog, load_catalog

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    catalog: Optional[Catalog] = None,
    sessions: Optional[InMemorySessionStore] = None,
) -> FastAPI:
    """
    Application factory. Without an explicit catalog the YAML catalog from
    settings.catalog_path (or the bundled sample) seeds the repositories.
    """
    settings = settings or get_settings()
    if catalog is None:
        catalog = load_catalog(settings.catalog_path)

    services = PricingServices.build(settings, catalog, sessions)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.sessions.open()
        logger.info("startup: catalog {}", catalog.summary())
        try:
            yield
        finally:
            services.sessions.close()
            logger.info("shutdown")

    app = FastAPI(title="Ricambi Manager", version="0.1.0", lifespan=lifespan)
    app.state.pricing = services

    app.add_exception_handler(RicambiError, ricambi_error_handler)
    app.include_router(pricing_router)

    # ----------------------------------------------------
    # Health
    # ----------------------------------------------------
    @app.get("/health", include_in_schema=True)
    def health() -> dict:
        return {"status": "ok"}

    # ----------------------------------------------------
    # Logging middleware
    # ----------------------------------------------------
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        start = time.time()
        bound_logger = logger.bind(endpoint=str(request.url.path), method=request.method)
        response = await call_next(request)
        latency_ms = round((time.time() - start) * 1000, 2)
        bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info(
            "request_finished"
        )
        return response

    return app


def build_app() -> FastAPI:
    """Entry point for `uvicorn ricambi.main:build_app --factory`."""
    setup_logging()
    return create_app()
