"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
builds the admission control service once, at startup, from configuration.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator

from fastapi import FastAPI

from quotaguard.adapters.rate_limit import AbstractCounterStore, create_counter_store
from quotaguard.api.routes import (
    accounts_router,
    casinos_router,
    health_router,
    integration_router,
    metrics_router,
    rate_limits_router,
)
from quotaguard.api.routes.accounts import ROUTE_RULES as ACCOUNT_ROUTE_RULES
from quotaguard.api.routes.casinos import ROUTE_RULES as CASINO_ROUTE_RULES
from quotaguard.core.config import Settings, settings as default_settings
from quotaguard.core.exception_handlers import setup_exception_handlers
from quotaguard.core.logging import configure_logging
from quotaguard.core.middleware import request_id_middleware
from quotaguard.core.openapi import apply_openapi_customizations
from quotaguard.schemas.rules import RateLimitOptions
from quotaguard.services.rate_limit_service import RateLimitService

logger = logging.getLogger(__name__)


def build_rate_limit_options(cfg: Settings) -> RateLimitOptions:
    """Configured rules first, then the per-route rules declared by routers.

    Resource rules are first-match-wins, so configuration can override a
    route's built-in quota by declaring the same endpoint.
    """
    options = RateLimitOptions.from_settings(cfg.rate_limit)
    return replace(
        options,
        resource_rules=options.resource_rules + CASINO_ROUTE_RULES + ACCOUNT_ROUTE_RULES,
    )


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    store: AbstractCounterStore = app.state.rate_limit_service.store
    await store.close()


def create_app(
    *,
    cfg: Settings | None = None,
    store: AbstractCounterStore | None = None,
    options: RateLimitOptions | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        cfg: Settings to use; defaults to the global settings.
        store: Counter store override (tests); built from settings otherwise.
        options: Rate limit options override; built from settings otherwise.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = cfg or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="quotaguard",
        description=(
            "Fixed-window admission control. Requests are counted per caller "
            "identity and resource; exhausted quotas are answered with 429 and "
            "Retry-After. Admin endpoints inspect and reset counters."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=_lifespan,
    )

    app.state.settings = cfg
    rate_limit_options = options or build_rate_limit_options(cfg)
    app.state.rate_limit_service = RateLimitService(
        store or create_counter_store(cfg),
        rate_limit_options,
    )
    logger.info(
        "rate_limit.configured",
        extra={
            "backend": app.state.rate_limit_service.store.backend_name,
            "enabled": rate_limit_options.enabled,
            "client_rules": len(rate_limit_options.client_rules),
            "resource_rules": len(rate_limit_options.resource_rules),
            "fail_open": rate_limit_options.fail_open,
        },
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(casinos_router, prefix="/v1")
    app.include_router(accounts_router, prefix="/v1")
    app.include_router(integration_router, prefix="/v1")
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)
    app.include_router(metrics_router)

    # OpenAPI customizations (security schemes, tags, exemptions)
    apply_openapi_customizations(app, cfg)

    return app
