from __future__ import annotations

from quotaguard.api.routes.accounts import router as accounts_router
from quotaguard.api.routes.casinos import router as casinos_router
from quotaguard.api.routes.health import router as health_router
from quotaguard.api.routes.integration import router as integration_router
from quotaguard.api.routes.metrics import router as metrics_router
from quotaguard.api.routes.rate_limits import router as rate_limits_router

__all__ = [
    "accounts_router",
    "casinos_router",
    "health_router",
    "integration_router",
    "metrics_router",
    "rate_limits_router",
]
