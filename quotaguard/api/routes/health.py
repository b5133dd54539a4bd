from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from quotaguard.core.errors import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports liveness, the counter store backend in use and whether it answers
    a ping. An unreachable store does not fail the check; admission applies
    its own failure policy.

    Returns:
        dict: ``status``, ``rate_limit_backend`` and ``rate_limit_store_reachable`` keys.
    """

    store = request.app.state.rate_limit_service.store
    try:
        reachable = await store.ping()
    except StorageError as exc:
        logger.warning("health.store_unreachable", extra={"error_code": exc.code, "backend": store.backend_name})
        reachable = False

    return {
        "status": "ok",
        "rate_limit_backend": store.backend_name,
        "rate_limit_store_reachable": reachable,
    }
