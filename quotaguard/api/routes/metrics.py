"""Prometheus exposition endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST

from quotaguard.core.metrics import render_latest

router = APIRouter(tags=["Health"])


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=render_latest(), media_type=CONTENT_TYPE_LATEST)
