"""Prometheus metrics for admission control."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, generate_latest

REGISTRY = CollectorRegistry(auto_describe=True)

admission_decisions = Counter(
    "quotaguard_admission_decisions_total",
    "admission decisions by outcome",
    ["outcome"],
    registry=REGISTRY,
)

storage_failure_admits = Counter(
    "quotaguard_storage_failure_admits_total",
    "requests admitted without quota enforcement because the counter store failed",
    ["operation"],
    registry=REGISTRY,
)

storage_failures = Counter(
    "quotaguard_storage_failures_total",
    "counter store failures by operation, including ones that were re-raised",
    ["operation"],
    registry=REGISTRY,
)


def render_latest() -> bytes:
    """Serialize the registry in the Prometheus text exposition format."""
    return generate_latest(REGISTRY)


__all__ = [
    "REGISTRY",
    "admission_decisions",
    "storage_failure_admits",
    "storage_failures",
    "render_latest",
]
