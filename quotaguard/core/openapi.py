"""OpenAPI metadata and customization utilities.

Enriches the generated schema with:
- Tags metadata
- The ``X-API-Key`` client identity scheme (optional: callers without it are
  counted by address) and the ``X-Admin-Key`` scheme required by the admin
  endpoints
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from quotaguard.core.config import Settings

_TAGS = [
    {"name": "Casinos", "description": "Sample endpoints protected by admission control."},
    {"name": "Auth", "description": "Sample login and registration with strict quotas."},
    {"name": "Integration", "description": "Direct service calls with explicit per-operation rules."},
    {"name": "Rate limits", "description": "Inspect and reset rate limit counters (admin)."},
    {"name": "Health", "description": "Liveness checks and metrics."},
]


def apply_openapi_customizations(app: FastAPI, cfg: Settings) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and security schemes."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ClientIdentity",
            {
                "type": "apiKey",
                "in": "header",
                "name": cfg.rate_limit.client_id_header,
                "description": "Identifies the caller for quota accounting.",
            },
        )
        security_schemes.setdefault(
            "AdminKey",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-Admin-Key",
                "description": "Required by the /v1/rate-limits endpoints.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(tag for tag in _TAGS if tag["name"] not in existing_tag_names)

        for path, methods in schema.get("paths", {}).items():
            if path.startswith("/v1/rate-limits"):
                requirement: list[dict[str, list]] = [{"AdminKey": []}]
            elif path.startswith("/v1/"):
                # Empty requirement keeps the identity header optional.
                requirement = [{"ClientIdentity": []}, {}]
            else:
                requirement = []
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = requirement

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
