from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from page_composer import __version__

router = APIRouter()


@router.get("/")
async def root() -> dict[str, Any]:
    """Root discovery endpoint: API directory for programmatic and human clients."""
    return {
        "meta": {
            "title": "Page Composer API",
            "description": "Versioned page slot configurations with publish control and override resolution.",
            "version": __version__,
        },
        "links": {
            "self": "/",
            "configurations": "/configurations/{tenant_id}/{page_type}/draft",
            "history": "/configurations/{tenant_id}/{page_type}/history",
            "resolve": "/configurations/{tenant_id}/{page_type}/resolve",
            "unpublished-status": "/tenants/{tenant_id}/unpublished-status",
            "defaults": "/defaults/{page_type}",
            "openapi": "/openapi.json",
            "docs": "/docs",
        },
    }
