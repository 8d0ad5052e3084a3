from __future__ import annotations

from fastapi import APIRouter, Depends

from page_composer.api.dependencies import get_coordinator, get_store
from page_composer.api.schemas import PublishAllRequest, PublishAllResponse, UnpublishedStatusResponse
from page_composer.core.drafts import unpublished_status
from page_composer.core.ports.store import ConfigurationStore
from page_composer.core.publish import PublishCoordinator

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.get("/{tenant_id}/unpublished-status", response_model=UnpublishedStatusResponse)
async def get_unpublished_status(
    tenant_id: str,
    store: ConfigurationStore = Depends(get_store),
) -> UnpublishedStatusResponse:
    status = await unpublished_status(store, tenant_id)
    return UnpublishedStatusResponse(
        tenant_id=tenant_id,
        has_unpublished_changes=any(status.values()),
        page_types={page_type.value: changed for page_type, changed in status.items()},
    )


@router.post("/{tenant_id}/publish-all", response_model=PublishAllResponse)
async def publish_all(
    tenant_id: str,
    body: PublishAllRequest,
    store: ConfigurationStore = Depends(get_store),
    coordinator: PublishCoordinator = Depends(get_coordinator),
) -> PublishAllResponse:
    published = await coordinator.publish_all(store, tenant_id, body.actor)
    return PublishAllResponse(tenant_id=tenant_id, published=[c.summary() for c in published])
