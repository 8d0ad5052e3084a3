from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from page_composer.api.dependencies import (
    get_coordinator,
    get_default_provider,
    get_resolution_service,
    get_settings,
    get_store,
)
from page_composer.api.pagination import decode_cursor, encode_cursor, parse_page_params
from page_composer.api.schemas import (
    CreateDraftRequest,
    HistoryPage,
    PinRequest,
    PublishRequest,
    ResolveRequest,
    SaveDraftRequest,
)
from page_composer.core import drafts
from page_composer.core.ports.defaults import DefaultConfigurationProvider
from page_composer.core.ports.store import ConfigurationStore
from page_composer.core.publish import PublishCoordinator
from page_composer.core.render import ResolutionService
from page_composer.models import Configuration, PageType, ResolvedSlotTree

router = APIRouter(prefix="/configurations", tags=["configurations"])


# --- by id ---


@router.get("/by-id/{configuration_id}", response_model=Configuration)
async def get_configuration(
    configuration_id: str,
    store: ConfigurationStore = Depends(get_store),
) -> Configuration:
    return await drafts.get_configuration(store, configuration_id)


@router.post("/by-id/{configuration_id}/publish", response_model=Configuration)
async def publish_configuration(
    configuration_id: str,
    body: PublishRequest,
    store: ConfigurationStore = Depends(get_store),
    coordinator: PublishCoordinator = Depends(get_coordinator),
) -> Configuration:
    """Promote a draft to acceptance or published, or an acceptance version to published."""
    return await coordinator.publish(store, configuration_id, body.target_status, body.actor)


@router.post("/by-id/{configuration_id}/revert", response_model=Configuration)
async def revert_configuration(
    configuration_id: str,
    store: ConfigurationStore = Depends(get_store),
) -> Configuration:
    """Discard a draft. Rolling back to an older version is ``POST .../draft`` with a base id."""
    return await drafts.discard_draft(store, configuration_id)


@router.post("/by-id/{configuration_id}/return-to-editing", response_model=Configuration)
async def return_to_editing(
    configuration_id: str,
    store: ConfigurationStore = Depends(get_store),
) -> Configuration:
    return await drafts.return_to_editing(store, configuration_id)


@router.post("/by-id/{configuration_id}/pins", response_model=Configuration)
async def pin_configuration(
    configuration_id: str,
    body: PinRequest,
    store: ConfigurationStore = Depends(get_store),
) -> Configuration:
    return await drafts.pin_acceptance(store, configuration_id, body.consumer)


@router.delete("/by-id/{configuration_id}/pins/{consumer}", response_model=Configuration)
async def unpin_configuration(
    configuration_id: str,
    consumer: str,
    store: ConfigurationStore = Depends(get_store),
) -> Configuration:
    return await drafts.unpin_acceptance(store, configuration_id, consumer)


# --- by (tenant, page type) ---


@router.get("/{tenant_id}/{page_type}/draft", response_model=Configuration)
async def get_draft(
    tenant_id: str,
    page_type: PageType,
    store: ConfigurationStore = Depends(get_store),
) -> Configuration:
    return await drafts.get_draft(store, tenant_id, page_type)


@router.post("/{tenant_id}/{page_type}/draft", response_model=Configuration, status_code=status.HTTP_201_CREATED)
async def create_draft(
    tenant_id: str,
    page_type: PageType,
    body: CreateDraftRequest,
    store: ConfigurationStore = Depends(get_store),
    defaults: DefaultConfigurationProvider = Depends(get_default_provider),
) -> Configuration:
    return await drafts.create_draft(
        store,
        defaults,
        tenant_id,
        page_type,
        base_configuration_id=body.base_configuration_id,
        resume=body.resume,
        actor=body.actor,
    )


@router.put("/{tenant_id}/{page_type}/draft", response_model=Configuration)
async def save_draft(
    tenant_id: str,
    page_type: PageType,
    body: SaveDraftRequest,
    store: ConfigurationStore = Depends(get_store),
) -> Configuration:
    draft = await drafts.get_draft(store, tenant_id, page_type)
    return await drafts.save_draft(store, draft.id, body.mutations, expected_revision=body.expected_revision)


@router.get("/{tenant_id}/{page_type}/published", response_model=Configuration)
async def get_published(
    tenant_id: str,
    page_type: PageType,
    store: ConfigurationStore = Depends(get_store),
) -> Configuration:
    return await drafts.get_published(store, tenant_id, page_type)


@router.get("/{tenant_id}/{page_type}/acceptance", response_model=Configuration)
async def get_acceptance(
    tenant_id: str,
    page_type: PageType,
    store: ConfigurationStore = Depends(get_store),
) -> Configuration:
    return await drafts.get_acceptance(store, tenant_id, page_type)


@router.get("/{tenant_id}/{page_type}/history", response_model=HistoryPage)
async def get_history(
    tenant_id: str,
    page_type: PageType,
    request: Request,
    store: ConfigurationStore = Depends(get_store),
) -> HistoryPage:
    """One page of versions, newest first. Follow ``links.next`` for older versions."""
    after, size = parse_page_params(request, get_settings().history_page_size)
    before_version = decode_cursor(after) if after else None
    page = await store.list_history(tenant_id, page_type, limit=size, before_version=before_version)
    next_link = None
    if len(page) == size:
        cursor = encode_cursor(page[-1].version_number)
        next_link = f"{request.url.path}?page[size]={size}&page[after]={cursor}"
    return HistoryPage(data=page, links={"self": str(request.url), "next": next_link})


@router.post("/{tenant_id}/{page_type}/resolve", response_model=ResolvedSlotTree)
async def resolve_configuration(
    tenant_id: str,
    page_type: PageType,
    body: ResolveRequest,
    store: ConfigurationStore = Depends(get_store),
    service: ResolutionService = Depends(get_resolution_service),
) -> ResolvedSlotTree:
    return await service.resolve_page(
        store, tenant_id, page_type, body.layers, body.context, preview=body.preview
    )
