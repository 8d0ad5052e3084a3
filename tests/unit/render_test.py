"""Tests for ResolutionService."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from page_composer.core import drafts
from page_composer.core.cache import ResolutionCache
from page_composer.core.publish import PublishCoordinator
from page_composer.core.render import ResolutionService
from page_composer.db.memory import InMemoryConfigurationStore
from page_composer.defaults import BuiltinDefaultProvider
from page_composer.models import (
    ConfigurationStatus,
    ExperimentVariantLayer,
    PageType,
    PatchSlot,
    ResolutionContext,
    SlotPatch,
)

CART = PageType.CART


@pytest.fixture
def spy_defaults(defaults: BuiltinDefaultProvider) -> MagicMock:
    spy = MagicMock(wraps=defaults)
    return spy


@pytest.mark.asyncio
async def test_falls_back_to_default_exactly_once(
    store: InMemoryConfigurationStore, spy_defaults: MagicMock
) -> None:
    service = ResolutionService(spy_defaults)

    tree = await service.resolve_page(store, "T1", CART)

    spy_defaults.get_default.assert_called_once_with(CART)
    assert tree.version_number == 0
    assert tree.tenant_id == "T1"
    assert tree.slots["header_title"].content == "My Cart"


@pytest.mark.asyncio
async def test_storefront_prefers_published(
    store: InMemoryConfigurationStore, defaults: BuiltinDefaultProvider
) -> None:
    draft = await drafts.create_draft(store, defaults, "T1", CART)
    await PublishCoordinator().publish(store, draft.id)
    editing = await drafts.create_draft(store, defaults, "T1", CART)
    await drafts.save_draft(
        store, editing.id, [PatchSlot(slot_id="header_title", patch=SlotPatch(content="Work in progress"))]
    )
    service = ResolutionService(defaults)

    live = await service.resolve_page(store, "T1", CART)
    preview = await service.resolve_page(store, "T1", CART, preview=True)

    assert live.status == ConfigurationStatus.PUBLISHED
    assert live.slots["header_title"].content == "My Cart"
    assert preview.status == ConfigurationStatus.DRAFT
    assert preview.slots["header_title"].content == "Work in progress"


@pytest.mark.asyncio
async def test_storefront_falls_back_to_draft(
    store: InMemoryConfigurationStore, defaults: BuiltinDefaultProvider
) -> None:
    draft = await drafts.create_draft(store, defaults, "T1", CART)
    service = ResolutionService(defaults)

    tree = await service.resolve_page(store, "T1", CART)

    assert tree.configuration_id == draft.id


@pytest.mark.asyncio
async def test_cache_serves_until_draft_changes(
    store: InMemoryConfigurationStore, defaults: BuiltinDefaultProvider
) -> None:
    cache = ResolutionCache()
    service = ResolutionService(defaults, cache)
    draft = await drafts.create_draft(store, defaults, "T1", CART)
    patches = {"cart_items": SlotPatch(class_name="x")}
    layers = [ExperimentVariantLayer(experiment_id="e", variant_id="b", patches=patches)]
    context = ResolutionContext(view_mode="withProducts")

    first = await service.resolve_page(store, "T1", CART, layers, context, preview=True)
    second = await service.resolve_page(store, "T1", CART, layers, context, preview=True)
    assert first == second
    assert len(cache) == 1

    await drafts.save_draft(store, draft.id, [PatchSlot(slot_id="header_title", patch=SlotPatch(content="Bag"))])
    third = await service.resolve_page(store, "T1", CART, layers, context, preview=True)

    assert third.slots["header_title"].content == "Bag"
    assert third.slots["cart_items"].class_name == "x"
