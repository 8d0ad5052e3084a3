"""Integration tests for PostgresConfigurationStore against a real PostgreSQL database."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from page_composer.core import drafts
from page_composer.core.errors import ConflictError, NotFoundError, StaleWriteError
from page_composer.core.ports.store import NewDraft
from page_composer.core.publish import PublishCoordinator
from page_composer.db.postgres import PostgresConfigurationStore
from page_composer.defaults import BuiltinDefaultProvider
from page_composer.models import ConfigurationStatus, PageType, PatchSlot, SlotPatch

CART = PageType.CART
NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_draft_publish_revert_cycle(
    pg_store: PostgresConfigurationStore, defaults: BuiltinDefaultProvider
) -> None:
    first = await drafts.create_draft(pg_store, defaults, "T1", CART, actor="alice")
    assert first.version_number == 1
    assert first.parent_version_id is None
    assert first.slots == defaults.get_default(CART).slots

    published = await PublishCoordinator().publish(pg_store, first.id, actor="alice")
    assert published.status == ConfigurationStatus.PUBLISHED
    assert published.published_by == "alice"
    assert published.published_at is not None

    second = await drafts.create_draft(pg_store, defaults, "T1", CART)
    assert second.version_number == 2
    assert second.parent_version_id == first.id
    assert (await drafts.get_configuration(pg_store, first.id)).current_edit_id == second.id

    saved = await drafts.save_draft(
        pg_store, second.id, [PatchSlot(slot_id="header_title", patch=SlotPatch(content="Basket"))]
    )
    assert saved.revision == second.revision + 1
    assert saved.slots["header_title"].content == "Basket"

    reverted = await drafts.discard_draft(pg_store, second.id)
    assert reverted.status == ConfigurationStatus.REVERTED
    parent = await drafts.get_configuration(pg_store, first.id)
    assert parent.current_edit_id is None
    assert parent.slots == first.slots


@pytest.mark.asyncio
async def test_publish_supersedes_previous(
    pg_store: PostgresConfigurationStore, defaults: BuiltinDefaultProvider
) -> None:
    coordinator = PublishCoordinator()
    first = await drafts.create_draft(pg_store, defaults, "T1", CART)
    await coordinator.publish(pg_store, first.id)
    second = await drafts.create_draft(pg_store, defaults, "T1", CART)
    await coordinator.publish(pg_store, second.id)

    assert (await drafts.get_configuration(pg_store, first.id)).status == ConfigurationStatus.SUPERSEDED
    assert (await drafts.get_published(pg_store, "T1", CART)).id == second.id


@pytest.mark.asyncio
async def test_second_draft_conflicts(pg_store: PostgresConfigurationStore, defaults: BuiltinDefaultProvider) -> None:
    await drafts.create_draft(pg_store, defaults, "T1", CART)
    with pytest.raises(ConflictError):
        await drafts.create_draft(pg_store, defaults, "T1", CART)


@pytest.mark.asyncio
async def test_concurrent_draft_creation_yields_one_draft(
    pg_store: PostgresConfigurationStore, defaults: BuiltinDefaultProvider
) -> None:
    template = defaults.get_default(CART)
    new_draft = NewDraft(
        tenant_id="T1", page_type=CART, slots=template.slots, root_id=template.root_id, created_at=NOW
    )

    results = await asyncio.gather(*(pg_store.insert_draft(new_draft) for _ in range(4)), return_exceptions=True)

    assert sum(1 for r in results if not isinstance(r, BaseException)) == 1
    assert all(isinstance(r, ConflictError) for r in results if isinstance(r, BaseException))


@pytest.mark.asyncio
async def test_partial_unique_index_enforces_single_published(
    pg_store: PostgresConfigurationStore, database: AsyncEngine, defaults: BuiltinDefaultProvider
) -> None:
    coordinator = PublishCoordinator()
    first = await drafts.create_draft(pg_store, defaults, "T1", CART)
    await coordinator.publish(pg_store, first.id)
    second = await drafts.create_draft(pg_store, defaults, "T1", CART)

    with pytest.raises(IntegrityError, match="uq_slot_configurations_published"):
        async with database.begin() as conn:
            await conn.execute(
                text("UPDATE slot_configurations SET status = 'published' WHERE id = CAST(:id AS uuid)"),
                {"id": second.id},
            )


@pytest.mark.asyncio
async def test_stale_update_rejected(pg_store: PostgresConfigurationStore, defaults: BuiltinDefaultProvider) -> None:
    draft = await drafts.create_draft(pg_store, defaults, "T1", CART)
    await pg_store.update_draft(draft.id, draft.slots, draft.revision, NOW)

    with pytest.raises(StaleWriteError):
        await pg_store.update_draft(draft.id, draft.slots, draft.revision, NOW)


@pytest.mark.asyncio
async def test_promote_with_wrong_expected_status(
    pg_store: PostgresConfigurationStore, defaults: BuiltinDefaultProvider
) -> None:
    draft = await drafts.create_draft(pg_store, defaults, "T1", CART)
    with pytest.raises(ConflictError):
        await pg_store.promote(
            draft.id, ConfigurationStatus.ACCEPTANCE, ConfigurationStatus.PUBLISHED, None, NOW
        )


@pytest.mark.asyncio
async def test_pins_round_trip(pg_store: PostgresConfigurationStore, defaults: BuiltinDefaultProvider) -> None:
    draft = await drafts.create_draft(pg_store, defaults, "T1", CART)
    await PublishCoordinator().publish(pg_store, draft.id, ConfigurationStatus.ACCEPTANCE, actor="bob")

    pinned = await drafts.pin_acceptance(pg_store, draft.id, "preview")
    assert pinned.pinned_by == ["preview"]
    assert pinned.acceptance_published_by == "bob"

    unpinned = await drafts.unpin_acceptance(pg_store, draft.id, "preview")
    assert unpinned.pinned_by == []


@pytest.mark.asyncio
async def test_history_keyset_pages(pg_store: PostgresConfigurationStore, defaults: BuiltinDefaultProvider) -> None:
    coordinator = PublishCoordinator()
    for _ in range(3):
        draft = await drafts.create_draft(pg_store, defaults, "T1", CART)
        await coordinator.publish(pg_store, draft.id)

    versions = [s.version_number async for s in drafts.list_history(pg_store, "T1", CART, page_size=2)]
    assert versions == [3, 2, 1]

    older = await pg_store.list_history("T1", CART, limit=10, before_version=2)
    assert [s.version_number for s in older] == [1]


@pytest.mark.asyncio
async def test_unknown_and_malformed_ids(pg_store: PostgresConfigurationStore) -> None:
    assert await pg_store.get("not-a-uuid") is None
    assert await pg_store.get("00000000-0000-0000-0000-000000000000") is None
    with pytest.raises(NotFoundError):
        await drafts.discard_draft(pg_store, "not-a-uuid")


@pytest.mark.asyncio
async def test_ping(pg_store: PostgresConfigurationStore) -> None:
    assert await pg_store.ping() is True
