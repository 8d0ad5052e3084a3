import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Iterable
from datetime import datetime, timezone
from typing import TypeVar

from page_composer.core.errors import (
    ConflictError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    StaleWriteError,
)
from page_composer.core.lifecycle import ACCEPTANCE, DRAFT, PUBLISHED, REVERTED, check_transition
from page_composer.core.ports.defaults import DefaultConfigurationProvider
from page_composer.core.ports.store import ConfigurationStore, NewDraft
from page_composer.core.tree import apply_mutations, validate_tree
from page_composer.models import (
    Configuration,
    ConfigurationStatus,
    ConfigurationSummary,
    Mutation,
    PageType,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SAVE_ATTEMPTS = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def within(awaitable: Awaitable[T], deadline: float | None) -> T:
    """Await ``awaitable``, giving up after ``deadline`` seconds when one is set."""
    if deadline is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=deadline)


async def get_configuration(store: ConfigurationStore, configuration_id: str) -> Configuration:
    configuration = await store.get(configuration_id)
    if configuration is None:
        raise NotFoundError(f"Configuration {configuration_id} not found", {"configuration_id": configuration_id})
    return configuration


async def _get_by_status(
    store: ConfigurationStore, tenant_id: str, page_type: PageType, status: ConfigurationStatus
) -> Configuration:
    configuration = await store.find(tenant_id, page_type, status)
    if configuration is None:
        raise NotFoundError(
            f"No {status.value} configuration for {tenant_id}/{page_type.value}",
            {"tenant_id": tenant_id, "page_type": page_type.value, "status": status.value},
        )
    return configuration


async def get_draft(store: ConfigurationStore, tenant_id: str, page_type: PageType) -> Configuration:
    return await _get_by_status(store, tenant_id, page_type, DRAFT)


async def get_published(store: ConfigurationStore, tenant_id: str, page_type: PageType) -> Configuration:
    return await _get_by_status(store, tenant_id, page_type, PUBLISHED)


async def get_acceptance(store: ConfigurationStore, tenant_id: str, page_type: PageType) -> Configuration:
    return await _get_by_status(store, tenant_id, page_type, ACCEPTANCE)


async def _fork_base(store: ConfigurationStore, tenant_id: str, page_type: PageType) -> Configuration | None:
    """Version a new draft descends from: published, else acceptance, else the newest non-reverted one.

    ``None`` only for the very first configuration of the key.
    """
    for status in (PUBLISHED, ACCEPTANCE):
        found = await store.find(tenant_id, page_type, status)
        if found is not None:
            return found
    async for summary in list_history(store, tenant_id, page_type):
        if summary.status != REVERTED:
            return await get_configuration(store, summary.id)
    return None


async def create_draft(
    store: ConfigurationStore,
    defaults: DefaultConfigurationProvider,
    tenant_id: str,
    page_type: PageType,
    base_configuration_id: str | None = None,
    resume: bool = False,
    actor: str | None = None,
    deadline: float | None = None,
) -> Configuration:
    """Fork a new draft for (tenant, page type).

    The draft copies the slots of ``base_configuration_id`` when given (a
    rollback to a historical version), else the newest version of the key
    (see ``_fork_base``). Only the first configuration of a key starts from
    the default template. With ``resume`` an existing draft is returned as is.
    """

    async def _run() -> Configuration:
        existing = await store.find(tenant_id, page_type, DRAFT)
        if existing is not None:
            if resume and base_configuration_id is None:
                return existing
            raise ConflictError(
                f"A draft already exists for {tenant_id}/{page_type.value}",
                {"configuration_id": existing.id},
            )

        if base_configuration_id is not None:
            base = await get_configuration(store, base_configuration_id)
            if base.key != (tenant_id, page_type):
                raise NotFoundError(
                    f"Configuration {base_configuration_id} does not belong to {tenant_id}/{page_type.value}",
                    {"configuration_id": base_configuration_id},
                )
            parent_id: str | None = base.id
        else:
            lineage = await _fork_base(store, tenant_id, page_type)
            if lineage is not None:
                base, parent_id = lineage, lineage.id
            else:
                base, parent_id = defaults.get_default(page_type), None

        validate_tree(base.slots, base.root_id)
        created = await store.insert_draft(
            NewDraft(
                tenant_id=tenant_id,
                page_type=page_type,
                slots=base.slots,
                root_id=base.root_id,
                created_at=utcnow(),
                parent_version_id=parent_id,
                created_by=actor,
                schema_version=base.schema_version,
                has_unpublished_changes=base_configuration_id is not None,
            )
        )
        logger.info(
            "Created draft v%d for %s/%s (parent %s)",
            created.version_number,
            tenant_id,
            page_type.value,
            parent_id or "default template",
        )
        return created

    return await within(_run(), deadline)


async def save_draft(
    store: ConfigurationStore,
    configuration_id: str,
    mutations: Iterable[Mutation],
    expected_revision: int | None = None,
    deadline: float | None = None,
) -> Configuration:
    """Apply ``mutations`` to a draft and persist the validated result.

    Without ``expected_revision`` the save is last-write-wins: a concurrent
    write in between is re-read and the batch is applied on top of it.
    """
    batch = list(mutations)

    async def _run() -> Configuration:
        attempts = 0
        while True:
            current = await get_configuration(store, configuration_id)
            if current.status != DRAFT:
                raise InvalidStateError(
                    f"Configuration {configuration_id} is {current.status.value}, only drafts can be saved",
                    current=current.status.value,
                    target=DRAFT.value,
                )
            if expected_revision is not None and current.revision != expected_revision:
                raise StaleWriteError(configuration_id, expected_revision, current.revision)

            slots = apply_mutations(current.slots, current.root_id, batch)
            try:
                saved = await store.update_draft(configuration_id, slots, current.revision, utcnow())
            except StaleWriteError:
                attempts += 1
                if expected_revision is not None or attempts >= _SAVE_ATTEMPTS:
                    raise
                logger.debug("Draft %s changed during save, retrying", configuration_id)
                continue
            logger.debug("Saved draft %s at revision %d", configuration_id, saved.revision)
            return saved

    return await within(_run(), deadline)


async def discard_draft(
    store: ConfigurationStore, configuration_id: str, deadline: float | None = None
) -> Configuration:
    """Move a draft to ``reverted``. The parent keeps its content; only its edit pointer is cleared."""

    async def _run() -> Configuration:
        current = await get_configuration(store, configuration_id)
        check_transition(current.status, REVERTED)
        if current.parent_version_id is None:
            raise InvalidTransitionError(
                f"Draft {configuration_id} has no parent version to fall back to",
                current=current.status.value,
                target=REVERTED.value,
            )
        reverted = await store.transition(configuration_id, DRAFT, REVERTED, utcnow())
        logger.info(
            "Reverted draft v%d for %s/%s", reverted.version_number, reverted.tenant_id, reverted.page_type.value
        )
        return reverted

    return await within(_run(), deadline)


async def return_to_editing(
    store: ConfigurationStore, configuration_id: str, deadline: float | None = None
) -> Configuration:
    async def _run() -> Configuration:
        current = await get_configuration(store, configuration_id)
        check_transition(current.status, DRAFT)
        if current.pinned_by:
            raise ConflictError(
                f"Acceptance version {configuration_id} is pinned by {', '.join(current.pinned_by)}",
                {"configuration_id": configuration_id, "pinned_by": current.pinned_by},
            )
        draft = await store.transition(configuration_id, ACCEPTANCE, DRAFT, utcnow())
        logger.info(
            "Returned v%d for %s/%s to editing", draft.version_number, draft.tenant_id, draft.page_type.value
        )
        return draft

    return await within(_run(), deadline)


async def pin_acceptance(
    store: ConfigurationStore, configuration_id: str, consumer: str, deadline: float | None = None
) -> Configuration:
    async def _run() -> Configuration:
        current = await get_configuration(store, configuration_id)
        if current.status != ACCEPTANCE:
            raise InvalidStateError(
                f"Only acceptance versions can be pinned, {configuration_id} is {current.status.value}",
                current=current.status.value,
                target=ACCEPTANCE.value,
            )
        if consumer in current.pinned_by:
            return current
        return await store.set_pins(configuration_id, sorted({*current.pinned_by, consumer}), utcnow())

    return await within(_run(), deadline)


async def unpin_acceptance(
    store: ConfigurationStore, configuration_id: str, consumer: str, deadline: float | None = None
) -> Configuration:
    async def _run() -> Configuration:
        current = await get_configuration(store, configuration_id)
        if consumer not in current.pinned_by:
            return current
        pins = [pin for pin in current.pinned_by if pin != consumer]
        return await store.set_pins(configuration_id, pins, utcnow())

    return await within(_run(), deadline)


class HistoryCursor:
    """Async iterable over a key's versions, newest first.

    Pages are fetched lazily with keyset pagination on ``version_number``.
    Each ``async for`` starts again from the newest version.
    """

    def __init__(self, store: ConfigurationStore, tenant_id: str, page_type: PageType, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._store = store
        self._tenant_id = tenant_id
        self._page_type = page_type
        self._page_size = page_size

    def __aiter__(self) -> AsyncIterator[ConfigurationSummary]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ConfigurationSummary]:
        before: int | None = None
        while True:
            page = await self._store.list_history(
                self._tenant_id, self._page_type, limit=self._page_size, before_version=before
            )
            for summary in page:
                yield summary
            if len(page) < self._page_size:
                return
            before = page[-1].version_number


def list_history(
    store: ConfigurationStore, tenant_id: str, page_type: PageType, page_size: int = 20
) -> HistoryCursor:
    return HistoryCursor(store, tenant_id, page_type, page_size)


def draft_differs(draft: Configuration, published: Configuration | None) -> bool:
    if published is None:
        return True
    return draft.root_id != published.root_id or draft.slots != published.slots


async def unpublished_status(store: ConfigurationStore, tenant_id: str) -> dict[PageType, bool]:
    """Report, for every page type, whether the tenant's draft differs from what is published."""
    published = {c.page_type: c for c in await store.list_for_tenant(tenant_id, PUBLISHED)}
    status = dict.fromkeys(PageType, False)
    for draft in await store.list_for_tenant(tenant_id, DRAFT):
        status[draft.page_type] = draft_differs(draft, published.get(draft.page_type))
    return status
