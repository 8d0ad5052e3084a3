import asyncio
import logging
from collections.abc import Callable

from page_composer.core.drafts import draft_differs, get_configuration, utcnow, within
from page_composer.core.errors import ConflictError, InvalidTransitionError
from page_composer.core.lifecycle import DRAFT, PUBLISH_TARGETS, PUBLISHED, check_transition
from page_composer.core.ports.store import ConfigurationStore
from page_composer.core.tree import validate_tree
from page_composer.models import Configuration, ConfigurationStatus, PageType

logger = logging.getLogger(__name__)

PublishListener = Callable[[str, PageType], None]


class PublishCoordinator:
    """Serializes publishes per (tenant, page type) within this process.

    A publish for a key that already has one in flight fails fast with
    ``ConflictError`` instead of queueing. Cross-process exclusion is the
    store's job (see ``PostgresConfigurationStore.promote``).
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[str, PageType], asyncio.Lock] = {}
        self._listeners: list[PublishListener] = []

    def add_listener(self, listener: PublishListener) -> None:
        """Register a callback run with (tenant_id, page_type) after every successful publish."""
        self._listeners.append(listener)

    def _lock_for(self, key: tuple[str, PageType]) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    async def publish(
        self,
        store: ConfigurationStore,
        configuration_id: str,
        target_status: ConfigurationStatus = PUBLISHED,
        actor: str | None = None,
        deadline: float | None = None,
    ) -> Configuration:
        if target_status not in PUBLISH_TARGETS:
            raise InvalidTransitionError(
                f"{target_status.value!r} is not a publish target",
                target=target_status.value,
            )
        configuration = await get_configuration(store, configuration_id)
        tenant_id, page_type = configuration.key
        lock = self._lock_for(configuration.key)
        if lock.locked():
            raise ConflictError(
                f"A publish for {tenant_id}/{page_type.value} is already in progress",
                {"tenant_id": tenant_id, "page_type": page_type.value},
            )
        try:
            async with lock:
                promoted = await within(self._promote(store, configuration_id, target_status, actor), deadline)
        finally:
            # publishes never queue on a lock, so a released one is unused
            if not lock.locked() and self._locks.get(configuration.key) is lock:
                del self._locks[configuration.key]
        self._notify(tenant_id, page_type)
        return promoted

    async def _promote(
        self,
        store: ConfigurationStore,
        configuration_id: str,
        target_status: ConfigurationStatus,
        actor: str | None,
    ) -> Configuration:
        current = await get_configuration(store, configuration_id)
        trigger = check_transition(current.status, target_status)
        validate_tree(current.slots, current.root_id)
        promoted, demoted = await store.promote(configuration_id, current.status, target_status, actor, utcnow())
        logger.info(
            "%s: v%d for %s/%s is now %s",
            trigger,
            promoted.version_number,
            promoted.tenant_id,
            promoted.page_type.value,
            promoted.status.value,
        )
        if demoted is not None:
            logger.info(
                "Superseded v%d for %s/%s", demoted.version_number, demoted.tenant_id, demoted.page_type.value
            )
        return promoted

    def _notify(self, tenant_id: str, page_type: PageType) -> None:
        for listener in self._listeners:
            listener(tenant_id, page_type)

    async def publish_all(
        self, store: ConfigurationStore, tenant_id: str, actor: str | None = None
    ) -> list[Configuration]:
        """Publish every draft of ``tenant_id`` that differs from its published version.

        Page types are published one after another; a failure stops the run
        and leaves the earlier page types published.
        """
        published = {c.page_type: c for c in await store.list_for_tenant(tenant_id, PUBLISHED)}
        results: list[Configuration] = []
        for draft in await store.list_for_tenant(tenant_id, DRAFT):
            if not draft_differs(draft, published.get(draft.page_type)):
                continue
            results.append(await self.publish(store, draft.id, PUBLISHED, actor))
        logger.info("Published %d page type(s) for tenant %s", len(results), tenant_id)
        return results
