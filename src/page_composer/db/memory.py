import uuid
from datetime import datetime

from page_composer.core.errors import ConflictError, InvalidStateError, NotFoundError, StaleWriteError
from page_composer.core.ports.store import NewDraft
from page_composer.models import (
    Configuration,
    ConfigurationStatus,
    ConfigurationSummary,
    PageType,
)

DRAFT = ConfigurationStatus.DRAFT
ACCEPTANCE = ConfigurationStatus.ACCEPTANCE
PUBLISHED = ConfigurationStatus.PUBLISHED
REVERTED = ConfigurationStatus.REVERTED
SUPERSEDED = ConfigurationStatus.SUPERSEDED

# Statuses held by at most one configuration per (tenant, page type).
_SINGLE_HOLDER = frozenset({DRAFT, ACCEPTANCE, PUBLISHED})


class InMemoryConfigurationStore:
    """Dictionary-backed store.

    Every method finishes without awaiting, so each call is atomic with
    respect to other tasks on the same event loop. Records are copied on the
    way in and out; callers never hold a reference to stored state.
    """

    def __init__(self) -> None:
        self.configurations: dict[str, Configuration] = {}
        self.active: dict[tuple[str, PageType, ConfigurationStatus], str] = {}
        self.latest_version: dict[tuple[str, PageType], int] = {}

    async def ensure_ready(self) -> None:
        pass

    async def get(self, configuration_id: str) -> Configuration | None:
        record = self.configurations.get(configuration_id)
        return record.model_copy(deep=True) if record is not None else None

    async def find(self, tenant_id: str, page_type: PageType, status: ConfigurationStatus) -> Configuration | None:
        if status in _SINGLE_HOLDER:
            configuration_id = self.active.get((tenant_id, page_type, status))
            return await self.get(configuration_id) if configuration_id is not None else None
        candidates = [
            c
            for c in self.configurations.values()
            if c.tenant_id == tenant_id and c.page_type == page_type and c.status == status
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda c: c.version_number).model_copy(deep=True)

    async def insert_draft(self, draft: NewDraft) -> Configuration:
        key = (draft.tenant_id, draft.page_type)
        existing = self.active.get((*key, DRAFT))
        if existing is not None:
            raise ConflictError(
                f"A draft already exists for {draft.tenant_id}/{draft.page_type.value}",
                {"configuration_id": existing},
            )
        parent = self._require(draft.parent_version_id) if draft.parent_version_id is not None else None

        version_number = self.latest_version.get(key, 0) + 1
        record = Configuration(
            id=str(uuid.uuid4()),
            tenant_id=draft.tenant_id,
            page_type=draft.page_type,
            slots={slot_id: node.model_copy(deep=True) for slot_id, node in draft.slots.items()},
            root_id=draft.root_id,
            status=DRAFT,
            version_number=version_number,
            parent_version_id=draft.parent_version_id,
            schema_version=draft.schema_version,
            revision=1,
            has_unpublished_changes=draft.has_unpublished_changes,
            created_by=draft.created_by,
            created_at=draft.created_at,
            updated_at=draft.created_at,
        )
        self.configurations[record.id] = record
        self.active[(*key, DRAFT)] = record.id
        self.latest_version[key] = version_number
        if parent is not None:
            self.configurations[parent.id] = parent.model_copy(
                update={"current_edit_id": record.id, "revision": parent.revision + 1, "updated_at": draft.created_at}
            )
        return record.model_copy(deep=True)

    async def update_draft(
        self,
        configuration_id: str,
        slots: dict,
        expected_revision: int,
        now: datetime,
    ) -> Configuration:
        record = self._require(configuration_id)
        if record.status != DRAFT:
            raise InvalidStateError(
                f"Configuration {configuration_id} is {record.status.value}, only drafts can be saved",
                current=record.status.value,
                target=DRAFT.value,
            )
        if record.revision != expected_revision:
            raise StaleWriteError(configuration_id, expected_revision, record.revision)
        updated = record.model_copy(
            update={
                "slots": {slot_id: node.model_copy(deep=True) for slot_id, node in slots.items()},
                "revision": record.revision + 1,
                "updated_at": now,
                "has_unpublished_changes": True,
            }
        )
        self.configurations[configuration_id] = updated
        return updated.model_copy(deep=True)

    async def promote(
        self,
        configuration_id: str,
        expected_status: ConfigurationStatus,
        target_status: ConfigurationStatus,
        actor: str | None,
        now: datetime,
    ) -> tuple[Configuration, Configuration | None]:
        record = self._require(configuration_id)
        if record.status != expected_status:
            raise ConflictError(
                f"Configuration {configuration_id} changed status to {record.status.value} concurrently",
                {"configuration_id": configuration_id, "status": record.status.value},
            )
        key = (record.tenant_id, record.page_type)

        demoted: Configuration | None = None
        previous_id = self.active.get((*key, target_status))
        if previous_id is not None and previous_id != configuration_id:
            previous = self.configurations[previous_id]
            demoted = previous.model_copy(
                update={"status": SUPERSEDED, "revision": previous.revision + 1, "updated_at": now}
            )
            self.configurations[previous_id] = demoted

        if target_status == PUBLISHED:
            stamp = {"published_at": now, "published_by": actor}
        else:
            stamp = {"acceptance_published_at": now, "acceptance_published_by": actor}
        promoted = record.model_copy(
            update={
                **stamp,
                "status": target_status,
                "has_unpublished_changes": False,
                "revision": record.revision + 1,
                "updated_at": now,
            }
        )
        self.configurations[configuration_id] = promoted
        if self.active.get((*key, expected_status)) == configuration_id:
            del self.active[(*key, expected_status)]
        self.active[(*key, target_status)] = configuration_id
        return promoted.model_copy(deep=True), demoted.model_copy(deep=True) if demoted else None

    async def transition(
        self,
        configuration_id: str,
        expected_status: ConfigurationStatus,
        target_status: ConfigurationStatus,
        now: datetime,
    ) -> Configuration:
        record = self._require(configuration_id)
        if record.status != expected_status:
            raise ConflictError(
                f"Configuration {configuration_id} changed status to {record.status.value} concurrently",
                {"configuration_id": configuration_id, "status": record.status.value},
            )
        key = (record.tenant_id, record.page_type)
        if target_status in _SINGLE_HOLDER:
            holder = self.active.get((*key, target_status))
            if holder is not None and holder != configuration_id:
                raise ConflictError(
                    f"A {target_status.value} configuration already exists for {key[0]}/{key[1].value}",
                    {"configuration_id": holder},
                )

        updated = record.model_copy(
            update={"status": target_status, "revision": record.revision + 1, "updated_at": now}
        )
        self.configurations[configuration_id] = updated
        if self.active.get((*key, expected_status)) == configuration_id:
            del self.active[(*key, expected_status)]
        if target_status in _SINGLE_HOLDER:
            self.active[(*key, target_status)] = configuration_id

        if target_status == REVERTED and record.parent_version_id is not None:
            parent = self.configurations.get(record.parent_version_id)
            if parent is not None and parent.current_edit_id == configuration_id:
                self.configurations[parent.id] = parent.model_copy(
                    update={"current_edit_id": None, "revision": parent.revision + 1, "updated_at": now}
                )
        return updated.model_copy(deep=True)

    async def set_pins(self, configuration_id: str, pins: list[str], now: datetime) -> Configuration:
        record = self._require(configuration_id)
        updated = record.model_copy(
            update={"pinned_by": list(pins), "revision": record.revision + 1, "updated_at": now}
        )
        self.configurations[configuration_id] = updated
        return updated.model_copy(deep=True)

    async def list_history(
        self,
        tenant_id: str,
        page_type: PageType,
        limit: int = 20,
        before_version: int | None = None,
    ) -> list[ConfigurationSummary]:
        rows = sorted(
            (
                c
                for c in self.configurations.values()
                if c.tenant_id == tenant_id
                and c.page_type == page_type
                and (before_version is None or c.version_number < before_version)
            ),
            key=lambda c: c.version_number,
            reverse=True,
        )
        return [c.summary() for c in rows[:limit]]

    async def list_for_tenant(self, tenant_id: str, status: ConfigurationStatus) -> list[Configuration]:
        rows = sorted(
            (c for c in self.configurations.values() if c.tenant_id == tenant_id and c.status == status),
            key=lambda c: (c.page_type.value, -c.version_number),
        )
        return [c.model_copy(deep=True) for c in rows]

    async def ping(self) -> bool:
        return True

    async def dispose(self) -> None:
        pass

    def _require(self, configuration_id: str) -> Configuration:
        record = self.configurations.get(configuration_id)
        if record is None:
            raise NotFoundError(f"Configuration {configuration_id} not found", {"configuration_id": configuration_id})
        return record
