import json
import logging
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from page_composer.core.errors import ConflictError, InvalidStateError, NotFoundError, StaleWriteError
from page_composer.core.ports.store import NewDraft
from page_composer.models import (
    Configuration,
    ConfigurationStatus,
    ConfigurationSummary,
    PageType,
    SlotNode,
)

logger = logging.getLogger(__name__)

TABLE = "slot_configurations"

_SUMMARY_COLUMNS = (
    "id, tenant_id, page_type, status, version_number, parent_version_id, current_edit_id, "
    "published_at, published_by, acceptance_published_at, acceptance_published_by, schema_version, "
    "revision, has_unpublished_changes, pinned_by, created_by, created_at, updated_at"
)
_COLUMNS = f"{_SUMMARY_COLUMNS}, slots, root_id"

_STATUSES = ", ".join(f"'{status.value}'" for status in ConfigurationStatus)

_SCHEMA = (
    f"CREATE TABLE IF NOT EXISTS {TABLE} ("
    " id UUID PRIMARY KEY,"
    " tenant_id TEXT NOT NULL,"
    " page_type TEXT NOT NULL,"
    " version_number INTEGER NOT NULL,"
    " status TEXT NOT NULL,"
    " slots JSONB NOT NULL,"
    " root_id TEXT NOT NULL,"
    f" parent_version_id UUID REFERENCES {TABLE} (id),"
    " current_edit_id UUID,"
    " published_at TIMESTAMPTZ,"
    " published_by TEXT,"
    " acceptance_published_at TIMESTAMPTZ,"
    " acceptance_published_by TEXT,"
    " schema_version TEXT NOT NULL,"
    " revision INTEGER NOT NULL DEFAULT 1,"
    " has_unpublished_changes BOOLEAN NOT NULL DEFAULT false,"
    " pinned_by JSONB NOT NULL DEFAULT '[]',"
    " created_by TEXT,"
    " created_at TIMESTAMPTZ NOT NULL,"
    " updated_at TIMESTAMPTZ NOT NULL,"
    " CONSTRAINT uq_slot_configurations_version UNIQUE (tenant_id, page_type, version_number),"
    f" CONSTRAINT ck_slot_configurations_status CHECK (status IN ({_STATUSES}))"
    ")",
    f"CREATE INDEX IF NOT EXISTS ix_slot_configurations_key_status ON {TABLE} (tenant_id, page_type, status)",
    *(
        f"CREATE UNIQUE INDEX IF NOT EXISTS uq_slot_configurations_{status} "
        f"ON {TABLE} (tenant_id, page_type) WHERE status = '{status}'"
        for status in ("published", "acceptance", "draft")
    ),
)


def _as_uuid(value: str | None) -> uuid.UUID | None:
    if value is None:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


def _load_json(value: Any) -> Any:
    # The asyncpg dialect decodes JSONB itself; plain drivers hand back text.
    return json.loads(value) if isinstance(value, str) else value


def _dump_slots(slots: Mapping[str, SlotNode]) -> str:
    return json.dumps({slot_id: node.model_dump(mode="json") for slot_id, node in slots.items()})


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _summary_fields(row: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "id": str(row["id"]),
        "tenant_id": row["tenant_id"],
        "page_type": PageType(row["page_type"]),
        "status": ConfigurationStatus(row["status"]),
        "version_number": row["version_number"],
        "parent_version_id": _optional_str(row["parent_version_id"]),
        "current_edit_id": _optional_str(row["current_edit_id"]),
        "published_at": row["published_at"],
        "published_by": row["published_by"],
        "acceptance_published_at": row["acceptance_published_at"],
        "acceptance_published_by": row["acceptance_published_by"],
        "schema_version": row["schema_version"],
        "revision": row["revision"],
        "has_unpublished_changes": row["has_unpublished_changes"],
        "pinned_by": _load_json(row["pinned_by"]),
        "created_by": row["created_by"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _to_configuration(row: Mapping[str, Any]) -> Configuration:
    return Configuration(**_summary_fields(row), slots=_load_json(row["slots"]), root_id=row["root_id"])


def _lock_key(tenant_id: str, page_type: str) -> str:
    return f"{TABLE}:{tenant_id}:{page_type}"


def _not_found(configuration_id: str) -> NotFoundError:
    return NotFoundError(f"Configuration {configuration_id} not found", {"configuration_id": configuration_id})


class PostgresConfigurationStore:
    """Configuration store on a single Postgres table.

    Every write runs in one transaction. Per-key writers are serialized with
    a transaction-scoped advisory lock and the partial unique indexes keep at
    most one draft, acceptance and published row per (tenant, page type)
    even if a writer bypasses the lock.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def ensure_ready(self) -> None:
        async with self._engine.begin() as conn:
            for statement in _SCHEMA:
                await conn.execute(text(statement))

    async def _fetch(self, conn: AsyncConnection, configuration_id: uuid.UUID, lock: bool = False) -> Any:
        suffix = " FOR UPDATE" if lock else ""
        result = await conn.execute(
            text(f"SELECT {_COLUMNS} FROM {TABLE} WHERE id = :id{suffix}"),
            {"id": configuration_id},
        )
        return result.mappings().first()

    async def get(self, configuration_id: str) -> Configuration | None:
        key = _as_uuid(configuration_id)
        if key is None:
            return None
        async with self._engine.connect() as conn:
            row = await self._fetch(conn, key)
        return _to_configuration(row) if row is not None else None

    async def find(self, tenant_id: str, page_type: PageType, status: ConfigurationStatus) -> Configuration | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {_COLUMNS} FROM {TABLE} "
                    "WHERE tenant_id = :tenant_id AND page_type = :page_type AND status = :status "
                    "ORDER BY version_number DESC LIMIT 1"
                ),
                {"tenant_id": tenant_id, "page_type": page_type.value, "status": status.value},
            )
            row = result.mappings().first()
        return _to_configuration(row) if row is not None else None

    async def insert_draft(self, draft: NewDraft) -> Configuration:
        new_id = uuid.uuid4()
        parent_id = _as_uuid(draft.parent_version_id)
        if draft.parent_version_id is not None and parent_id is None:
            raise _not_found(draft.parent_version_id)
        params = {"tenant_id": draft.tenant_id, "page_type": draft.page_type.value}
        try:
            async with self._engine.begin() as conn:
                await conn.execute(
                    text("SELECT pg_advisory_xact_lock(hashtextextended(:lock_key, 0))"),
                    {"lock_key": _lock_key(draft.tenant_id, draft.page_type.value)},
                )
                existing = await conn.execute(
                    text(
                        f"SELECT id FROM {TABLE} "
                        "WHERE tenant_id = :tenant_id AND page_type = :page_type AND status = 'draft'"
                    ),
                    params,
                )
                existing_id = existing.scalar_one_or_none()
                if existing_id is not None:
                    raise ConflictError(
                        f"A draft already exists for {draft.tenant_id}/{draft.page_type.value}",
                        {"configuration_id": str(existing_id)},
                    )
                if parent_id is not None and await self._fetch(conn, parent_id, lock=True) is None:
                    raise _not_found(str(parent_id))

                latest = await conn.execute(
                    text(
                        f"SELECT COALESCE(MAX(version_number), 0) FROM {TABLE} "
                        "WHERE tenant_id = :tenant_id AND page_type = :page_type"
                    ),
                    params,
                )
                version_number = latest.scalar_one() + 1

                inserted = await conn.execute(
                    text(
                        f"INSERT INTO {TABLE} (id, tenant_id, page_type, version_number, status, slots, root_id, "
                        "parent_version_id, schema_version, revision, has_unpublished_changes, pinned_by, "
                        "created_by, created_at, updated_at) "
                        "VALUES (:id, :tenant_id, :page_type, :version_number, 'draft', CAST(:slots AS jsonb), "
                        ":root_id, :parent_version_id, :schema_version, 1, :has_unpublished_changes, "
                        "CAST('[]' AS jsonb), :created_by, :now, :now) "
                        f"RETURNING {_COLUMNS}"
                    ),
                    {
                        **params,
                        "id": new_id,
                        "version_number": version_number,
                        "slots": _dump_slots(draft.slots),
                        "root_id": draft.root_id,
                        "parent_version_id": parent_id,
                        "schema_version": draft.schema_version,
                        "has_unpublished_changes": draft.has_unpublished_changes,
                        "created_by": draft.created_by,
                        "now": draft.created_at,
                    },
                )
                row = inserted.mappings().one()

                if parent_id is not None:
                    await conn.execute(
                        text(
                            f"UPDATE {TABLE} SET current_edit_id = :draft_id, revision = revision + 1, "
                            "updated_at = :now WHERE id = :parent_id"
                        ),
                        {"draft_id": new_id, "parent_id": parent_id, "now": draft.created_at},
                    )
        except IntegrityError as exc:
            raise ConflictError(
                f"Concurrent draft creation for {draft.tenant_id}/{draft.page_type.value}", params
            ) from exc
        return _to_configuration(row)

    async def update_draft(
        self,
        configuration_id: str,
        slots: Mapping[str, SlotNode],
        expected_revision: int,
        now: datetime,
    ) -> Configuration:
        key = _as_uuid(configuration_id)
        if key is None:
            raise _not_found(configuration_id)
        async with self._engine.begin() as conn:
            updated = await conn.execute(
                text(
                    f"UPDATE {TABLE} SET slots = CAST(:slots AS jsonb), revision = revision + 1, "
                    "updated_at = :now, has_unpublished_changes = true "
                    "WHERE id = :id AND status = 'draft' AND revision = :expected_revision "
                    f"RETURNING {_COLUMNS}"
                ),
                {"id": key, "slots": _dump_slots(slots), "now": now, "expected_revision": expected_revision},
            )
            row = updated.mappings().first()
            if row is not None:
                return _to_configuration(row)

            current = await self._fetch(conn, key)
        if current is None:
            raise _not_found(configuration_id)
        if current["status"] != ConfigurationStatus.DRAFT.value:
            raise InvalidStateError(
                f"Configuration {configuration_id} is {current['status']}, only drafts can be saved",
                current=current["status"],
                target=ConfigurationStatus.DRAFT.value,
            )
        raise StaleWriteError(configuration_id, expected_revision, current["revision"])

    async def promote(
        self,
        configuration_id: str,
        expected_status: ConfigurationStatus,
        target_status: ConfigurationStatus,
        actor: str | None,
        now: datetime,
    ) -> tuple[Configuration, Configuration | None]:
        key = _as_uuid(configuration_id)
        if key is None:
            raise _not_found(configuration_id)
        if target_status == ConfigurationStatus.PUBLISHED:
            stamp = "published_at = :now, published_by = :actor"
        else:
            stamp = "acceptance_published_at = :now, acceptance_published_by = :actor"

        try:
            async with self._engine.begin() as conn:
                row = await self._fetch(conn, key, lock=True)
                if row is None:
                    raise _not_found(configuration_id)
                acquired = await conn.execute(
                    text("SELECT pg_try_advisory_xact_lock(hashtextextended(:lock_key, 0))"),
                    {"lock_key": _lock_key(row["tenant_id"], row["page_type"])},
                )
                if not acquired.scalar_one():
                    raise ConflictError(
                        f"Another writer holds {row['tenant_id']}/{row['page_type']}",
                        {"tenant_id": row["tenant_id"], "page_type": row["page_type"]},
                    )
                if row["status"] != expected_status.value:
                    raise ConflictError(
                        f"Configuration {configuration_id} changed status to {row['status']} concurrently",
                        {"configuration_id": configuration_id, "status": row["status"]},
                    )

                demoted = await conn.execute(
                    text(
                        f"UPDATE {TABLE} SET status = 'superseded', revision = revision + 1, updated_at = :now "
                        "WHERE tenant_id = :tenant_id AND page_type = :page_type AND status = :target AND id <> :id "
                        f"RETURNING {_COLUMNS}"
                    ),
                    {
                        "now": now,
                        "tenant_id": row["tenant_id"],
                        "page_type": row["page_type"],
                        "target": target_status.value,
                        "id": key,
                    },
                )
                demoted_row = demoted.mappings().first()

                promoted = await conn.execute(
                    text(
                        f"UPDATE {TABLE} SET status = :target, {stamp}, has_unpublished_changes = false, "
                        f"revision = revision + 1, updated_at = :now WHERE id = :id RETURNING {_COLUMNS}"
                    ),
                    {"target": target_status.value, "now": now, "actor": actor, "id": key},
                )
                promoted_row = promoted.mappings().one()
        except IntegrityError as exc:
            raise ConflictError(
                f"Concurrent publish of {configuration_id}", {"configuration_id": configuration_id}
            ) from exc

        if demoted_row is not None:
            logger.debug("Demoted %s to superseded", demoted_row["id"])
        return _to_configuration(promoted_row), _to_configuration(demoted_row) if demoted_row is not None else None

    async def transition(
        self,
        configuration_id: str,
        expected_status: ConfigurationStatus,
        target_status: ConfigurationStatus,
        now: datetime,
    ) -> Configuration:
        key = _as_uuid(configuration_id)
        if key is None:
            raise _not_found(configuration_id)
        try:
            async with self._engine.begin() as conn:
                row = await self._fetch(conn, key, lock=True)
                if row is None:
                    raise _not_found(configuration_id)
                if row["status"] != expected_status.value:
                    raise ConflictError(
                        f"Configuration {configuration_id} changed status to {row['status']} concurrently",
                        {"configuration_id": configuration_id, "status": row["status"]},
                    )
                holder = await conn.execute(
                    text(
                        f"SELECT id FROM {TABLE} WHERE tenant_id = :tenant_id AND page_type = :page_type "
                        "AND status = :target AND status IN ('draft', 'acceptance', 'published') AND id <> :id"
                    ),
                    {
                        "tenant_id": row["tenant_id"],
                        "page_type": row["page_type"],
                        "target": target_status.value,
                        "id": key,
                    },
                )
                holder_id = holder.scalar_one_or_none()
                if holder_id is not None:
                    raise ConflictError(
                        f"A {target_status.value} configuration already exists for "
                        f"{row['tenant_id']}/{row['page_type']}",
                        {"configuration_id": str(holder_id)},
                    )

                updated = await conn.execute(
                    text(
                        f"UPDATE {TABLE} SET status = :target, revision = revision + 1, updated_at = :now "
                        f"WHERE id = :id RETURNING {_COLUMNS}"
                    ),
                    {"target": target_status.value, "now": now, "id": key},
                )
                updated_row = updated.mappings().one()

                if target_status == ConfigurationStatus.REVERTED and row["parent_version_id"] is not None:
                    await conn.execute(
                        text(
                            f"UPDATE {TABLE} SET current_edit_id = NULL, revision = revision + 1, updated_at = :now "
                            "WHERE id = :parent_id AND current_edit_id = :id"
                        ),
                        {"parent_id": row["parent_version_id"], "id": key, "now": now},
                    )
        except IntegrityError as exc:
            raise ConflictError(
                f"Concurrent status change of {configuration_id}", {"configuration_id": configuration_id}
            ) from exc
        return _to_configuration(updated_row)

    async def set_pins(self, configuration_id: str, pins: list[str], now: datetime) -> Configuration:
        key = _as_uuid(configuration_id)
        if key is None:
            raise _not_found(configuration_id)
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text(
                    f"UPDATE {TABLE} SET pinned_by = CAST(:pins AS jsonb), revision = revision + 1, "
                    f"updated_at = :now WHERE id = :id RETURNING {_COLUMNS}"
                ),
                {"pins": json.dumps(list(pins)), "now": now, "id": key},
            )
            row = result.mappings().first()
        if row is None:
            raise _not_found(configuration_id)
        return _to_configuration(row)

    async def list_history(
        self,
        tenant_id: str,
        page_type: PageType,
        limit: int = 20,
        before_version: int | None = None,
    ) -> list[ConfigurationSummary]:
        params: dict[str, Any] = {"tenant_id": tenant_id, "page_type": page_type.value, "lim": limit}
        where = "tenant_id = :tenant_id AND page_type = :page_type"
        if before_version is not None:
            where += " AND version_number < :before_version"
            params["before_version"] = before_version
        async with self._engine.connect() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {_SUMMARY_COLUMNS} FROM {TABLE} WHERE {where} "
                    "ORDER BY version_number DESC LIMIT :lim"
                ),
                params,
            )
            rows = result.mappings().all()
        return [ConfigurationSummary(**_summary_fields(row)) for row in rows]

    async def list_for_tenant(self, tenant_id: str, status: ConfigurationStatus) -> list[Configuration]:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {_COLUMNS} FROM {TABLE} WHERE tenant_id = :tenant_id AND status = :status "
                    "ORDER BY page_type, version_number DESC"
                ),
                {"tenant_id": tenant_id, "status": status.value},
            )
            rows = result.mappings().all()
        return [_to_configuration(row) for row in rows]

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.warning("Database ping failed", exc_info=True)
            return False

    async def dispose(self) -> None:
        await self._engine.dispose()
