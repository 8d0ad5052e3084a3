from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from page_composer.models import (
    SCHEMA_VERSION,
    Configuration,
    ConfigurationStatus,
    ConfigurationSummary,
    PageType,
    SlotNode,
)


@dataclass(frozen=True)
class NewDraft:
    tenant_id: str
    page_type: PageType
    slots: dict[str, SlotNode]
    root_id: str
    created_at: datetime
    parent_version_id: str | None = None
    created_by: str | None = None
    schema_version: str = SCHEMA_VERSION
    has_unpublished_changes: bool = False


class ConfigurationStore(Protocol):
    async def ensure_ready(self) -> None: ...

    async def get(self, configuration_id: str) -> Configuration | None: ...

    async def find(
        self, tenant_id: str, page_type: PageType, status: ConfigurationStatus
    ) -> Configuration | None: ...

    async def insert_draft(self, draft: NewDraft) -> Configuration: ...

    async def update_draft(
        self,
        configuration_id: str,
        slots: dict[str, SlotNode],
        expected_revision: int,
        now: datetime,
    ) -> Configuration: ...

    async def promote(
        self,
        configuration_id: str,
        expected_status: ConfigurationStatus,
        target_status: ConfigurationStatus,
        actor: str | None,
        now: datetime,
    ) -> tuple[Configuration, Configuration | None]: ...

    async def transition(
        self,
        configuration_id: str,
        expected_status: ConfigurationStatus,
        target_status: ConfigurationStatus,
        now: datetime,
    ) -> Configuration: ...

    async def set_pins(self, configuration_id: str, pins: list[str], now: datetime) -> Configuration: ...

    async def list_history(
        self,
        tenant_id: str,
        page_type: PageType,
        limit: int = 20,
        before_version: int | None = None,
    ) -> list[ConfigurationSummary]: ...

    async def list_for_tenant(self, tenant_id: str, status: ConfigurationStatus) -> list[Configuration]: ...

    async def ping(self) -> bool: ...

    async def dispose(self) -> None: ...
