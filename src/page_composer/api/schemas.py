from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from page_composer.models import (
    ConfigurationStatus,
    ConfigurationSummary,
    Mutation,
    OverrideLayer,
    ResolutionContext,
)


class CreateDraftRequest(BaseModel):
    base_configuration_id: str | None = None
    resume: bool = False
    actor: str | None = None


class SaveDraftRequest(BaseModel):
    mutations: list[Mutation] = Field(min_length=1)
    expected_revision: int | None = None


class PublishRequest(BaseModel):
    target_status: ConfigurationStatus = ConfigurationStatus.PUBLISHED
    actor: str | None = None


class PublishAllRequest(BaseModel):
    actor: str | None = None


class PinRequest(BaseModel):
    consumer: str = Field(min_length=1)


class ResolveRequest(BaseModel):
    layers: list[OverrideLayer] = Field(default_factory=list)
    context: ResolutionContext = Field(default_factory=ResolutionContext)
    preview: bool = False


class HistoryPage(BaseModel):
    data: list[ConfigurationSummary]
    links: dict[str, str | None]


class UnpublishedStatusResponse(BaseModel):
    tenant_id: str
    has_unpublished_changes: bool
    page_types: dict[str, bool]


class PublishAllResponse(BaseModel):
    tenant_id: str
    published: list[ConfigurationSummary]


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str = "ok"


class ReadinessResponse(BaseModel):
    status: str = "ok"
    database: str = "up"
