import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = "1.0"

StyleValue = str | int | float
LayoutValue = int | str


class PageType(str, Enum):
    CART = "cart"
    CHECKOUT = "checkout"
    HEADER = "header"
    LOGIN = "login"
    ACCOUNT = "account"
    SUCCESS = "success"
    CATEGORY = "category"
    PRODUCT = "product"


class SlotKind(str, Enum):
    CONTAINER = "container"
    LEAF_COMPONENT = "leaf-component"
    TEXT = "text"
    IMAGE = "image"
    BLOCK_POSITION = "block-position"


class ConfigurationStatus(str, Enum):
    DRAFT = "draft"
    ACCEPTANCE = "acceptance"
    PUBLISHED = "published"
    REVERTED = "reverted"
    SUPERSEDED = "superseded"


class SlotNode(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    kind: SlotKind
    content: str | None = None
    style_overrides: dict[str, StyleValue] = Field(default_factory=dict)
    class_name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    component: str | None = None
    layout: dict[str, LayoutValue] = Field(default_factory=dict)
    view_modes: list[str] | None = None
    children: list[str] = Field(default_factory=list)


class SlotPatch(BaseModel):
    """Partial slot: only the fields that are set take part in a merge."""

    model_config = ConfigDict(extra="forbid")

    content: str | None = None
    style_overrides: dict[str, StyleValue] | None = None
    class_name: str | None = None
    metadata: dict[str, Any] | None = None
    component: str | None = None
    layout: dict[str, LayoutValue] | None = None
    view_modes: list[str] | None = None
    children: list[str] | None = None


class Configuration(BaseModel):
    id: str
    tenant_id: str
    page_type: PageType
    slots: dict[str, SlotNode]
    root_id: str
    status: ConfigurationStatus
    version_number: int
    parent_version_id: str | None = None
    current_edit_id: str | None = None
    published_at: datetime | None = None
    published_by: str | None = None
    acceptance_published_at: datetime | None = None
    acceptance_published_by: str | None = None
    schema_version: str = SCHEMA_VERSION
    revision: int = 1
    has_unpublished_changes: bool = False
    pinned_by: list[str] = Field(default_factory=list)
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> tuple[str, "PageType"]:
        return (self.tenant_id, self.page_type)

    def summary(self) -> "ConfigurationSummary":
        return ConfigurationSummary(**self.model_dump(exclude={"slots", "root_id"}))


class ConfigurationSummary(BaseModel):
    id: str
    tenant_id: str
    page_type: PageType
    status: ConfigurationStatus
    version_number: int
    parent_version_id: str | None = None
    current_edit_id: str | None = None
    published_at: datetime | None = None
    published_by: str | None = None
    acceptance_published_at: datetime | None = None
    acceptance_published_by: str | None = None
    schema_version: str = SCHEMA_VERSION
    revision: int = 1
    has_unpublished_changes: bool = False
    pinned_by: list[str] = Field(default_factory=list)
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# --- Draft mutations (tagged on ``op``) ---


class AddSlot(BaseModel):
    op: Literal["add"] = "add"
    parent_id: str
    node: SlotNode
    index: int | None = None


class RemoveSlot(BaseModel):
    op: Literal["remove"] = "remove"
    slot_id: str


class MoveSlot(BaseModel):
    op: Literal["move"] = "move"
    slot_id: str
    new_parent_id: str
    index: int | None = None


class ReorderChildren(BaseModel):
    op: Literal["reorder"] = "reorder"
    parent_id: str
    children: list[str]


class PatchSlot(BaseModel):
    op: Literal["patch"] = "patch"
    slot_id: str
    patch: SlotPatch


Mutation = Annotated[AddSlot | RemoveSlot | MoveSlot | ReorderChildren | PatchSlot, Field(discriminator="op")]


# --- Override layers (tagged on ``scope``) ---


class ContentBlock(BaseModel):
    """Externally-owned content (e.g. a CMS block) injected at a block-position marker."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    kind: SlotKind = SlotKind.TEXT
    content: str | None = None
    style_overrides: dict[str, StyleValue] = Field(default_factory=dict)
    class_name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ViewModeLayer(BaseModel):
    scope: Literal["view-mode"] = "view-mode"
    view_mode: str
    patches: dict[str, SlotPatch] = Field(default_factory=dict)


class ContentBlockLayer(BaseModel):
    scope: Literal["content-block"] = "content-block"
    blocks: dict[str, list[ContentBlock]] = Field(default_factory=dict)


class ExperimentVariantLayer(BaseModel):
    scope: Literal["experiment-variant"] = "experiment-variant"
    experiment_id: str
    variant_id: str
    patches: dict[str, SlotPatch] = Field(default_factory=dict)


OverrideLayer = Annotated[
    ViewModeLayer | ContentBlockLayer | ExperimentVariantLayer,
    Field(discriminator="scope"),
]


class ResolutionContext(BaseModel):
    view_mode: str = "default"


class ResolvedSlot(BaseModel):
    id: str
    kind: SlotKind
    content: str | None = None
    style_overrides: dict[str, StyleValue] = Field(default_factory=dict)
    class_name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    component: str | None = None
    layout: dict[str, LayoutValue] = Field(default_factory=dict)
    view_modes: list[str] | None = None
    col_span_class: str | None = None
    visible: bool = True
    injected: bool = False
    children: list[str] = Field(default_factory=list)


class ResolvedSlotTree(BaseModel):
    configuration_id: str
    tenant_id: str
    page_type: PageType
    status: ConfigurationStatus
    version_number: int
    root_id: str
    view_mode: str
    fingerprint: str
    slots: dict[str, ResolvedSlot]

    def canonical_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
