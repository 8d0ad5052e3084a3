"""Composition of a stored configuration with run-time override layers.

Layers apply in scope order, lowest first: view-mode adjustments, then
content-block injection, then experiment variants. Within one scope the
caller's order is kept. A patch only touches the fields it sets, so a later
layer never clears what an earlier one left in place.

Everything here is pure: the configuration and layers are read, never
written, and the result depends on nothing but the arguments.
"""

import copy
import hashlib
import json
from collections.abc import Mapping, Sequence
from typing import Any

from page_composer.core.errors import UnknownSlotError
from page_composer.core.tree import merge_fields
from page_composer.models import (
    Configuration,
    ContentBlock,
    ContentBlockLayer,
    LayoutValue,
    OverrideLayer,
    ResolutionContext,
    ResolvedSlot,
    ResolvedSlotTree,
    SlotKind,
    SlotNode,
    ViewModeLayer,
)

SCOPE_ORDER = {"view-mode": 0, "content-block": 1, "experiment-variant": 2}


def order_layers(layers: Sequence[OverrideLayer]) -> list[OverrideLayer]:
    return sorted(layers, key=lambda layer: SCOPE_ORDER[layer.scope])


def block_slot_id(marker_id: str, block_id: str) -> str:
    return f"{marker_id}/{block_id}"


def fingerprint(layers: Sequence[OverrideLayer], context: ResolutionContext) -> str:
    """Stable hash of the ordered layers and the context, used as a cache key."""
    payload = {
        "layers": [
            {"scope": layer.scope, **layer.model_dump(mode="json", exclude_unset=True)}
            for layer in order_layers(layers)
        ],
        "context": context.model_dump(mode="json"),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()
    return hashlib.sha256(encoded).hexdigest()


def col_span_class(layout: Mapping[str, LayoutValue], view_mode: str) -> str | None:
    value = layout.get(view_mode, layout.get("default"))
    if value is None:
        return None
    if isinstance(value, int):
        return f"col-span-{value}"
    return value


def is_visible(view_modes: Sequence[str] | None, view_mode: str) -> bool:
    return view_modes is None or view_mode in view_modes


def _check_targets(slots: Mapping[str, SlotNode], layers: Sequence[OverrideLayer]) -> None:
    """Raise ``UnknownSlotError`` listing every id a layer refers to but cannot use."""
    unknown: set[str] = set()
    allowed_children = {slot_id: set(node.children) for slot_id, node in slots.items()}

    for layer in layers:
        if isinstance(layer, ContentBlockLayer):
            for marker_id, blocks in layer.blocks.items():
                marker = slots.get(marker_id)
                if marker is None or marker.kind != SlotKind.BLOCK_POSITION:
                    unknown.add(marker_id)
                    continue
                allowed_children[marker_id].update(block_slot_id(marker_id, block.id) for block in blocks)

    for layer in layers:
        if isinstance(layer, ContentBlockLayer):
            continue
        for slot_id, patch in layer.patches.items():
            if slot_id not in slots:
                unknown.add(slot_id)
                continue
            if patch.children is not None:
                unknown.update(child for child in patch.children if child not in allowed_children[slot_id])
                # a slot listed twice would render twice
                unknown.update(child for child in set(patch.children) if patch.children.count(child) > 1)

    if unknown:
        raise UnknownSlotError(sorted(unknown))


def _reachable(nodes: Mapping[str, dict[str, Any]], root_id: str) -> set[str]:
    seen: set[str] = set()
    stack = [root_id]
    while stack:
        slot_id = stack.pop()
        if slot_id in seen:
            continue
        seen.add(slot_id)
        stack.extend(nodes[slot_id]["children"])
    return seen


def _block_node(slot_id: str, block: ContentBlock) -> dict[str, Any]:
    return {
        **block.model_dump(),
        "id": slot_id,
        "component": None,
        "layout": {},
        "view_modes": None,
        "children": [],
    }


def resolve(
    configuration: Configuration,
    layers: Sequence[OverrideLayer] = (),
    context: ResolutionContext | None = None,
) -> ResolvedSlotTree:
    context = context or ResolutionContext()
    ordered = order_layers(layers)
    _check_targets(configuration.slots, ordered)

    nodes: dict[str, dict[str, Any]] = {
        slot_id: copy.deepcopy(node.model_dump()) for slot_id, node in configuration.slots.items()
    }
    injected: set[str] = set()

    for layer in ordered:
        if isinstance(layer, ContentBlockLayer):
            for marker_id, blocks in layer.blocks.items():
                marker = nodes[marker_id]
                for block in blocks:
                    slot_id = block_slot_id(marker_id, block.id)
                    nodes[slot_id] = _block_node(slot_id, block)
                    injected.add(slot_id)
                    if slot_id not in marker["children"]:
                        marker["children"].append(slot_id)
            continue
        # View-mode layers only apply to the mode being rendered.
        if isinstance(layer, ViewModeLayer) and layer.view_mode != context.view_mode:
            continue
        for slot_id, patch in layer.patches.items():
            nodes[slot_id] = merge_fields(nodes[slot_id], patch)

    # Slots dropped from a children patch go with their whole subtree.
    kept = _reachable(nodes, configuration.root_id)
    resolved = {
        slot_id: ResolvedSlot(
            **node,
            col_span_class=col_span_class(node["layout"], context.view_mode),
            visible=is_visible(node["view_modes"], context.view_mode),
            injected=slot_id in injected,
        )
        for slot_id, node in nodes.items()
        if slot_id in kept
    }
    return ResolvedSlotTree(
        configuration_id=configuration.id,
        tenant_id=configuration.tenant_id,
        page_type=configuration.page_type,
        status=configuration.status,
        version_number=configuration.version_number,
        root_id=configuration.root_id,
        view_mode=context.view_mode,
        fingerprint=fingerprint(layers, context),
        slots=resolved,
    )
