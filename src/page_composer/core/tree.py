"""Slot tree validation and structural mutations.

The tree is stored flat: ``slots`` maps slot id to node and every node lists
its children by id. Nothing here trusts that layout; ``validate_tree`` checks
it explicitly and every mutation path ends with a call to it.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from page_composer.core.errors import ValidationError
from page_composer.models import (
    AddSlot,
    MoveSlot,
    Mutation,
    PatchSlot,
    RemoveSlot,
    ReorderChildren,
    SlotNode,
    SlotPatch,
)

_KEYED_FIELDS = ("style_overrides", "metadata", "layout")


def validate_tree(slots: Mapping[str, SlotNode], root_id: str) -> None:
    """Raise ``ValidationError`` unless ``slots`` forms a single tree rooted at ``root_id``."""
    problems: list[str] = []
    offending: set[str] = set()

    if root_id not in slots:
        raise ValidationError(f"Root slot {root_id!r} does not exist", [root_id])

    mismatched = [key for key, node in slots.items() if node.id != key]
    if mismatched:
        problems.append("slot keys do not match node ids")
        offending.update(mismatched)

    parents: dict[str, str] = {}
    for node_id, node in slots.items():
        for child_id in node.children:
            if child_id not in slots:
                problems.append("dangling child reference")
                offending.update((node_id, child_id))
            elif child_id in parents:
                problems.append("slot has more than one parent")
                offending.add(child_id)
            else:
                parents[child_id] = node_id

    if root_id in parents:
        problems.append("root slot is referenced as a child")
        offending.add(root_id)

    cyclic = _find_cycles(slots)
    if cyclic:
        problems.append("cyclic child references")
        offending.update(cyclic)

    reachable = _reachable(slots, root_id)
    orphans = [node_id for node_id in slots if node_id not in reachable]
    if orphans:
        problems.append("orphaned slots")
        offending.update(orphans)

    if problems:
        summary = "; ".join(dict.fromkeys(problems))
        raise ValidationError(f"Invalid slot tree: {summary}", sorted(offending))


def _reachable(slots: Mapping[str, SlotNode], root_id: str) -> set[str]:
    seen: set[str] = set()
    stack = [root_id]
    while stack:
        node_id = stack.pop()
        if node_id in seen or node_id not in slots:
            continue
        seen.add(node_id)
        stack.extend(slots[node_id].children)
    return seen


def _find_cycles(slots: Mapping[str, SlotNode]) -> set[str]:
    """Return ids of every node that sits on a cycle (iterative three-colour DFS)."""
    white, grey, black = 0, 1, 2
    colour = dict.fromkeys(slots, white)
    on_cycle: set[str] = set()

    for start in slots:
        if colour[start] != white:
            continue
        path: list[str] = []
        stack: list[tuple[str, int]] = [(start, 0)]
        while stack:
            node_id, child_pos = stack.pop()
            if child_pos == 0:
                colour[node_id] = grey
                path.append(node_id)
            children = [c for c in slots[node_id].children if c in slots]
            if child_pos < len(children):
                stack.append((node_id, child_pos + 1))
                child = children[child_pos]
                if colour[child] == grey:
                    on_cycle.update(path[path.index(child) :])
                elif colour[child] == white:
                    stack.append((child, 0))
            else:
                colour[node_id] = black
                path.pop()
    return on_cycle


def merge_fields(data: dict[str, Any], patch: SlotPatch) -> dict[str, Any]:
    """Shallow-merge ``patch`` into node ``data``.

    Only fields explicitly set on the patch take part. Keyed fields merge key
    by key, every other field replaces the previous value.
    """
    merged = dict(data)
    for field, value in patch.model_dump(exclude_unset=True).items():
        if field in _KEYED_FIELDS:
            if value is None:
                continue
            merged[field] = {**merged.get(field, {}), **value}
        elif field == "children" and value is None:
            continue
        else:
            merged[field] = value
    return merged


def _require(slots: Mapping[str, SlotNode], slot_ids: Iterable[str]) -> None:
    missing = [slot_id for slot_id in slot_ids if slot_id not in slots]
    if missing:
        raise ValidationError("Mutation references unknown slot(s)", missing)


def _parent_of(slots: Mapping[str, SlotNode], slot_id: str) -> str | None:
    for node_id, node in slots.items():
        if slot_id in node.children:
            return node_id
    return None


def _insert(children: list[str], slot_id: str, index: int | None) -> list[str]:
    result = list(children)
    if index is None or index >= len(result):
        result.append(slot_id)
    else:
        result.insert(max(index, 0), slot_id)
    return result


def _subtree(slots: Mapping[str, SlotNode], slot_id: str) -> set[str]:
    return _reachable(slots, slot_id)


def apply_mutation(slots: dict[str, SlotNode], root_id: str, mutation: Mutation) -> None:
    """Apply one mutation to ``slots`` in place. Callers validate the result."""
    if isinstance(mutation, AddSlot):
        _require(slots, [mutation.parent_id])
        if mutation.node.id in slots:
            raise ValidationError(f"Slot {mutation.node.id!r} already exists", [mutation.node.id])
        parent = slots[mutation.parent_id]
        slots[mutation.node.id] = mutation.node.model_copy(deep=True)
        slots[parent.id] = parent.model_copy(
            update={"children": _insert(parent.children, mutation.node.id, mutation.index)}
        )

    elif isinstance(mutation, RemoveSlot):
        _require(slots, [mutation.slot_id])
        if mutation.slot_id == root_id:
            raise ValidationError("The root slot cannot be removed", [root_id])
        parent_id = _parent_of(slots, mutation.slot_id)
        for node_id in _subtree(slots, mutation.slot_id):
            del slots[node_id]
        if parent_id is not None and parent_id in slots:
            parent = slots[parent_id]
            slots[parent_id] = parent.model_copy(
                update={"children": [c for c in parent.children if c != mutation.slot_id]}
            )

    elif isinstance(mutation, MoveSlot):
        _require(slots, [mutation.slot_id, mutation.new_parent_id])
        if mutation.slot_id == root_id:
            raise ValidationError("The root slot cannot be moved", [root_id])
        if mutation.new_parent_id in _subtree(slots, mutation.slot_id):
            raise ValidationError(
                "Moving a slot below itself would create a cycle", [mutation.slot_id, mutation.new_parent_id]
            )
        old_parent_id = _parent_of(slots, mutation.slot_id)
        if old_parent_id is not None:
            old_parent = slots[old_parent_id]
            slots[old_parent_id] = old_parent.model_copy(
                update={"children": [c for c in old_parent.children if c != mutation.slot_id]}
            )
        new_parent = slots[mutation.new_parent_id]
        slots[new_parent.id] = new_parent.model_copy(
            update={"children": _insert(new_parent.children, mutation.slot_id, mutation.index)}
        )

    elif isinstance(mutation, ReorderChildren):
        _require(slots, [mutation.parent_id])
        parent = slots[mutation.parent_id]
        if sorted(mutation.children) != sorted(parent.children):
            changed = set(mutation.children) ^ set(parent.children)
            raise ValidationError(
                "Reorder must be a permutation of the existing children", [mutation.parent_id, *changed]
            )
        slots[parent.id] = parent.model_copy(update={"children": list(mutation.children)})

    elif isinstance(mutation, PatchSlot):
        _require(slots, [mutation.slot_id])
        if "children" in mutation.patch.model_fields_set:
            raise ValidationError("Use a reorder or move mutation to change children", [mutation.slot_id])
        node = slots[mutation.slot_id]
        slots[node.id] = SlotNode.model_validate(merge_fields(node.model_dump(), mutation.patch))


def apply_mutations(
    slots: Mapping[str, SlotNode], root_id: str, mutations: Iterable[Mutation]
) -> dict[str, SlotNode]:
    """Return a new, validated slot table with ``mutations`` applied in order.

    The input mapping is left untouched, so a rejected batch changes nothing.
    """
    working = {node_id: node.model_copy(deep=True) for node_id, node in slots.items()}
    for mutation in mutations:
        apply_mutation(working, root_id, mutation)
    validate_tree(working, root_id)
    return working
