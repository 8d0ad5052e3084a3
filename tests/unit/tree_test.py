"""Tests for slot tree validation and draft mutations."""

from __future__ import annotations

import pytest

from page_composer.core.errors import ValidationError
from page_composer.core.tree import apply_mutations, merge_fields, validate_tree
from page_composer.models import (
    AddSlot,
    MoveSlot,
    PatchSlot,
    RemoveSlot,
    ReorderChildren,
    SlotKind,
    SlotNode,
    SlotPatch,
)
from tests.conftest import make_node


class TestValidateTree:
    def test_valid_tree_passes(self, simple_slots: dict[str, SlotNode]) -> None:
        validate_tree(simple_slots, "root")

    def test_missing_root(self, simple_slots: dict[str, SlotNode]) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_tree(simple_slots, "nope")
        assert exc_info.value.node_ids == ["nope"]

    def test_dangling_child(self) -> None:
        slots = {"root": make_node("root", children=["ghost"])}
        with pytest.raises(ValidationError) as exc_info:
            validate_tree(slots, "root")
        assert "ghost" in exc_info.value.node_ids

    def test_two_parents(self) -> None:
        slots = {
            "root": make_node("root", children=["a", "b"]),
            "a": make_node("a", children=["shared"]),
            "b": make_node("b", children=["shared"]),
            "shared": make_node("shared", SlotKind.TEXT),
        }
        with pytest.raises(ValidationError) as exc_info:
            validate_tree(slots, "root")
        assert exc_info.value.node_ids == ["shared"]

    def test_cycle_reports_every_node_on_it(self) -> None:
        slots = {
            "root": make_node("root", children=["a"]),
            "a": make_node("a", children=["b"]),
            "b": make_node("b", children=["c"]),
            "c": make_node("c", children=["a"]),
        }
        with pytest.raises(ValidationError) as exc_info:
            validate_tree(slots, "root")
        assert {"a", "b", "c"} <= set(exc_info.value.node_ids)
        assert "cyclic" in exc_info.value.message

    def test_orphan(self, simple_slots: dict[str, SlotNode]) -> None:
        slots = {**simple_slots, "loose": make_node("loose", SlotKind.TEXT)}
        with pytest.raises(ValidationError) as exc_info:
            validate_tree(slots, "root")
        assert exc_info.value.node_ids == ["loose"]

    def test_key_must_match_node_id(self) -> None:
        slots = {"root": make_node("root", children=["a"]), "a": make_node("b", SlotKind.TEXT)}
        with pytest.raises(ValidationError):
            validate_tree(slots, "root")


class TestMergeFields:
    def test_content_patch_keeps_styles(self) -> None:
        node = make_node("t", SlotKind.TEXT, content="A", style_overrides={"color": "red"})
        merged = merge_fields(node.model_dump(), SlotPatch(content="B"))
        assert merged["content"] == "B"
        assert merged["style_overrides"] == {"color": "red"}

    def test_keyed_fields_merge_per_key(self) -> None:
        node = make_node("t", SlotKind.TEXT, style_overrides={"color": "red", "margin": 4}, layout={"default": 6})
        merged = merge_fields(
            node.model_dump(), SlotPatch(style_overrides={"color": "blue"}, layout={"mobile": 12})
        )
        assert merged["style_overrides"] == {"color": "blue", "margin": 4}
        assert merged["layout"] == {"default": 6, "mobile": 12}

    def test_explicit_none_clears_replaceable_field(self) -> None:
        node = make_node("t", SlotKind.TEXT, class_name="bold")
        merged = merge_fields(node.model_dump(), SlotPatch(class_name=None))
        assert merged["class_name"] is None


class TestApplyMutations:
    def test_add_inserts_at_index(self, simple_slots: dict[str, SlotNode]) -> None:
        result = apply_mutations(
            simple_slots,
            "root",
            [AddSlot(parent_id="body", node=make_node("promo", SlotKind.TEXT, content="Sale"), index=0)],
        )
        assert result["body"].children == ["promo", "blocks", "cta"]
        assert result["promo"].content == "Sale"

    def test_add_duplicate_id_rejected(self, simple_slots: dict[str, SlotNode]) -> None:
        with pytest.raises(ValidationError):
            apply_mutations(simple_slots, "root", [AddSlot(parent_id="body", node=make_node("title", SlotKind.TEXT))])

    def test_remove_drops_subtree(self, simple_slots: dict[str, SlotNode]) -> None:
        result = apply_mutations(simple_slots, "root", [RemoveSlot(slot_id="header")])
        assert "header" not in result
        assert "title" not in result
        assert result["root"].children == ["body"]

    def test_root_cannot_be_removed(self, simple_slots: dict[str, SlotNode]) -> None:
        with pytest.raises(ValidationError):
            apply_mutations(simple_slots, "root", [RemoveSlot(slot_id="root")])

    def test_move_between_parents(self, simple_slots: dict[str, SlotNode]) -> None:
        result = apply_mutations(simple_slots, "root", [MoveSlot(slot_id="cta", new_parent_id="header")])
        assert result["header"].children == ["title", "cta"]
        assert result["body"].children == ["blocks"]

    def test_move_below_itself_is_a_cycle(self, simple_slots: dict[str, SlotNode]) -> None:
        with pytest.raises(ValidationError) as exc_info:
            apply_mutations(simple_slots, "root", [MoveSlot(slot_id="header", new_parent_id="title")])
        assert exc_info.value.node_ids == ["header", "title"]

    def test_reorder_requires_permutation(self, simple_slots: dict[str, SlotNode]) -> None:
        result = apply_mutations(simple_slots, "root", [ReorderChildren(parent_id="body", children=["cta", "blocks"])])
        assert result["body"].children == ["cta", "blocks"]
        with pytest.raises(ValidationError):
            apply_mutations(simple_slots, "root", [ReorderChildren(parent_id="body", children=["cta"])])

    def test_patch_cannot_touch_children(self, simple_slots: dict[str, SlotNode]) -> None:
        with pytest.raises(ValidationError):
            apply_mutations(
                simple_slots, "root", [PatchSlot(slot_id="body", patch=SlotPatch(children=["cta", "blocks"]))]
            )

    def test_unknown_slot_rejected(self, simple_slots: dict[str, SlotNode]) -> None:
        with pytest.raises(ValidationError) as exc_info:
            apply_mutations(simple_slots, "root", [PatchSlot(slot_id="ghost", patch=SlotPatch(content="x"))])
        assert exc_info.value.node_ids == ["ghost"]

    def test_failed_batch_leaves_input_untouched(self, simple_slots: dict[str, SlotNode]) -> None:
        before = {k: v.model_copy(deep=True) for k, v in simple_slots.items()}
        with pytest.raises(ValidationError):
            apply_mutations(
                simple_slots,
                "root",
                [
                    PatchSlot(slot_id="title", patch=SlotPatch(content="changed")),
                    MoveSlot(slot_id="header", new_parent_id="title"),
                ],
            )
        assert simple_slots == before
