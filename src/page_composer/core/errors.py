"""Domain errors raised by the store, the lifecycle and the resolution engine.

Every error carries a machine-readable ``code``, structured ``details`` and a
``retryable`` flag so callers can decide between retry and abort.
"""

from __future__ import annotations

from typing import Any


class PageComposerError(Exception):
    code = "page_composer_error"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(PageComposerError):
    """The slot tree is malformed (cycle, dangling or orphaned reference)."""

    code = "validation_error"

    def __init__(self, message: str, node_ids: list[str] | None = None) -> None:
        ids = sorted(set(node_ids or []))
        super().__init__(message, {"node_ids": ids})
        self.node_ids = ids


class InvalidTransitionError(PageComposerError):
    code = "invalid_transition"

    def __init__(self, message: str, current: str | None = None, target: str | None = None) -> None:
        super().__init__(message, {"current": current, "target": target})
        self.current = current
        self.target = target


class InvalidStateError(InvalidTransitionError):
    """The operation targets a configuration in the wrong status (e.g. saving a published one)."""

    code = "invalid_state"


class ConflictError(PageComposerError):
    code = "conflict"
    retryable = True


class StaleWriteError(PageComposerError):
    code = "stale_write"

    def __init__(self, configuration_id: str, expected_revision: int, current_revision: int) -> None:
        super().__init__(
            f"Configuration {configuration_id} is at revision {current_revision}, expected {expected_revision}",
            {
                "configuration_id": configuration_id,
                "expected_revision": expected_revision,
                "current_revision": current_revision,
            },
        )
        self.expected_revision = expected_revision
        self.current_revision = current_revision


class UnknownSlotError(PageComposerError):
    code = "unknown_slot"

    def __init__(self, slot_ids: list[str]) -> None:
        ids = sorted(set(slot_ids))
        super().__init__(f"Override references unknown slot(s): {', '.join(ids)}", {"slot_ids": ids})
        self.slot_ids = ids


class NotFoundError(PageComposerError):
    code = "not_found"
