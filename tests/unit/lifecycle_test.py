"""Tests for the configuration status transition table."""

from __future__ import annotations

import itertools

import pytest

from page_composer.core.errors import InvalidTransitionError
from page_composer.core.lifecycle import TERMINAL, TRANSITIONS, can_transition, check_transition
from page_composer.models import ConfigurationStatus

DRAFT = ConfigurationStatus.DRAFT
ACCEPTANCE = ConfigurationStatus.ACCEPTANCE
PUBLISHED = ConfigurationStatus.PUBLISHED
REVERTED = ConfigurationStatus.REVERTED


@pytest.mark.parametrize(
    ("current", "target", "trigger"),
    [
        (DRAFT, ACCEPTANCE, "publish to staging"),
        (ACCEPTANCE, PUBLISHED, "publish to production"),
        (DRAFT, PUBLISHED, "publish directly"),
        (DRAFT, REVERTED, "discard draft"),
        (ACCEPTANCE, DRAFT, "return to editing"),
    ],
)
def test_allowed_transitions(current: ConfigurationStatus, target: ConfigurationStatus, trigger: str) -> None:
    assert check_transition(current, target) == trigger


def test_everything_else_is_rejected() -> None:
    for current, target in itertools.product(ConfigurationStatus, repeat=2):
        if (current, target) in TRANSITIONS:
            continue
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_transition(current, target)
        assert exc_info.value.current == current.value
        assert exc_info.value.target == target.value


def test_terminal_statuses_have_no_exits() -> None:
    for status in TERMINAL:
        assert not any(current == status for current, _ in TRANSITIONS)


def test_published_cannot_be_reverted() -> None:
    with pytest.raises(InvalidTransitionError):
        check_transition(PUBLISHED, REVERTED)
