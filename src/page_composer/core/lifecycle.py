from page_composer.core.errors import InvalidTransitionError
from page_composer.models import ConfigurationStatus

DRAFT = ConfigurationStatus.DRAFT
ACCEPTANCE = ConfigurationStatus.ACCEPTANCE
PUBLISHED = ConfigurationStatus.PUBLISHED
REVERTED = ConfigurationStatus.REVERTED
SUPERSEDED = ConfigurationStatus.SUPERSEDED

# (from, to) -> trigger name
TRANSITIONS: dict[tuple[ConfigurationStatus, ConfigurationStatus], str] = {
    (DRAFT, ACCEPTANCE): "publish to staging",
    (ACCEPTANCE, PUBLISHED): "publish to production",
    (DRAFT, PUBLISHED): "publish directly",
    (DRAFT, REVERTED): "discard draft",
    (ACCEPTANCE, DRAFT): "return to editing",
}

TERMINAL: frozenset[ConfigurationStatus] = frozenset({REVERTED, SUPERSEDED})

PUBLISH_TARGETS: frozenset[ConfigurationStatus] = frozenset({ACCEPTANCE, PUBLISHED})


def can_transition(current: ConfigurationStatus, target: ConfigurationStatus) -> bool:
    return (current, target) in TRANSITIONS


def check_transition(current: ConfigurationStatus, target: ConfigurationStatus) -> str:
    """Return the trigger name for ``current -> target`` or raise ``InvalidTransitionError``."""
    trigger = TRANSITIONS.get((current, target))
    if trigger is None:
        raise InvalidTransitionError(
            f"Cannot move a configuration from {current.value!r} to {target.value!r}",
            current=current.value,
            target=target.value,
        )
    return trigger
