"""
Catalog set lifecycle status.

Catalog sets are append-only: a weight change is a new version that names
its predecessor.  Only PUBLISHED sets are picked by default; SUPERSEDED
sets stay loadable by explicit version so history can be recalculated
against the weights that were in force.
"""

from enum import Enum, unique


@unique
class ConfigStatus(str, Enum):
    """Lifecycle status for a catalog set."""

    DRAFT = "draft"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    PUBLISHED = "published"
    SUPERSEDED = "superseded"


ALLOWED_TRANSITIONS: dict[ConfigStatus, frozenset[ConfigStatus]] = {
    ConfigStatus.DRAFT: frozenset({ConfigStatus.REVIEWED}),
    ConfigStatus.REVIEWED: frozenset({ConfigStatus.APPROVED, ConfigStatus.DRAFT}),
    ConfigStatus.APPROVED: frozenset({ConfigStatus.PUBLISHED, ConfigStatus.DRAFT}),
    ConfigStatus.PUBLISHED: frozenset({ConfigStatus.SUPERSEDED}),
    ConfigStatus.SUPERSEDED: frozenset(),
}

# Statuses whose weights may have produced stored numbers.
LOADABLE_BY_VERSION = frozenset({ConfigStatus.PUBLISHED, ConfigStatus.SUPERSEDED})


def validate_transition(current: ConfigStatus, target: ConfigStatus) -> bool:
    """Check if a status transition is valid."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())
