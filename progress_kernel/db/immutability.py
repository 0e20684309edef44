"""
ORM-level append-only enforcement for milestone events.

===============================================================================
WHY THIS EXISTS
===============================================================================

Milestone events are the history that delta reports and replay audits are
computed from.  If an event could be edited or deleted, a window delta
would silently change after it was reported and the replay check would
lose its reference.  So:

    MilestoneEvent   UPDATE   always blocked
    MilestoneEvent   DELETE   blocked, unless the owning component is being
                              removed in the same flush (administrative
                              removal cascades to the whole history)

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_flush]  record ids of components in session.deleted
         |
         v
    [before_update on event] --> ImmutabilityViolationError
    [before_delete on event] --> allowed only for a recorded component id
         |
         v
    [after_flush_postexec]  forget the recorded ids

Bulk ``UPDATE``/``DELETE`` statements bypass ORM events; the services never
issue them against milestone_events.

===============================================================================
USAGE
===============================================================================

    from progress_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once, at startup

Tests that need to plant a corrupt history call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event
from sqlalchemy.orm import Session, object_session

from progress_kernel.exceptions import ImmutabilityViolationError
from progress_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_REMOVED_COMPONENTS_KEY = "progress_removed_component_ids"


def _collect_removed_components(session, flush_context, instances):
    """Remember which components this flush is deleting."""
    from progress_kernel.models.component import ComponentModel

    removed = {obj.id for obj in session.deleted if isinstance(obj, ComponentModel)}
    if removed:
        session.info.setdefault(_REMOVED_COMPONENTS_KEY, set()).update(removed)


def _forget_removed_components(session, flush_context):
    session.info.pop(_REMOVED_COMPONENTS_KEY, None)


def _check_milestone_event_update(mapper, connection, target):
    """Milestone events are never modified."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "MilestoneEvent",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="MilestoneEvent",
        entity_id=str(target.id),
        reason="Milestone events are append-only and cannot be modified",
    )


def _check_milestone_event_delete(mapper, connection, target):
    """Milestone events are only deleted together with their component."""
    session = object_session(target)
    removed = session.info.get(_REMOVED_COMPONENTS_KEY, set()) if session is not None else set()
    if target.component_id in removed:
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "MilestoneEvent",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="MilestoneEvent",
        entity_id=str(target.id),
        reason="Milestone events can only be removed with their component",
    )


def register_immutability_listeners() -> None:
    """Register append-only listeners.  Safe to call more than once."""
    from progress_kernel.models.milestone_event import MilestoneEventModel

    listeners = (
        (Session, "before_flush", _collect_removed_components),
        (Session, "after_flush_postexec", _forget_removed_components),
        (MilestoneEventModel, "before_update", _check_milestone_event_update),
        (MilestoneEventModel, "before_delete", _check_milestone_event_delete),
    )
    for target, name, fn in listeners:
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the append-only listeners.

    WARNING: tests only.
    """
    from progress_kernel.models.milestone_event import MilestoneEventModel

    _safe_remove_listener(Session, "before_flush", _collect_removed_components)
    _safe_remove_listener(Session, "after_flush_postexec", _forget_removed_components)
    _safe_remove_listener(MilestoneEventModel, "before_update", _check_milestone_event_update)
    _safe_remove_listener(MilestoneEventModel, "before_delete", _check_milestone_event_delete)
