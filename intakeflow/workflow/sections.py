"""
Section state machine - per-section status transitions and data versioning.

Status changes go through SECTION_TRANSITIONS, keyed by (status, event):

    not_started --start--> in_progress --complete--> completed
    not_started --complete--> completed
    completed --complete--> completed      (re-completion, no cascade)

`save` is legal in every status and leaves the status unchanged.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Union

from intakeflow.schemas import EditEntry, Module, Section, SectionStatus, SequencePolicy
from intakeflow.errors import InvalidTransitionError, SequenceError


class SectionEvent(str, Enum):
    START = "start"
    COMPLETE = "complete"
    SAVE = "save"


SECTION_TRANSITIONS: dict[tuple[SectionStatus, SectionEvent], SectionStatus] = {
    (SectionStatus.NOT_STARTED, SectionEvent.START): SectionStatus.IN_PROGRESS,
    (SectionStatus.NOT_STARTED, SectionEvent.COMPLETE): SectionStatus.COMPLETED,
    (SectionStatus.NOT_STARTED, SectionEvent.SAVE): SectionStatus.NOT_STARTED,
    (SectionStatus.IN_PROGRESS, SectionEvent.COMPLETE): SectionStatus.COMPLETED,
    (SectionStatus.IN_PROGRESS, SectionEvent.SAVE): SectionStatus.IN_PROGRESS,
    (SectionStatus.COMPLETED, SectionEvent.COMPLETE): SectionStatus.COMPLETED,
    (SectionStatus.COMPLETED, SectionEvent.SAVE): SectionStatus.COMPLETED,
}


def next_status(current: SectionStatus, event: SectionEvent) -> SectionStatus:
    """Look up the target status, raising InvalidTransitionError if illegal."""
    target = SECTION_TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransitionError(
            f"Cannot {event.value} a section that is {current.value}"
        )
    return target


# -----------------------------------------------------------------------------
# Transitions
# -----------------------------------------------------------------------------

def start(section: Section, now: datetime) -> None:
    """Mark a not-started section as in progress."""
    section.status = next_status(section.status, SectionEvent.START)
    section.started_at = now
    section.last_edited_at = now


def complete(section: Section, now: datetime, data: Any = None) -> bool:
    """
    Mark a section as completed, optionally storing its final data.

    Args:
        section: Section to complete (mutated in place)
        now: Completion timestamp
        data: Final payload; when given it replaces `data` and bumps `version`

    Returns:
        True if this is the section's first completion. Only a first
        completion may drive the unlock cascade.
    """
    first_completion = section.status != SectionStatus.COMPLETED
    section.status = next_status(section.status, SectionEvent.COMPLETE)
    section.completed_at = now
    section.last_edited_at = now
    if data is not None:
        section.data = data
        section.version += 1
    return first_completion


def save(section: Section, data: Any, now: datetime) -> int:
    """
    Replace section data wholesale and bump its version.

    Last write wins: keys missing from `data` are gone afterwards.

    Returns:
        The new version number
    """
    section.status = next_status(section.status, SectionEvent.SAVE)
    section.data = data
    section.version += 1
    section.last_edited_at = now
    return section.version


def add_edit(
    section: Section,
    field: str,
    previous_value: Any,
    new_value: Any,
    now: datetime,
    edited_by: str = "user",
) -> EditEntry:
    """Append an audit entry. Does not touch `version`."""
    entry = EditEntry(
        edited_at=now,
        field=field,
        previous_value=previous_value,
        new_value=new_value,
        edited_by=edited_by,
    )
    section.metadata.edit_history.append(entry)
    return entry


# -----------------------------------------------------------------------------
# Sequencing policy
# -----------------------------------------------------------------------------

def check_sequence(
    module: Module,
    index: int,
    event: Union[SectionEvent, str],
    policy: SequencePolicy,
) -> None:
    """
    Enforce the sequencing policy for starting/completing sections[index].

    Raises:
        SequenceError: If the policy forbids the action
    """
    event = SectionEvent(event)
    if policy == SequencePolicy.PERMISSIVE or event == SectionEvent.SAVE:
        return

    section = module.sections[index]
    if not section.unlocked:
        raise SequenceError(
            f"Section {section.section_id} of module {module.id} is locked"
        )

    if policy == SequencePolicy.STRICT and event == SectionEvent.COMPLETE:
        pending = [
            s.section_id for s in module.sections[:index]
            if s.status != SectionStatus.COMPLETED
        ]
        if pending:
            raise SequenceError(
                f"Section {section.section_id} of module {module.id} cannot be "
                f"completed before sections {pending}"
            )
