"""
Module aggregator - recompute module progress and run the unlock cascade.

Counts are always rebuilt from the sections (never incremented), so a
module cannot drift away from what its sections say. The cascade is
edge-triggered: it only runs on a section's first completion and on a
module's first transition into `completed`.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from intakeflow.schemas import Module, ModuleStatus, Section, SectionStatus
from intakeflow.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


MODULE_TRANSITIONS: dict[ModuleStatus, set[ModuleStatus]] = {
    ModuleStatus.NOT_STARTED: {
        ModuleStatus.NOT_STARTED,
        ModuleStatus.IN_PROGRESS,
        ModuleStatus.COMPLETED,
    },
    ModuleStatus.IN_PROGRESS: {ModuleStatus.IN_PROGRESS, ModuleStatus.COMPLETED},
    ModuleStatus.COMPLETED: {ModuleStatus.COMPLETED},
}


@dataclass
class CascadeResult:
    """What a section transition changed at module level."""
    module_id: str
    module_status: ModuleStatus
    progress_percentage: int
    unlocked_section: Optional[Section] = None
    module_completed: bool = False
    unlocked_modules: list[str] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Progress arithmetic
# -----------------------------------------------------------------------------

def percentage(completed: int, total: int) -> int:
    """Whole percentage rounded half-up (1/8 -> 13). Zero when total is 0."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def derive_status(completed: int, total: int) -> ModuleStatus:
    if completed == 0:
        return ModuleStatus.NOT_STARTED
    if completed >= total:
        return ModuleStatus.COMPLETED
    return ModuleStatus.IN_PROGRESS


def recount(module: Module) -> ModuleStatus:
    """
    Rebuild counts, percentage and status of a module from its sections.

    Returns:
        The module status before the recount

    Raises:
        InvalidTransitionError: If the derived status is not reachable from
            the current one
    """
    previous = module.status
    completed, total = _count(module)
    status = derive_status(completed, total)

    if status not in MODULE_TRANSITIONS[previous]:
        raise InvalidTransitionError(
            f"Module {module.id} cannot go from {previous.value} to {status.value}"
        )

    _apply_counts(module, completed, total)
    return previous


def is_consistent(module: Module) -> bool:
    """True if the stored counts, percentage and status match the sections."""
    completed, total = _count(module)
    return (
        module.total_sections == total
        and module.completed_sections == completed
        and module.progress_percentage == percentage(completed, total)
        and module.status == derive_status(completed, total)
    )


def resync(module: Module) -> None:
    """
    Overwrite counts and status from the sections, skipping the transition
    check. Only for repairing stored documents whose aggregates disagree
    with their sections.
    """
    completed, total = _count(module)
    _apply_counts(module, completed, total)


def _count(module: Module) -> tuple[int, int]:
    completed = sum(1 for s in module.sections if s.status == SectionStatus.COMPLETED)
    return completed, len(module.sections)


def _apply_counts(module: Module, completed: int, total: int) -> None:
    module.total_sections = total
    module.completed_sections = completed
    module.progress_percentage = percentage(completed, total)
    module.status = derive_status(completed, total)


def overall_progress(modules: list[Module]) -> int:
    total = sum(m.total_sections for m in modules)
    completed = sum(m.completed_sections for m in modules)
    return percentage(completed, total)


def module_progress(modules: list[Module]) -> dict[str, int]:
    return {m.id: m.progress_percentage for m in modules}


# -----------------------------------------------------------------------------
# Unlocking
# -----------------------------------------------------------------------------

def unlock_module(module: Module) -> bool:
    """
    Open a module: unlock it and its first section.

    Status is recounted from the sections, so a module whose sections were
    already completed while it was locked stays `completed`.

    Returns:
        False if the module was already unlocked (nothing changed)
    """
    if module.unlocked:
        return False
    module.unlocked = True
    if module.sections:
        module.sections[0].unlocked = True
    recount(module)
    return True


def mark_started(module: Module, now: datetime) -> None:
    """Stamp the module's first activity."""
    if module.started_at is None:
        module.started_at = now


def apply_section_change(
    modules: list[Module],
    module_index: int,
    section_index: int,
    first_completion: bool,
    now: datetime,
) -> CascadeResult:
    """
    Aggregate a section transition into its module and run the cascade.

    Args:
        modules: All modules of the dashboard, in order (mutated in place)
        module_index: Index of the module whose section changed
        section_index: Index of the section that changed
        first_completion: True only when the section just became completed
            for the first time
        now: Timestamp for completedAt

    Returns:
        CascadeResult describing what was unlocked/completed
    """
    module = modules[module_index]
    sections = module.sections
    unlocked_section = None

    if first_completion and section_index + 1 < len(sections):
        candidate = sections[section_index + 1]
        if not candidate.unlocked:
            candidate.unlocked = True
            unlocked_section = candidate
            logger.info(
                f"Section {sections[section_index].section_id} completed, "
                f"unlocked section {candidate.section_id} of {module.id}"
            )

    previous = recount(module)
    result = CascadeResult(
        module_id=module.id,
        module_status=module.status,
        progress_percentage=module.progress_percentage,
        unlocked_section=unlocked_section,
    )

    if module.status == ModuleStatus.COMPLETED and previous != ModuleStatus.COMPLETED:
        module.completed_at = now
        result.module_completed = True
        logger.info(f"Module {module.id} completed")

        if module_index + 1 < len(modules):
            next_module = modules[module_index + 1]
            if unlock_module(next_module):
                result.unlocked_modules.append(next_module.id)
                logger.info(f"Module {module.id} completed, unlocked module {next_module.id}")

    return result
