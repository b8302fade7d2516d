"""
Migration reconciler - heal drift in stored module state.

Documents written by an earlier schema version, or left behind by a
failed write, can disagree with themselves in two ways:

- a module's counts/status do not match its sections
- a completed module is followed by a locked one

The repair pass fixes both, counts first. It only ever touches modules
that need it, so a second pass over a healed document changes nothing.
"""

import logging

from intakeflow.schemas import Module, ModuleStatus

from .modules import is_consistent, resync, unlock_module

logger = logging.getLogger(__name__)


def find_count_drift(modules: list[Module]) -> list[str]:
    """Ids of modules whose aggregates disagree with their sections."""
    return [module.id for module in modules if not is_consistent(module)]


def find_unlock_drift(modules: list[Module]) -> list[str]:
    """Ids of locked modules whose predecessor is completed."""
    return [
        following.id
        for current, following in zip(modules, modules[1:])
        if current.status == ModuleStatus.COMPLETED and not following.unlocked
    ]


def find_drift(modules: list[Module]) -> list[str]:
    """Ids of every module the repair pass would touch, in module order."""
    drifted = set(find_count_drift(modules)) | set(find_unlock_drift(modules))
    return [module.id for module in modules if module.id in drifted]


def resync_counts(modules: list[Module]) -> list[str]:
    """
    Rebuild aggregates of inconsistent modules from their sections.

    Returns:
        Ids of the modules that were resynced
    """
    resynced = []
    for module in modules:
        if is_consistent(module):
            continue
        stored = (module.status.value, module.completed_sections, module.total_sections)
        resync(module)
        resynced.append(module.id)
        logger.warning(
            f"Migration: module {module.id} was {stored[0]} with "
            f"{stored[1]}/{stored[2]} sections, resynced to {module.status.value} "
            f"with {module.completed_sections}/{module.total_sections}"
        )
    return resynced


def reconcile_modules(modules: list[Module]) -> list[str]:
    """
    Heal count and unlock drift in place.

    Args:
        modules: Modules of a loaded document copy (mutated in place)

    Returns:
        Ids of the modules that were changed, in module order; empty when
        nothing drifted
    """
    healed = set(resync_counts(modules))
    for current, following in zip(modules, modules[1:]):
        if current.status != ModuleStatus.COMPLETED or following.unlocked:
            continue
        unlock_module(following)
        healed.add(following.id)
        logger.info(f"Migration: unlocked {following.id} because {current.id} is completed")
    return [module.id for module in modules if module.id in healed]
