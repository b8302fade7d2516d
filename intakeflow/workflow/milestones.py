"""
Milestone evaluator - one-way achievement flags derived from progress.

Each milestone id maps to a MilestoneRule. A milestone that is already
achieved is never looked at again, so later changes to the underlying
metric cannot clear it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from intakeflow.schemas import Milestone, Module, ModuleStatus

logger = logging.getLogger(__name__)


class MilestoneCondition(str, Enum):
    MODULE_STARTED = "module_started"      # module.startedAt is set
    MODULE_PROGRESS = "module_progress"    # module.progressPercentage >= threshold
    MODULE_COMPLETED = "module_completed"  # module.status == completed
    OVERALL_PROGRESS = "overall_progress"  # overall progress >= threshold


@dataclass(frozen=True)
class MilestoneRule:
    condition: MilestoneCondition
    module_id: Optional[str] = None
    threshold: int = 0

    def achieved_at(
        self,
        modules: dict[str, Module],
        overall: int,
        now: datetime,
    ) -> Optional[datetime]:
        """
        Return the achievement timestamp if the condition holds, else None.

        Started/completed milestones take the module's own timestamp so the
        achievement dates the event rather than the evaluation.
        """
        if self.condition == MilestoneCondition.OVERALL_PROGRESS:
            return now if overall >= self.threshold else None

        module = modules.get(self.module_id)
        if module is None:
            return None

        if self.condition == MilestoneCondition.MODULE_STARTED:
            return module.started_at
        if self.condition == MilestoneCondition.MODULE_PROGRESS:
            return now if module.progress_percentage >= self.threshold else None
        if self.condition == MilestoneCondition.MODULE_COMPLETED:
            if module.status != ModuleStatus.COMPLETED:
                return None
            return module.completed_at or now
        return None


MILESTONE_RULES: dict[str, MilestoneRule] = {
    "recon-started": MilestoneRule(MilestoneCondition.MODULE_STARTED, "recon"),
    "recon-50-percent": MilestoneRule(MilestoneCondition.MODULE_PROGRESS, "recon", 50),
    "recon-completed": MilestoneRule(MilestoneCondition.MODULE_COMPLETED, "recon"),
    "scout-completed": MilestoneRule(MilestoneCondition.MODULE_COMPLETED, "scout"),
    "sniper-completed": MilestoneRule(MilestoneCondition.MODULE_COMPLETED, "sniper"),
    "dashboard-completed": MilestoneRule(MilestoneCondition.OVERALL_PROGRESS, threshold=100),
}


def evaluate_milestones(
    milestones: list[Milestone],
    modules: list[Module],
    overall: int,
    now: datetime,
    rules: Optional[dict[str, MilestoneRule]] = None,
) -> tuple[list[Milestone], list[str]]:
    """
    Recompute milestone flags without mutating the inputs.

    Args:
        milestones: Current milestones
        modules: Modules after the latest mutation
        overall: Overall progress percentage
        now: Timestamp for progress-based achievements
        rules: Rule table (default: MILESTONE_RULES)

    Returns:
        Tuple of (updated milestone list, ids achieved by this evaluation)
    """
    rules = MILESTONE_RULES if rules is None else rules
    by_id = {module.id: module for module in modules}

    updated = []
    newly_achieved = []
    for milestone in milestones:
        rule = rules.get(milestone.id)
        if milestone.achieved or rule is None:
            updated.append(milestone)
            continue

        achieved_at = rule.achieved_at(by_id, overall, now)
        if achieved_at is None:
            updated.append(milestone)
            continue

        updated.append(milestone.model_copy(update={"achieved": True, "achieved_at": achieved_at}))
        newly_achieved.append(milestone.id)
        logger.info(f"Milestone {milestone.id} achieved")

    return updated, newly_achieved
