"""
Navigator - section availability, recommendations and progress summaries.

Read-only views over a dashboard document for the UI layer:
- Availability of each section (locked / available / in progress / completed)
- Navigation tree of modules with their sections
- Recommended next section
- Progress summary
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from intakeflow.schemas import DashboardDocument, Module, Section, SectionStatus


class SectionAvailability(str, Enum):
    """Section availability status for UI display."""
    LOCKED = "locked"            # Not unlocked yet
    AVAILABLE = "available"      # Unlocked, not started
    IN_PROGRESS = "in_progress"  # Started but not completed
    COMPLETED = "completed"      # Finished


@dataclass
class NavigationSection:
    """Section with navigation metadata."""
    section: Section
    availability: SectionAvailability
    is_recommended: bool


@dataclass
class NavigationModule:
    """Module with sections and navigation metadata."""
    module: Module
    sections: list[NavigationSection]
    completed_count: int
    total_count: int


def section_availability(section: Section) -> SectionAvailability:
    if section.status == SectionStatus.COMPLETED:
        return SectionAvailability.COMPLETED
    if section.status == SectionStatus.IN_PROGRESS:
        return SectionAvailability.IN_PROGRESS
    if not section.unlocked:
        return SectionAvailability.LOCKED
    return SectionAvailability.AVAILABLE


def recommend_next_section(document: DashboardDocument) -> Optional[tuple[str, Section]]:
    """
    Get the section the user should work on next.

    Priority:
    1. First section in progress
    2. First unlocked section that is not completed
    3. None (everything completed or nothing unlocked)

    Returns:
        Tuple of (module id, section), or None
    """
    for module in document.modules:
        for section in module.sections:
            if section.status == SectionStatus.IN_PROGRESS:
                return module.id, section

    for module in document.modules:
        if not module.unlocked:
            continue
        for section in module.sections:
            if section_availability(section) == SectionAvailability.AVAILABLE:
                return module.id, section

    return None


def navigation_tree(document: DashboardDocument) -> list[NavigationModule]:
    """
    Get all modules with sections annotated for navigation.

    Returns list of modules, each section annotated with:
    - Availability status
    - Whether it is the recommended next section
    """
    recommended = recommend_next_section(document)

    tree = []
    for module in document.modules:
        nav_sections = []
        for section in module.sections:
            is_recommended = (
                recommended is not None
                and recommended[0] == module.id
                and recommended[1].matches(section.section_id)
            )
            nav_sections.append(NavigationSection(
                section=section,
                availability=section_availability(section),
                is_recommended=is_recommended,
            ))

        tree.append(NavigationModule(
            module=module,
            sections=nav_sections,
            completed_count=sum(
                1 for s in nav_sections if s.availability == SectionAvailability.COMPLETED
            ),
            total_count=len(nav_sections),
        ))

    return tree


def progress_summary(document: DashboardDocument) -> dict:
    """Get progress summary for display."""
    module_stats = []
    for nav_module in navigation_tree(document):
        module = nav_module.module
        module_stats.append({
            "id": module.id,
            "title": module.title,
            "status": module.status.value,
            "unlocked": module.unlocked,
            "completed": nav_module.completed_count,
            "total": nav_module.total_count,
            "progress": module.progress_percentage,
        })

    recommended = recommend_next_section(document)
    return {
        "user_id": document.user_id,
        "overall_progress": document.progress_tracking.overall_progress,
        "modules": module_stats,
        "milestones": [
            m.id for m in document.progress_tracking.milestones if m.achieved
        ],
        "recommended": (
            {"module_id": recommended[0], "section_id": recommended[1].section_id}
            if recommended else None
        ),
    }
