"""
intakeflow Workflow - progress/unlock engine for the guided-intake dashboard.

This module provides:
- DashboardService: the public dashboard operations
- Document stores: SQLite and in-memory persistence
- Section state machine, module aggregator, milestone evaluator
- Migration reconciler and navigator
"""

from .dashboard import (
    DashboardService,
)

from .store import (
    DocumentStore,
    StoredDocument,
    SQLiteDocumentStore,
    MemoryDocumentStore,
    apply_field_paths,
)

from .sections import (
    SectionEvent,
    SECTION_TRANSITIONS,
    check_sequence,
)

from .modules import (
    MODULE_TRANSITIONS,
    CascadeResult,
    percentage,
    overall_progress,
)

from .milestones import (
    MilestoneCondition,
    MilestoneRule,
    MILESTONE_RULES,
    evaluate_milestones,
)

from .reconciler import (
    find_drift,
    reconcile_modules,
)

from .navigator import (
    SectionAvailability,
    NavigationSection,
    NavigationModule,
    recommend_next_section,
    navigation_tree,
    progress_summary,
)

__all__ = [
    # Service
    "DashboardService",
    # Store
    "DocumentStore",
    "StoredDocument",
    "SQLiteDocumentStore",
    "MemoryDocumentStore",
    "apply_field_paths",
    # Sections
    "SectionEvent",
    "SECTION_TRANSITIONS",
    "check_sequence",
    # Modules
    "MODULE_TRANSITIONS",
    "CascadeResult",
    "percentage",
    "overall_progress",
    # Milestones
    "MilestoneCondition",
    "MilestoneRule",
    "MILESTONE_RULES",
    "evaluate_milestones",
    # Reconciler
    "find_drift",
    "reconcile_modules",
    # Navigator
    "SectionAvailability",
    "NavigationSection",
    "NavigationModule",
    "recommend_next_section",
    "navigation_tree",
    "progress_summary",
]
