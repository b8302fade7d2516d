"""
intakeflow Schemas - Pydantic models for the guided-intake dashboard.

This module exports all schema classes for:
- Dashboard: document, modules, sections, milestones, status enums
- Results: values returned by the dashboard service operations
"""

# Dashboard schemas
from .dashboard import (
    SectionStatus,
    ModuleStatus,
    SequencePolicy,
    DocumentModel,
    EditEntry,
    SectionMetadata,
    Section,
    Module,
    Milestone,
    ProgressTracking,
    DashboardDocument,
)

# Result schemas
from .results import (
    InitializeResult,
    SectionUpdateResult,
    SaveResult,
)

__all__ = [
    # Dashboard
    'SectionStatus',
    'ModuleStatus',
    'SequencePolicy',
    'DocumentModel',
    'EditEntry',
    'SectionMetadata',
    'Section',
    'Module',
    'Milestone',
    'ProgressTracking',
    'DashboardDocument',
    # Results
    'InitializeResult',
    'SectionUpdateResult',
    'SaveResult',
]
