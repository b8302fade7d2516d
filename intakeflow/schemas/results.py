"""
Result schemas returned by the dashboard service operations.
"""

from typing import Optional

from pydantic import Field

from .dashboard import DocumentModel, Section


class InitializeResult(DocumentModel):
    success: bool = True
    already_exists: bool


class SectionUpdateResult(DocumentModel):
    success: bool = True
    section: Section
    next_section: Optional[Section] = None
    module_progress: int
    unlocked_modules: list[str] = Field(default_factory=list)  # modules opened by this update
    achieved_milestones: list[str] = Field(default_factory=list)  # milestones first achieved by this update


class SaveResult(DocumentModel):
    success: bool = True
    section: Section
