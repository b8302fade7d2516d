"""
Dashboard schemas for intakeflow.

Defines Pydantic models for the per-user dashboard document:
- Section and module status enums
- Sections with opaque data, versioning and edit history
- Modules with aggregate progress and unlock gate
- Milestones and overall progress tracking

Attributes are snake_case; documents are persisted with camelCase keys
(see `DashboardDocument.dump`).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SectionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ModuleStatus(str, Enum):
    # Module documents use a hyphen for the in-progress literal
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class SequencePolicy(str, Enum):
    """How strictly section order is enforced when starting/completing."""
    PERMISSIVE = "permissive"        # any section, locked or not
    UNLOCKED_ONLY = "unlocked_only"  # only unlocked sections
    STRICT = "strict"                # unlocked, and every earlier section completed


class DocumentModel(BaseModel):
    """Base for persisted models: camelCase aliases, unknown keys preserved."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# -----------------------------------------------------------------------------
# Sections
# -----------------------------------------------------------------------------

class EditEntry(DocumentModel):
    edited_at: datetime
    field: str
    previous_value: Any = None
    new_value: Any = None
    edited_by: str = "user"


class SectionMetadata(DocumentModel):
    edit_history: list[EditEntry] = Field(default_factory=list)


class Section(DocumentModel):
    section_id: Union[int, str]
    order: int
    title: str
    status: SectionStatus = SectionStatus.NOT_STARTED
    unlocked: bool = False
    data: Any = None  # opaque, owned by the form layer
    version: int = Field(default=1, ge=1)
    last_edited_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: SectionMetadata = Field(default_factory=SectionMetadata)

    def matches(self, section_id: Union[int, str]) -> bool:
        """Section ids compare as strings so 3 and "3" are the same section."""
        return str(self.section_id) == str(section_id)


# -----------------------------------------------------------------------------
# Modules
# -----------------------------------------------------------------------------

class Module(DocumentModel):
    id: str
    title: str
    sections: list[Section]
    total_sections: int = 0
    completed_sections: int = 0
    progress_percentage: int = 0
    status: ModuleStatus = ModuleStatus.NOT_STARTED
    unlocked: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator('sections')
    @classmethod
    def sections_ordered(cls, v):
        orders = [section.order for section in v]
        if any(b <= a for a, b in zip(orders, orders[1:])):
            raise ValueError('Sections must be strictly ordered by "order"')
        return v

    def find_section(self, section_id: Union[int, str]) -> Optional[int]:
        """Index of the section with this id, or None."""
        for index, section in enumerate(self.sections):
            if section.matches(section_id):
                return index
        return None


# -----------------------------------------------------------------------------
# Progress tracking
# -----------------------------------------------------------------------------

class Milestone(DocumentModel):
    id: str
    achieved: bool = False
    achieved_at: Optional[datetime] = None


class ProgressTracking(DocumentModel):
    overall_progress: int = 0
    module_progress: dict[str, int] = Field(default_factory=dict)
    milestones: list[Milestone] = Field(default_factory=list)


class DashboardDocument(DocumentModel):
    user_id: str
    created_at: datetime
    last_updated_at: datetime
    modules: list[Module]
    progress_tracking: ProgressTracking = Field(default_factory=ProgressTracking)

    @field_validator('modules')
    @classmethod
    def module_ids_unique(cls, v):
        ids = [module.id for module in v]
        if len(ids) != len(set(ids)):
            raise ValueError('Module ids must be unique')
        return v

    def find_module(self, module_id: str) -> Optional[int]:
        """Index of the module with this id, or None."""
        for index, module in enumerate(self.modules):
            if module.id == module_id:
                return index
        return None

    def dump(self) -> dict[str, Any]:
        """Serialize to the persisted (camelCase, JSON-safe) shape."""
        return self.model_dump(by_alias=True, mode="json")
