"""Input models for curriculum content and enrollment."""

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from ..database.models import (
    DomainRoleEnum,
    CurriculumStatusEnum,
    TaskDifficultyEnum,
)


class ExpectedResourceType(BaseModel):
    """Resource a task expects in its submissions."""
    type: str = Field(..., min_length=1, max_length=50)
    label: str = Field(..., min_length=1, max_length=255)
    required: bool = False


class LinkResource(BaseModel):
    """Reference material attached to a week or task template."""
    title: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    type: str = Field("link", max_length=50)
    duration: Optional[str] = None


class CurriculumCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    domain_role: DomainRoleEnum
    total_weeks: int = Field(0, ge=0, le=104)
    tags: List[str] = Field(default_factory=list)
    version: str = Field("1.0", max_length=20)

    model_config = {"use_enum_values": True}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        stripped = v.strip()
        if not stripped:
            raise ValueError("name cannot be empty after stripping whitespace")
        return stripped


class CurriculumUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    total_weeks: Optional[int] = Field(None, ge=0, le=104)
    tags: Optional[List[str]] = None
    version: Optional[str] = Field(None, max_length=20)


class CurriculumFilters(BaseModel):
    domain_role: Optional[DomainRoleEnum] = None
    status: Optional[CurriculumStatusEnum] = None
    search: Optional[str] = Field(None, max_length=100)
    created_by: Optional[str] = None

    model_config = {"use_enum_values": True}


class WeekCreate(BaseModel):
    week_number: int = Field(..., ge=1)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    learning_objectives: List[str] = Field(default_factory=list)
    resources: List[LinkResource] = Field(default_factory=list)


class WeekUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    learning_objectives: Optional[List[str]] = None
    resources: Optional[List[LinkResource]] = None


class TaskTemplateCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=20000)
    requirements: Optional[str] = Field(None, max_length=20000)
    difficulty: TaskDifficultyEnum = TaskDifficultyEnum.MEDIUM
    estimated_hours: float = Field(0, ge=0, le=1000)
    expected_resource_types: List[ExpectedResourceType] = Field(default_factory=list)
    resources: List[LinkResource] = Field(default_factory=list)

    model_config = {"use_enum_values": True}


class TaskTemplateUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=20000)
    requirements: Optional[str] = Field(None, max_length=20000)
    difficulty: Optional[TaskDifficultyEnum] = None
    estimated_hours: Optional[float] = Field(None, ge=0, le=1000)
    expected_resource_types: Optional[List[ExpectedResourceType]] = None
    resources: Optional[List[LinkResource]] = None

    model_config = {"use_enum_values": True}


class ReorderItem(BaseModel):
    id: str
    display_order: int = Field(..., ge=0)


class EnrollmentOptions(BaseModel):
    target_completion_date: Optional[datetime] = None
    due_in_days: Optional[int] = Field(None, ge=1, le=3650)
