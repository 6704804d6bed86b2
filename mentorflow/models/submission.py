"""
Input models for the submission and review workflow.

Resource triples come from the external upload facility; only their shape
is checked here. Template-specific checks (required resource types) run in
the service against the task template.
"""

from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from ..database.models import FeedbackTypeEnum


class SubmissionResourceInput(BaseModel):
    """One {type, label, url} link produced by the upload facility."""
    type: str = Field(..., min_length=1, max_length=50)
    label: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    filename: Optional[str] = Field(None, max_length=255)
    filesize: Optional[int] = Field(None, ge=0)

    @field_validator("label", "url", "type")
    @classmethod
    def validate_not_blank(cls, v):
        stripped = v.strip()
        if not stripped:
            raise ValueError("value cannot be empty after stripping whitespace")
        return stripped


class SubmitTaskPayload(BaseModel):
    description: str = Field(..., min_length=1, max_length=20000)
    notes: Optional[str] = Field(None, max_length=10000)
    resources: List[SubmissionResourceInput] = Field(default_factory=list)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v):
        stripped = v.strip()
        if not stripped:
            raise ValueError("description cannot be empty after stripping whitespace")
        return stripped


class SubmissionUpdate(BaseModel):
    """Editable fields of a pending submission."""
    description: Optional[str] = Field(None, min_length=1, max_length=20000)
    notes: Optional[str] = Field(None, max_length=10000)


class FeedbackCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=10000)
    feedback_type: FeedbackTypeEnum = FeedbackTypeEnum.COMMENT
    parent_feedback_id: Optional[str] = None

    model_config = {"use_enum_values": True}

    @field_validator("message")
    @classmethod
    def validate_message(cls, v):
        stripped = v.strip()
        if not stripped:
            raise ValueError("message cannot be empty after stripping whitespace")
        return stripped
