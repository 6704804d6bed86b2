"""Input models for users and buddy profiles."""

from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from ..database.models import DomainRoleEnum, BuddyStatusEnum


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    permissions: Optional[List[str]] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("email must look like name@domain")
        return v


class BuddyCreate(UserCreate):
    domain_role: DomainRoleEnum
    assigned_mentor_user_id: Optional[str] = None
    auto_enroll: bool = True

    model_config = {"use_enum_values": True}


class BuddyUpdate(BaseModel):
    """
    Buddy edit payload. Every field present is permission-checked on its own;
    email is accepted here only so the edit can be refused explicitly.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = None
    domain_role: Optional[DomainRoleEnum] = None
    status: Optional[BuddyStatusEnum] = None
    assigned_mentor_user_id: Optional[str] = None

    model_config = {"use_enum_values": True}

    @field_validator("name", "domain_role", "status")
    @classmethod
    def reject_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be cleared")
        return v
