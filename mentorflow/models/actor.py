"""Identity supplied by the session resolver for every command."""

from typing import FrozenSet, List, Optional

from pydantic import BaseModel, Field

from ..database.models import UserRoleEnum
from ..permissions import resolve_grants


class Actor(BaseModel):
    """Authenticated caller: user id, role and explicit grants (None = role defaults)."""
    id: str = Field(..., min_length=1)
    role: UserRoleEnum
    permissions: Optional[List[str]] = None

    model_config = {"use_enum_values": True, "frozen": True}

    @property
    def grants(self) -> FrozenSet[str]:
        return resolve_grants(self.role, self.permissions)

    @property
    def is_manager(self) -> bool:
        return self.role == UserRoleEnum.MANAGER.value

    @property
    def is_mentor(self) -> bool:
        return self.role == UserRoleEnum.MENTOR.value

    @property
    def is_buddy(self) -> bool:
        return self.role == UserRoleEnum.BUDDY.value
