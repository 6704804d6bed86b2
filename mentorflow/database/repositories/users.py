"""
User and buddy repository.

Buddies carry the ownership fields the permission engine needs: the buddy's
own user id and the assigned mentor's user id.
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..models import new_id, UserDB, BuddyDB, UserRoleEnum, BuddyStatusEnum
from ..exceptions import (
    DatabaseOperationError,
    EntityNotFoundError,
    MentorflowError,
    ValidationFailedError,
)
from .base import BaseRepository
from ...permissions import ResourceOwners
from ...utils.datetime_utils import get_now

logger = logging.getLogger(__name__)

# Columns a buddy update may write, keyed by the table they live on
_USER_COLUMNS = {"name"}
_BUDDY_COLUMNS = {"domain_role", "status", "assigned_mentor_user_id"}


class UserRepository(BaseRepository):
    """Repository for users and buddy profiles."""

    # ==================== USERS ====================

    async def create_user(
        self,
        name: str,
        email: str,
        role: str,
        permissions: Optional[List[str]] = None,
    ) -> UserDB:
        async with self.db.session() as session:
            try:
                user = UserDB(
                    id=new_id(),
                    name=name,
                    email=email,
                    role=role,
                    permissions=permissions,
                    is_active=True,
                )
                session.add(user)
                await session.flush()
                logger.info(f"Created {role} user {user.id}")
                return user

            except IntegrityError as e:
                logger.error(f"Constraint violation creating user {email}: {e}")
                raise ValidationFailedError(f"A user with email {email} already exists")

            except Exception as e:
                logger.error(f"CRITICAL: User creation failed for {email}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create user {email}: {e}")

    async def get_user(self, user_id: str) -> Optional[UserDB]:
        async with self.db.session() as session:
            return await session.get(UserDB, user_id)

    async def set_permissions(self, user_id: str, permissions: Optional[List[str]]) -> UserDB:
        """Replace a user's explicit grants; None restores the role defaults."""
        async with self.db.session() as session:
            user = await session.get(UserDB, user_id)
            if user is None:
                raise EntityNotFoundError(f"User {user_id} not found")
            user.permissions = permissions
            await session.flush()
            return user

    # ==================== BUDDIES ====================

    async def create_buddy(
        self,
        name: str,
        email: str,
        domain_role: str,
        assigned_mentor_user_id: Optional[str] = None,
        permissions: Optional[List[str]] = None,
    ) -> BuddyDB:
        """Create the buddy's user row and profile in one transaction."""
        async with self.db.session() as session:
            try:
                if assigned_mentor_user_id:
                    await self._require_mentor(session, assigned_mentor_user_id)

                user = UserDB(
                    id=new_id(),
                    name=name,
                    email=email,
                    role=UserRoleEnum.BUDDY.value,
                    permissions=permissions,
                    is_active=True,
                )
                session.add(user)
                await session.flush()

                buddy = BuddyDB(
                    id=new_id(),
                    user_id=user.id,
                    domain_role=domain_role,
                    status=BuddyStatusEnum.ACTIVE.value,
                    assigned_mentor_user_id=assigned_mentor_user_id,
                )
                session.add(buddy)
                await session.flush()
                logger.info(f"Created buddy {buddy.id} for user {user.id}")
                return buddy

            except MentorflowError:
                raise

            except IntegrityError as e:
                logger.error(f"Constraint violation creating buddy {email}: {e}")
                raise ValidationFailedError(f"A user with email {email} already exists")

            except Exception as e:
                logger.error(f"CRITICAL: Buddy creation failed for {email}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create buddy {email}: {e}")

    async def get_buddy(self, buddy_id: str) -> Optional[BuddyDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyDB)
                .options(selectinload(BuddyDB.user))
                .where(BuddyDB.id == buddy_id)
            )
            return result.scalar_one_or_none()

    async def get_buddy_by_user_id(self, user_id: str) -> Optional[BuddyDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(BuddyDB)
                .options(selectinload(BuddyDB.user))
                .where(BuddyDB.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def list_buddies(
        self,
        mentor_user_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[BuddyDB]:
        async with self.db.session() as session:
            query = select(BuddyDB).options(selectinload(BuddyDB.user))
            if mentor_user_id:
                query = query.where(BuddyDB.assigned_mentor_user_id == mentor_user_id)
            if status:
                query = query.where(BuddyDB.status == status)
            result = await session.execute(query.order_by(BuddyDB.created_at))
            return list(result.scalars().all())

    async def update_buddy(self, buddy_id: str, changes: Dict[str, Any]) -> BuddyDB:
        """
        Apply already-authorised changes to a buddy and its user row.

        Keys: name, domain_role, status, assigned_mentor_user_id.
        """
        unknown = set(changes) - _USER_COLUMNS - _BUDDY_COLUMNS
        if unknown:
            raise ValidationFailedError(f"Unknown buddy fields: {sorted(unknown)}")

        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(BuddyDB)
                    .options(selectinload(BuddyDB.user))
                    .where(BuddyDB.id == buddy_id)
                )
                buddy = result.scalar_one_or_none()
                if buddy is None:
                    raise EntityNotFoundError(f"Buddy {buddy_id} not found")

                if changes.get("assigned_mentor_user_id"):
                    await self._require_mentor(session, changes["assigned_mentor_user_id"])

                now = get_now()
                for key, value in changes.items():
                    if key in _USER_COLUMNS:
                        setattr(buddy.user, key, value)
                        buddy.user.updated_at = now
                    else:
                        setattr(buddy, key, value)
                buddy.updated_at = now
                await session.flush()

                logger.info(f"Buddy {buddy_id} updated: {sorted(changes)}")
                return buddy

            except MentorflowError:
                raise

            except IntegrityError as e:
                logger.error(f"Constraint violation updating buddy {buddy_id}: {e}")
                raise ValidationFailedError(f"Invalid values for buddy {buddy_id}: {sorted(changes)}")

            except Exception as e:
                logger.error(f"CRITICAL: Buddy update failed for {buddy_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to update buddy {buddy_id}: {e}")

    # ==================== OWNERSHIP ====================

    async def owners_for_buddy(self, buddy_id: str) -> ResourceOwners:
        """Owner ids used to authorise actions on a buddy's resources."""
        async with self.db.session() as session:
            buddy = await session.get(BuddyDB, buddy_id)
            if buddy is None:
                raise EntityNotFoundError(f"Buddy {buddy_id} not found")
            return ResourceOwners(
                buddy_user_id=buddy.user_id,
                assigned_mentor_user_id=buddy.assigned_mentor_user_id,
            )

    async def _require_mentor(self, session, user_id: str) -> None:
        mentor = await session.get(UserDB, user_id)
        if mentor is None:
            raise EntityNotFoundError(f"User {user_id} not found")
        if mentor.role != UserRoleEnum.MENTOR.value:
            raise ValidationFailedError(f"User {user_id} is a {mentor.role}, not a mentor")


# Singleton
_user_repository: Optional[UserRepository] = None


def get_user_repository() -> UserRepository:
    """Get the user repository singleton."""
    global _user_repository
    if _user_repository is None:
        _user_repository = UserRepository()
    return _user_repository
