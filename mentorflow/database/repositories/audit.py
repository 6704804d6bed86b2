"""
Audit log repository for tracking workflow decisions and content changes.

Logs every action with:
- What happened (action, entity type and id)
- Who did it (actor id and role)
- When it happened
- Extra context (details JSON)
"""

import logging
from typing import Optional, List, Dict, Any
from datetime import timedelta

from sqlalchemy import select, and_

from ..models import AuditLogDB
from .base import BaseRepository
from ...utils.datetime_utils import get_now

logger = logging.getLogger(__name__)


class AuditRepository(BaseRepository):
    """Repository for audit log operations."""

    async def create(
        self,
        action: str,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        level: str = "info",
    ) -> Optional[AuditLogDB]:
        """Append an entry to the audit trail."""
        async with self.db.session() as session:
            try:
                log_entry = AuditLogDB(
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    actor_id=actor_id,
                    actor_role=actor_role,
                    level=level,
                    details=details,
                    timestamp=get_now(),
                )
                session.add(log_entry)
                await session.flush()

                logger.debug(f"Audit log: {action} on {entity_type}/{entity_id} by {actor_id}")
                return log_entry

            except Exception as e:
                logger.error(f"Error creating audit log: {e}")
                return None

    # ==================== QUERY METHODS ====================

    async def get_entity_history(self, entity_type: str, entity_id: str) -> List[AuditLogDB]:
        """Full audit history for one entity, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(AuditLogDB)
                .where(
                    AuditLogDB.entity_type == entity_type,
                    AuditLogDB.entity_id == entity_id,
                )
                .order_by(AuditLogDB.timestamp.desc(), AuditLogDB.id.desc())
            )
            return list(result.scalars().all())

    async def get_user_activity(self, actor_id: str, days: int = 7) -> List[AuditLogDB]:
        """Recent activity by one user."""
        since = get_now() - timedelta(days=days)
        async with self.db.session() as session:
            result = await session.execute(
                select(AuditLogDB)
                .where(
                    and_(
                        AuditLogDB.actor_id == actor_id,
                        AuditLogDB.timestamp >= since,
                    )
                )
                .order_by(AuditLogDB.timestamp.desc(), AuditLogDB.id.desc())
            )
            return list(result.scalars().all())


# Singleton
_audit_repository: Optional[AuditRepository] = None


def get_audit_repository() -> AuditRepository:
    """Get the audit repository singleton."""
    global _audit_repository
    if _audit_repository is None:
        _audit_repository = AuditRepository()
    return _audit_repository
