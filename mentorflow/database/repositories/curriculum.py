"""
Curriculum content repository.

Handles:
- Curriculum CRUD and the draft -> published -> archived lifecycle
- Weeks and task templates (editable only while the curriculum is a draft)
- Deep duplication of curricula and shallow duplication of templates
- Reordering by display_order

Published content is read-only. The one write allowed on published content
is archiving a task template (is_active = False), which is how in-flight
work is protected from deletion.
"""

import logging
from typing import Optional, List, Dict, Any, Iterable, Set

from sqlalchemy import select, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import (
    new_id,
    CurriculumDB,
    CurriculumWeekDB,
    TaskTemplateDB,
    BuddyCurriculumDB,
    BuddyWeekProgressDB,
    TaskAssignmentDB,
    AssignmentStatusEnum,
    CurriculumStatusEnum,
)
from ..exceptions import (
    DatabaseOperationError,
    EntityNotFoundError,
    InvalidTransitionError,
    MentorflowError,
    ValidationFailedError,
)
from .base import BaseRepository
from .enrollment import recompute_enrollment_in_session
from ...utils.datetime_utils import get_now

logger = logging.getLogger(__name__)

DRAFT = CurriculumStatusEnum.DRAFT.value
PUBLISHED = CurriculumStatusEnum.PUBLISHED.value
ARCHIVED = CurriculumStatusEnum.ARCHIVED.value

_CURRICULUM_FIELDS = {"name", "description", "total_weeks", "tags", "version"}
_WEEK_FIELDS = {"title", "description", "learning_objectives", "resources"}
_TEMPLATE_FIELDS = {
    "title",
    "description",
    "requirements",
    "difficulty",
    "estimated_hours",
    "expected_resource_types",
    "resources",
}


def _with_content():
    return selectinload(CurriculumDB.weeks).selectinload(CurriculumWeekDB.tasks)


def _require_draft(curriculum: CurriculumDB, action: str) -> None:
    if curriculum.status != DRAFT:
        raise InvalidTransitionError(
            f"Cannot {action}: curriculum {curriculum.id} is '{curriculum.status}', not draft",
            current_status=curriculum.status,
        )


class CurriculumRepository(BaseRepository):
    """Repository for curricula, weeks and task templates."""

    # ==================== CURRICULUM ====================

    async def create(self, data: Dict[str, Any], created_by: Optional[str] = None) -> CurriculumDB:
        async with self.db.session() as session:
            try:
                curriculum = CurriculumDB(
                    id=new_id(),
                    name=data["name"],
                    description=data.get("description"),
                    domain_role=data["domain_role"],
                    total_weeks=data.get("total_weeks", 0),
                    tags=data.get("tags") or [],
                    version=data.get("version") or "1.0",
                    status=DRAFT,
                    is_active=True,
                    created_by=created_by,
                    last_modified_by=created_by,
                )
                session.add(curriculum)
                await session.flush()

                logger.info(f"Created curriculum {curriculum.id}: {curriculum.name}")
                return await self._load(session, curriculum.id)

            except Exception as e:
                logger.error(f"CRITICAL: Curriculum creation failed for {data.get('name')}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create curriculum {data.get('name')}: {e}")

    async def get_by_id(self, curriculum_id: str) -> Optional[CurriculumDB]:
        """Get a curriculum with weeks and templates loaded."""
        async with self.db.session() as session:
            result = await session.execute(
                select(CurriculumDB)
                .options(_with_content())
                .where(CurriculumDB.id == curriculum_id)
            )
            return result.scalar_one_or_none()

    async def list_curricula(
        self,
        domain_role: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> List[CurriculumDB]:
        async with self.db.session() as session:
            query = select(CurriculumDB).options(_with_content())

            if domain_role:
                query = query.where(CurriculumDB.domain_role == domain_role)
            if status:
                query = query.where(CurriculumDB.status == status)
            if created_by:
                query = query.where(CurriculumDB.created_by == created_by)
            if search:
                pattern = f"%{search}%"
                query = query.where(
                    or_(
                        CurriculumDB.name.ilike(pattern),
                        CurriculumDB.description.ilike(pattern),
                    )
                )

            result = await session.execute(query.order_by(CurriculumDB.created_at.desc()))
            return list(result.scalars().all())

    async def get_published_for_domain(self, domain_role: str) -> Optional[CurriculumDB]:
        """The most recently published active curriculum for a domain role."""
        async with self.db.session() as session:
            result = await session.execute(
                select(CurriculumDB)
                .options(_with_content())
                .where(
                    CurriculumDB.domain_role == domain_role,
                    CurriculumDB.status == PUBLISHED,
                    CurriculumDB.is_active.is_(True),
                )
                .order_by(CurriculumDB.published_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def update(
        self,
        curriculum_id: str,
        changes: Dict[str, Any],
        modified_by: Optional[str] = None,
    ) -> CurriculumDB:
        async with self.db.session() as session:
            curriculum = await self._get_curriculum(session, curriculum_id)
            _require_draft(curriculum, "edit curriculum")

            for key, value in changes.items():
                if key in _CURRICULUM_FIELDS:
                    setattr(curriculum, key, value)
            curriculum.last_modified_by = modified_by
            curriculum.updated_at = get_now()
            await session.flush()
            return await self._load(session, curriculum_id)

    async def set_status(
        self,
        curriculum_id: str,
        target: str,
        modified_by: Optional[str] = None,
    ) -> CurriculumDB:
        """
        Move a curriculum along draft -> published -> archived.

        Legal moves: draft -> published, published -> draft (unpublish),
        published -> archived. Archived is terminal.
        """
        legal = {
            (DRAFT, PUBLISHED),
            (PUBLISHED, DRAFT),
            (PUBLISHED, ARCHIVED),
        }
        async with self.db.session() as session:
            result = await session.execute(
                select(CurriculumDB)
                .options(_with_content())
                .where(CurriculumDB.id == curriculum_id)
            )
            curriculum = result.scalar_one_or_none()
            if curriculum is None:
                raise EntityNotFoundError(f"Curriculum {curriculum_id} not found")

            if (curriculum.status, target) not in legal:
                raise InvalidTransitionError(
                    f"Cannot move curriculum {curriculum_id} from '{curriculum.status}' to '{target}'",
                    current_status=curriculum.status,
                )

            if target == PUBLISHED and not curriculum.weeks:
                raise ValidationFailedError(f"Curriculum {curriculum_id} has no weeks to publish")

            now = get_now()
            curriculum.status = target
            curriculum.last_modified_by = modified_by
            curriculum.updated_at = now
            if target == PUBLISHED:
                curriculum.published_at = now
            elif target == ARCHIVED:
                curriculum.is_active = False
            await session.flush()

            logger.info(f"Curriculum {curriculum_id} is now {target}")
            return await self._load(session, curriculum_id)

    async def delete(self, curriculum_id: str) -> CurriculumDB:
        """Delete a draft curriculum nobody has been enrolled in."""
        async with self.db.session() as session:
            result = await session.execute(
                select(CurriculumDB)
                .options(_with_content())
                .where(CurriculumDB.id == curriculum_id)
            )
            curriculum = result.scalar_one_or_none()
            if curriculum is None:
                raise EntityNotFoundError(f"Curriculum {curriculum_id} not found")
            _require_draft(curriculum, "delete curriculum")

            enrolled = await session.execute(
                select(func.count(BuddyCurriculumDB.id))
                .where(BuddyCurriculumDB.curriculum_id == curriculum_id)
            )
            if enrolled.scalar():
                raise InvalidTransitionError(
                    f"Curriculum {curriculum_id} has enrollments; archive it instead",
                    current_status=curriculum.status,
                )

            await session.delete(curriculum)
            await session.flush()
            logger.info(f"Deleted curriculum {curriculum_id}")
            return curriculum

    async def duplicate(self, curriculum_id: str, created_by: Optional[str] = None) -> CurriculumDB:
        """Deep copy with new ids throughout; week numbers and orders carry over; status draft."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(CurriculumDB)
                    .options(_with_content())
                    .where(CurriculumDB.id == curriculum_id)
                )
                source = result.scalar_one_or_none()
                if source is None:
                    raise EntityNotFoundError(f"Curriculum {curriculum_id} not found")

                copy = CurriculumDB(
                    id=new_id(),
                    name=f"{source.name} (Copy)",
                    description=source.description,
                    domain_role=source.domain_role,
                    total_weeks=source.total_weeks,
                    tags=list(source.tags or []),
                    version=source.version,
                    status=DRAFT,
                    is_active=True,
                    created_by=created_by,
                    last_modified_by=created_by,
                )
                session.add(copy)

                for week in source.weeks:
                    week_copy = CurriculumWeekDB(
                        id=new_id(),
                        curriculum_id=copy.id,
                        week_number=week.week_number,
                        title=week.title,
                        description=week.description,
                        learning_objectives=list(week.learning_objectives or []),
                        resources=list(week.resources or []),
                        display_order=week.display_order,
                    )
                    session.add(week_copy)
                    for template in week.tasks:
                        session.add(self._copy_template(template, week_copy.id, created_by))

                await session.flush()
                logger.info(f"Duplicated curriculum {curriculum_id} as {copy.id}")
                return await self._load(session, copy.id)

            except MentorflowError:
                raise

            except Exception as e:
                logger.error(f"CRITICAL: Duplicating curriculum {curriculum_id} failed: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to duplicate curriculum {curriculum_id}: {e}")

    # ==================== WEEKS ====================

    async def add_week(self, curriculum_id: str, data: Dict[str, Any]) -> CurriculumWeekDB:
        async with self.db.session() as session:
            try:
                curriculum = await self._get_curriculum(session, curriculum_id)
                _require_draft(curriculum, "add a week")

                week = CurriculumWeekDB(
                    id=new_id(),
                    curriculum_id=curriculum_id,
                    week_number=data["week_number"],
                    title=data["title"],
                    description=data.get("description"),
                    learning_objectives=data.get("learning_objectives") or [],
                    resources=data.get("resources") or [],
                    display_order=await self._next_week_order(session, curriculum_id),
                )
                session.add(week)
                await session.flush()

                logger.info(f"Added week {week.week_number} to curriculum {curriculum_id}")
                return await self._load_week(session, week.id)

            except MentorflowError:
                raise

            except IntegrityError as e:
                logger.error(f"Constraint violation adding week to {curriculum_id}: {e}")
                raise ValidationFailedError(
                    f"Week number {data.get('week_number')} already exists in curriculum {curriculum_id}"
                )

            except Exception as e:
                logger.error(f"CRITICAL: Adding week to {curriculum_id} failed: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to add week to curriculum {curriculum_id}: {e}")

    async def get_week(self, week_id: str) -> Optional[CurriculumWeekDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(CurriculumWeekDB)
                .options(selectinload(CurriculumWeekDB.tasks))
                .where(CurriculumWeekDB.id == week_id)
            )
            return result.scalar_one_or_none()

    async def update_week(self, week_id: str, changes: Dict[str, Any]) -> CurriculumWeekDB:
        async with self.db.session() as session:
            week = await self._get_week(session, week_id)
            curriculum = await self._get_curriculum(session, week.curriculum_id)
            _require_draft(curriculum, "edit a week")

            for key, value in changes.items():
                if key in _WEEK_FIELDS:
                    setattr(week, key, value)
            week.updated_at = get_now()
            await session.flush()
            return await self._load_week(session, week_id)

    async def delete_week(self, week_id: str) -> CurriculumWeekDB:
        """
        Delete a week and its templates.

        Fails when any assignment on those templates has left not_started;
        untouched assignments and the week's progress rows go with the week.
        """
        async with self.db.session() as session:
            week = await self._get_week(session, week_id)
            curriculum = await self._get_curriculum(session, week.curriculum_id)
            _require_draft(curriculum, "delete a week")

            template_ids = [t.id for t in week.tasks]
            enrollment_ids = await self._clear_untouched_assignments(session, template_ids, "week", week_id)

            progress = await session.execute(
                select(BuddyWeekProgressDB.buddy_curriculum_id)
                .where(BuddyWeekProgressDB.curriculum_week_id == week_id)
            )
            enrollment_ids.update(progress.scalars().all())
            await session.execute(
                delete(BuddyWeekProgressDB).where(BuddyWeekProgressDB.curriculum_week_id == week_id)
            )

            await session.delete(week)
            await session.flush()

            for enrollment_id in enrollment_ids:
                await recompute_enrollment_in_session(session, enrollment_id)

            logger.info(f"Deleted week {week_id} ({len(template_ids)} templates) from {curriculum.id}")
            return week

    async def reorder_weeks(self, curriculum_id: str, items: List[Dict[str, Any]]) -> List[CurriculumWeekDB]:
        async with self.db.session() as session:
            curriculum = await self._get_curriculum(session, curriculum_id)
            _require_draft(curriculum, "reorder weeks")

            result = await session.execute(
                select(CurriculumWeekDB).where(CurriculumWeekDB.curriculum_id == curriculum_id)
            )
            weeks = {w.id: w for w in result.scalars().all()}
            self._apply_order(weeks, items, f"curriculum {curriculum_id}")
            await session.flush()
            return sorted(weeks.values(), key=lambda w: w.display_order)

    # ==================== TASK TEMPLATES ====================

    async def add_template(
        self,
        week_id: str,
        data: Dict[str, Any],
        created_by: Optional[str] = None,
    ) -> TaskTemplateDB:
        async with self.db.session() as session:
            week = await self._get_week(session, week_id)
            curriculum = await self._get_curriculum(session, week.curriculum_id)
            _require_draft(curriculum, "add a task template")

            template = TaskTemplateDB(
                id=new_id(),
                curriculum_week_id=week_id,
                title=data["title"],
                description=data.get("description"),
                requirements=data.get("requirements"),
                difficulty=data.get("difficulty") or "medium",
                estimated_hours=data.get("estimated_hours") or 0,
                expected_resource_types=data.get("expected_resource_types") or [],
                resources=data.get("resources") or [],
                display_order=await self._next_template_order(session, week_id),
                is_active=True,
                created_by=created_by,
            )
            session.add(template)
            await session.flush()

            logger.info(f"Added task template {template.id} to week {week_id}")
            return template

    async def get_template(self, template_id: str) -> Optional[TaskTemplateDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(TaskTemplateDB)
                .options(selectinload(TaskTemplateDB.week))
                .where(TaskTemplateDB.id == template_id)
            )
            return result.scalar_one_or_none()

    async def update_template(self, template_id: str, changes: Dict[str, Any]) -> TaskTemplateDB:
        async with self.db.session() as session:
            template = await self._get_template(session, template_id)
            week = await self._get_week(session, template.curriculum_week_id)
            curriculum = await self._get_curriculum(session, week.curriculum_id)
            _require_draft(curriculum, "edit a task template")

            for key, value in changes.items():
                if key in _TEMPLATE_FIELDS:
                    setattr(template, key, value)
            template.updated_at = get_now()
            await session.flush()
            return template

    async def delete_template(self, template_id: str) -> TaskTemplateDB:
        async with self.db.session() as session:
            template = await self._get_template(session, template_id)
            week = await self._get_week(session, template.curriculum_week_id)
            curriculum = await self._get_curriculum(session, week.curriculum_id)
            _require_draft(curriculum, "delete a task template")

            enrollment_ids = await self._clear_untouched_assignments(
                session, [template_id], "task template", template_id
            )
            await session.delete(template)
            await session.flush()

            for enrollment_id in enrollment_ids:
                await recompute_enrollment_in_session(session, enrollment_id)

            logger.info(f"Deleted task template {template_id} from week {week.id}")
            return template

    async def set_template_active(self, template_id: str, is_active: bool) -> TaskTemplateDB:
        """Archive (or restore) a template. Allowed on draft and published content."""
        async with self.db.session() as session:
            template = await self._get_template(session, template_id)
            week = await self._get_week(session, template.curriculum_week_id)
            curriculum = await self._get_curriculum(session, week.curriculum_id)
            if curriculum.status == ARCHIVED:
                raise InvalidTransitionError(
                    f"Curriculum {curriculum.id} is archived", current_status=curriculum.status
                )
            template.is_active = is_active
            template.updated_at = get_now()
            await session.flush()
            logger.info(f"Task template {template_id} {'restored' if is_active else 'archived'}")
            return template

    async def duplicate_template(self, template_id: str, created_by: Optional[str] = None) -> TaskTemplateDB:
        """Copy a template into the same week, placed last."""
        async with self.db.session() as session:
            template = await self._get_template(session, template_id)
            week = await self._get_week(session, template.curriculum_week_id)
            curriculum = await self._get_curriculum(session, week.curriculum_id)
            _require_draft(curriculum, "duplicate a task template")

            copy = self._copy_template(template, week.id, created_by)
            copy.title = f"{template.title} (Copy)"
            copy.display_order = await self._next_template_order(session, week.id)
            session.add(copy)
            await session.flush()
            return copy

    async def reorder_templates(self, week_id: str, items: List[Dict[str, Any]]) -> List[TaskTemplateDB]:
        async with self.db.session() as session:
            week = await self._get_week(session, week_id)
            curriculum = await self._get_curriculum(session, week.curriculum_id)
            _require_draft(curriculum, "reorder task templates")

            templates = {t.id: t for t in week.tasks}
            self._apply_order(templates, items, f"week {week_id}")
            await session.flush()
            return sorted(templates.values(), key=lambda t: t.display_order)

    # ==================== HELPERS ====================

    async def _clear_untouched_assignments(
        self,
        session: AsyncSession,
        template_ids: Iterable[str],
        label: str,
        entity_id: str,
    ) -> Set[str]:
        """Delete not_started assignments on templates; refuse if any work has begun."""
        template_ids = list(template_ids)
        if not template_ids:
            return set()

        result = await session.execute(
            select(TaskAssignmentDB).where(TaskAssignmentDB.task_template_id.in_(template_ids))
        )
        assignments = list(result.scalars().all())
        in_flight = [a for a in assignments if a.status != AssignmentStatusEnum.NOT_STARTED.value]
        if in_flight:
            raise InvalidTransitionError(
                f"Cannot delete {label} {entity_id}: {len(in_flight)} assignment(s) already in progress; "
                f"archive the task template instead",
                current_status=in_flight[0].status,
            )

        enrollment_ids = {a.buddy_curriculum_id for a in assignments}
        if assignments:
            await session.execute(
                delete(TaskAssignmentDB).where(TaskAssignmentDB.task_template_id.in_(template_ids))
            )
        return enrollment_ids

    def _copy_template(
        self,
        template: TaskTemplateDB,
        week_id: str,
        created_by: Optional[str],
    ) -> TaskTemplateDB:
        return TaskTemplateDB(
            id=new_id(),
            curriculum_week_id=week_id,
            title=template.title,
            description=template.description,
            requirements=template.requirements,
            difficulty=template.difficulty,
            estimated_hours=template.estimated_hours,
            expected_resource_types=list(template.expected_resource_types or []),
            resources=list(template.resources or []),
            display_order=template.display_order,
            is_active=template.is_active,
            created_by=created_by or template.created_by,
        )

    def _apply_order(self, rows: Dict[str, Any], items: List[Dict[str, Any]], owner: str) -> None:
        unknown = [item["id"] for item in items if item["id"] not in rows]
        if unknown:
            raise ValidationFailedError(f"Items {unknown} do not belong to {owner}")
        for item in items:
            rows[item["id"]].display_order = item["display_order"]

    async def _next_week_order(self, session: AsyncSession, curriculum_id: str) -> int:
        result = await session.execute(
            select(func.max(CurriculumWeekDB.display_order))
            .where(CurriculumWeekDB.curriculum_id == curriculum_id)
        )
        current = result.scalar()
        return 0 if current is None else current + 1

    async def _next_template_order(self, session: AsyncSession, week_id: str) -> int:
        result = await session.execute(
            select(func.max(TaskTemplateDB.display_order))
            .where(TaskTemplateDB.curriculum_week_id == week_id)
        )
        current = result.scalar()
        return 0 if current is None else current + 1

    async def _get_curriculum(self, session: AsyncSession, curriculum_id: str) -> CurriculumDB:
        curriculum = await session.get(CurriculumDB, curriculum_id)
        if curriculum is None:
            raise EntityNotFoundError(f"Curriculum {curriculum_id} not found")
        return curriculum

    async def _get_week(self, session: AsyncSession, week_id: str) -> CurriculumWeekDB:
        result = await session.execute(
            select(CurriculumWeekDB)
            .options(selectinload(CurriculumWeekDB.tasks))
            .where(CurriculumWeekDB.id == week_id)
        )
        week = result.scalar_one_or_none()
        if week is None:
            raise EntityNotFoundError(f"Week {week_id} not found")
        return week

    async def _get_template(self, session: AsyncSession, template_id: str) -> TaskTemplateDB:
        template = await session.get(TaskTemplateDB, template_id)
        if template is None:
            raise EntityNotFoundError(f"Task template {template_id} not found")
        return template

    async def _load(self, session: AsyncSession, curriculum_id: str) -> CurriculumDB:
        result = await session.execute(
            select(CurriculumDB)
            .options(_with_content())
            .where(CurriculumDB.id == curriculum_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _load_week(self, session: AsyncSession, week_id: str) -> CurriculumWeekDB:
        result = await session.execute(
            select(CurriculumWeekDB)
            .options(selectinload(CurriculumWeekDB.tasks))
            .where(CurriculumWeekDB.id == week_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()


# Singleton
_curriculum_repository: Optional[CurriculumRepository] = None


def get_curriculum_repository() -> CurriculumRepository:
    """Get the curriculum repository singleton."""
    global _curriculum_repository
    if _curriculum_repository is None:
        _curriculum_repository = CurriculumRepository()
    return _curriculum_repository
