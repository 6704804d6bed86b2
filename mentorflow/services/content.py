"""
Curriculum content service.

Curricula and weeks are managed by holders of can_manage_curriculum.
Task templates follow the task grants: managers edit any template, mentors
only the ones they created.
"""

import logging
from typing import Optional, List, Union, Dict, Any

from ..database.exceptions import EntityNotFoundError, ValidationFailedError
from ..database.models import CurriculumDB, CurriculumWeekDB, TaskTemplateDB, CurriculumStatusEnum
from ..database.repositories import get_curriculum_repository, CurriculumRepository
from ..models.actor import Actor
from ..models.curriculum import (
    CurriculumCreate,
    CurriculumUpdate,
    CurriculumFilters,
    WeekCreate,
    WeekUpdate,
    TaskTemplateCreate,
    TaskTemplateUpdate,
    ReorderItem,
)
from ..permissions import Permission, ResourceOwners
from ..utils.audit_logger import AuditAction, AuditLevel, audit_log, log_audit_event
from ..utils.validation import validate_week_numbers
from .access import require, require_any, parse_payload

logger = logging.getLogger(__name__)


class ContentService:
    """Service for curricula, weeks and task templates."""

    def __init__(self):
        self.repo: CurriculumRepository = get_curriculum_repository()

    async def _audit(self, actor: Actor, action: AuditAction, entity_type: str, entity_id: str,
                     details: Optional[Dict[str, Any]] = None, level: AuditLevel = AuditLevel.INFO) -> None:
        await log_audit_event(
            action=action,
            actor_id=actor.id,
            actor_role=actor.role,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            level=level,
        )

    # ==================== READS ====================

    async def get_curriculum(self, actor: Actor, curriculum_id: str) -> CurriculumDB:
        await require(actor, Permission.CAN_VIEW_TASKS, entity_type="curriculum", entity_id=curriculum_id)
        curriculum = await self.repo.get_by_id(curriculum_id)
        if curriculum is None:
            raise EntityNotFoundError(f"Curriculum {curriculum_id} not found")
        return curriculum

    async def list_curricula(
        self,
        actor: Actor,
        filters: Optional[Union[CurriculumFilters, Dict[str, Any]]] = None,
    ) -> List[CurriculumDB]:
        await require(actor, Permission.CAN_VIEW_TASKS, entity_type="curriculum")
        filters = parse_payload(CurriculumFilters, filters or {})
        return await self.repo.list_curricula(
            domain_role=filters.domain_role,
            status=filters.status,
            search=filters.search,
            created_by=filters.created_by,
        )

    async def get_curriculum_for_domain(self, actor: Actor, domain_role: str) -> Optional[CurriculumDB]:
        """The published curriculum new buddies of a domain role are enrolled in."""
        await require(actor, Permission.CAN_VIEW_TASKS, entity_type="curriculum")
        return await self.repo.get_published_for_domain(domain_role)

    # ==================== CURRICULUM ====================

    async def create_curriculum(self, actor: Actor, payload: Union[CurriculumCreate, Dict[str, Any]]) -> CurriculumDB:
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="curriculum")
        payload = parse_payload(CurriculumCreate, payload)
        curriculum = await self.repo.create(payload.model_dump(), created_by=actor.id)
        await self._audit(actor, AuditAction.CURRICULUM_CREATE, "curriculum", curriculum.id,
                          {"name": curriculum.name, "domain_role": curriculum.domain_role})
        return curriculum

    async def update_curriculum(
        self,
        actor: Actor,
        curriculum_id: str,
        payload: Union[CurriculumUpdate, Dict[str, Any]],
    ) -> CurriculumDB:
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="curriculum", entity_id=curriculum_id)
        payload = parse_payload(CurriculumUpdate, payload)
        return await self.repo.update(curriculum_id, payload.model_dump(exclude_unset=True), modified_by=actor.id)

    async def publish(self, actor: Actor, curriculum_id: str) -> CurriculumDB:
        return await self._move(actor, curriculum_id, CurriculumStatusEnum.PUBLISHED, AuditAction.CURRICULUM_PUBLISH)

    async def unpublish(self, actor: Actor, curriculum_id: str) -> CurriculumDB:
        return await self._move(actor, curriculum_id, CurriculumStatusEnum.DRAFT, AuditAction.CURRICULUM_UNPUBLISH)

    async def archive(self, actor: Actor, curriculum_id: str) -> CurriculumDB:
        return await self._move(actor, curriculum_id, CurriculumStatusEnum.ARCHIVED, AuditAction.CURRICULUM_ARCHIVE)

    async def _move(self, actor: Actor, curriculum_id: str, target: CurriculumStatusEnum,
                    action: AuditAction) -> CurriculumDB:
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="curriculum", entity_id=curriculum_id)
        curriculum = await self.repo.set_status(curriculum_id, target.value, modified_by=actor.id)
        await self._audit(actor, action, "curriculum", curriculum_id, {"status": curriculum.status})
        return curriculum

    async def delete_curriculum(self, actor: Actor, curriculum_id: str) -> CurriculumDB:
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="curriculum", entity_id=curriculum_id)
        curriculum = await self.repo.delete(curriculum_id)
        await self._audit(actor, AuditAction.CURRICULUM_DELETE, "curriculum", curriculum_id,
                          {"name": curriculum.name}, AuditLevel.WARNING)
        return curriculum

    async def duplicate_curriculum(self, actor: Actor, curriculum_id: str) -> CurriculumDB:
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="curriculum", entity_id=curriculum_id)
        copy = await self.repo.duplicate(curriculum_id, created_by=actor.id)
        await self._audit(actor, AuditAction.CURRICULUM_DUPLICATE, "curriculum", copy.id,
                          {"source_id": curriculum_id})
        return copy

    # ==================== WEEKS ====================

    async def add_week(
        self,
        actor: Actor,
        curriculum_id: str,
        payload: Union[WeekCreate, Dict[str, Any]],
    ) -> CurriculumWeekDB:
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="curriculum", entity_id=curriculum_id)
        payload = parse_payload(WeekCreate, payload)

        curriculum = await self.repo.get_by_id(curriculum_id)
        if curriculum is None:
            raise EntityNotFoundError(f"Curriculum {curriculum_id} not found")
        check = validate_week_numbers([w.week_number for w in curriculum.weeks] + [payload.week_number])
        if not check.is_valid:
            raise ValidationFailedError(f"Cannot add week {payload.week_number}", errors=check.errors)

        return await self.repo.add_week(curriculum_id, payload.model_dump())

    async def update_week(
        self,
        actor: Actor,
        week_id: str,
        payload: Union[WeekUpdate, Dict[str, Any]],
    ) -> CurriculumWeekDB:
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="week", entity_id=week_id)
        payload = parse_payload(WeekUpdate, payload)
        return await self.repo.update_week(week_id, payload.model_dump(exclude_unset=True))

    async def delete_week(self, actor: Actor, week_id: str) -> CurriculumWeekDB:
        """Delete a draft week; refused while any of its tasks has work in flight."""
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="week", entity_id=week_id)
        week = await self.repo.delete_week(week_id)
        await self._audit(actor, AuditAction.WEEK_DELETE, "week", week_id,
                          {"curriculum_id": week.curriculum_id, "week_number": week.week_number},
                          AuditLevel.WARNING)
        return week

    async def reorder_weeks(
        self,
        actor: Actor,
        curriculum_id: str,
        items: List[Union[ReorderItem, Dict[str, Any]]],
    ) -> List[CurriculumWeekDB]:
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="curriculum", entity_id=curriculum_id)
        items = [parse_payload(ReorderItem, item).model_dump() for item in items]
        return await self.repo.reorder_weeks(curriculum_id, items)

    # ==================== TASK TEMPLATES ====================

    async def _template_owners(self, template_id: str) -> ResourceOwners:
        template = await self.repo.get_template(template_id)
        if template is None:
            raise EntityNotFoundError(f"Task template {template_id} not found")
        return ResourceOwners(creator_user_id=template.created_by)

    async def add_task_template(
        self,
        actor: Actor,
        week_id: str,
        payload: Union[TaskTemplateCreate, Dict[str, Any]],
    ) -> TaskTemplateDB:
        await require(actor, Permission.CAN_CREATE_TASK, entity_type="week", entity_id=week_id)
        payload = parse_payload(TaskTemplateCreate, payload)
        return await self.repo.add_template(week_id, payload.model_dump(), created_by=actor.id)

    async def update_task_template(
        self,
        actor: Actor,
        template_id: str,
        payload: Union[TaskTemplateUpdate, Dict[str, Any]],
    ) -> TaskTemplateDB:
        owners = await self._template_owners(template_id)
        await require_any(actor, [Permission.CAN_EDIT_ANY_TASK, Permission.CAN_EDIT_OWN_TASK],
                          owners, "task_template", template_id)
        payload = parse_payload(TaskTemplateUpdate, payload)
        return await self.repo.update_template(template_id, payload.model_dump(exclude_unset=True))

    async def delete_task_template(self, actor: Actor, template_id: str) -> TaskTemplateDB:
        owners = await self._template_owners(template_id)
        await require_any(actor, [Permission.CAN_DELETE_ANY_TASK, Permission.CAN_DELETE_OWN_TASK],
                          owners, "task_template", template_id)
        template = await self.repo.delete_template(template_id)
        await self._audit(actor, AuditAction.TASK_TEMPLATE_DELETE, "task_template", template_id,
                          {"week_id": template.curriculum_week_id}, AuditLevel.WARNING)
        return template

    async def archive_task_template(self, actor: Actor, template_id: str) -> TaskTemplateDB:
        """Retire a template without touching assignments already made from it."""
        owners = await self._template_owners(template_id)
        await require_any(actor, [Permission.CAN_EDIT_ANY_TASK, Permission.CAN_EDIT_OWN_TASK],
                          owners, "task_template", template_id)
        template = await self.repo.set_template_active(template_id, False)
        await self._audit(actor, AuditAction.TASK_TEMPLATE_ARCHIVE, "task_template", template_id)
        return template

    @audit_log(AuditAction.TASK_TEMPLATE_RESTORE, entity_type="task_template", extract_entity_from="template_id")
    async def restore_task_template(self, actor: Actor, template_id: str) -> TaskTemplateDB:
        owners = await self._template_owners(template_id)
        await require_any(actor, [Permission.CAN_EDIT_ANY_TASK, Permission.CAN_EDIT_OWN_TASK],
                          owners, "task_template", template_id)
        return await self.repo.set_template_active(template_id, True)

    async def duplicate_task_template(self, actor: Actor, template_id: str) -> TaskTemplateDB:
        await require(actor, Permission.CAN_CREATE_TASK, entity_type="task_template", entity_id=template_id)
        return await self.repo.duplicate_template(template_id, created_by=actor.id)

    async def reorder_task_templates(
        self,
        actor: Actor,
        week_id: str,
        items: List[Union[ReorderItem, Dict[str, Any]]],
    ) -> List[TaskTemplateDB]:
        await require(actor, Permission.CAN_MANAGE_CURRICULUM, entity_type="week", entity_id=week_id)
        items = [parse_payload(ReorderItem, item).model_dump() for item in items]
        return await self.repo.reorder_templates(week_id, items)


# Singleton
_content_service: Optional[ContentService] = None


def get_content_service() -> ContentService:
    """Get the content service singleton."""
    global _content_service
    if _content_service is None:
        _content_service = ContentService()
    return _content_service
