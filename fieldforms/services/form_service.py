import secrets
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Tuple, Iterable
from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.config import settings
from fieldforms.database import dialect_insert
from fieldforms.models.agent import Agent
from fieldforms.models.audit_log import ActionType
from fieldforms.models.form import Form, FormAttachment, FormConfigHistory, CYCLES_PER_MONTH_CHOICES
from fieldforms.core.clock import Clock, ensure_utc, system_clock, tracking_month
from fieldforms.core.criteria import InvalidCriteriaError, validate_criteria
from fieldforms.core.exceptions import (
    AgentNotFoundException,
    FormConfigurationException,
    FormNotFoundException,
    InvalidCriteriaException,
)
from fieldforms.core.logging_utils import sanitize_log_message
from fieldforms.services.audit_service import AuditActor, AuditService

logger = logging.getLogger(__name__)

# Changes to these fields are kept in form_config_history
TRACKED_CONFIG_FIELDS = ("cycles_per_month", "freeze_enabled", "freeze_duration", "is_active")
UPDATABLE_FIELDS = (
    "title", "description", "form_schema", "department_id", "attach_to_specific_agents",
) + TRACKED_CONFIG_FIELDS


def _history_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, timedelta):
        return str(int(value.total_seconds()))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def validate_form_config(cycles_per_month: int, freeze_enabled: bool, freeze_duration: Optional[timedelta]) -> None:
    """
    Raises:
        FormConfigurationException: cycles out of range, or a freeze duration
            present without freezing (or missing with it)
    """
    if cycles_per_month not in CYCLES_PER_MONTH_CHOICES:
        raise FormConfigurationException(
            detail=f"cycles_per_month must be one of {list(CYCLES_PER_MONTH_CHOICES)}"
        )
    if freeze_enabled and (freeze_duration is None or freeze_duration <= timedelta(0)):
        raise FormConfigurationException(detail="freeze_duration is required when freeze is enabled")
    if not freeze_enabled and freeze_duration is not None:
        raise FormConfigurationException(detail="freeze_duration must be empty when freeze is disabled")


class FormService:
    """Form administration: definitions, cycle/freeze configuration and agent attachments."""

    def __init__(self, clock: Optional[Clock] = None, audit: Optional[AuditService] = None):
        self.clock = clock or system_clock
        self.audit = audit or AuditService()

    @staticmethod
    async def _generate_internal_form_id(db: AsyncSession, year: int) -> str:
        """FORM-<year>-<6 digits>, unique across tenants."""
        for _ in range(10):
            candidate = f"{settings.FORM_ID_PREFIX}-{year}-{secrets.randbelow(10 ** 6):06d}"
            exists = await db.execute(select(Form.id).where(Form.internal_form_id == candidate))
            if exists.scalar_one_or_none() is None:
                return candidate
        raise FormConfigurationException(detail="Could not allocate an internal form id")

    async def create_form(
        self,
        db: AsyncSession,
        tenant_id: int,
        title: str,
        description: Optional[str] = None,
        form_schema: Optional[Any] = None,
        department_id: Optional[int] = None,
        created_by: Optional[int] = None,
        attach_to_specific_agents: bool = False,
        cycles_per_month: int = 1,
        freeze_enabled: bool = False,
        freeze_duration: Optional[timedelta] = None,
        actor: Optional[AuditActor] = None,
    ) -> Form:
        validate_form_config(cycles_per_month, freeze_enabled, freeze_duration)
        now = self.clock.now()

        form = Form(
            tenant_id=tenant_id,
            internal_form_id=await self._generate_internal_form_id(db, now.year),
            title=title,
            description=description,
            form_schema=form_schema if form_schema is not None else [],
            department_id=department_id,
            created_by=created_by,
            attach_to_specific_agents=attach_to_specific_agents,
            cycles_per_month=cycles_per_month,
            freeze_enabled=freeze_enabled,
            freeze_duration=freeze_duration,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        db.add(form)
        await db.commit()
        await db.refresh(form)

        logger.info(
            sanitize_log_message(
                "Form created",
                FormID=form.id,
                InternalFormID=form.internal_form_id,
                TenantID=tenant_id,
                CyclesPerMonth=cycles_per_month,
                FreezeEnabled=freeze_enabled,
                RequestID=actor.request_id if actor else None,
            )
        )
        await self.audit.record(
            ActionType.FORM_CREATED,
            resource_type="form",
            resource_id=form.id,
            details={"internal_form_id": form.internal_form_id, **form.config_snapshot()},
            actor=actor,
        )
        return form

    @staticmethod
    async def get_form(db: AsyncSession, form_id: int, tenant_id: Optional[int] = None) -> Form:
        """
        Raises:
            FormNotFoundException: unknown id or a form of another tenant
        """
        form = await db.get(Form, form_id, populate_existing=True)
        if form is None or (tenant_id is not None and form.tenant_id != tenant_id):
            raise FormNotFoundException()
        return form

    @staticmethod
    async def list_forms(
        db: AsyncSession,
        tenant_id: int,
        department_id: Optional[int] = None,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Form], int]:
        conditions = [Form.tenant_id == tenant_id]
        if department_id is not None:
            conditions.append(Form.department_id == department_id)
        if is_active is not None:
            conditions.append(Form.is_active.is_(is_active))

        total = (await db.execute(select(func.count(Form.id)).where(and_(*conditions)))).scalar_one()
        result = await db.execute(
            select(Form).where(and_(*conditions)).order_by(Form.created_at.desc(), Form.id.desc())
            .limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def update_form(
        self,
        db: AsyncSession,
        form_id: int,
        changes: Dict[str, Any],
        changed_by: Optional[int] = None,
        tenant_id: Optional[int] = None,
        now: Optional[datetime] = None,
        actor: Optional[AuditActor] = None,
        action: ActionType = ActionType.FORM_UPDATED,
    ) -> Form:
        """
        Apply a partial update.

        Cycle and freeze changes only affect cycle logs created afterwards;
        logs that already exist keep the snapshot they were created with.
        Each changed configuration field gets a history row whose
        effective_month is the current tracking month.
        """
        now = ensure_utc(now) if now else self.clock.now()
        form = await self.get_form(db, form_id, tenant_id)

        changes = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
        if changes.get("freeze_enabled") is False and "freeze_duration" not in changes:
            changes["freeze_duration"] = None

        merged = {field: changes.get(field, getattr(form, field)) for field in TRACKED_CONFIG_FIELDS}
        validate_form_config(merged["cycles_per_month"], merged["freeze_enabled"], merged["freeze_duration"])

        history = []
        for field, new_value in changes.items():
            old_value = getattr(form, field)
            if old_value == new_value:
                continue
            if field in TRACKED_CONFIG_FIELDS:
                history.append(FormConfigHistory(
                    form_id=form.id,
                    changed_by=changed_by,
                    changed_at=now,
                    field_name=field,
                    old_value=_history_value(old_value),
                    new_value=_history_value(new_value),
                    effective_month=tracking_month(now),
                ))
            setattr(form, field, new_value)

        changed_fields = [entry.field_name for entry in history]
        form.updated_at = now
        db.add_all(history)
        await db.commit()
        await db.refresh(form)

        logger.info(
            sanitize_log_message(
                "Form updated",
                FormID=form.id,
                ConfigFieldsChanged=changed_fields,
                RequestID=actor.request_id if actor else None,
            )
        )
        await self.audit.record(
            action,
            resource_type="form",
            resource_id=form.id,
            details={"fields": sorted(changes), "config_fields_changed": changed_fields},
            actor=actor,
        )
        return form

    async def deactivate_form(
        self,
        db: AsyncSession,
        form_id: int,
        changed_by: Optional[int] = None,
        tenant_id: Optional[int] = None,
        actor: Optional[AuditActor] = None,
    ) -> Form:
        """Forms are never deleted; deactivation hides them from every agent."""
        return await self.update_form(
            db,
            form_id,
            {"is_active": False},
            changed_by=changed_by,
            tenant_id=tenant_id,
            actor=actor,
            action=ActionType.FORM_DEACTIVATED,
        )

    @staticmethod
    async def get_config_history(
        db: AsyncSession,
        form_id: int,
        tenant_id: Optional[int] = None,
    ) -> List[FormConfigHistory]:
        await FormService.get_form(db, form_id, tenant_id)
        result = await db.execute(
            select(FormConfigHistory)
            .where(FormConfigHistory.form_id == form_id)
            .order_by(FormConfigHistory.changed_at.desc(), FormConfigHistory.id.desc())
        )
        return list(result.scalars().all())

    async def attach_agents(
        self,
        db: AsyncSession,
        form_id: int,
        agent_ids: Iterable[int],
        criteria: Optional[List[Dict[str, Any]]] = None,
        attached_by: Optional[int] = None,
        tenant_id: Optional[int] = None,
        actor: Optional[AuditActor] = None,
    ) -> List[FormAttachment]:
        """
        Attach (or re-attach) agents to a form, all sharing one criteria list.

        Existing attachments are reactivated and their criteria replaced.

        Raises:
            FormNotFoundException, InvalidCriteriaException, AgentNotFoundException
        """
        form = await self.get_form(db, form_id, tenant_id)
        agent_ids = sorted(set(agent_ids))

        try:
            rules = validate_criteria(criteria)
        except InvalidCriteriaError as e:
            raise InvalidCriteriaException(detail=e.message)

        if not agent_ids:
            return []

        found = set((await db.execute(
            select(Agent.id).where(Agent.id.in_(agent_ids), Agent.tenant_id == form.tenant_id)
        )).scalars().all())
        missing = [agent_id for agent_id in agent_ids if agent_id not in found]
        if missing:
            raise AgentNotFoundException(detail=f"Agents not found: {missing}")

        now = self.clock.now()
        stmt = dialect_insert(db, FormAttachment).values([
            {
                "form_id": form.id,
                "agent_id": agent_id,
                "criteria": rules,
                "is_active": True,
                "attached_at": now,
                "attached_by": attached_by,
            }
            for agent_id in agent_ids
        ])
        stmt = stmt.on_conflict_do_update(
            index_elements=["form_id", "agent_id"],
            set_={
                "criteria": stmt.excluded.criteria,
                "is_active": True,
                "attached_at": stmt.excluded.attached_at,
                "attached_by": stmt.excluded.attached_by,
            },
        )
        try:
            await db.execute(stmt)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        attachments = (await db.execute(
            select(FormAttachment)
            .where(FormAttachment.form_id == form.id, FormAttachment.agent_id.in_(agent_ids))
            .order_by(FormAttachment.agent_id)
            .execution_options(populate_existing=True)
        )).scalars().all()

        logger.info(
            sanitize_log_message(
                "Form attachments saved",
                FormID=form.id,
                AgentCount=len(agent_ids),
                RuleCount=len(rules),
                RequestID=actor.request_id if actor else None,
            )
        )
        await self.audit.record(
            ActionType.ATTACHMENT_SAVED,
            resource_type="form",
            resource_id=form.id,
            details={"agent_ids": agent_ids, "criteria": rules},
            actor=actor,
        )
        return list(attachments)

    async def detach_agent(
        self,
        db: AsyncSession,
        form_id: int,
        agent_id: int,
        tenant_id: Optional[int] = None,
        actor: Optional[AuditActor] = None,
    ) -> None:
        """
        Raises:
            FormNotFoundException, AgentNotFoundException (no active attachment)
        """
        form = await self.get_form(db, form_id, tenant_id)
        result = await db.execute(
            update(FormAttachment)
            .where(
                FormAttachment.form_id == form.id,
                FormAttachment.agent_id == agent_id,
                FormAttachment.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise AgentNotFoundException(detail="Agent is not attached to this form")
        await db.commit()

        await self.audit.record(
            ActionType.ATTACHMENT_REMOVED,
            resource_type="form",
            resource_id=form_id,
            details={"agent_id": agent_id},
            actor=actor,
        )

    @staticmethod
    async def list_attachments(
        db: AsyncSession,
        form_id: int,
        tenant_id: Optional[int] = None,
        include_inactive: bool = False,
    ) -> List[FormAttachment]:
        await FormService.get_form(db, form_id, tenant_id)
        query = select(FormAttachment).where(FormAttachment.form_id == form_id)
        if not include_inactive:
            query = query.where(FormAttachment.is_active.is_(True))
        result = await db.execute(query.order_by(FormAttachment.agent_id))
        return list(result.scalars().all())
