import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, Iterable, List, Tuple
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from fieldforms.config import settings
from fieldforms.models.audit_log import AuditLog, ActionType, UserType
from fieldforms.core.logging_utils import sanitize_log_message
from fieldforms.external.audit_sink_client import AuditSinkClient

logger = logging.getLogger(__name__)


@dataclass
class AuditActor:
    """Who triggered an engine transition, as far as the caller told us."""
    user_type: UserType = UserType.SYSTEM
    user_id: Optional[int] = None
    request_id: Optional[str] = None


SYSTEM_ACTOR = AuditActor()


@dataclass
class AuditEvent:
    action_type: ActionType
    resource_type: Optional[str] = None
    resource_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    actor: AuditActor = field(default_factory=AuditActor)
    status: str = "success"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type.value,
            "user_type": self.actor.user_type.value,
            "user_id": self.actor.user_id,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": self.details,
            "status": self.status,
            "request_id": self.actor.request_id,
        }


class AuditSink:
    """Destination for audit events."""

    async def emit(self, event: AuditEvent) -> None:
        raise NotImplementedError


class DatabaseAuditSink(AuditSink):
    """
    Writes AuditLog rows in a session of its own.

    Engine services emit only after committing their own work, so the
    audit write never shares (or blocks on) the caller's transaction.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def emit(self, event: AuditEvent) -> None:
        async with self.session_factory() as session:
            session.add(AuditLog(
                action_type=event.action_type,
                user_type=event.actor.user_type,
                user_id=event.actor.user_id,
                resource_type=event.resource_type,
                resource_id=event.resource_id,
                details=event.details,
                status=event.status,
                request_id=event.actor.request_id,
            ))
            await session.commit()


class HttpAuditSink(AuditSink):
    """Forwards events to the external audit sink."""

    def __init__(self, client: AuditSinkClient):
        self.client = client

    async def emit(self, event: AuditEvent) -> None:
        await self.client.send_event(event.to_payload())


class AuditService:
    """
    Fire-and-forget fan-out of engine transitions to the configured sinks.

    A failing sink is logged and skipped; it never fails or rolls back the
    transition being recorded.
    """

    def __init__(self, sinks: Optional[Iterable[AuditSink]] = None):
        self.sinks: List[AuditSink] = list(sinks or [])

    async def record(
        self,
        action_type: ActionType,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        actor: Optional[AuditActor] = None,
        status: str = "success",
    ) -> None:
        event = AuditEvent(
            action_type=action_type,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            actor=actor or SYSTEM_ACTOR,
            status=status,
        )
        for sink in self.sinks:
            try:
                await sink.emit(event)
            except Exception as e:
                logger.error(
                    sanitize_log_message(
                        "Audit sink failed",
                        Sink=type(sink).__name__,
                        Action=action_type.value,
                        ResourceType=resource_type,
                        ResourceID=resource_id,
                        Error=str(e),
                        RequestID=event.actor.request_id,
                    ),
                    exc_info=True,
                )

    @staticmethod
    async def get_audit_logs(
        db: AsyncSession,
        action_type: Optional[ActionType] = None,
        user_type: Optional[UserType] = None,
        user_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        status: Optional[str] = None,
        request_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[AuditLog], int]:
        """
        Query audit logs with filters.

        Returns:
            (page of AuditLog records newest first, total matching count)
        """
        conditions = []
        if action_type:
            conditions.append(AuditLog.action_type == action_type)
        if user_type:
            conditions.append(AuditLog.user_type == user_type)
        if user_id:
            conditions.append(AuditLog.user_id == user_id)
        if resource_type:
            conditions.append(AuditLog.resource_type == resource_type)
        if resource_id:
            conditions.append(AuditLog.resource_id == resource_id)
        if status:
            conditions.append(AuditLog.status == status)
        if request_id:
            conditions.append(AuditLog.request_id == request_id)
        if start_date:
            conditions.append(AuditLog.created_at >= start_date)
        if end_date:
            conditions.append(AuditLog.created_at <= end_date)

        query = select(AuditLog)
        count_query = select(func.count()).select_from(AuditLog)
        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        total = (await db.execute(count_query)).scalar_one()
        result = await db.execute(
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total


def build_audit_service(session_factory: async_sessionmaker) -> AuditService:
    """Database sink always; HTTP forwarding when AUDIT_SINK_URL is set."""
    sinks: List[AuditSink] = [DatabaseAuditSink(session_factory)]
    if settings.get_audit_sink_url():
        sinks.append(HttpAuditSink(AuditSinkClient()))
    return AuditService(sinks)
