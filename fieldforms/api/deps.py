import uuid
from typing import Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.database import get_db, AsyncSessionLocal
from fieldforms.models.agent import Agent
from fieldforms.models.api_key import ApiKey
from fieldforms.models.audit_log import UserType
from fieldforms.core.api_key import validate_api_key
from fieldforms.core.clock import Clock, system_clock
from fieldforms.core.exceptions import AgentNotFoundException
from fieldforms.services.audit_service import AuditActor, AuditService, build_audit_service
from fieldforms.services.form_service import FormService
from fieldforms.services.visibility_service import VisibilityService
from fieldforms.services.submission_service import SubmissionService
from fieldforms.services.review_service import ReviewService
from fieldforms.services.rollover_service import RolloverService
from fieldforms.services.team_service import TeamService

_audit_service: Optional[AuditService] = None


def get_clock() -> Clock:
    """Time source for every engine decision made in a request."""
    return system_clock


def get_audit_service() -> AuditService:
    """Process-wide audit fan-out (database, plus the external sink when configured)."""
    global _audit_service
    if _audit_service is None:
        _audit_service = build_audit_service(AsyncSessionLocal)
    return _audit_service


# Service Dependencies for Dependency Injection
def get_form_service(
    clock: Clock = Depends(get_clock),
    audit: AuditService = Depends(get_audit_service),
) -> FormService:
    return FormService(clock, audit)


def get_visibility_service(
    clock: Clock = Depends(get_clock),
    audit: AuditService = Depends(get_audit_service),
) -> VisibilityService:
    return VisibilityService(clock, audit)


def get_submission_service(
    clock: Clock = Depends(get_clock),
    audit: AuditService = Depends(get_audit_service),
) -> SubmissionService:
    return SubmissionService(clock, audit)


def get_review_service(
    clock: Clock = Depends(get_clock),
    audit: AuditService = Depends(get_audit_service),
) -> ReviewService:
    return ReviewService(clock, audit)


def get_rollover_service(
    clock: Clock = Depends(get_clock),
    audit: AuditService = Depends(get_audit_service),
) -> RolloverService:
    return RolloverService(clock, audit)


def get_team_service(clock: Clock = Depends(get_clock)) -> TeamService:
    return TeamService(clock)


class AuditContext:
    """Request-scoped caller identity: API key, tenant and request id."""

    def __init__(self, request: Request, api_key: ApiKey):
        if not hasattr(request.state, "request_id"):
            request.state.request_id = str(uuid.uuid4())

        self.request = request
        self.request_id = request.state.request_id
        self.api_key_id = api_key.id
        self.tenant_id = api_key.tenant_id

    @property
    def actor(self) -> AuditActor:
        return AuditActor(
            user_type=UserType.API_KEY,
            user_id=self.api_key_id,
            request_id=self.request_id,
        )


async def get_audit_context_with_api_key(
    request: Request,
    api_key: ApiKey = Depends(validate_api_key)
) -> AuditContext:
    """
    Get request-scoped audit context with API key authentication.

    Usage:
        @router.post("/endpoint")
        async def endpoint(audit_context: AuditContext = Depends(get_audit_context_with_api_key)):
            ...
    """
    return AuditContext(request=request, api_key=api_key)


async def get_tenant_agent(
    agent_id: int,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db),
) -> Agent:
    """Agent from the path, restricted to the caller's tenant."""
    agent = await db.get(Agent, agent_id)
    if agent is None or agent.tenant_id != audit_context.tenant_id:
        raise AgentNotFoundException()
    return agent
