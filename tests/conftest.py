import itertools
import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import fieldforms.models  # noqa: F401
from fieldforms.database import Base, build_engine, build_session_factory, get_db
from fieldforms.models.agent import Agent
from fieldforms.models.api_key import ApiKey
from fieldforms.models.form import Form, FormAttachment
from fieldforms.core.api_key import generate_api_key, hash_api_key
from fieldforms.core.clock import FixedClock
from fieldforms.services.audit_service import AuditEvent, AuditService, AuditSink

# Test database URL (a file, so concurrent sessions really use separate connections)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test_field_forms.db"

test_engine = build_engine(TEST_DATABASE_URL)
TestSessionLocal = build_session_factory(test_engine)

TENANT_ID = 1
OTHER_TENANT_ID = 2

_form_numbers = itertools.count(1)


class RecordingAuditSink(AuditSink):
    """Keeps emitted events in memory."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> List[str]:
        return [event.action_type.value for event in self.events]


class FailingAuditSink(AuditSink):
    async def emit(self, event: AuditEvent) -> None:
        raise RuntimeError("audit sink unavailable")


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory():
    """Factory for extra sessions, one per simulated concurrent caller."""
    return TestSessionLocal


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def audit_service(audit_sink: RecordingAuditSink) -> AuditService:
    return AuditService([audit_sink])


async def create_agent(
    db: AsyncSession,
    full_name: str = "Amina Diallo",
    tenant_id: int = TENANT_ID,
    supervisor_id: Optional[int] = None,
    **profile,
) -> Agent:
    agent = Agent(tenant_id=tenant_id, full_name=full_name, supervisor_id=supervisor_id, **profile)
    db.add(agent)
    await db.commit()
    await db.refresh(agent)
    return agent


async def create_form(
    db: AsyncSession,
    title: str = "Outlet audit",
    tenant_id: int = TENANT_ID,
    cycles_per_month: int = 2,
    freeze_seconds: Optional[int] = None,
    attach_to_specific_agents: bool = False,
    is_active: bool = True,
) -> Form:
    form = Form(
        tenant_id=tenant_id,
        internal_form_id=f"FORM-2025-{next(_form_numbers):06d}",
        title=title,
        form_schema=[{"name": "notes", "type": "text"}],
        attach_to_specific_agents=attach_to_specific_agents,
        cycles_per_month=cycles_per_month,
        freeze_enabled=freeze_seconds is not None,
        freeze_duration=timedelta(seconds=freeze_seconds) if freeze_seconds is not None else None,
        is_active=is_active,
    )
    db.add(form)
    await db.commit()
    await db.refresh(form)
    return form


async def attach(db: AsyncSession, form: Form, agent: Agent, criteria: Optional[list] = None) -> FormAttachment:
    attachment = FormAttachment(form_id=form.id, agent_id=agent.id, criteria=criteria or [], is_active=True)
    db.add(attachment)
    await db.commit()
    await db.refresh(attachment)
    return attachment


@pytest.fixture
async def agent(db_session: AsyncSession) -> Agent:
    return await create_agent(
        db_session,
        email="amina.diallo@example.com",
        phone="+221 77 123 4567",
        status="active",
        agent_code="DKR-0042",
    )


@pytest.fixture
async def api_key_header(db_session: AsyncSession) -> dict:
    plain_key = generate_api_key()
    db_session.add(ApiKey(tenant_id=TENANT_ID, name="tests", key_hash=hash_api_key(plain_key), is_active=True))
    await db_session.commit()
    return {"X-API-Key": plain_key}


@pytest.fixture(scope="function")
async def async_client(db_session: AsyncSession, clock: FixedClock, audit_service: AuditService) -> AsyncGenerator:
    """Create an async test client with database, clock and audit overrides."""
    from httpx import AsyncClient, ASGITransport
    from fieldforms.main import app
    from fieldforms.api.deps import get_audit_service, get_clock
    from fieldforms.middleware.rate_limit import limiter

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_audit_service] = lambda: audit_service
    limiter_was_enabled = limiter.enabled
    limiter.enabled = False

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    limiter.enabled = limiter_was_enabled
    app.dependency_overrides.clear()
