"""
Tests for month-scoped cycle logs.
"""
import asyncio
import pytest
from datetime import date, datetime, timedelta, timezone
from sqlalchemy import event, func, select
from fieldforms.models.cycle_log import CycleLog
from fieldforms.models.form import Form
from fieldforms.services.cycle_log_service import CycleLogService
from conftest import create_form, test_engine

MARCH = date(2025, 3, 1)


@pytest.fixture
def service(clock):
    return CycleLogService(clock)


class TestGetOrCreate:

    async def test_creates_then_fetches(self, db_session, service, agent, clock):
        form = await create_form(db_session, cycles_per_month=4, freeze_seconds=600)

        log, created = await service.get_or_create_log(db_session, form, agent.id, MARCH, clock.now())
        again, created_again = await service.get_or_create_log(db_session, form, agent.id, MARCH, clock.now())

        assert created is True
        assert created_again is False
        assert again.id == log.id
        assert log.current_cycle == 0
        assert log.max_cycles_allowed == 4
        assert log.config_snapshot["freeze_duration_seconds"] == 600

    async def test_one_log_per_month(self, db_session, service, agent, clock):
        form = await create_form(db_session)
        march, _ = await service.get_or_create_log(db_session, form, agent.id, MARCH, clock.now())
        april, created = await service.get_or_create_log(db_session, form, agent.id, date(2025, 4, 1), clock.now())

        assert created is True
        assert april.id != march.id

    async def test_concurrent_first_touch_creates_one_log(self, db_session, session_factory, service, agent, clock):
        form = await create_form(db_session, cycles_per_month=3)

        async def touch():
            async with session_factory() as session:
                detached = await session.get(Form, form.id)
                log, created = await service.get_or_create_log(session, detached, agent.id, MARCH, clock.now())
                await session.commit()
                return log.id, created

        outcomes = await asyncio.gather(*[touch() for _ in range(6)])

        assert len({log_id for log_id, _ in outcomes}) == 1
        assert sum(1 for _, created in outcomes if created) == 1
        count = (await db_session.execute(select(func.count(CycleLog.id)))).scalar_one()
        assert count == 1

    async def test_existing_log_is_read_without_insert(self, db_session, service, agent, clock):
        form = await create_form(db_session)
        await service.get_or_create_log(db_session, form, agent.id, MARCH, clock.now())
        await db_session.commit()

        statements = []

        def capture(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement.lstrip().upper())

        event.listen(test_engine.sync_engine, "before_cursor_execute", capture)
        try:
            _, created = await service.get_or_create_log(db_session, form, agent.id, MARCH, clock.now())
        finally:
            event.remove(test_engine.sync_engine, "before_cursor_execute", capture)

        assert created is False
        assert statements
        assert not any(statement.startswith("INSERT") for statement in statements)


class TestConsumeCycle:

    async def test_compare_and_set(self, db_session, service, agent, clock):
        form = await create_form(db_session, cycles_per_month=2)
        log, _ = await service.get_or_create_log(db_session, form, agent.id, MARCH, clock.now())

        consumed = await service.consume_cycle(db_session, log, 0, clock.now())
        stale = await service.consume_cycle(db_session, log, 0, clock.now())
        await db_session.commit()

        assert consumed.cycle_number == 1
        assert consumed.frozen_until is None
        assert stale is None
        refreshed = await service.refresh(db_session, log.id)
        assert refreshed.current_cycle == 1
        assert refreshed.submissions_count == 1
        assert refreshed.last_submission_at == clock.now()

    async def test_never_exceeds_max(self, db_session, service, agent, clock):
        form = await create_form(db_session, cycles_per_month=1)
        log, _ = await service.get_or_create_log(db_session, form, agent.id, MARCH, clock.now())

        assert await service.consume_cycle(db_session, log, 0, clock.now()) is not None
        assert await service.consume_cycle(db_session, log, 1, clock.now()) is None

    async def test_freeze_follows_snapshot(self, db_session, service, agent, clock):
        form = await create_form(db_session, freeze_seconds=7200)
        log, _ = await service.get_or_create_log(db_session, form, agent.id, MARCH, clock.now())

        consumed = await service.consume_cycle(db_session, log, 0, clock.now())
        await db_session.commit()

        assert consumed.frozen_until == clock.now() + timedelta(hours=2)
        refreshed = await service.refresh(db_session, log.id)
        assert refreshed.is_frozen is True
        assert refreshed.freeze_expires_at == consumed.frozen_until


class TestClearExpiredFreeze:

    async def test_only_expired_freezes_are_lifted(self, db_session, service, agent, clock):
        form = await create_form(db_session, freeze_seconds=60)
        log, _ = await service.get_or_create_log(db_session, form, agent.id, MARCH, clock.now())
        await service.consume_cycle(db_session, log, 0, clock.now())
        await db_session.commit()
        log = await service.refresh(db_session, log.id)

        early = await service.clear_expired_freeze(db_session, log, clock.now() + timedelta(seconds=59))
        lifted = await service.clear_expired_freeze(db_session, log, clock.now() + timedelta(seconds=60))
        repeated = await service.clear_expired_freeze(db_session, log, clock.now() + timedelta(seconds=61))

        assert early is None
        assert lifted is not None and lifted.is_frozen is False
        assert repeated is None

    async def test_get_current_log_does_not_create(self, db_session, service, agent):
        form = await create_form(db_session)
        now = datetime(2025, 3, 31, 23, 59, tzinfo=timezone.utc)
        assert await service.get_current_log(db_session, form.id, agent.id, now) is None

        await service.get_or_create_log(db_session, form, agent.id, MARCH, now)
        assert (await service.get_current_log(db_session, form.id, agent.id, now)).tracking_month == MARCH
        assert await service.get_current_log(db_session, form.id, agent.id, now + timedelta(minutes=1)) is None
