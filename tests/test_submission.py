"""
Tests for submitting forms against the monthly cycle budget.
"""
import asyncio
import csv
import io
import pytest
from datetime import timedelta
from sqlalchemy import func, select
from fieldforms.models.cycle_log import CycleLog
from fieldforms.models.submission import Submission, SubmissionStatus
from fieldforms.core.exceptions import CycleConflictException, FormNotFoundException, FormNotVisibleException
from fieldforms.services.audit_service import AuditService
from fieldforms.services.review_service import ReviewService
from fieldforms.services.submission_service import SubmissionService
from conftest import FailingAuditSink, OTHER_TENANT_ID, create_form

SUBMITTER_ID = 501


@pytest.fixture
def service(clock, audit_service):
    return SubmissionService(clock, audit_service)


async def submit(service, db, form, agent, **kwargs):
    return await service.submit(
        db, form.id, agent.id, payload={"notes": "shelf restocked"}, submitted_by=SUBMITTER_ID, **kwargs
    )


class TestSubmit:

    async def test_submission_consumes_a_cycle(self, db_session, service, agent, audit_sink):
        form = await create_form(db_session, cycles_per_month=2)

        result = await submit(
            service, db_session, form, agent,
            latitude=14.7167, longitude=-17.4677, time_spent_seconds=420,
            supervisor_name="Moussa Ba", supervisor_code="SUP-7",
        )

        submission = await db_session.get(Submission, result.submission_id)
        assert result.cycle_number == 1
        assert result.frozen_until is None
        assert submission.status == SubmissionStatus.PENDING
        assert submission.submitted_by == SUBMITTER_ID
        assert submission.submission_data == {"notes": "shelf restocked"}
        assert submission.latitude == pytest.approx(14.7167)
        assert submission.supervisor_code == "SUP-7"

        log = await db_session.get(CycleLog, submission.cycle_log_id, populate_existing=True)
        assert log.current_cycle == 1
        assert log.submissions_count == 1
        assert audit_sink.actions() == ["cycle_log_created", "submission_created"]

    async def test_cycle_numbers_increase_until_max(self, db_session, service, agent):
        form = await create_form(db_session, cycles_per_month=3)

        numbers = [(await submit(service, db_session, form, agent)).cycle_number for _ in range(3)]
        assert numbers == [1, 2, 3]

        with pytest.raises(FormNotVisibleException) as exc_info:
            await submit(service, db_session, form, agent)
        assert exc_info.value.reason == "max_cycles_reached"
        assert exc_info.value.status_code == 409

    async def test_hidden_form_is_refused(self, db_session, service, agent):
        form = await create_form(db_session, attach_to_specific_agents=True)
        with pytest.raises(FormNotVisibleException) as exc_info:
            await submit(service, db_session, form, agent)
        assert exc_info.value.reason == "not_attached_to_agent"

        count = (await db_session.execute(select(func.count(Submission.id)))).scalar_one()
        assert count == 0

    async def test_form_of_another_tenant_is_refused(self, db_session, service, agent):
        form = await create_form(db_session, tenant_id=OTHER_TENANT_ID)
        with pytest.raises(FormNotVisibleException) as exc_info:
            await submit(service, db_session, form, agent, tenant_id=agent.tenant_id)
        assert exc_info.value.reason == "form_not_found_or_inactive"

    async def test_failing_audit_sink_does_not_fail_submission(self, db_session, clock, agent):
        service = SubmissionService(clock, AuditService([FailingAuditSink()]))
        form = await create_form(db_session)

        result = await submit(service, db_session, form, agent)

        assert await db_session.get(Submission, result.submission_id) is not None


class TestFreezeLifecycle:

    async def test_submit_freeze_expire_submit(self, db_session, service, agent, clock, audit_sink):
        form = await create_form(db_session, cycles_per_month=2, freeze_seconds=3600)

        first = await submit(service, db_session, form, agent)
        assert first.frozen_until == clock.now() + timedelta(hours=1)
        assert "cycle_log_frozen" in audit_sink.actions()

        clock.advance(minutes=30)
        with pytest.raises(FormNotVisibleException) as exc_info:
            await submit(service, db_session, form, agent)
        assert exc_info.value.reason == "form_frozen"
        assert exc_info.value.visibility.remaining == timedelta(minutes=30)

        clock.advance(minutes=30)
        second = await submit(service, db_session, form, agent)
        assert second.cycle_number == 2
        assert "cycle_log_unfrozen" in audit_sink.actions()

        clock.advance(hours=2)
        with pytest.raises(FormNotVisibleException) as exc_info:
            await submit(service, db_session, form, agent)
        assert exc_info.value.reason == "max_cycles_reached"


class TestConcurrentSubmissions:

    @pytest.mark.parametrize("submitters,cycles", [(6, 3), (4, 1), (2, 4)])
    async def test_no_lost_updates(self, db_session, session_factory, clock, audit_service, agent, submitters, cycles):
        form = await create_form(db_session, cycles_per_month=cycles)

        async def attempt():
            service = SubmissionService(clock, audit_service, conflict_retries=4)
            async with session_factory() as session:
                try:
                    result = await submit(service, session, form, agent)
                except FormNotVisibleException as e:
                    return e.reason
                return result.cycle_number

        outcomes = await asyncio.gather(*[attempt() for _ in range(submitters)])

        accepted = sorted(outcome for outcome in outcomes if isinstance(outcome, int))
        assert accepted == list(range(1, min(submitters, cycles) + 1))
        assert all(outcome == "max_cycles_reached" for outcome in outcomes if not isinstance(outcome, int))

        log = (await db_session.execute(
            select(CycleLog).execution_options(populate_existing=True)
        )).scalar_one()
        assert log.current_cycle == min(submitters, cycles)
        count = (await db_session.execute(select(func.count(Submission.id)))).scalar_one()
        assert count == min(submitters, cycles)

    async def test_conflict_after_retries_exhausted(self, db_session, clock, audit_service, agent, monkeypatch):
        form = await create_form(db_session, cycles_per_month=4)
        service = SubmissionService(clock, audit_service, conflict_retries=2)
        calls = []

        async def always_lose(db, log, observed_cycle, now):
            calls.append(observed_cycle)
            return None

        monkeypatch.setattr(service.visibility.cycle_logs, "consume_cycle", always_lose)

        with pytest.raises(CycleConflictException) as exc_info:
            await submit(service, db_session, form, agent)
        assert exc_info.value.status_code == 409
        assert len(calls) == 3


class TestListSubmissions:

    async def test_filters_and_pagination(self, db_session, service, agent, clock):
        first_form = await create_form(db_session, title="Outlet audit", cycles_per_month=4)
        second_form = await create_form(db_session, title="Stock count", cycles_per_month=4)
        for _ in range(3):
            await submit(service, db_session, first_form, agent)
            clock.advance(minutes=1)
        await submit(service, db_session, second_form, agent)

        items, total = await SubmissionService.list_submissions(db_session, tenant_id=agent.tenant_id)
        assert total == 4
        assert items[0].form_id == second_form.id

        items, total = await SubmissionService.list_submissions(
            db_session, form_id=first_form.id, limit=2, offset=0
        )
        assert total == 3
        assert [item.cycle_number for item in items] == [3, 2]

        _, total = await SubmissionService.list_submissions(db_session, tenant_id=OTHER_TENANT_ID)
        assert total == 0


class TestExportSubmissions:

    async def test_csv_columns_and_rejected_filter(self, db_session, service, agent, clock, audit_service):
        form = await create_form(db_session, cycles_per_month=3)
        first = await submit(
            service, db_session, form, agent,
            latitude=14.7167, longitude=-17.4677, supervisor_code="SUP-7",
        )
        clock.advance(minutes=5)
        second = await submit(service, db_session, form, agent)
        await ReviewService(clock, audit_service).reject(db_session, second.submission_id, 777, "Blurry photo")

        content = await SubmissionService.export_submissions_csv(db_session, form.id, tenant_id=agent.tenant_id)
        rows = list(csv.reader(io.StringIO(content)))

        header = rows[0]
        assert header[:5] == ["Submission ID", "Agent Name", "Agent Code", "Cycle", "Status"]
        assert header[-1] == "notes"
        assert len(rows) == 2
        record = dict(zip(header, rows[1]))
        assert record["Submission ID"] == str(first.submission_id)
        assert record["Agent Name"] == "Amina Diallo"
        assert record["Agent Code"] == "DKR-0042"
        assert record["Cycle"] == "1"
        assert record["Status"] == "pending"
        assert record["Latitude"] == "14.7167"
        assert record["Supervisor Code"] == "SUP-7"
        assert record["Reviewed By"] == ""
        assert record["notes"] == "shelf restocked"

        content = await SubmissionService.export_submissions_csv(
            db_session, form.id, tenant_id=agent.tenant_id, include_rejected=True
        )
        rows = list(csv.reader(io.StringIO(content)))
        assert [row[0] for row in rows[1:]] == [str(first.submission_id), str(second.submission_id)]
        rejected = dict(zip(rows[0], rows[2]))
        assert rejected["Status"] == "rejected"
        assert rejected["Reviewed By"] == "777"
        assert rejected["Rejection Reason"] == "Blurry photo"

    async def test_form_of_another_tenant_is_not_found(self, db_session, agent):
        form = await create_form(db_session, tenant_id=OTHER_TENANT_ID)
        with pytest.raises(FormNotFoundException):
            await SubmissionService.export_submissions_csv(db_session, form.id, tenant_id=agent.tenant_id)
