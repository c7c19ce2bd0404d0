"""
Tests for supervisor team statistics.
"""
import pytest
from fieldforms.core.exceptions import AgentNotFoundException
from fieldforms.services.submission_service import SubmissionService
from fieldforms.services.team_service import TeamService
from conftest import OTHER_TENANT_ID, TENANT_ID, create_agent, create_form


@pytest.fixture
async def team(db_session):
    lead = await create_agent(db_session, full_name="Lead")
    manager = await create_agent(db_session, full_name="Manager", supervisor_id=lead.id)
    field_a = await create_agent(db_session, full_name="Awa", supervisor_id=manager.id)
    field_b = await create_agent(db_session, full_name="Binta", supervisor_id=manager.id)
    await create_agent(db_session, full_name="Unrelated")
    return lead, manager, field_a, field_b


class TestSubordinates:

    async def test_direct_and_indirect_reports(self, db_session, team):
        lead, manager, field_a, field_b = team
        assert await TeamService.get_subordinate_ids(db_session, lead.id) == sorted(
            [manager.id, field_a.id, field_b.id]
        )
        assert await TeamService.get_subordinate_ids(db_session, field_a.id) == []


class TestTeamFormStats:

    async def test_completion_rates(self, db_session, clock, audit_service, team):
        lead, manager, field_a, field_b = team
        form = await create_form(db_session, cycles_per_month=4)
        submissions = SubmissionService(clock, audit_service)
        for _ in range(3):
            await submissions.submit(db_session, form.id, field_a.id, payload={}, submitted_by=field_a.id)
        await submissions.visibility.check_visibility(db_session, form.id, field_b.id)

        stats = await TeamService(clock).get_team_form_stats(db_session, manager.id, tenant_id=TENANT_ID)

        assert [member.agent.full_name for member in stats.members] == ["Awa", "Binta"]
        awa, binta = stats.members
        assert (awa.completed_cycles, awa.allowed_cycles, awa.completion_rate) == (3, 4, 75.0)
        assert (binta.completed_cycles, binta.completion_rate) == (0, 0.0)
        assert stats.completion_rate == 37.5
        assert awa.cycle_logs[0].form.title == form.title

    async def test_no_reports(self, db_session, clock, team):
        _, _, field_a, _ = team
        stats = await TeamService(clock).get_team_form_stats(db_session, field_a.id)
        assert stats.members == []
        assert stats.completion_rate == 0.0

    async def test_supervisor_of_another_tenant(self, db_session, clock, team):
        lead = team[0]
        with pytest.raises(AgentNotFoundException):
            await TeamService(clock).get_team_form_stats(db_session, lead.id, tenant_id=OTHER_TENANT_ID)
