"""
Tests for form administration: configuration, history and attachments.
"""
import pytest
from datetime import date, timedelta
from fieldforms.core.exceptions import (
    AgentNotFoundException,
    FormConfigurationException,
    FormNotFoundException,
    InvalidCriteriaException,
)
from fieldforms.services.form_service import FormService
from fieldforms.services.visibility_service import VisibilityService
from conftest import OTHER_TENANT_ID, TENANT_ID, create_agent


@pytest.fixture
def service(clock, audit_service):
    return FormService(clock, audit_service)


async def new_form(service, db, **kwargs):
    return await service.create_form(db, tenant_id=TENANT_ID, title="Outlet audit", **kwargs)


class TestCreateForm:

    async def test_defaults(self, db_session, service, audit_sink):
        form = await new_form(service, db_session)

        assert form.internal_form_id.startswith("FORM-2025-")
        assert form.cycles_per_month == 1
        assert form.freeze_enabled is False
        assert form.freeze_duration is None
        assert form.is_active is True
        assert audit_sink.actions() == ["form_created"]

    async def test_internal_ids_are_unique(self, db_session, service):
        ids = {(await new_form(service, db_session)).internal_form_id for _ in range(5)}
        assert len(ids) == 5

    @pytest.mark.parametrize("cycles", [0, 5])
    async def test_cycles_out_of_range(self, db_session, service, cycles):
        with pytest.raises(FormConfigurationException):
            await new_form(service, db_session, cycles_per_month=cycles)

    async def test_freeze_requires_duration(self, db_session, service):
        with pytest.raises(FormConfigurationException):
            await new_form(service, db_session, freeze_enabled=True)

    async def test_duration_requires_freeze(self, db_session, service):
        with pytest.raises(FormConfigurationException):
            await new_form(service, db_session, freeze_duration=timedelta(hours=1))


class TestUpdateForm:

    async def test_history_rows_for_config_fields_only(self, db_session, service, clock):
        form = await new_form(service, db_session)

        await service.update_form(
            db_session,
            form.id,
            {"title": "Outlet audit v2", "cycles_per_month": 3, "freeze_enabled": True,
             "freeze_duration": timedelta(minutes=90)},
            changed_by=12,
        )

        history = await FormService.get_config_history(db_session, form.id)
        changes = {(h.field_name, h.old_value, h.new_value) for h in history}
        assert changes == {
            ("cycles_per_month", "1", "3"),
            ("freeze_enabled", "false", "true"),
            ("freeze_duration", None, "5400"),
        }
        assert all(h.changed_by == 12 for h in history)
        assert all(h.effective_month == date(2025, 3, 1) for h in history)

    async def test_disabling_freeze_clears_duration(self, db_session, service):
        form = await new_form(service, db_session, freeze_enabled=True, freeze_duration=timedelta(hours=2))

        form = await service.update_form(db_session, form.id, {"freeze_enabled": False})

        assert form.freeze_duration is None

    async def test_unchanged_values_leave_no_history(self, db_session, service):
        form = await new_form(service, db_session, cycles_per_month=2)
        await service.update_form(db_session, form.id, {"cycles_per_month": 2})
        assert await FormService.get_config_history(db_session, form.id) == []

    async def test_invalid_merged_config_is_refused(self, db_session, service):
        form = await new_form(service, db_session)
        with pytest.raises(FormConfigurationException):
            await service.update_form(db_session, form.id, {"freeze_enabled": True})

    async def test_other_tenant_cannot_update(self, db_session, service):
        form = await new_form(service, db_session)
        with pytest.raises(FormNotFoundException):
            await service.update_form(db_session, form.id, {"title": "x"}, tenant_id=OTHER_TENANT_ID)

    async def test_deactivate_hides_form(self, db_session, service, clock, audit_service, agent, audit_sink):
        form = await new_form(service, db_session)

        await service.deactivate_form(db_session, form.id, changed_by=4)

        result = await VisibilityService(clock, audit_service).check_visibility(db_session, form.id, agent.id)
        assert result.reason == "form_not_found_or_inactive"
        assert "form_deactivated" in audit_sink.actions()
        history = await FormService.get_config_history(db_session, form.id)
        assert [(h.field_name, h.new_value) for h in history] == [("is_active", "false")]


class TestListForms:

    async def test_scoped_to_tenant(self, db_session, service):
        await new_form(service, db_session, department_id=7)
        await new_form(service, db_session)
        await service.create_form(db_session, tenant_id=OTHER_TENANT_ID, title="Elsewhere")

        forms, total = await FormService.list_forms(db_session, TENANT_ID)
        assert total == 2
        assert all(form.tenant_id == TENANT_ID for form in forms)

        forms, total = await FormService.list_forms(db_session, TENANT_ID, department_id=7)
        assert total == 1


class TestAttachments:

    async def test_attach_and_reattach(self, db_session, service, agent, audit_sink):
        form = await new_form(service, db_session, attach_to_specific_agents=True)
        other = await create_agent(db_session, full_name="Kofi Mensah")

        attachments = await service.attach_agents(
            db_session, form.id, [other.id, agent.id, agent.id],
            criteria=[{"field": "status", "operator": "equals", "value": "active"}],
            attached_by=3,
        )
        assert [a.agent_id for a in attachments] == sorted([agent.id, other.id])

        await service.detach_agent(db_session, form.id, other.id)
        assert [a.agent_id for a in await FormService.list_attachments(db_session, form.id)] == [agent.id]

        reattached = await service.attach_agents(db_session, form.id, [other.id], criteria=[])
        assert reattached[0].is_active is True
        assert reattached[0].criteria == []
        all_attachments = await FormService.list_attachments(db_session, form.id, include_inactive=True)
        assert len(all_attachments) == 2
        assert audit_sink.actions().count("attachment_saved") == 2

    async def test_invalid_criteria_refused_at_save(self, db_session, service, agent):
        form = await new_form(service, db_session, attach_to_specific_agents=True)
        with pytest.raises(InvalidCriteriaException):
            await service.attach_agents(
                db_session, form.id, [agent.id], criteria=[{"field": "salary", "operator": "equals", "value": "1"}]
            )

    async def test_agents_must_belong_to_tenant(self, db_session, service, agent):
        form = await new_form(service, db_session, attach_to_specific_agents=True)
        outsider = await create_agent(db_session, full_name="Ines Costa", tenant_id=OTHER_TENANT_ID)
        with pytest.raises(AgentNotFoundException):
            await service.attach_agents(db_session, form.id, [agent.id, outsider.id])

    async def test_detach_unknown_attachment(self, db_session, service, agent):
        form = await new_form(service, db_session)
        with pytest.raises(AgentNotFoundException):
            await service.detach_agent(db_session, form.id, agent.id)
