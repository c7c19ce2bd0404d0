"""
Tests for API endpoints including health checks, authentication and error responses.
"""
import pytest
from fieldforms.models.audit_log import ActionType
from conftest import OTHER_TENANT_ID, create_agent, create_form


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_health_check(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    async def test_root_endpoint(self, async_client):
        response = await async_client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert "message" in data
        assert "docs" in data

    async def test_request_id_header(self, async_client):
        response = await async_client.get("/health")
        assert response.headers.get("X-Request-ID")


class TestSecurityHeaders:
    """Tests for hardening headers and body limits."""

    async def test_api_headers(self, async_client):
        response = await async_client.get("/health")

        assert response.headers["Content-Security-Policy"].startswith("default-src 'none'")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"

    async def test_oversized_body_is_413(self, async_client, api_key_header):
        from fieldforms.config import settings

        response = await async_client.post(
            "/api/v1/forms",
            content=b"x" * (settings.MAX_REQUEST_SIZE + 1),
            headers={**api_key_header, "Content-Type": "application/json"},
        )

        assert response.status_code == 413


class TestAuthentication:

    async def test_missing_api_key(self, async_client):
        response = await async_client.get("/api/v1/forms")
        assert response.status_code == 401

    async def test_unknown_api_key(self, async_client):
        response = await async_client.get("/api/v1/forms", headers={"X-API-Key": "ffe_not-a-key"})
        assert response.status_code == 401


class TestFormEndpoints:

    async def test_create_and_get_form(self, async_client, api_key_header):
        response = await async_client.post(
            "/api/v1/forms",
            json={
                "title": "Outlet audit",
                "cycles_per_month": 2,
                "freeze_enabled": True,
                "freeze_duration_seconds": 3600,
                "form_schema": [{"name": "notes", "type": "text"}],
            },
            headers=api_key_header,
        )
        assert response.status_code == 201
        form = response.json()
        assert form["freeze_duration_seconds"] == 3600
        assert form["internal_form_id"].startswith("FORM-")

        response = await async_client.get(f"/api/v1/forms/{form['id']}", headers=api_key_header)
        assert response.status_code == 200
        assert response.json()["title"] == "Outlet audit"

    async def test_freeze_without_duration_is_422(self, async_client, api_key_header):
        response = await async_client.post(
            "/api/v1/forms",
            json={"title": "Outlet audit", "freeze_enabled": True},
            headers=api_key_header,
        )
        assert response.status_code == 422

    async def test_form_of_another_tenant_is_404(self, async_client, api_key_header, db_session):
        form = await create_form(db_session, tenant_id=OTHER_TENANT_ID)
        response = await async_client.get(f"/api/v1/forms/{form.id}", headers=api_key_header)

        assert response.status_code == 404
        assert response.json()["reason"] == "not_found"

    async def test_patch_records_history(self, async_client, api_key_header, db_session):
        form = await create_form(db_session, cycles_per_month=1)

        response = await async_client.patch(
            f"/api/v1/forms/{form.id}",
            json={"cycles_per_month": 3, "changed_by": 8},
            headers=api_key_header,
        )
        assert response.status_code == 200
        assert response.json()["cycles_per_month"] == 3

        response = await async_client.get(f"/api/v1/forms/{form.id}/config-history", headers=api_key_header)
        history = response.json()
        assert [(h["field_name"], h["old_value"], h["new_value"]) for h in history] == [
            ("cycles_per_month", "1", "3")
        ]

    @pytest.mark.parametrize("body", [
        {"title": None},
        {"freeze_enabled": None},
        {"cycles_per_month": None, "description": "x"},
    ])
    async def test_patch_null_required_field_is_422(self, async_client, api_key_header, db_session, body):
        form = await create_form(db_session, title="Outlet audit")

        response = await async_client.patch(f"/api/v1/forms/{form.id}", json=body, headers=api_key_header)
        assert response.status_code == 422

        response = await async_client.get(f"/api/v1/forms/{form.id}", headers=api_key_header)
        assert response.json()["title"] == "Outlet audit"

    async def test_patch_null_description_clears_it(self, async_client, api_key_header, db_session):
        form = await create_form(db_session)

        response = await async_client.patch(
            f"/api/v1/forms/{form.id}", json={"description": None}, headers=api_key_header
        )
        assert response.status_code == 200
        assert response.json()["description"] is None

    async def test_invalid_criteria_is_422(self, async_client, api_key_header, db_session, agent):
        form = await create_form(db_session, attach_to_specific_agents=True)

        response = await async_client.put(
            f"/api/v1/forms/{form.id}/attachments",
            json={"agent_ids": [agent.id], "criteria": [{"field": "salary", "operator": "equals", "value": "1"}]},
            headers=api_key_header,
        )

        assert response.status_code == 422
        assert response.json()["reason"] == "invalid_criteria"


class TestAgentFlow:
    """Visibility, submission and review through the API."""

    async def test_visibility_not_attached_is_200(self, async_client, api_key_header, db_session, agent):
        form = await create_form(db_session, attach_to_specific_agents=True)

        response = await async_client.get(
            f"/api/v1/agents/{agent.id}/forms/{form.id}/visibility", headers=api_key_header
        )

        assert response.status_code == 200
        assert response.json()["visible"] is False
        assert response.json()["reason"] == "not_attached_to_agent"

    async def test_export_submissions_csv(self, async_client, api_key_header, db_session, agent):
        form = await create_form(db_session, cycles_per_month=2)
        response = await async_client.post(
            f"/api/v1/agents/{agent.id}/forms/{form.id}/submissions",
            json={"submitted_by": 501, "submission_data": {"notes": "ok"}},
            headers=api_key_header,
        )
        assert response.status_code == 201

        response = await async_client.get(f"/api/v1/forms/{form.id}/submissions/export", headers=api_key_header)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("Submission ID,Agent Name,Agent Code,Cycle,Status")
        assert len(lines) == 2
        assert "DKR-0042" in lines[1]
        assert lines[1].endswith(",ok")

        other = await create_form(db_session, tenant_id=OTHER_TENANT_ID)
        response = await async_client.get(f"/api/v1/forms/{other.id}/submissions/export", headers=api_key_header)
        assert response.status_code == 404

    async def test_attach_then_submit_then_frozen(self, async_client, api_key_header, db_session, agent, clock):
        form = await create_form(db_session, cycles_per_month=2, freeze_seconds=1800, attach_to_specific_agents=True)
        response = await async_client.put(
            f"/api/v1/forms/{form.id}/attachments",
            json={"agent_ids": [agent.id], "criteria": [{"field": "status", "operator": "equals", "value": "active"}]},
            headers=api_key_header,
        )
        assert response.status_code == 200

        response = await async_client.get(f"/api/v1/agents/{agent.id}/forms", headers=api_key_header)
        assert [f["form_id"] for f in response.json()["forms"]] == [form.id]

        response = await async_client.post(
            f"/api/v1/agents/{agent.id}/forms/{form.id}/submissions",
            json={"submitted_by": 501, "submission_data": {"notes": "ok"}, "latitude": 14.71, "longitude": -17.46},
            headers=api_key_header,
        )
        assert response.status_code == 201
        assert response.json()["cycle_number"] == 1

        clock.advance(minutes=10)
        response = await async_client.post(
            f"/api/v1/agents/{agent.id}/forms/{form.id}/submissions",
            json={"submitted_by": 501},
            headers=api_key_header,
        )
        assert response.status_code == 409
        body = response.json()
        assert body["reason"] == "form_frozen"
        assert body["visibility"]["remaining_seconds"] == 20 * 60

        response = await async_client.get(
            f"/api/v1/agents/{agent.id}/forms/{form.id}/cycle-log", headers=api_key_header
        )
        assert response.status_code == 200
        assert response.json()["current_cycle"] == 1
        assert response.json()["is_frozen"] is True

    async def test_cycle_log_404_before_first_touch(self, async_client, api_key_header, db_session, agent):
        form = await create_form(db_session)
        response = await async_client.get(
            f"/api/v1/agents/{agent.id}/forms/{form.id}/cycle-log", headers=api_key_header
        )
        assert response.status_code == 404

    async def test_agent_of_another_tenant_is_404(self, async_client, api_key_header, db_session):
        outsider = await create_agent(db_session, tenant_id=OTHER_TENANT_ID)
        response = await async_client.get(f"/api/v1/agents/{outsider.id}/forms", headers=api_key_header)
        assert response.status_code == 404

    async def test_four_eye_review(self, async_client, api_key_header, db_session, agent):
        form = await create_form(db_session)
        response = await async_client.post(
            f"/api/v1/agents/{agent.id}/forms/{form.id}/submissions",
            json={"submitted_by": 501},
            headers=api_key_header,
        )
        submission_id = response.json()["submission_id"]

        response = await async_client.post(
            f"/api/v1/submissions/{submission_id}/approve", json={"reviewer_id": 501}, headers=api_key_header
        )
        assert response.status_code == 403
        assert response.json()["reason"] == "self_review_forbidden"

        response = await async_client.post(
            f"/api/v1/submissions/{submission_id}/reject", json={"reviewer_id": 777, "reason": "  "},
            headers=api_key_header,
        )
        assert response.status_code == 422

        response = await async_client.post(
            f"/api/v1/submissions/{submission_id}/reject", json={"reviewer_id": 777, "reason": "Blurry photo"},
            headers=api_key_header,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["review_notes"] == "Blurry photo"

        response = await async_client.post(
            f"/api/v1/submissions/{submission_id}/approve", json={"reviewer_id": 778}, headers=api_key_header
        )
        assert response.status_code == 409
        assert response.json()["reason"] == "already_reviewed"

        response = await async_client.get(
            "/api/v1/submissions", params={"exclude_rejected": True}, headers=api_key_header
        )
        assert response.json()["total"] == 0


class TestRolloverAndAudit:

    async def test_rollover_event(self, async_client, api_key_header, clock):
        response = await async_client.post("/api/v1/rollover", json={"triggered_by": 1}, headers=api_key_header)
        assert response.status_code == 201
        assert response.json()["event_data"]["reset_month"] == "2025-03-01"

        response = await async_client.get("/api/v1/rollover/events", headers=api_key_header)
        assert response.json()["total"] == 1

    async def test_audit_actor_is_api_key(self, async_client, api_key_header, audit_sink):
        await async_client.post("/api/v1/forms", json={"title": "Outlet audit"}, headers=api_key_header)

        event = audit_sink.events[-1]
        assert event.action_type == ActionType.FORM_CREATED
        assert event.actor.user_type.value == "api_key"
        assert event.actor.request_id
