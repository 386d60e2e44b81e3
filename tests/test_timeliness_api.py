"""
Tests — task lifecycle and graded views over HTTP, plus health probes.
"""

from datetime import timedelta

import pytest

from fieldops.core.exceptions import NotFoundError
from fieldops.models import db
from fieldops.models.scheduling import NotificationLog
from fieldops.models.timeliness import TrackableTask
from fieldops.services import timeliness_service as svc
from fieldops.services.timeliness import DEFAULT_SLA_RULES, SLARules
from fieldops.utils.helpers import as_utc, parse_datetime, utcnow
from tests.conftest import NOW, tenant_headers

H = timedelta(hours=1)


def _api(client, method, url, tenant, **kwargs):
    return getattr(client, method)(url, headers=tenant_headers(tenant), **kwargs)


# ═════════════════════════════════════════════════════════════════════════════
# Service-level lifecycle
# ═════════════════════════════════════════════════════════════════════════════

class TestLifecycleService:

    def test_require_update_defaults(self, tenant, make_project):
        project = make_project()
        task = svc.require_update(tenant.id, project.id, now=NOW)
        assert task.kind == "UPDATE"
        assert task.title == "Supervisor update requested"
        assert as_utc(task.due_at) == NOW + H

    def test_change_request_defaults(self, tenant, make_project):
        project = make_project()
        task = svc.create_change_request(tenant.id, project.id, "  Move dumpster  ", now=NOW)
        assert task.kind == "CHANGE_REQUEST"
        assert task.title == "Move dumpster"
        assert as_utc(task.due_at) == NOW + 24 * H

    def test_acknowledge_is_idempotent(self, tenant, make_project, make_task):
        task = make_task(make_project(), NOW)
        svc.acknowledge(tenant.id, task.id, now=NOW - H)
        again = svc.acknowledge(tenant.id, task.id, now=NOW + 5 * H)
        assert as_utc(again.submitted_at) == NOW - H

    def test_cross_tenant_lookup_is_not_found(self, make_tenant, make_project, make_task):
        other = make_tenant(name="Other Co")
        task = make_task(make_project(), NOW)
        with pytest.raises(NotFoundError):
            svc.get_task(other.id, task.id)

    def test_resolve_sla_rules(self, make_project):
        assert svc.resolve_sla_rules(make_project().id) == DEFAULT_SLA_RULES
        strict = make_project(name="Strict", sla=(10, 20))
        assert svc.resolve_sla_rules(strict.id) == SLARules(10, 20)

    def test_overview_grades_both_ways(self, tenant, make_project, make_task):
        project = make_project(sla=(30, 60))
        make_task(project, NOW + 20 * timedelta(minutes=1), title="soon")
        make_task(project, NOW - 2 * H, title="late")
        make_task(project, NOW - H, title="done early", submitted_at=NOW - 2 * H)

        overview = svc.tenant_overview(tenant.id, now=NOW)
        by_title = {row["title"]: row for row in overview["items"]}
        assert by_title["soon"]["status"] == "AT_RISK"
        assert by_title["soon"]["sla_score"] == "GREEN"
        assert by_title["late"]["status"] == "OVERDUE"
        assert by_title["late"]["sla_score"] == "RED"
        assert by_title["late"]["label"] == "Late"
        assert by_title["done early"]["status"] == "ON_TIME"
        assert overview["counts"] == {"AT_RISK": 1, "OVERDUE": 1, "ON_TIME": 1}

    def test_sla_scores_worst_per_project(self, tenant, make_project, make_task):
        calm = make_project(name="Calm")
        busy = make_project(name="Busy")
        make_task(calm, NOW + H)
        make_task(busy, NOW + H)
        make_task(busy, NOW - 30 * timedelta(minutes=1))
        make_task(busy, NOW - 5 * H, deleted_at=NOW)

        scores = {row["project_name"]: row for row in svc.project_sla_scores(tenant.id, now=NOW)}
        assert scores["Calm"]["score"] == "GREEN"
        assert scores["Busy"]["score"] == "AMBER"
        assert scores["Busy"]["counts"] == {"GREEN": 1, "AMBER": 1, "RED": 0}


# ═════════════════════════════════════════════════════════════════════════════
# HTTP
# ═════════════════════════════════════════════════════════════════════════════

class TestTaskAPI:

    def test_require_update(self, client, tenant, make_project):
        project = make_project()
        before = utcnow()
        res = _api(client, "post", f"/api/v1/projects/{project.id}/require-update", tenant, json={})
        assert res.status_code == 201
        body = res.get_json()
        assert body["kind"] == "UPDATE"
        due = parse_datetime(body["due_at"])
        assert before + H <= due <= utcnow() + H

    def test_require_update_explicit_due(self, client, tenant, make_project):
        project = make_project()
        res = _api(client, "post", f"/api/v1/projects/{project.id}/require-update", tenant,
                   json={"title": "Crane inspection", "due_at": "2026-03-03T08:00:00Z"})
        assert res.status_code == 201
        assert res.get_json()["title"] == "Crane inspection"
        assert parse_datetime(res.get_json()["due_at"]).hour == 8

    def test_change_request_requires_title(self, client, tenant, make_project):
        project = make_project()
        res = _api(client, "post", f"/api/v1/projects/{project.id}/change-requests", tenant, json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_change_request_bad_due(self, client, tenant, make_project):
        project = make_project()
        res = _api(client, "post", f"/api/v1/projects/{project.id}/change-requests", tenant,
                   json={"title": "Extend fence", "due_at": "next tuesday"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_other_tenants_project_is_404(self, client, make_tenant, make_project):
        other = make_tenant(name="Other Co")
        project = make_project()
        res = _api(client, "post", f"/api/v1/projects/{project.id}/require-update", other, json={})
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_missing_tenant_header(self, client, make_project):
        project = make_project()
        res = client.post(f"/api/v1/projects/{project.id}/require-update", json={})
        assert res.status_code == 400

    def test_ack_twice_keeps_first_submission(self, client, tenant, make_project, make_task):
        task = make_task(make_project(), utcnow() + H)
        first = _api(client, "post", f"/api/v1/tasks/{task.id}/ack", tenant)
        second = _api(client, "post", f"/api/v1/tasks/{task.id}/ack", tenant)
        assert first.status_code == second.status_code == 200
        assert first.get_json()["submitted_at"] == second.get_json()["submitted_at"]

    def test_soft_delete(self, client, tenant, make_project, make_task):
        task = make_task(make_project(), utcnow() + H)
        res = _api(client, "delete", f"/api/v1/tasks/{task.id}", tenant)
        assert res.get_json() == {"deleted": True, "id": task.id}

        db.session.expire_all()
        assert db.session.get(TrackableTask, task.id).deleted_at is not None
        assert _api(client, "delete", f"/api/v1/tasks/{task.id}", tenant).status_code == 404
        assert _api(client, "post", f"/api/v1/tasks/{task.id}/ack", tenant).status_code == 404


class TestGradedViewsAPI:

    def test_overview_filters_by_project(self, client, tenant, make_project, make_task):
        a = make_project(name="A")
        b = make_project(name="B")
        make_task(a, utcnow() - 3 * H)
        make_task(b, utcnow() + 3 * H)

        res = _api(client, "get", f"/api/v1/timeliness/overview?project_id={a.id}", tenant)
        body = res.get_json()
        assert len(body["items"]) == 1
        assert body["items"][0]["project_name"] == "A"
        assert body["items"][0]["status"] == "OVERDUE"

    def test_sla_scores(self, client, tenant, make_project, make_task):
        make_task(make_project(name="Late Site"), utcnow() - 3 * H)
        res = _api(client, "get", "/api/v1/timeliness/sla-scores", tenant)
        body = res.get_json()
        assert body["total"] == 1
        assert body["projects"][0]["score"] == "RED"
        assert body["projects"][0]["label"] == "Late"

    def test_sla_policy_roundtrip(self, client, tenant, make_project):
        project = make_project()
        url = f"/api/v1/projects/{project.id}/sla-policy"

        body = _api(client, "get", url, tenant).get_json()
        assert body["is_default"] is True
        assert body["red_minutes"] == 120

        res = _api(client, "put", url, tenant, json={"red_minutes": 45})
        assert res.status_code == 200
        assert res.get_json() == {"project_id": project.id, "is_default": False,
                                  "at_risk_minutes": 60, "red_minutes": 45}

    @pytest.mark.parametrize("payload", [{"red_minutes": 0}, {"at_risk_minutes": "60"}, {}])
    def test_sla_policy_validation(self, client, tenant, make_project, payload):
        project = make_project()
        res = _api(client, "put", f"/api/v1/projects/{project.id}/sla-policy", tenant, json=payload)
        assert res.status_code == 422


class TestNotificationLogsAPI:

    def _log(self, tenant_id, **kwargs):
        data = {"tenant_id": tenant_id, "channel": "email", "recipient": "pm@acme.test",
                "category": "escalation", "outcome": "sent"}
        data.update(kwargs)
        db.session.add(NotificationLog(**data))
        db.session.commit()

    def test_scoped_and_filtered(self, client, tenant, make_tenant):
        other = make_tenant(name="Other Co")
        self._log(tenant.id)
        self._log(tenant.id, channel="sms", recipient="+15550100", outcome="error")
        self._log(other.id)

        body = _api(client, "get", "/api/v1/notification-logs", tenant).get_json()
        assert body["total"] == 2

        body = _api(client, "get", "/api/v1/notification-logs?channel=sms", tenant).get_json()
        assert [item["recipient"] for item in body["items"]] == ["+15550100"]

        body = _api(client, "get", "/api/v1/notification-logs?outcome=sent&limit=1", tenant).get_json()
        assert body["total"] == 1
        assert body["limit"] == 1

    def test_invalid_filter(self, client, tenant):
        res = _api(client, "get", "/api/v1/notification-logs?channel=pigeon", tenant)
        assert res.status_code == 400

    def test_negative_paging_is_clamped(self, client, tenant):
        self._log(tenant.id)
        res = _api(client, "get", "/api/v1/notification-logs?limit=-1&offset=-5", tenant)
        assert res.status_code == 200
        body = res.get_json()
        assert (body["limit"], body["offset"]) == (0, 0)
        assert body["total"] == 1
        assert body["items"] == []


class TestHealth:

    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["scheduler"] == {"enabled": False, "running": False}

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers.get("X-Request-ID") == "abc123"
