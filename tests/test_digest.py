"""
Tests — weekly digest aggregation and delivery.
"""

from datetime import timedelta
from unittest.mock import patch

from fieldops.services.delivery import sent
from fieldops.services.digest import (
    collect_digest,
    digest_recipients,
    digest_window,
    run_weekly_digest_for_tenant,
)
from fieldops.services.email_service import EmailService
from fieldops.services.timeliness import AMBER, GREEN, RED
from tests.conftest import NOW

H = timedelta(hours=1)
D = timedelta(days=1)


# ═════════════════════════════════════════════════════════════════════════════
# Collection
# ═════════════════════════════════════════════════════════════════════════════

class TestCollectDigest:

    def test_window_is_symmetric_around_now(self):
        start, end = digest_window(NOW, 7)
        assert (start, end) == (NOW - 7 * D, NOW + 7 * D)

    def test_window_defaults_from_config(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "DIGEST_WINDOW_DAYS", 2)
        assert digest_window(NOW) == (NOW - 2 * D, NOW + 2 * D)

    def test_groups_by_project_name_then_due(self, tenant, make_project, make_task):
        b = make_project(name="B Site")
        a = make_project(name="A Site")
        make_task(b, NOW - H, title="b-late")
        make_task(a, NOW + 2 * H, title="a-later")
        make_task(a, NOW - 3 * D, title="a-early")

        digest = collect_digest(tenant.id, now=NOW)
        assert [g["project_name"] for g in digest["groups"]] == ["A Site", "B Site"]
        assert [i["title"] for i in digest["groups"][0]["items"]] == ["a-early", "a-later"]

    def test_excludes_deleted_and_out_of_window(self, tenant, make_project, make_task):
        project = make_project()
        make_task(project, NOW - 8 * D, title="too old")
        make_task(project, NOW + 8 * D, title="too far")
        make_task(project, NOW, title="gone", deleted_at=NOW)
        make_task(project, NOW + D, title="kept")

        digest = collect_digest(tenant.id, now=NOW)
        assert [i["title"] for g in digest["groups"] for i in g["items"]] == ["kept"]

    def test_includes_submitted_tasks(self, tenant, make_project, make_task):
        project = make_project()
        make_task(project, NOW - D, submitted_at=NOW - D - H)
        items = collect_digest(tenant.id, now=NOW)["groups"][0]["items"]
        assert items[0]["score"] == GREEN

    def test_grades_with_project_sla_policy(self, tenant, make_project, make_task):
        strict = make_project(name="Strict", sla=(15, 30))
        lenient = make_project(name="Lenient")
        make_task(strict, NOW - timedelta(minutes=45))
        make_task(lenient, NOW - timedelta(minutes=45))

        groups = {g["project_name"]: g for g in collect_digest(tenant.id, now=NOW)["groups"]}
        assert groups["Strict"]["items"][0]["score"] == RED
        assert groups["Lenient"]["items"][0]["score"] == AMBER

    def test_other_tenants_excluded(self, tenant, make_tenant, make_project, make_task):
        other = make_tenant(name="Other Co")
        make_task(make_project(tenant_id=other.id), NOW)
        assert collect_digest(tenant.id, now=NOW)["groups"] == []


# ═════════════════════════════════════════════════════════════════════════════
# Recipients & delivery
# ═════════════════════════════════════════════════════════════════════════════

class TestDigestDelivery:

    def test_recipients_are_distinct_managers_and_supervisors(self, tenant, make_project):
        make_project(name="One")
        make_project(name="Two", manager_email="PM@acme.test", supervisor_email="lead@acme.test")
        make_project(name="Three", manager_email=None, supervisor_email=None)
        assert digest_recipients(tenant.id) == ["pm@acme.test", "super@acme.test", "lead@acme.test"]

    def test_owner_is_not_a_digest_recipient(self, tenant, make_project):
        make_project()
        assert "owner@acme.test" not in digest_recipients(tenant.id)

    def test_sends_one_email_per_recipient(self, tenant, make_project, make_task):
        project = make_project()
        make_task(project, NOW - 3 * H, title="Slab removal photos")

        with patch.object(EmailService, "send", return_value=sent()) as send:
            summary = run_weekly_digest_for_tenant(tenant.id, now=NOW)

        assert summary["projects"] == 1
        assert summary["items"] == 1
        assert summary["recipients"] == 2
        assert summary["sent"] == 2
        html = send.call_args_list[0].kwargs["html_body"]
        assert "Slab removal photos" in html
        assert "Late" in html
        assert send.call_args_list[0].kwargs["subject"].startswith("Weekly summary")

    def test_empty_tenant_sends_nothing(self, tenant):
        with patch.object(EmailService, "send", return_value=sent()) as send:
            summary = run_weekly_digest_for_tenant(tenant.id, now=NOW)
        assert summary["items"] == 0
        assert summary["sent"] == 0
        send.assert_not_called()

    def test_unconfigured_smtp_is_skipped(self, tenant, make_project):
        make_project()
        summary = run_weekly_digest_for_tenant(tenant.id, now=NOW)
        assert summary["notifications"] == {"sent": 0, "skipped": 2, "error": 0}
