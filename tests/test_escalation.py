"""
Tests — escalation ladders and the escalation engine.

Covers:
    1. Ladder selection and ESCALATION_LADDERS parsing
    2. Pure escalation decision (threshold, cooldown, level)
    3. Tenant run: claim, dispatch, recipients, pacing, isolation
"""

import time
from datetime import timedelta
from unittest.mock import patch

import pytest

from fieldops.models import db
from fieldops.models.scheduling import DEFAULT_NOTIFICATION_PREFS, NotificationLog, NotificationPreference
from fieldops.models.timeliness import TrackableTask
from fieldops.integrations.twilio_gateway import SMSService
from fieldops.services import escalation as escalation_mod
from fieldops.services.delivery import failed, sent
from fieldops.services.email_service import EmailService
from fieldops.services.escalation import (
    claim_escalation,
    evaluate_escalation,
    ladder_for_project,
    resolve_recipients,
    run_escalations_for_tenant,
)
from fieldops.services.escalation_ladder import (
    BUILTIN_LADDERS,
    get_ladder,
    parse_ladders,
)
from fieldops.utils.helpers import as_utc
from tests.conftest import NOW

H = timedelta(hours=1)
DEMOLITION = BUILTIN_LADDERS["demolition"]

SITE_CONTACTS = [
    {"role": "Site_Manager", "email": "site@acme.test", "phone": "+15550199"},
    {"role": "safety_supervisor", "email": "safety@acme.test", "phone": "+15550198"},
]


def _reload(task_id):
    db.session.expire_all()
    return db.session.get(TrackableTask, task_id)


@pytest.fixture()
def tokyo_host(monkeypatch):
    """Run with a non-UTC process timezone so naive datetimes would shift."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset unavailable")
    monkeypatch.setenv("TZ", "Asia/Tokyo")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


# ═════════════════════════════════════════════════════════════════════════════
# Ladders
# ═════════════════════════════════════════════════════════════════════════════

class TestLadders:

    @pytest.mark.parametrize("hours,role", [
        (0.5, None),
        (1, "safety_supervisor"),
        (3.9, "demolition_manager"),
        (5, "site_manager"),
        (12, "project_owner"),
        (100, "project_owner"),
    ])
    def test_select_level(self, hours, role):
        level = DEMOLITION.select_level(hours)
        assert (level.role if level else None) == role

    def test_unknown_category_falls_back_to_default(self):
        assert get_ladder("Landscaping").category == "default"
        assert get_ladder(None).category == "default"

    def test_category_lookup_is_case_insensitive(self):
        assert get_ladder("  DEMOLITION ").category == "demolition"

    def test_parse_ladders_adds_and_sorts_steps(self):
        ladders = parse_ladders(
            '{"Construction": {"default_hours": 3, "steps": ['
            '{"role": "site_manager", "hours": 6}, {"role": "foreman", "hours": 1}]}}'
        )
        ladder = ladders["construction"]
        assert [s.role for s in ladder.steps] == ["foreman", "site_manager"]
        assert ladder.default_hours == 3
        assert "demolition" in ladders

    def test_parse_ladders_empty_keeps_builtins(self):
        assert parse_ladders(None) == BUILTIN_LADDERS

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        '{"x": {"steps": []}}',
        '{"x": {"default_hours": 0, "steps": []}}',
        '{"x": {"default_hours": 2, "steps": [{"role": "a"}]}}',
    ])
    def test_parse_ladders_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            parse_ladders(raw)

    def test_configured_ladder_used_at_runtime(self, app, monkeypatch):
        monkeypatch.setitem(
            app.config, "ESCALATION_LADDERS",
            '{"roofing": {"default_hours": 1, "steps": [{"role": "roofer", "hours": 0.5}]}}',
        )
        assert get_ladder("roofing").steps[0].role == "roofer"


# ═════════════════════════════════════════════════════════════════════════════
# Decision
# ═════════════════════════════════════════════════════════════════════════════

class TestEvaluateEscalation:

    def test_five_hours_overdue_selects_site_manager(self):
        decision = evaluate_escalation(NOW - 5 * H, None, DEMOLITION, NOW)
        assert decision.eligible
        assert decision.level.role == "site_manager"
        assert decision.hours_overdue == pytest.approx(5)

    def test_below_default_hours_does_not_escalate(self):
        decision = evaluate_escalation(NOW - 1.5 * H, None, DEMOLITION, NOW)
        assert not decision.should_escalate
        assert decision.level.role == "safety_supervisor"

    def test_inside_cooldown_is_not_eligible(self):
        decision = evaluate_escalation(NOW - 5 * H, NOW - timedelta(minutes=30), DEMOLITION, NOW)
        assert decision.should_escalate
        assert not decision.cooled_down
        assert not decision.eligible

    def test_cooldown_boundary_is_inclusive(self):
        decision = evaluate_escalation(NOW - 5 * H, NOW - 2 * H, DEMOLITION, NOW)
        assert decision.eligible

    def test_not_yet_due_has_no_level(self):
        decision = evaluate_escalation(NOW + H, None, DEMOLITION, NOW)
        assert decision.level is None
        assert not decision.eligible


# ═════════════════════════════════════════════════════════════════════════════
# Recipients & pacing
# ═════════════════════════════════════════════════════════════════════════════

class TestRecipientsAndPacing:

    def test_email_recipients_include_matched_role(self, make_project):
        project = make_project(contacts=SITE_CONTACTS)
        level = DEMOLITION.select_level(5)
        emails, phones = resolve_recipients(project, level, DEFAULT_NOTIFICATION_PREFS)
        assert emails == ["pm@acme.test", "owner@acme.test", "site@acme.test"]
        assert phones == []

    def test_sms_recipients_when_enabled(self, make_project):
        project = make_project(contacts=SITE_CONTACTS)
        prefs = {**DEFAULT_NOTIFICATION_PREFS, "email_enabled": False, "sms_enabled": True}
        emails, phones = resolve_recipients(project, DEMOLITION.select_level(1), prefs)
        assert emails == []
        assert phones == ["+15550100", "+15550198"]

    def test_no_level_means_no_contacts(self, make_project):
        project = make_project(contacts=SITE_CONTACTS, owner_email=None)
        emails, _ = resolve_recipients(project, None, DEFAULT_NOTIFICATION_PREFS)
        assert emails == ["pm@acme.test"]

    def test_pacing_applies_to_default_ladder_only(self, make_project):
        general = make_project(category="general")
        demolition = make_project(name="Old Mill")
        assert ladder_for_project(general, 1.5).default_hours == 1.5
        assert ladder_for_project(demolition, 1.5).default_hours == 2


# ═════════════════════════════════════════════════════════════════════════════
# Tenant run
# ═════════════════════════════════════════════════════════════════════════════

class TestRunEscalations:

    def test_scenario_escalates_then_cools_down(self, tenant, make_project, make_task):
        project = make_project(contacts=SITE_CONTACTS)
        task = make_task(project, NOW - 5 * H)
        task_id = task.id

        with patch.object(EmailService, "send", return_value=sent()) as send:
            first = run_escalations_for_tenant(tenant.id, now=NOW)
            second = run_escalations_for_tenant(tenant.id, now=NOW + timedelta(minutes=30))

        assert first["escalated"] == 1
        assert first["notifications"] == {"sent": 3, "skipped": 0, "error": 0}
        assert {c.kwargs["to_email"] for c in send.call_args_list} == {
            "pm@acme.test", "owner@acme.test", "site@acme.test",
        }
        assert "site_manager" in send.call_args_list[0].kwargs["html_body"]
        assert as_utc(_reload(task_id).escalated_at) == NOW

        assert second["escalated"] == 0
        assert second["not_eligible"] == 1

    def test_due_time_in_email_ignores_host_timezone(self, tenant, make_project, make_task, tokyo_host):
        make_task(make_project(contacts=SITE_CONTACTS), NOW - 5 * H)
        prefs = {**DEFAULT_NOTIFICATION_PREFS, "timezone": "UTC"}

        with patch.object(EmailService, "send", return_value=sent()) as send:
            run_escalations_for_tenant(tenant.id, now=NOW, prefs=prefs)

        assert "10:00 UTC" in send.call_args_list[0].kwargs["html_body"]

    def test_repeat_after_cooldown(self, tenant, make_project, make_task):
        project = make_project()
        task_id = make_task(project, NOW - 3 * H).id

        with patch.object(EmailService, "send", return_value=sent()):
            t0 = run_escalations_for_tenant(tenant.id, now=NOW)
            t1 = run_escalations_for_tenant(tenant.id, now=NOW + H)
            t3 = run_escalations_for_tenant(tenant.id, now=NOW + 3 * H)

        assert (t0["escalated"], t1["escalated"], t3["escalated"]) == (1, 0, 1)
        assert as_utc(_reload(task_id).escalated_at) == NOW + 3 * H

    def test_failed_delivery_still_counts_as_escalated(self, tenant, make_project, make_task):
        project = make_project()
        task_id = make_task(project, NOW - 5 * H).id

        with patch.object(EmailService, "send", return_value=failed("smtp down")):
            summary = run_escalations_for_tenant(tenant.id, now=NOW)

        assert summary["escalated"] == 1
        assert summary["notifications"]["error"] == 2
        assert _reload(task_id).escalated_at is not None
        logs = NotificationLog.query.filter_by(task_id=task_id).all()
        assert {log.outcome for log in logs} == {"error"}
        assert logs[0].error_message == "smtp down"

    def test_transport_exception_is_contained(self, tenant, make_project, make_task):
        project = make_project()
        make_task(project, NOW - 5 * H)

        with patch.object(EmailService, "send", side_effect=RuntimeError("boom")):
            summary = run_escalations_for_tenant(tenant.id, now=NOW)

        assert summary["escalated"] == 1
        assert summary["failed"] == 0
        assert summary["notifications"]["error"] == 2

    def test_submitted_and_deleted_tasks_are_ignored(self, tenant, make_project, make_task):
        project = make_project()
        make_task(project, NOW - 5 * H, submitted_at=NOW - 4 * H)
        make_task(project, NOW - 5 * H, deleted_at=NOW - H)
        make_task(project, NOW + H)

        with patch.object(EmailService, "send", return_value=sent()) as send:
            summary = run_escalations_for_tenant(tenant.id, now=NOW)

        assert summary["scanned"] == 0
        send.assert_not_called()

    def test_other_tenants_tasks_are_ignored(self, tenant, make_tenant, make_project, make_task):
        other = make_tenant(name="Other Co")
        make_task(make_project(tenant_id=other.id), NOW - 5 * H)

        summary = run_escalations_for_tenant(tenant.id, now=NOW)
        assert summary["scanned"] == 0

    def test_sms_sent_when_tenant_enables_it(self, tenant, make_project, make_task):
        project = make_project(contacts=SITE_CONTACTS)
        make_task(project, NOW - 5 * H)
        prefs = {**DEFAULT_NOTIFICATION_PREFS, "sms_enabled": True}

        with patch.object(EmailService, "send", return_value=sent()), \
                patch.object(SMSService, "send", return_value=sent()) as sms:
            run_escalations_for_tenant(tenant.id, now=NOW, prefs=prefs)

        assert [c.kwargs["to"] for c in sms.call_args_list] == ["+15550100", "+15550199"]
        assert "Late" in sms.call_args_list[0].kwargs["message"]

    def test_no_sms_by_default(self, tenant, make_project, make_task):
        make_task(make_project(), NOW - 5 * H)

        with patch.object(EmailService, "send", return_value=sent()), \
                patch.object(SMSService, "send", return_value=sent()) as sms:
            run_escalations_for_tenant(tenant.id, now=NOW)

        sms.assert_not_called()

    def test_tenant_pacing_row_drives_default_ladder(self, tenant, make_project, make_task):
        db.session.add(NotificationPreference(tenant_id=tenant.id, escalation_after_hours=1))
        db.session.commit()
        make_task(make_project(category="general"), NOW - timedelta(minutes=90))

        with patch.object(EmailService, "send", return_value=sent()):
            summary = run_escalations_for_tenant(tenant.id, now=NOW)

        assert summary["escalated"] == 1

    def test_config_pacing_without_prefs_row(self, app, tenant, make_project, make_task, monkeypatch):
        make_task(make_project(category="general"), NOW - timedelta(minutes=90))

        assert run_escalations_for_tenant(tenant.id, now=NOW)["escalated"] == 0

        monkeypatch.setitem(app.config, "ESCALATE_AFTER_HOURS", 1)
        with patch.object(EmailService, "send", return_value=sent()):
            assert run_escalations_for_tenant(tenant.id, now=NOW)["escalated"] == 1

    def test_one_broken_task_does_not_stop_the_run(self, tenant, make_project, make_task):
        good = make_project(name="Good Site")
        bad = make_project(name="Broken Site")
        make_task(bad, NOW - 6 * H)
        make_task(good, NOW - 5 * H)
        real = escalation_mod.ladder_for_project

        def flaky(project, pacing=None):
            if project.name == "Broken Site":
                raise RuntimeError("bad ladder")
            return real(project, pacing)

        with patch.object(escalation_mod, "ladder_for_project", side_effect=flaky), \
                patch.object(EmailService, "send", return_value=sent()):
            summary = run_escalations_for_tenant(tenant.id, now=NOW)

        assert summary["scanned"] == 2
        assert summary["failed"] == 1
        assert summary["escalated"] == 1


class TestClaim:

    def test_second_claim_in_same_window_loses(self, make_project, make_task):
        task_id = make_task(make_project(), NOW - 5 * H).id
        assert claim_escalation(task_id, NOW, 2) is True
        assert claim_escalation(task_id, NOW, 2) is False

    def test_claim_refused_for_submitted_task(self, make_project, make_task):
        task_id = make_task(make_project(), NOW - 5 * H, submitted_at=NOW).id
        assert claim_escalation(task_id, NOW, 2) is False

    def test_claim_succeeds_again_after_cooldown(self, make_project, make_task):
        task_id = make_task(make_project(), NOW - 5 * H).id
        assert claim_escalation(task_id, NOW, 2)
        assert claim_escalation(task_id, NOW + 2 * H, 2)
