"""
Field-friendly email rendering.

Grades are translated to plain language here and only here:
    ON_TIME / GREEN  → "On time"
    AT_RISK / AMBER  → "Due soon"
    OVERDUE / RED    → "Late"
"""

from __future__ import annotations

from html import escape

from fieldops.services.timeliness import AMBER, AT_RISK, OVERDUE, RED
from fieldops.utils.helpers import as_utc

ON_TIME_LABEL = "On time"
DUE_SOON_LABEL = "Due soon"
LATE_LABEL = "Late"

_PILL_STYLES = {
    ON_TIME_LABEL: "background:#d1fae5;color:#065f46;border:1px solid #a7f3d0;",
    DUE_SOON_LABEL: "background:#fef9c3;color:#92400e;border:1px solid #fde68a;",
    LATE_LABEL: "background:#fecaca;color:#7f1d1d;border:1px solid #fca5a5;",
}

_FONT = "system-ui,-apple-system,Segoe UI,Roboto,sans-serif"


def plain_label(grade: str) -> str:
    """Map either grade vocabulary to its plain-language label."""
    if grade in (OVERDUE, RED):
        return LATE_LABEL
    if grade in (AT_RISK, AMBER):
        return DUE_SOON_LABEL
    return ON_TIME_LABEL


def status_pill(label: str) -> str:
    style = _PILL_STYLES.get(label, _PILL_STYLES[ON_TIME_LABEL])
    return (f'<span style="display:inline-block;padding:2px 8px;'
            f'border-radius:999px;{style}">{escape(label)}</span>')


def email_legend() -> str:
    pills = " ".join(status_pill(label) for label in _PILL_STYLES)
    return (f'<p style="margin:12px 0 4px;font:14px/20px {_FONT};color:#111">'
            f"<strong>Legend:</strong> {pills}</p>")


def wrap_email(body_html: str, title: str = "Update") -> str:
    return f"""
    <div style="max-width:640px;margin:0 auto;padding:16px 12px;font:14px/20px {_FONT};color:#111;background:#fff">
        <h2 style="margin:0 0 8px;font:600 18px/24px {_FONT}">{escape(title)}</h2>
        {email_legend()}
        {body_html}
        <p style="margin-top:16px;color:#6b7280;font-size:12px">
            You are receiving this because notifications are enabled for your organization.
            Update preferences in Organization Settings.
        </p>
    </div>"""


def _fmt(dt, tz=None) -> str:
    if dt is None:
        return "-"
    dt = as_utc(dt)
    if tz is not None:
        dt = dt.astimezone(tz)
    return dt.strftime("%a %b %d, %H:%M %Z").strip()


# ═══════════════════════════════════════════════════════════════════════════
#  Message renderers
# ═══════════════════════════════════════════════════════════════════════════

def render_escalation(*, project_name, task_title, due_at, grade, hours_overdue, role=None, tz=None):
    """Return (subject, html, sms_text) for one escalated task."""
    label = plain_label(grade)
    subject = f"Late task in {project_name}: {task_title}"
    level = f"<p><strong>Escalated to:</strong> {escape(role)}</p>" if role else ""
    body = f"""
        <p><strong>Project:</strong> {escape(project_name)}</p>
        <p><strong>Task:</strong> {escape(task_title)}</p>
        <p><strong>Status:</strong> {status_pill(label)} (due {escape(_fmt(due_at, tz))})</p>
        {level}
        <p>This task has been late for {hours_overdue:.1f} hour(s).</p>"""
    sms = f"Late task: '{task_title}' ({project_name}). Due {_fmt(due_at, tz)}."
    return subject, wrap_email(body, "Escalation"), sms


def render_reminder(*, project_name, task_title, due_at, grade, tz=None):
    """Return (subject, html, sms_text) for a due-soon/late reminder."""
    label = plain_label(grade)
    subject = f"{label}: {task_title} ({project_name})"
    body = f"""
        <p><strong>Project:</strong> {escape(project_name)}</p>
        <p><strong>Task:</strong> {escape(task_title)}</p>
        <p><strong>Status:</strong> {status_pill(label)} (due {escape(_fmt(due_at, tz))})</p>
        <p>Please submit this update as soon as possible.</p>"""
    sms = f"{label}: '{task_title}' ({project_name}) due {_fmt(due_at, tz)}."
    return subject, wrap_email(body, "Reminder"), sms


def render_digest(groups, *, window_start, window_end, tz=None):
    """Return (subject, html) for a weekly digest.

    ``groups`` is the ordered output of ``digest.collect_digest``:
    ``[{"project_name": ..., "items": [{"title", "due_at", "submitted_at", "score"}, ...]}, ...]``
    """
    subject = f"Weekly summary: {_fmt(window_start, tz)[:10]} to {_fmt(window_end, tz)[:10]}"
    if not groups:
        body = "<p>No tasks were due in this window.</p>"
        return subject, wrap_email(body, "Weekly Summary")

    sections = []
    for group in groups:
        rows = []
        for item in group["items"]:
            submitted = _fmt(item["submitted_at"], tz) if item["submitted_at"] else "not submitted"
            rows.append(
                "<tr>"
                f'<td style="padding:4px 8px">{escape(item["title"])}</td>'
                f'<td style="padding:4px 8px">{escape(_fmt(item["due_at"], tz))}</td>'
                f'<td style="padding:4px 8px">{escape(submitted)}</td>'
                f'<td style="padding:4px 8px">{status_pill(plain_label(item["score"]))}</td>'
                "</tr>"
            )
        sections.append(
            f'<h3 style="margin:16px 0 4px">{escape(group["project_name"])}</h3>'
            '<table role="presentation" style="width:100%;border-collapse:collapse">'
            '<tr style="background:#f3f4f6"><th align="left">Task</th><th align="left">Due</th>'
            '<th align="left">Submitted</th><th align="left">Status</th></tr>'
            + "".join(rows)
            + "</table>"
        )
    return subject, wrap_email("".join(sections), "Weekly Summary")
