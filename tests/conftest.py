"""
Shared pytest fixtures for the timeliness engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - tenant / make_tenant: Pre-created Tenant entities
    - make_project / make_task: factories for projects and tasks
    - features_on: every feature enabled at the environment layer
    - NOW: fixed clock used by time-dependent tests
"""

from datetime import datetime, timezone

import pytest

from fieldops import create_app
from fieldops.config import FEATURE_KEYS
from fieldops.models import db as _db
from fieldops.models.project import Project, ProjectContact, SLAPolicy
from fieldops.models.tenant import Tenant
from fieldops.models.timeliness import TrackableTask

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def features_on(app, monkeypatch):
    """Turn every feature on at the environment layer."""
    monkeypatch.setitem(app.config, "FEATURE_DEFAULTS", {key: True for key in FEATURE_KEYS})


# ── Entity factories ─────────────────────────────────────────────────────


@pytest.fixture()
def make_tenant():
    def _make(name="Acme Demolition", slug=None, is_active=True):
        t = Tenant(name=name, slug=slug or name.lower().replace(" ", "-"), is_active=is_active)
        _db.session.add(t)
        _db.session.commit()
        return t
    return _make


@pytest.fixture()
def tenant(make_tenant):
    return make_tenant()


@pytest.fixture()
def make_project(tenant):
    """Create a project; ``contacts`` is a list of ProjectContact kwargs."""
    def _make(tenant_id=None, contacts=(), sla=None, **kwargs):
        data = {
            "tenant_id": tenant_id or tenant.id,
            "name": "Main St Teardown",
            "category": "demolition",
            "manager_email": "pm@acme.test",
            "owner_email": "owner@acme.test",
            "supervisor_email": "super@acme.test",
            "supervisor_phone": "+15550100",
        }
        data.update(kwargs)
        project = Project(**data)
        project.contacts = [ProjectContact(**c) for c in contacts]
        if sla is not None:
            project.sla_policy = SLAPolicy(at_risk_minutes=sla[0], red_minutes=sla[1])
        _db.session.add(project)
        _db.session.commit()
        return project
    return _make


@pytest.fixture()
def make_task():
    def _make(project, due_at, title="Daily site update", **kwargs):
        task = TrackableTask(project_id=project.id, title=title, due_at=due_at, **kwargs)
        _db.session.add(task)
        _db.session.commit()
        return task
    return _make


def tenant_headers(tenant_or_id):
    tenant_id = getattr(tenant_or_id, "id", tenant_or_id)
    return {"X-Tenant-ID": str(tenant_id)}
