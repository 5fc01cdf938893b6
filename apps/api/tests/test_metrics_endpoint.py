from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from opsdesk.authz import Role, User
from opsdesk.core.auth import issue_access_token
from opsdesk.core.config import get_settings
from opsdesk.core.database import Base, get_db
from opsdesk.main import app
from opsdesk.tasks import Task


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    db_session.add_all(
        [
            Role(id="ops", key="ops", name="Operations", permissions=["settings", "task_view", "task_edit"]),
            Role(id="field", key="field", name="Field", permissions=["task_view", "task_edit"]),
            User(id="ops-1", full_name="Ops Admin", role="ops"),
            User(id="sam", full_name="Sam Field", role="field"),
            User(id="root", full_name="Root", role="admin"),
        ]
    )
    db_session.commit()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_access_token(user_id)}"}


def test_metrics_endpoint_exposes_http_and_workflow_metrics(client: TestClient, db_session: Session) -> None:
    task = Task(title="Survey", assigned_to="sam", assigned_users=["sam"], created_by="ops-1")
    db_session.add(task)
    db_session.commit()

    assert client.get("/health").status_code == 200
    assert client.post(f"/api/tasks/{task.id}/timer/start", headers=_auth("sam")).status_code == 200
    assert client.post(f"/api/tasks/{task.id}/timer/stop", headers=_auth("sam")).status_code == 200

    metrics = client.get("/metrics", headers=_auth("ops-1"))
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "task_timer_sessions_total" in body
    assert "notification_events_written_total" in body
    assert "authz_role_cache_miss_total" in body

    assert 'path="/health"' in body
    assert 'path="/api/tasks/{id}/timer/start"' in body
    assert 'event_type="task.timer_stopped"' in body


def test_metrics_require_settings_permission(client: TestClient) -> None:
    denied = client.get("/metrics", headers=_auth("sam"))
    allowed = client.get("/metrics", headers=_auth("root"))

    assert denied.status_code == 403
    assert denied.json() == {"detail": "Missing permission: settings"}
    assert allowed.status_code == 200


def test_metrics_disabled_returns_not_found(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    response = client.get("/metrics", headers=_auth("ops-1"))

    assert response.status_code == 404
