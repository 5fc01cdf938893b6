from __future__ import annotations

from collections.abc import Generator
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from opsdesk.core.database import Base
from opsdesk.crm import ActivityEntry, ActivityLogAppender, Lead, Project
from opsdesk.platform.notifications import NotificationEvent, NotificationEventEmitter
from opsdesk.platform.security import AuthContext, CapabilitySet, PermissionKey
from opsdesk.tasks import Task, TimeTrackingStateMachine, format_duration, live_tracked_seconds
from opsdesk.tasks.timer import TIMER_DENIED, TIMER_START_UNREADABLE, parse_timer_timestamp

STARTED_AT = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


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


class _ManualClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _machine(clock: _ManualClock) -> TimeTrackingStateMachine:
    return TimeTrackingStateMachine(
        emitter=NotificationEventEmitter(clock=clock),
        activity=ActivityLogAppender(clock=clock),
        clock=clock,
    )


def _assignee(user_id: str = "sam") -> AuthContext:
    return AuthContext(
        user_id=user_id,
        full_name="Sam",
        capabilities=CapabilitySet.of([PermissionKey.TASK_VIEW, PermissionKey.TASK_EDIT]),
    )


def _seed_task(session: Session, **fields) -> Task:  # type: ignore[no-untyped-def]
    values = {"title": "Survey", "assigned_to": "sam", "assigned_users": ["sam"], "created_by": "alex"}
    values.update(fields)
    task = Task(**values)
    session.add(task)
    session.commit()
    return task


def test_start_then_stop_accumulates_elapsed_seconds(db_session: Session) -> None:
    project = Project(name="Harbor Fitout")
    lead = Lead(name="Dana", company="Acme")
    db_session.add_all([project, lead])
    db_session.commit()
    task = _seed_task(db_session, project_id=project.id, lead_id=lead.id, total_tracked_seconds=600)
    clock = _ManualClock(STARTED_AT)
    machine = _machine(clock)

    started = machine.start(db_session, _assignee(), task.id)
    assert started.status == "in-progress"
    assert started.start_date == date(2026, 10, 17)
    assert parse_timer_timestamp(started.timer_started_at) == STARTED_AT

    clock.now = STARTED_AT + timedelta(minutes=5, seconds=7, milliseconds=900)
    stopped = machine.stop(db_session, _assignee(), task.id)

    assert stopped.timer_started_at is None
    assert stopped.last_timer_duration_seconds == 307
    assert stopped.total_tracked_seconds == 907
    assert stopped.end_date == date(2026, 10, 17)

    notes = [entry.note for entry in db_session.scalars(select(ActivityEntry).order_by(ActivityEntry.occurred_at))]
    assert notes.count("Task started: Survey.") == 2
    assert notes.count("Task timer stopped: Survey. Duration 5m 7s. Total 15m 7s.") == 2

    types = [event.type for event in db_session.scalars(select(NotificationEvent))]
    assert sorted(types) == ["task.timer_started", "task.timer_stopped"]
    [stop_event] = db_session.scalars(select(NotificationEvent).where(NotificationEvent.type == "task.timer_stopped"))
    assert stop_event.recipients == ["alex"]
    assert stop_event.meta == {"durationSeconds": 307, "totalSeconds": 907}


def test_start_while_running_is_a_no_op(db_session: Session) -> None:
    task = _seed_task(db_session, status="review", timer_started_at="2026-10-17T08:00:00Z")
    machine = _machine(_ManualClock(STARTED_AT))

    result = machine.start(db_session, _assignee(), task.id)

    assert result.timer_started_at == "2026-10-17T08:00:00Z"
    assert result.status == "review"
    assert db_session.scalars(select(NotificationEvent)).all() == []


def test_stop_while_idle_is_a_no_op(db_session: Session) -> None:
    task = _seed_task(db_session, total_tracked_seconds=42)
    machine = _machine(_ManualClock(STARTED_AT))

    result = machine.stop(db_session, _assignee(), task.id)

    assert result.total_tracked_seconds == 42
    assert result.last_timer_stopped_at is None


def test_clock_skew_never_subtracts_time(db_session: Session) -> None:
    task = _seed_task(db_session, timer_started_at="2026-10-17T10:00:00+00:00", total_tracked_seconds=30)
    machine = _machine(_ManualClock(STARTED_AT))

    result = machine.stop(db_session, _assignee(), task.id)

    assert result.last_timer_duration_seconds == 0
    assert result.total_tracked_seconds == 30


def test_unreadable_start_time_rejects_stop_without_writing(db_session: Session) -> None:
    task = _seed_task(db_session, timer_started_at="yesterday-ish", total_tracked_seconds=10)
    machine = _machine(_ManualClock(STARTED_AT))

    with pytest.raises(HTTPException) as exc_info:
        machine.stop(db_session, _assignee(), task.id)

    assert exc_info.value.status_code == 422
    assert exc_info.value.detail == TIMER_START_UNREADABLE
    db_session.expire_all()
    stored = db_session.get(Task, task.id)
    assert stored.timer_started_at == "yesterday-ish"
    assert stored.total_tracked_seconds == 10


@pytest.mark.parametrize(
    "ctx",
    [
        AuthContext(user_id="kim", capabilities=CapabilitySet.of([PermissionKey.TASK_EDIT])),
        AuthContext(user_id="sam", capabilities=CapabilitySet.of([PermissionKey.TASK_VIEW])),
    ],
)
def test_only_assignees_with_edit_permission_can_track(db_session: Session, ctx: AuthContext) -> None:
    task = _seed_task(db_session)
    machine = _machine(_ManualClock(STARTED_AT))

    with pytest.raises(HTTPException) as exc_info:
        machine.start(db_session, ctx, task.id)

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == TIMER_DENIED


def test_admin_can_track_any_task(db_session: Session) -> None:
    task = _seed_task(db_session)
    admin = AuthContext(user_id="root", capabilities=CapabilitySet.of([PermissionKey.ADMIN]))

    result = _machine(_ManualClock(STARTED_AT)).start(db_session, admin, task.id)

    assert result.timer_started_at is not None


def test_concurrent_starts_leave_one_consistent_timer(tmp_path: Path) -> None:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'timer.db'}")
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    first_clock = _ManualClock(STARTED_AT)
    second_clock = _ManualClock(STARTED_AT + timedelta(milliseconds=250))

    with SessionLocal() as setup:
        task_id = _seed_task(setup).id

    with SessionLocal() as session_a, SessionLocal() as session_b:
        # Both callers read the idle task before either one writes.
        assert session_b.get(Task, task_id).timer_started_at is None
        _machine(first_clock).start(session_a, _assignee(), task_id)
        _machine(second_clock).start(session_b, _assignee(), task_id)

    with SessionLocal() as check:
        stored = check.get(Task, task_id)
        assert stored.timer_started_at in {first_clock.now.isoformat(), second_clock.now.isoformat()}
        assert stored.total_tracked_seconds == 0
        assert stored.status == "in-progress"
    engine.dispose()


def test_live_tracked_seconds_includes_running_session() -> None:
    task = Task(title="Survey", created_by="alex", total_tracked_seconds=100, timer_started_at="2026-10-17T09:00:00")

    assert live_tracked_seconds(task, STARTED_AT + timedelta(seconds=50)) == 150
    task.timer_started_at = None
    assert live_tracked_seconds(task, STARTED_AT) == 100


@pytest.mark.parametrize(
    "seconds, expected",
    [(None, "0s"), (0, "0s"), (-5, "0s"), (45, "45s"), (125, "2m 5s"), (3600, "1h 0m"), (7384, "2h 3m")],
)
def test_format_duration(seconds: int | None, expected: str) -> None:
    assert format_duration(seconds) == expected
