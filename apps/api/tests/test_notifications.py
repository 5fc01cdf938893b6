from __future__ import annotations

import itertools
from collections.abc import Generator

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from opsdesk.core.database import Base
from opsdesk.platform.notifications import (
    NotificationEvent,
    NotificationEventEmitter,
    build_recipient_list,
    same_recipient_sets,
)
from opsdesk.platform.side_effects import SideEffectRunner


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


def test_recipient_list_excludes_actor_and_blanks() -> None:
    recipients = build_recipient_list("u-1", ["u-2", "", None, "  ", "u-2", "actor", "u-1"], "actor")

    assert recipients == ["u-1", "u-2"]


def test_recipient_list_is_independent_of_secondary_order() -> None:
    secondaries = ["c", "a", "b", "a"]
    expected = build_recipient_list("z", secondaries, "b")

    for permutation in itertools.permutations(secondaries):
        assert build_recipient_list("z", list(permutation), "b") == expected
    assert expected == ["a", "c", "z"]


def test_recipient_list_for_actor_only_assignment_is_empty() -> None:
    assert build_recipient_list("actor", ["actor"], "actor") == []
    assert build_recipient_list(None, None, "actor") == []


def test_same_recipient_sets_uses_set_equality() -> None:
    assert same_recipient_sets(["a", "b"], ["b", "a"])
    assert same_recipient_sets([], [])
    assert not same_recipient_sets(["a"], ["a", "b"])


def test_emit_persists_event_with_all_fields(db_session: Session) -> None:
    emitter = NotificationEventEmitter()

    event = emitter.emit(
        db_session,
        event_type="task.assigned",
        title="New Task",
        body="Alex assigned: Survey.",
        actor_id="alex",
        recipients=["sam"],
        entity_type="task",
        entity_id="task-1",
        meta={"assignedTo": "sam"},
    )

    assert event is not None
    stored = db_session.scalars(select(NotificationEvent)).all()
    assert len(stored) == 1
    assert stored[0].type == "task.assigned"
    assert stored[0].recipients == ["sam"]
    assert stored[0].broadcast is False
    assert stored[0].meta == {"assignedTo": "sam"}
    assert stored[0].entity_id == "task-1"


def test_emit_without_recipients_is_skipped_unless_broadcast(db_session: Session) -> None:
    emitter = NotificationEventEmitter()

    skipped = emitter.emit(
        db_session,
        event_type="task.assigned",
        title="New Task",
        body="",
        actor_id="alex",
        recipients=[],
        entity_type="task",
        entity_id="task-1",
    )
    broadcast = emitter.emit(
        db_session,
        event_type="system.notice",
        title="Maintenance",
        body="Tonight",
        actor_id="alex",
        recipients=[],
        entity_type="system",
        entity_id="notice-1",
        broadcast=True,
    )

    assert skipped is None
    assert broadcast is not None
    assert [item.type for item in db_session.scalars(select(NotificationEvent))] == ["system.notice"]


def test_emit_swallows_persistence_failures(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    emitter = NotificationEventEmitter()

    def failing_flush(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise OperationalError("INSERT", {}, Exception("store unavailable"))

    monkeypatch.setattr(db_session, "flush", failing_flush)

    result = emitter.emit(
        db_session,
        event_type="task.assigned",
        title="New Task",
        body="",
        actor_id="alex",
        recipients=["sam"],
        entity_type="task",
        entity_id="task-1",
    )

    monkeypatch.undo()
    assert result is None
    assert db_session.scalars(select(NotificationEvent)).all() == []


def test_side_effect_runner_continues_after_failed_step(db_session: Session) -> None:
    runner = SideEffectRunner()
    emitter = NotificationEventEmitter(runner=runner)
    calls: list[str] = []

    def broken(session: Session) -> None:
        calls.append("broken")
        raise RuntimeError("boom")

    first = runner.run(db_session, "broken", broken)
    second = runner.run(
        db_session,
        "notification",
        lambda s: emitter.stage(
            s,
            event_type="task.status_changed",
            title="Task Status Updated",
            body="",
            actor_id="alex",
            recipients=["sam"],
            entity_type="task",
            entity_id="task-1",
        ),
    )

    assert calls == ["broken"]
    assert first is None
    assert second is not None
    assert len(db_session.scalars(select(NotificationEvent)).all()) == 1
