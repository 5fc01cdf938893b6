from __future__ import annotations

from collections.abc import Generator

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from opsdesk.context import reset_correlation_id, set_correlation_id
from opsdesk.core.database import Base
from opsdesk.otel import setup_inmemory_otel
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


@pytest.fixture(scope="module")
def span_exporter() -> InMemorySpanExporter:
    return setup_inmemory_otel()


def test_side_effect_steps_are_traced_with_correlation_id(
    db_session: Session, span_exporter: InMemorySpanExporter
) -> None:
    span_exporter.clear()
    token = set_correlation_id("corr-span")
    try:
        SideEffectRunner().run(db_session, "notification.task.assigned", lambda session: "ok")
    finally:
        reset_correlation_id(token)

    [span] = [item for item in span_exporter.get_finished_spans() if item.name.startswith("side_effect.")]
    assert span.name == "side_effect.notification.task.assigned"
    assert span.attributes["correlation_id"] == "corr-span"
    assert span.attributes["step"] == "notification.task.assigned"
    assert span.status.status_code != StatusCode.ERROR


def test_failed_side_effect_marks_span_as_error(db_session: Session, span_exporter: InMemorySpanExporter) -> None:
    span_exporter.clear()

    def broken(session: Session) -> None:
        raise RuntimeError("activity store unavailable")

    assert SideEffectRunner().run(db_session, "activity.project", broken) is None

    [span] = [item for item in span_exporter.get_finished_spans() if item.name == "side_effect.activity.project"]
    assert span.status.status_code == StatusCode.ERROR
    assert any(event.name == "exception" for event in span.events)
