from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from opsdesk.authz.dependencies import get_auth_context
from opsdesk.core.database import get_db
from opsdesk.platform.security import AuthContext
from opsdesk.tasks.models import Task
from opsdesk.tasks.schemas import TaskCreate, TaskRead, TaskStatusChange, TaskUpdate
from opsdesk.tasks.service import workflow_coordinator
from opsdesk.tasks.timer import live_tracked_seconds, task_timer


router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def _to_read(task: Task) -> TaskRead:
    read = TaskRead.model_validate(task)
    read.live_tracked_seconds = live_tracked_seconds(task, task_timer.clock())
    return read


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return _to_read(workflow_coordinator.create_task(db, ctx, payload))


@router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return _to_read(workflow_coordinator.get_task(db, ctx, task_id))


@router.patch("/{task_id}", response_model=TaskRead)
def update_task(
    task_id: uuid.UUID,
    payload: TaskUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return _to_read(workflow_coordinator.update_task(db, ctx, task_id, payload))


@router.post("/{task_id}/status", response_model=TaskRead)
def change_task_status(
    task_id: uuid.UUID,
    payload: TaskStatusChange,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return _to_read(workflow_coordinator.change_status(db, ctx, task_id, payload.status))


@router.post("/{task_id}/timer/start", response_model=TaskRead)
def start_task_timer(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return _to_read(task_timer.start(db, ctx, task_id))


@router.post("/{task_id}/timer/stop", response_model=TaskRead)
def stop_task_timer(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return _to_read(task_timer.stop(db, ctx, task_id))
