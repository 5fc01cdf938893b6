from opsdesk.tasks.models import TASK_PRIORITIES, TASK_STATUSES, Task
from opsdesk.tasks.service import WorkflowStatusCoordinator, status_label, workflow_coordinator
from opsdesk.tasks.timer import TimeTrackingStateMachine, format_duration, live_tracked_seconds, task_timer

__all__ = [
    "Task",
    "TASK_STATUSES",
    "TASK_PRIORITIES",
    "WorkflowStatusCoordinator",
    "workflow_coordinator",
    "status_label",
    "TimeTrackingStateMachine",
    "task_timer",
    "format_duration",
    "live_tracked_seconds",
]
