from opsdesk.platform.notifications.emitter import NotificationEventEmitter, notification_emitter
from opsdesk.platform.notifications.models import NotificationEvent
from opsdesk.platform.notifications.recipients import build_recipient_list, same_recipient_sets

__all__ = [
    "NotificationEvent",
    "NotificationEventEmitter",
    "notification_emitter",
    "build_recipient_list",
    "same_recipient_sets",
]
