from typing import Optional

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_DELIVERED = "delivered"
STATUS_FAILED = "failed"
STATUS_OPENED = "opened"
STATUS_UNKNOWN = "unknown"

STATUSES = (STATUS_PENDING, STATUS_SENT, STATUS_DELIVERED, STATUS_FAILED, STATUS_OPENED, STATUS_UNKNOWN)

# Manual override cannot set "unknown"
OVERRIDE_STATUSES = (STATUS_PENDING, STATUS_SENT, STATUS_DELIVERED, STATUS_FAILED, STATUS_OPENED)

# Rows the poller still has something to learn about
OUTSTANDING_STATUSES = (STATUS_PENDING, STATUS_SENT)

_EVENT_STATUS = {
    "delivered": STATUS_DELIVERED,
    "bounce": STATUS_FAILED,
    "dropped": STATUS_FAILED,
    "deferred": STATUS_FAILED,
    "open": STATUS_OPENED,
    "click": STATUS_OPENED,
    "processed": STATUS_SENT,
}

_EVENT_ERROR = {
    "bounce": "Email bounced",
    "dropped": "Email dropped",
}

def map_event_status(event_type) -> str:
    """Provider event type -> local status. Unrecognised input maps to "unknown"."""
    if not isinstance(event_type, str):
        return STATUS_UNKNOWN
    return _EVENT_STATUS.get(event_type, STATUS_UNKNOWN)

def error_for_event(event_type, reason=None) -> Optional[str]:
    if reason:
        return str(reason)
    if not isinstance(event_type, str):
        return None
    return _EVENT_ERROR.get(event_type)
