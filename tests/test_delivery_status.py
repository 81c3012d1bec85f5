import pytest
from salondesk.services.delivery_status import STATUSES, error_for_event, map_event_status

@pytest.mark.parametrize("event, status", [
    ("delivered", "delivered"),
    ("bounce", "failed"),
    ("dropped", "failed"),
    ("deferred", "failed"),
    ("open", "opened"),
    ("click", "opened"),
    ("processed", "sent"),
])
def test_known_events(event, status):
    assert map_event_status(event) == status

@pytest.mark.parametrize("event", ["spamreport", "unsubscribe", "", "DELIVERED", None, 42, {"x": 1}])
def test_unmapped_inputs_are_unknown(event):
    assert map_event_status(event) == "unknown"

def test_every_result_is_a_defined_status():
    for event in ("delivered", "bounce", "open", "nope", None):
        assert map_event_status(event) in STATUSES

def test_error_for_event():
    assert error_for_event("bounce") == "Email bounced"
    assert error_for_event("dropped") == "Email dropped"
    assert error_for_event("bounce", "550 mailbox unavailable") == "550 mailbox unavailable"
    assert error_for_event("delivered") is None
    assert error_for_event(None) is None
