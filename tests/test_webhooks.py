from datetime import timedelta

from salondesk.extensions import db
from salondesk.models import EmailLog, WebhookEvent
from salondesk.models.webhook_event import MATCH_FALLBACK, MATCH_MESSAGE_ID, MATCH_NONE, MATCH_SKIPPED
from salondesk.utils.helpers import utcnow

def _status(app, log_id):
    with app.app_context():
        return db.session.get(EmailLog, log_id).status

def _post(client, events):
    return client.post("/webhooks/email", json=events)

def test_get_reports_endpoint_active(client):
    r = client.get("/webhooks/email")
    assert r.status_code == 200
    assert r.get_json()["method"] == "POST"

def test_exact_message_id_updates_only_that_row(app, client, make_tenant, make_log):
    t = make_tenant()
    target = make_log(t.org_id, provider_message_id="m1")
    other = make_log(t.org_id, provider_message_id="m2")
    decoy = make_log(t.org_id, provider_message_id="m10")

    r = _post(client, [{"message_id": "m1", "event": "delivered", "email": "client@example.com"}])
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert body["updated"] == 1

    assert _status(app, target) == "delivered"
    assert _status(app, other) == "sent"
    assert _status(app, decoy) == "sent"

def test_decorated_message_id_matches_canonical_row(app, client, make_tenant, make_log):
    t = make_tenant()
    target = make_log(t.org_id, provider_message_id="m1")
    decoy = make_log(t.org_id, provider_message_id="m10")

    r = _post(client, [{"sg_message_id": "m1.recvd-abc", "event": "open", "sg_event_id": "evt-1"}])
    assert r.status_code == 200

    with app.app_context():
        row = db.session.get(EmailLog, target)
        assert row.status == "opened"
        assert row.provider_event_id == "evt-1"
    assert _status(app, decoy) == "sent"

def test_stored_id_with_underscore_is_not_a_wildcard(app, client, make_tenant, make_log):
    t = make_tenant()
    target = make_log(t.org_id, provider_message_id="ab_c")

    _post(client, [{"message_id": "abXc.recvd-1", "event": "delivered"}])
    assert _status(app, target) == "sent"

    _post(client, [{"message_id": "ab_c.recvd-1", "event": "delivered"}])
    assert _status(app, target) == "delivered"

def test_bounce_records_error_message(app, client, make_tenant, make_log):
    t = make_tenant()
    log_id = make_log(t.org_id, provider_message_id="m1")

    _post(client, [{"message_id": "m1.recvd", "event": "bounce"}])
    with app.app_context():
        row = db.session.get(EmailLog, log_id)
        assert row.status == "failed"
        assert row.error_message == "Email bounced"

    _post(client, [{"message_id": "m1.recvd", "event": "dropped", "reason": "Invalid SMTPAPI header"}])
    with app.app_context():
        assert db.session.get(EmailLog, log_id).error_message == "Invalid SMTPAPI header"

def test_unmapped_event_type_sets_unknown(app, client, make_tenant, make_log):
    t = make_tenant()
    log_id = make_log(t.org_id, provider_message_id="m1")
    _post(client, [{"message_id": "m1", "event": "spamreport"}])
    assert _status(app, log_id) == "unknown"

def test_fallback_updates_recent_row_for_recipient(app, client, make_tenant, make_log):
    t = make_tenant()
    log_id = make_log(
        t.org_id,
        provider_message_id="other",
        recipient_email="a@example.com",
        sent_at=utcnow() - timedelta(minutes=5),
    )

    r = _post(client, [{"message_id": "zzz.recvd", "event": "delivered", "email": "A@Example.com"}])
    assert r.status_code == 200
    assert r.get_json()["fallback"] == 1
    assert _status(app, log_id) == "delivered"

def test_fallback_ignores_rows_outside_window(app, client, make_tenant, make_log):
    t = make_tenant()
    log_id = make_log(
        t.org_id,
        provider_message_id="other",
        recipient_email="a@example.com",
        sent_at=utcnow() - timedelta(hours=2),
    )

    r = _post(client, [{"message_id": "zzz.recvd", "event": "delivered", "email": "a@example.com"}])
    assert r.status_code == 200
    body = r.get_json()
    assert body["updated"] == 0
    assert body["skipped"] == 1
    assert _status(app, log_id) == "sent"

def test_fallback_only_considers_newest_candidate(app, client, make_tenant, make_log):
    t = make_tenant()
    older = make_log(t.org_id, recipient_email="a@example.com", sent_at=utcnow() - timedelta(minutes=20))
    newer = make_log(t.org_id, recipient_email="a@example.com", sent_at=utcnow() - timedelta(minutes=2))

    _post(client, [{"message_id": "zzz", "event": "open", "email": "a@example.com"}])
    assert _status(app, newer) == "opened"
    assert _status(app, older) == "sent"

def test_batch_survives_event_without_message_id(app, client, make_tenant, make_log):
    t = make_tenant()
    first = make_log(t.org_id, provider_message_id="m1")
    second = make_log(t.org_id, provider_message_id="m2")

    r = _post(client, [
        {"message_id": "m1.recvd", "event": "delivered"},
        {"event": "delivered", "email": "client@example.com"},
        "not-an-object",
        {"message_id": "m2.recvd", "event": "bounce"},
    ])
    assert r.status_code == 200
    body = r.get_json()
    assert body == {"success": True, "processed": 4, "updated": 2, "skipped": 2, "fallback": 0}
    assert _status(app, first) == "delivered"
    assert _status(app, second) == "failed"

def test_non_array_payload_is_rejected(client):
    r = client.post("/webhooks/email", json={"message_id": "m1", "event": "delivered"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid webhook format - expected array"

def test_invalid_json_is_rejected(client):
    r = client.post("/webhooks/email", data="{not json", content_type="application/json")
    assert r.status_code == 400

def test_end_to_end_decorated_delivery(app, client, make_tenant, make_log):
    t = make_tenant()
    before = utcnow() - timedelta(hours=1)
    log_id = make_log(
        t.org_id,
        provider_message_id="xyz789",
        recipient_email="a@example.com",
        sent_at=before,
        updated_at=before,
    )

    r = _post(client, [{
        "message_id": "xyz789.recvd-1",
        "event": "delivered",
        "email": "a@example.com",
        "timestamp": int(utcnow().timestamp()),
    }])
    assert r.status_code == 200

    with app.app_context():
        row = db.session.get(EmailLog, log_id)
        assert row.status == "delivered"
        assert row.updated_at > before

def test_every_event_leaves_an_audit_row(app, client, make_tenant, make_log):
    t = make_tenant()
    log_id = make_log(t.org_id, provider_message_id="m1")

    _post(client, [
        {"message_id": "m1.recvd", "event": "delivered", "timestamp": 1700000000},
        {"message_id": "nomatch", "event": "open", "email": "nobody@example.com"},
        {"event": "open"},
    ])

    with app.app_context():
        rows = db.session.query(WebhookEvent).order_by(WebhookEvent.id).all()
        assert [r.match_kind for r in rows] == [MATCH_MESSAGE_ID, MATCH_NONE, MATCH_SKIPPED]
        assert rows[0].email_log_id == log_id
        assert rows[0].org_id == t.org_id
        assert rows[0].event_timestamp == 1700000000
        assert rows[0].provider_message_id == "m1"
        assert rows[1].email_log_id is None

def test_fallback_audit_kind(app, client, make_tenant, make_log):
    t = make_tenant()
    make_log(t.org_id, recipient_email="a@example.com", sent_at=utcnow() - timedelta(minutes=1))
    _post(client, [{"message_id": "zzz", "event": "delivered", "email": "a@example.com"}])
    with app.app_context():
        assert db.session.query(WebhookEvent).one().match_kind == MATCH_FALLBACK

def test_provider_batches_are_never_rate_limited(tmp_path, monkeypatch):
    from salondesk import create_app
    from salondesk.extensions import limiter

    # a second app re-initialises the shared limiter; put it back afterwards
    monkeypatch.setattr(limiter, "enabled", limiter.enabled)
    limited = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "RATELIMIT_ENABLED": True,
        "RATELIMIT_DEFAULT": "2 per minute",
        "ATTACHMENT_DIR": str(tmp_path),
    })
    with limited.app_context():
        db.create_all()
    c = limited.test_client()

    info = [c.get("/webhooks/email").status_code for _ in range(3)]
    assert info == [200, 200, 429]

    batch = [{"message_id": "m1", "event": "delivered"}]
    assert [c.post("/webhooks/email", json=batch).status_code for _ in range(5)] == [200] * 5

def test_store_failure_skips_only_that_event(app, client, make_tenant, make_log, monkeypatch):
    from sqlalchemy.exc import OperationalError
    from salondesk.services.email_log_store import EmailLogStore

    t = make_tenant()
    first = make_log(t.org_id, provider_message_id="m1")
    broken = make_log(t.org_id, provider_message_id="m2")
    third = make_log(t.org_id, provider_message_id="m3")

    original = EmailLogStore.apply_by_message_id

    def flaky(self, full_id, canonical_id, **kwargs):
        if canonical_id == "m2":
            raise OperationalError("UPDATE email_logs", {}, Exception("database is locked"))
        return original(self, full_id, canonical_id, **kwargs)

    monkeypatch.setattr(EmailLogStore, "apply_by_message_id", flaky)

    r = _post(client, [
        {"message_id": "m1.recvd", "event": "delivered"},
        {"message_id": "m2.recvd", "event": "delivered"},
        {"message_id": "m3.recvd", "event": "open"},
    ])
    assert r.status_code == 200
    body = r.get_json()
    assert (body["processed"], body["updated"], body["skipped"]) == (3, 2, 1)
    assert _status(app, first) == "delivered"
    assert _status(app, broken) == "sent"
    assert _status(app, third) == "opened"
