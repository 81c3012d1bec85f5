import json
import httpx

from salondesk.extensions import db
from salondesk.models import EmailLog, OrgMembership, ProfileSettings, User
from salondesk.services import tokens

def test_bootstrap_owner_creates_org_user_and_membership(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "bootstrap", "owner", "--org-name", "Studio Nine", "--email", "Owner@Salon.test", "--password", "pw-123456",
    ])
    assert result.exit_code == 0, result.output
    assert "Bootstrap complete" in result.output

    with app.app_context():
        user = db.session.query(User).filter_by(email="owner@salon.test").one()
        assert user.check_password("pw-123456")
        membership = db.session.query(OrgMembership).filter_by(user_id=user.id).one()
        assert membership.role == "owner"

    again = runner.invoke(args=[
        "bootstrap", "owner", "--org-name", "Studio Nine", "--email", "owner@salon.test", "--password", "x",
    ])
    assert again.exit_code != 0
    assert "User already exists" in again.output

def test_users_token_round_trips(app, make_tenant):
    t = make_tenant()
    result = app.test_cli_runner().invoke(args=["users", "token", "--email", "staff1@salon.test"])
    assert result.exit_code == 0, result.output
    with app.test_request_context():
        assert tokens.verify_api_token(result.output.strip()) == t.user_id

def test_settings_relay_then_reconcile(app, make_tenant, make_log, monkeypatch):
    t = make_tenant()
    log_id = make_log(t.org_id, recipient_email="a@example.com", provider_message_id="m1")
    runner = app.test_cli_runner()

    missing = runner.invoke(args=["email-logs", "reconcile", "--org-id", str(t.org_id)])
    assert missing.exit_code != 0
    assert "SendGrid API key not configured" in missing.output

    result = runner.invoke(args=[
        "settings", "relay", "--org-id", str(t.org_id), "--api-key", " SG.key ", "--from-email", "Front@Salon.test",
    ])
    assert result.exit_code == 0, result.output
    with app.app_context():
        settings = db.session.query(ProfileSettings).filter_by(org_id=t.org_id).one()
        assert settings.api_key == "SG.key"
        assert settings.from_email == "front@salon.test"

    def handler(request):
        if request.url.path == "/v3/user/profile":
            return httpx.Response(200, json={})
        return httpx.Response(200, json={"messages": [
            {"msg_id": "m1.filter0001", "events": [{"event_name": "delivered"}]},
        ]})

    monkeypatch.setitem(app.config, "SENDGRID_TRANSPORT", httpx.MockTransport(handler))
    result = runner.invoke(args=["email-logs", "reconcile", "--org-id", str(t.org_id)])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["updated"] == 1
    with app.app_context():
        assert db.session.get(EmailLog, log_id).status == "delivered"
