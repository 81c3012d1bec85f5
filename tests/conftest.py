import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")

import types
import pytest
from salondesk import create_app
from salondesk.extensions import db
from salondesk.models import Org, User, OrgMembership, ProfileSettings, EmailLog, ROLE_OWNER
from salondesk.models.profile_settings import RELAY_SENDGRID

@pytest.fixture(scope="session")
def app(tmp_path_factory):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "WTF_CSRF_ENABLED": False,
        "RATELIMIT_ENABLED": False,
        "ATTACHMENT_DIR": str(tmp_path_factory.mktemp("attachments")),
        "SENDGRID_API_BASE": "https://sendgrid.test",
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()

@pytest.fixture()
def make_tenant(app):
    """Create org + user + membership (+ relay settings when api_key is given)."""
    counter = {"n": 0}

    def _make(role=ROLE_OWNER, api_key=None, from_email="studio@salon.test"):
        counter["n"] += 1
        with app.app_context():
            org = Org(name=f"Salon {counter['n']}")
            db.session.add(org)
            db.session.flush()
            user = User(email=f"staff{counter['n']}@salon.test", org_id=org.id, is_active=True)
            user.set_password("pw-123456")
            db.session.add(user)
            db.session.flush()
            db.session.add(OrgMembership(org_id=org.id, user_id=user.id, role=role))
            if api_key is not None:
                db.session.add(ProfileSettings(
                    org_id=org.id,
                    business_name=org.name,
                    email_relay_service=RELAY_SENDGRID,
                    email_relay_api_key=api_key,
                    from_email=from_email,
                ))
            db.session.commit()
            return types.SimpleNamespace(org_id=org.id, user_id=user.id)

    return _make

@pytest.fixture()
def make_log(app):
    def _make(org_id, **fields):
        fields.setdefault("recipient_email", "client@example.com")
        fields.setdefault("subject", "Invoice")
        fields.setdefault("status", "sent")
        with app.app_context():
            row = EmailLog(org_id=org_id, **fields)
            db.session.add(row)
            db.session.commit()
            return row.id

    return _make

@pytest.fixture()
def login(client):
    def _login(user_id):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user_id)
            sess["_fresh"] = True
    return _login
