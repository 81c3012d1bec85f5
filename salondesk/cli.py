import json
import click
from flask.cli import with_appcontext
from salondesk.extensions import db
from salondesk.models import Org, OrgMembership, ProfileSettings, User, ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER
from salondesk.models.profile_settings import RELAY_SENDGRID
from salondesk.services import tokens
from salondesk.services.email_log_store import get_email_log_store
from salondesk.services.reconcile import ReconcileError, reconcile_org

def _get_or_create_org(name: str) -> Org:
    org = db.session.query(Org).filter(Org.name == name).one_or_none()
    if org:
        return org
    org = Org(name=name, is_active=True)
    db.session.add(org)
    db.session.flush()
    return org

@click.group()
def bootstrap():
    """Bootstrap helpers."""

@bootstrap.command("owner")
@click.option("--org-name", required=True)
@click.option("--email", required=True)
@click.option("--password", required=True)
@with_appcontext
def bootstrap_owner(org_name, email, password):
    # fail fast if user exists
    if db.session.query(User).filter_by(email=email.lower()).count():
        raise click.ClickException("User already exists")

    org = _get_or_create_org(org_name)

    user = User(email=email.lower(), is_active=True, org_id=org.id)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    db.session.add(OrgMembership(org_id=org.id, user_id=user.id, role=ROLE_OWNER))
    db.session.commit()

    click.echo(f"Bootstrap complete: org_id={org.id} owner_user_id={user.id} email={user.email}")

@click.group()
def users():
    """User management."""

@users.command("create")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--org-id", type=int, required=True, help="Existing org id")
@click.option("--role", type=click.Choice([ROLE_MEMBER, ROLE_ADMIN, ROLE_OWNER]), default=ROLE_MEMBER)
@with_appcontext
def users_create(email, password, org_id, role):
    if db.session.query(User).filter_by(email=email.lower()).count():
        raise click.ClickException("User already exists")

    org = db.session.get(Org, org_id)
    if not org:
        raise click.ClickException(f"Org id {org_id} not found")

    user = User(email=email.lower(), is_active=True, org_id=org.id)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    db.session.add(OrgMembership(org_id=org.id, user_id=user.id, role=role))
    db.session.commit()

    click.echo(f"User created id={user.id} email={user.email} org_id={org.id} role={role}")

@users.command("token")
@click.option("--email", required=True)
@with_appcontext
def users_token(email):
    """Mint a bearer token for API clients."""
    user = db.session.query(User).filter_by(email=email.lower()).one_or_none()
    if not user:
        raise click.ClickException("User not found")
    click.echo(tokens.generate_api_token(user.id))

@click.group()
def settings():
    """Per-salon profile settings."""

@settings.command("relay")
@click.option("--org-id", type=int, required=True)
@click.option("--api-key", required=True)
@click.option("--from-email", required=True)
@click.option("--from-name", default=None)
@with_appcontext
def settings_relay(org_id, api_key, from_email, from_name):
    if not db.session.get(Org, org_id):
        raise click.ClickException(f"Org id {org_id} not found")
    row = ProfileSettings.query.filter_by(org_id=org_id).one_or_none()
    if row is None:
        row = ProfileSettings(org_id=org_id)
        db.session.add(row)
    row.email_relay_service = RELAY_SENDGRID
    row.email_relay_api_key = api_key.strip()
    row.from_email = from_email.strip().lower()
    row.from_name = from_name
    db.session.commit()
    click.echo(f"Relay configured for org {org_id}: service={RELAY_SENDGRID} from={row.from_email}")

@click.group("email-logs")
def email_logs():
    """Delivery status tracking."""

@email_logs.command("reconcile")
@click.option("--org-id", type=int, required=True)
@with_appcontext
def email_logs_reconcile(org_id):
    """Poll the provider for the org's pending/sent emails."""
    try:
        result = reconcile_org(get_email_log_store(), org_id)
    except ReconcileError as exc:
        raise click.ClickException(exc.message)
    click.echo(json.dumps(result.to_dict()))

def register_cli(app):
    app.cli.add_command(bootstrap)
    app.cli.add_command(users)
    app.cli.add_command(settings)
    app.cli.add_command(email_logs)
