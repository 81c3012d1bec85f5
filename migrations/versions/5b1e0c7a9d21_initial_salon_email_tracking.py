"""initial: orgs, users, memberships, profile settings, email logs, webhook events

Revision ID: 5b1e0c7a9d21
Revises:
Create Date: 2026-10-18 09:12:44.118302

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5b1e0c7a9d21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "orgs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], name="fk_users_org_id_orgs", ondelete="RESTRICT"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_org_id", "users", ["org_id"])

    op.create_table(
        "org_memberships",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], name="fk_org_memberships_org", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_org_memberships_user", ondelete="CASCADE"),
        sa.CheckConstraint("role IN ('owner','admin','member')", name="ck_org_memberships_role_valid"),
        sa.UniqueConstraint("org_id", "user_id", name="uq_org_memberships_org_user"),
    )
    op.create_index("ix_org_memberships_org_id", "org_memberships", ["org_id"])
    op.create_index("ix_org_memberships_user_id", "org_memberships", ["user_id"])

    op.create_table(
        "profile_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("business_name", sa.String(length=255), nullable=True),
        sa.Column("email_relay_service", sa.String(length=40), nullable=True),
        sa.Column("email_relay_api_key", sa.String(length=255), nullable=True),
        sa.Column("from_email", sa.String(length=320), nullable=True),
        sa.Column("from_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], name="fk_profile_settings_org", ondelete="CASCADE"),
    )
    op.create_index("ix_profile_settings_org_id", "profile_settings", ["org_id"], unique=True)

    op.create_table(
        "email_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(length=120), nullable=True),
        sa.Column("recipient_email", sa.String(length=320), nullable=False),
        sa.Column("subject", sa.String(length=500), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="sent"),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.Column("provider_event_id", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attachment_path", sa.String(length=1024), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], name="fk_email_logs_org", ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('pending','sent','delivered','failed','opened','unknown')",
            name="ck_email_logs_status_valid",
        ),
    )
    op.create_index("ix_email_logs_org_id", "email_logs", ["org_id"])
    op.create_index("ix_email_logs_recipient_email", "email_logs", ["recipient_email"])
    op.create_index("ix_email_logs_status", "email_logs", ["status"])
    op.create_index("ix_email_logs_provider_message_id", "email_logs", ["provider_message_id"])
    op.create_index("ix_email_logs_sent_at", "email_logs", ["sent_at"])
    op.create_index("ix_email_logs_org_status_sent_at", "email_logs", ["org_id", "status", "sent_at"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email_log_id", sa.Integer(), nullable=True),
        sa.Column("org_id", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(length=40), nullable=True),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.Column("provider_event_id", sa.String(length=255), nullable=True),
        sa.Column("event_timestamp", sa.BigInteger(), nullable=True),
        sa.Column("match_kind", sa.String(length=20), nullable=False, server_default="none"),
        sa.Column("raw_event", sa.JSON(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["email_log_id"], ["email_logs.id"], name="fk_webhook_events_email_log", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], name="fk_webhook_events_org", ondelete="CASCADE"),
    )
    op.create_index("ix_webhook_events_email_log_id", "webhook_events", ["email_log_id"])
    op.create_index("ix_webhook_events_org_id", "webhook_events", ["org_id"])
    op.create_index("ix_webhook_events_provider_message_id", "webhook_events", ["provider_message_id"])
    op.create_index("ix_webhook_events_processed_at", "webhook_events", ["processed_at"])


def downgrade():
    op.drop_index("ix_webhook_events_processed_at", table_name="webhook_events")
    op.drop_index("ix_webhook_events_provider_message_id", table_name="webhook_events")
    op.drop_index("ix_webhook_events_org_id", table_name="webhook_events")
    op.drop_index("ix_webhook_events_email_log_id", table_name="webhook_events")
    op.drop_table("webhook_events")

    op.drop_index("ix_email_logs_org_status_sent_at", table_name="email_logs")
    op.drop_index("ix_email_logs_sent_at", table_name="email_logs")
    op.drop_index("ix_email_logs_provider_message_id", table_name="email_logs")
    op.drop_index("ix_email_logs_status", table_name="email_logs")
    op.drop_index("ix_email_logs_recipient_email", table_name="email_logs")
    op.drop_index("ix_email_logs_org_id", table_name="email_logs")
    op.drop_table("email_logs")

    op.drop_index("ix_profile_settings_org_id", table_name="profile_settings")
    op.drop_table("profile_settings")

    op.drop_index("ix_org_memberships_user_id", table_name="org_memberships")
    op.drop_index("ix_org_memberships_org_id", table_name="org_memberships")
    op.drop_table("org_memberships")

    op.drop_index("ix_users_org_id", table_name="users")
    op.drop_table("users")

    op.drop_table("orgs")
