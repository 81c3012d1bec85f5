from salondesk.extensions import db
from salondesk.utils.helpers import utcnow

MATCH_MESSAGE_ID = "message_id"
MATCH_FALLBACK = "fallback"
MATCH_NONE = "none"
MATCH_SKIPPED = "skipped"

class WebhookEvent(db.Model):
    """Append-only audit row per provider event received on the webhook."""
    __tablename__ = "webhook_events"

    id = db.Column(db.Integer, primary_key=True)
    email_log_id = db.Column(db.Integer, db.ForeignKey("email_logs.id", ondelete="SET NULL"), nullable=True, index=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=True, index=True)
    event_type = db.Column(db.String(40), nullable=True)
    provider_message_id = db.Column(db.String(255), nullable=True, index=True)
    provider_event_id = db.Column(db.String(255), nullable=True)
    event_timestamp = db.Column(db.BigInteger, nullable=True)
    match_kind = db.Column(db.String(20), nullable=False, default=MATCH_NONE)
    raw_event = db.Column(db.JSON, nullable=False, default=dict)
    processed_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<WebhookEvent id={self.id} type={self.event_type} match={self.match_kind}>"
