from sqlalchemy import CheckConstraint, Index
from salondesk.extensions import db
from salondesk.services.delivery_status import STATUSES
from salondesk.utils.helpers import utcnow, isoformat

class EmailLog(db.Model):
    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_number = db.Column(db.String(120), nullable=True)
    recipient_email = db.Column(db.String(320), nullable=False, index=True)
    subject = db.Column(db.String(500), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="sent", index=True)
    provider_message_id = db.Column(db.String(255), nullable=True, index=True)
    provider_event_id = db.Column(db.String(255), nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    attachment_path = db.Column(db.String(1024), nullable=True)

    sent_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN (%s)" % ",".join(f"'{s}'" for s in STATUSES),
            name="ck_email_logs_status_valid",
        ),
        Index("ix_email_logs_org_status_sent_at", "org_id", "status", "sent_at"),
    )

    def to_dict(self):
        return dict(
            id=self.id,
            invoice_number=self.invoice_number,
            recipient_email=self.recipient_email,
            subject=self.subject,
            status=self.status,
            provider_message_id=self.provider_message_id,
            provider_event_id=self.provider_event_id,
            error_message=self.error_message,
            has_attachment=bool(self.attachment_path),
            sent_at=isoformat(self.sent_at),
            updated_at=isoformat(self.updated_at),
        )

    def __repr__(self) -> str:
        return f"<EmailLog id={self.id} to={self.recipient_email} status={self.status}>"
