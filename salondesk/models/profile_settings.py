from sqlalchemy import func
from salondesk.extensions import db

RELAY_SENDGRID = "sendgrid"

class ProfileSettings(db.Model):
    __tablename__ = "profile_settings"

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    business_name = db.Column(db.String(255), nullable=True)
    email_relay_service = db.Column(db.String(40), nullable=True)
    email_relay_api_key = db.Column(db.String(255), nullable=True)
    from_email = db.Column(db.String(320), nullable=True)
    from_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def api_key(self):
        key = (self.email_relay_api_key or "").strip()
        return key or None
