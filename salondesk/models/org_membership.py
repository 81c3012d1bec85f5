from sqlalchemy import func, CheckConstraint, UniqueConstraint
from salondesk.extensions import db

# Text + CHECK so roles can evolve without enum migrations
ROLE_MEMBER = "member"
ROLE_ADMIN = "admin"
ROLE_OWNER = "owner"
ROLE_CHOICES = (ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER)
# May change log rows (manual overrides)
WRITE_ROLES = (ROLE_OWNER, ROLE_ADMIN)

class OrgMembership(db.Model):
    """Links a staff user to a salon."""
    __tablename__ = "org_memberships"

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_MEMBER, server_default=ROLE_MEMBER)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_org_memberships_org_user"),
        CheckConstraint(
            "role IN (%s)" % ",".join(f"'{r}'" for r in ROLE_CHOICES),
            name="ck_org_memberships_role_valid",
        ),
    )
