from .org import Org
from .user import User
from .org_membership import OrgMembership, ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER
from .profile_settings import ProfileSettings
from .email_log import EmailLog
from .webhook_event import WebhookEvent

__all__ = [
    "Org",
    "User",
    "OrgMembership",
    "ROLE_OWNER",
    "ROLE_ADMIN",
    "ROLE_MEMBER",
    "ProfileSettings",
    "EmailLog",
    "WebhookEvent",
]
