from functools import wraps
from flask import jsonify
from flask_login import current_user
from salondesk.extensions import db
from salondesk.models.org_membership import OrgMembership

def current_org_id():
    if not getattr(current_user, "is_authenticated", False):
        return None
    return getattr(current_user, "org_id", None)

def _membership():
    org_id = current_org_id()
    if not org_id:
        return None
    return db.session.query(OrgMembership).filter_by(org_id=org_id, user_id=current_user.id).one_or_none()

def require_member(fn):
    @wraps(fn)
    def _wrap(*args, **kwargs):
        if not getattr(current_user, "is_authenticated", False):
            return _json_error(401)
        if not current_org_id():
            return _json_error(401)
        if _membership() is None:
            return _json_error(404)  # anti-enumeration
        return fn(*args, **kwargs)
    return _wrap

def role_required(*roles):
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            if not getattr(current_user, "is_authenticated", False):
                return _json_error(401)
            if not current_org_id():
                return _json_error(401)
            m = _membership()
            if m is None:
                return _json_error(404)
            if m.role not in roles:
                return _json_error(403)
            return fn(*args, **kwargs)
        return _wrap
    return deco

def _json_error(code: int):
    # Every caller of these guards is a JSON endpoint
    return jsonify({"error": {401: "unauthorized", 403: "forbidden", 404: "not_found"}[code], "code": code}), code
