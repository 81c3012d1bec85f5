from flask import Blueprint

bp = Blueprint("email_logs", __name__)

from . import routes  # noqa: E402,F401
