import os
from flask import request, jsonify, current_app, send_file
from . import bp
from salondesk.extensions import limiter
from salondesk.models.org_membership import WRITE_ROLES
from salondesk.services.delivery_status import OVERRIDE_STATUSES, STATUSES
from salondesk.services.email import SendError, send_invoice_email
from salondesk.services.email_log_store import get_email_log_store
from salondesk.services.policy import current_org_id, require_member, role_required
from salondesk.services.reconcile import ReconcileError, reconcile_org

def _check_status_limit():
    return current_app.config.get("CHECK_STATUS_RATE_LIMIT", "10 per minute")

def _json_object():
    """Request body as a dict; {} when absent or unparsable, None when it is JSON but not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None

def _non_string_fields(data, *keys):
    return [k for k in keys if data.get(k) is not None and not isinstance(data[k], str)]

def _bad_body(fields=None):
    if fields:
        return jsonify({"error": f"Fields must be strings: {', '.join(fields)}"}), 400
    return jsonify({"error": "Request body must be a JSON object"}), 400

@bp.get("")
@require_member
def list_logs():
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in STATUSES:
        return jsonify({"error": f"Invalid status. Must be one of: {', '.join(STATUSES)}"}), 400
    rows = get_email_log_store().list_for_org(current_org_id(), status=status)
    return jsonify([r.to_dict() for r in rows])

@bp.get("/<int:log_id>")
@require_member
def get_log(log_id: int):
    row = get_email_log_store().get_for_org(current_org_id(), log_id)
    if row is None:
        return jsonify({"error": "Email log not found"}), 404
    return jsonify(row.to_dict())

@bp.get("/<int:log_id>/attachment")
@require_member
def get_attachment(log_id: int):
    row = get_email_log_store().get_for_org(current_org_id(), log_id)
    if row is None or not row.attachment_path:
        return jsonify({"error": "PDF not found"}), 404
    if not os.path.isfile(row.attachment_path):
        current_app.logger.error("attachment missing on disk for email_log %s", row.id)
        return jsonify({"error": "Failed to read PDF file"}), 500
    return send_file(row.attachment_path, mimetype="application/pdf")

@bp.put("/<int:log_id>/status")
@role_required(*WRITE_ROLES)
def override_status(log_id: int):
    """Manual override, used for local testing when no provider integration is configured."""
    data = _json_object()
    if data is None:
        return _bad_body()
    status = data.get("status")
    if not status:
        return jsonify({"error": "status is required"}), 400
    if status not in OVERRIDE_STATUSES:
        return jsonify({"error": f"Invalid status. Must be one of: {', '.join(OVERRIDE_STATUSES)}"}), 400

    row = get_email_log_store().set_status(current_org_id(), log_id, status)
    if row is None:
        return jsonify({"error": "Email log not found"}), 404
    current_app.logger.info("manual status update email_log=%s status=%s", log_id, status)
    return jsonify({"success": True, "message": "Status updated", "status": status})

@bp.post("/update-status")
@role_required(*WRITE_ROLES)
def update_status_by_message_id():
    data = _json_object()
    if data is None:
        return _bad_body()
    bad = _non_string_fields(data, "messageId", "status", "eventId", "errorMessage")
    if bad:
        return _bad_body(bad)
    message_id = (data.get("messageId") or "").strip()
    if not message_id:
        return jsonify({"error": "messageId is required"}), 400
    status = data.get("status") or "unknown"
    if status not in STATUSES:
        return jsonify({"error": f"Invalid status. Must be one of: {', '.join(STATUSES)}"}), 400

    changed = get_email_log_store().apply_by_message_id_for_org(
        current_org_id(),
        message_id,
        status=status,
        event_id=data.get("eventId") or None,
        error_message=data.get("errorMessage") or None,
    )
    if not changed:
        current_app.logger.warning("no email log found with messageId %s", message_id)
        return jsonify({"error": "Email log not found"}), 404
    return jsonify({"success": True, "message": "Status updated", "updated": changed})

@bp.post("/check-status")
@require_member
@limiter.limit(_check_status_limit)
def check_status():
    try:
        result = reconcile_org(get_email_log_store(), current_org_id())
    except ReconcileError as exc:
        payload = {"error": exc.message}
        if exc.details:
            payload["details"] = exc.details
        return jsonify(payload), 400
    return jsonify(result.to_dict())

@bp.post("/send")
@require_member
def send():
    data = _json_object()
    if data is None:
        return _bad_body()
    bad = _non_string_fields(data, "subject", "body", "invoiceNumber", "pdfData", "pdfFilename")
    if bad:
        return _bad_body(bad)
    try:
        result = send_invoice_email(
            get_email_log_store(),
            current_org_id(),
            to=data.get("to"),
            subject=data.get("subject"),
            body=data.get("body"),
            invoice_number=data.get("invoiceNumber"),
            pdf_data=data.get("pdfData"),
            pdf_filename=data.get("pdfFilename"),
        )
    except SendError as exc:
        return jsonify({"error": str(exc)}), 400
    if not result.ok:
        return jsonify(result.to_dict()), 502
    return jsonify(result.to_dict())
