import json
from flask import request, jsonify, current_app
from . import bp
from salondesk.extensions import csrf, limiter
from salondesk.services.email_log_store import get_email_log_store
from salondesk.services.webhook_ingest import InvalidPayload, WebhookIngestor, parse_batch

@bp.get("/email")
def email_events_info():
    return jsonify({
        "message": "Delivery webhook endpoint is active. SendGrid will POST events here.",
        "method": "POST",
        "note": "This endpoint does not require authentication for SendGrid webhooks",
    })

@csrf.exempt
@bp.post("/email")
@limiter.exempt
def email_events():
    """
    SendGrid Event Webhook → /webhooks/email
    The provider calls this directly, so there is no tenant or login here,
    and no rate limit: a 429 would make the provider retry the batch.
    Always 200 once the body is a JSON array so the provider does not retry.
    """
    raw = request.get_data(cache=False) or b""
    current_app.logger.info(json.dumps({
        "event": "mail_webhook_received",
        "content_type": request.headers.get("Content-Type"),
        "content_length": request.content_length,
        "user_agent": request.headers.get("User-Agent"),
    }))

    try:
        events = parse_batch(raw)
    except InvalidPayload as exc:
        current_app.logger.warning(json.dumps({
            "event": "mail_webhook_rejected",
            "error": str(exc),
            "preview": raw[:200].decode("utf-8", errors="replace"),
        }))
        return jsonify({"error": "Invalid webhook format - expected array", "details": str(exc)}), 400

    ingestor = WebhookIngestor.from_config(get_email_log_store(), current_app.config)
    summary = ingestor.ingest(events)
    return jsonify(summary.to_dict()), 200
