import base64
import binascii
import json
import os
import time
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from flask import current_app
from werkzeug.utils import secure_filename

from salondesk.models import EmailLog, ProfileSettings
from salondesk.models.profile_settings import RELAY_SENDGRID
from salondesk.services.delivery_status import STATUS_FAILED, STATUS_SENT
from salondesk.services.email_log_store import EmailLogStore
from salondesk.services.message_ids import normalize_message_id
from salondesk.services.sendgrid import ProviderError, build_client
from salondesk.utils.validators import clean_str, is_valid_email

DEFAULT_BODY = "Please find the invoice attached."


class SendError(Exception):
    """The send request itself is unusable (bad input or relay not configured)."""


@dataclass
class SendResult:
    ok: bool
    rows: List[EmailLog] = field(default_factory=list)
    provider_message_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self):
        payload = {
            "success": self.ok,
            "email_log_ids": [r.id for r in self.rows],
            "provider_message_id": self.provider_message_id,
        }
        if self.error:
            payload["error"] = self.error
        return payload


def parse_recipients(value) -> List[str]:
    if isinstance(value, str):
        items = value.replace(";", ",").split(",")
    elif isinstance(value, (list, tuple)):
        items = [v for v in value if isinstance(v, str)]
    else:
        items = []
    seen, out = set(), []
    for item in items:
        addr = (item or "").strip().lower()
        if addr and addr not in seen:
            seen.add(addr)
            out.append(addr)
    if not out:
        raise SendError("At least one recipient is required")
    bad = [a for a in out if not is_valid_email(a)]
    if bad:
        raise SendError(f"Invalid recipient address: {', '.join(bad)}")
    return out


def _decode_attachment(pdf_data: Optional[str]) -> Optional[bytes]:
    if not pdf_data:
        return None
    try:
        return base64.b64decode(pdf_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SendError("pdfData must be base64 encoded") from exc


def _store_attachment(org_id: int, filename: str, content: bytes) -> str:
    """Persist the sent document so the log can serve it later."""
    root = os.path.join(current_app.config["ATTACHMENT_DIR"], f"org_{org_id}")
    os.makedirs(root, exist_ok=True)
    path = os.path.join(root, f"{uuid.uuid4().hex}_{secure_filename(filename) or 'invoice.pdf'}")
    with open(path, "wb") as fh:
        fh.write(content)
    return path


def _relay_settings(org_id: int) -> ProfileSettings:
    settings = ProfileSettings.query.filter_by(org_id=org_id).one_or_none()
    if settings is None:
        raise SendError("Profile settings not configured")
    service = (settings.email_relay_service or "").strip().lower()
    if not service or not settings.api_key:
        raise SendError(
            "Email relay service not configured. Please set up a relay service (SendGrid) in Profile Settings."
        )
    if service != RELAY_SENDGRID:
        raise SendError(f"Unsupported relay service: {service}. Currently supported: SendGrid")
    if not settings.from_email:
        raise SendError("Sender address (from_email) not configured")
    return settings


def _mail_payload(settings, recipients: Sequence[str], subject: str, body: Optional[str], attachment, filename):
    text = body or DEFAULT_BODY
    payload = {
        "personalizations": [{"to": [{"email": addr} for addr in recipients]}],
        "from": {"email": settings.from_email, "name": settings.from_name or settings.business_name or ""},
        "subject": subject,
        "content": [
            {"type": "text/plain", "value": text},
            {"type": "text/html", "value": text.replace("\n", "<br>")},
        ],
    }
    if attachment is not None:
        payload["attachments"] = [{
            "content": base64.b64encode(attachment).decode("ascii"),
            "filename": filename,
            "type": "application/pdf",
            "disposition": "attachment",
        }]
    return payload


def send_invoice_email(
    store: EmailLogStore,
    org_id: int,
    *,
    to,
    subject: str,
    body: Optional[str] = None,
    invoice_number: Optional[str] = None,
    pdf_data: Optional[str] = None,
    pdf_filename: Optional[str] = None,
) -> SendResult:
    """
    Send one message to every recipient through the tenant's relay, then log
    one row per recipient: ``sent`` with the canonical provider id, or
    ``failed`` with the provider's error.
    """
    subject = clean_str(subject, max_len=500)
    if not subject:
        raise SendError("subject is required")
    recipients = parse_recipients(to)
    settings = _relay_settings(org_id)
    attachment = _decode_attachment(pdf_data)
    filename = secure_filename(pdf_filename or "") or "invoice.pdf"
    attachment_path = _store_attachment(org_id, filename, attachment) if attachment is not None else None

    payload = _mail_payload(settings, recipients, subject, body, attachment, filename)
    invoice_number = clean_str(invoice_number, max_len=120)

    start = time.perf_counter()
    try:
        provider_id = build_client(settings.api_key).send_mail(payload)
    except ProviderError as ex:
        latency_ms = int((time.perf_counter() - start) * 1000)
        rows = store.record_send(
            org_id=org_id,
            recipients=recipients,
            subject=subject,
            status=STATUS_FAILED,
            invoice_number=invoice_number,
            error_message=str(ex),
            attachment_path=attachment_path,
        )
        current_app.logger.warning(json.dumps({
            "event": "mail_send",
            "to": recipients,
            "subject": subject,
            "outcome": "provider_error",
            "status_code": ex.status_code,
            "latency_ms": latency_ms,
            "error": str(ex),
        }))
        return SendResult(ok=False, rows=rows, error=str(ex))

    latency_ms = int((time.perf_counter() - start) * 1000)
    canonical = normalize_message_id(provider_id)
    rows = store.record_send(
        org_id=org_id,
        recipients=recipients,
        subject=subject,
        status=STATUS_SENT,
        invoice_number=invoice_number,
        provider_message_id=canonical,
        attachment_path=attachment_path,
    )
    current_app.logger.info(json.dumps({
        "event": "mail_send",
        "to": recipients,
        "subject": subject,
        "outcome": "sent",
        "provider_msg_id": canonical,
        "latency_ms": latency_ms,
    }))
    return SendResult(ok=True, rows=rows, provider_message_id=canonical)
