"""
Apply a batch of provider delivery events to the email log.

A batch never fails because one event does: events without a message id are
skipped, events that match nothing fall back to a recipient + recency lookup,
and any per-event exception is logged and swallowed so the provider always
gets its acknowledgment.
"""
import json
from dataclasses import dataclass, asdict
from datetime import timedelta
from typing import Any, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from salondesk.models.webhook_event import MATCH_FALLBACK, MATCH_MESSAGE_ID, MATCH_NONE, MATCH_SKIPPED
from salondesk.services.delivery_status import error_for_event, map_event_status
from salondesk.services.email_log_store import EmailLogStore
from salondesk.services.message_ids import normalize_message_id
from salondesk.utils.helpers import utcnow


class InvalidPayload(ValueError):
    pass


@dataclass
class IngestSummary:
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    fallback: int = 0

    def to_dict(self):
        return {"success": True, **asdict(self)}


def parse_batch(raw: bytes) -> List[Any]:
    """The provider posts a JSON array; anything else is a client error."""
    try:
        events = json.loads(raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise InvalidPayload(f"Invalid webhook format: {exc}") from exc
    if not isinstance(events, list):
        raise InvalidPayload("Invalid webhook format - expected array")
    return events


def _log(event: str, level: str = "info", **fields) -> None:
    getattr(current_app.logger, level)(json.dumps({"event": event, **fields}, default=str))


class WebhookIngestor:
    def __init__(
        self,
        store: EmailLogStore,
        *,
        lookback_days: int = 7,
        max_candidates: int = 5,
        window_minutes: int = 30,
    ):
        self.store = store
        self.lookback = timedelta(days=lookback_days)
        self.max_candidates = max_candidates
        self.window = timedelta(minutes=window_minutes)

    @classmethod
    def from_config(cls, store: EmailLogStore, config) -> "WebhookIngestor":
        return cls(
            store,
            lookback_days=int(config.get("WEBHOOK_FALLBACK_LOOKBACK_DAYS", 7)),
            max_candidates=int(config.get("WEBHOOK_FALLBACK_CANDIDATES", 5)),
            window_minutes=int(config.get("WEBHOOK_FALLBACK_WINDOW_MINUTES", 30)),
        )

    def ingest(self, events: List[Any], now=None) -> IngestSummary:
        summary = IngestSummary()
        now = now or utcnow()
        for index, event in enumerate(events):
            summary.processed += 1
            try:
                kind = self._apply(event, now)
            except Exception:
                self.store.rollback()
                current_app.logger.exception("mail_webhook_event_error index=%s", index)
                summary.skipped += 1
                continue
            if kind == MATCH_MESSAGE_ID:
                summary.updated += 1
            elif kind == MATCH_FALLBACK:
                summary.updated += 1
                summary.fallback += 1
            else:
                summary.skipped += 1
        _log("mail_webhook_batch", **asdict(summary))
        return summary

    def _apply(self, event: Any, now) -> str:
        if not isinstance(event, dict):
            _log("mail_webhook_skip", "warning", reason="not_an_object")
            self._audit(event, MATCH_SKIPPED)
            return MATCH_SKIPPED

        full_id = event.get("sg_message_id") or event.get("message_id")
        full_id = str(full_id) if full_id is not None else None
        canonical = normalize_message_id(full_id)
        event_type = event.get("event")
        event_id = event.get("sg_event_id") or event.get("event_id")
        event_id = str(event_id) if event_id else None
        email = event.get("email")

        if not canonical:
            _log("mail_webhook_skip", "warning", reason="missing_message_id", event_type=event_type)
            self._audit(event, MATCH_SKIPPED, event_type=event_type, event_id=event_id)
            return MATCH_SKIPPED

        status = map_event_status(event_type)
        error_message = error_for_event(event_type, event.get("reason"))

        changed = self.store.apply_by_message_id(
            full_id,
            canonical,
            status=status,
            event_id=event_id,
            error_message=error_message,
            now=now,
        )
        if changed:
            _log("mail_webhook", provider_msg_id=full_id, status=status, rows=changed)
            row = self.store.first_by_message_id(full_id, canonical)
            self._audit(event, MATCH_MESSAGE_ID, row=row, event_type=event_type, message_id=canonical, event_id=event_id)
            return MATCH_MESSAGE_ID

        row = self._fallback_row(email, now)
        if row is not None:
            self.store.apply_to_row(
                row.id,
                status=status,
                event_id=event_id,
                error_message=error_message,
                now=now,
            )
            _log("mail_webhook_fallback", "warning", provider_msg_id=full_id, email_log_id=row.id, status=status)
            self._audit(event, MATCH_FALLBACK, row=row, event_type=event_type, message_id=canonical, event_id=event_id)
            return MATCH_FALLBACK

        _log("mail_webhook_miss", "warning", provider_msg_id=full_id, base=canonical, to=email)
        self._audit(event, MATCH_NONE, event_type=event_type, message_id=canonical, event_id=event_id)
        return MATCH_NONE

    def _fallback_row(self, email: Optional[str], now):
        """Newest recent row for the recipient, only if it was sent within the window."""
        if not email or not isinstance(email, str):
            return None
        candidates = self.store.recent_for_recipient(email, since=now - self.lookback, limit=self.max_candidates)
        if not candidates:
            return None
        newest = candidates[0]
        if now - newest.sent_at < self.window:
            return newest
        return None

    def _audit(self, event, kind, row=None, event_type=None, message_id=None, event_id=None) -> None:
        # audit failures never change the match outcome
        raw = event if isinstance(event, dict) else {}
        try:
            self.store.record_webhook_event(
                raw_event=event,
                match_kind=kind,
                email_log=row,
                event_type=event_type,
                message_id=message_id,
                event_id=event_id,
                event_timestamp=raw.get("timestamp"),
            )
        except SQLAlchemyError:
            self.store.rollback()
            current_app.logger.warning("mail_webhook_audit_failed kind=%s", kind, exc_info=True)
