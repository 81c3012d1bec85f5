"""
Active poll: ask the provider what happened to a tenant's outstanding emails.

Used when no webhook is configured, or as a manual refresh. Per-row searches
run concurrently on one event loop and are joined with a tolerate-failure
gather; database writes happen afterwards on the calling thread, one
single-row commit each.
"""
import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from salondesk.models.profile_settings import ProfileSettings
from salondesk.services.delivery_status import error_for_event, map_event_status
from salondesk.services.email_log_store import EmailLogStore
from salondesk.services.message_ids import match_rank
from salondesk.services.sendgrid import ProviderError, SendGridClient, build_client


class ReconcileError(Exception):
    """Precondition failure surfaced to the caller (missing key, rejected key)."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass
class ReconcileResult:
    checked: int = 0
    updated: int = 0

    def to_dict(self) -> Dict[str, Any]:
        if not self.checked:
            message = "No pending emails to check"
        else:
            message = f"Checked {self.checked} emails, updated {self.updated} statuses"
        return {"success": True, "checked": self.checked, "updated": self.updated, "message": message}


@dataclass(frozen=True)
class PollTarget:
    log_id: int
    recipient_email: str
    message_id: str


@dataclass(frozen=True)
class PollOutcome:
    status: str
    event_type: Optional[str]
    event_id: Optional[str]
    error_message: Optional[str]


def _best(items: Iterable[Tuple[Optional[int], Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    best_rank, best_item = None, None
    for rank, item in items:
        if rank is None:
            continue
        if best_rank is None or rank < best_rank:
            best_rank, best_item = rank, item
    return best_item


def find_matching_message(messages: List[Dict[str, Any]], stored_id: str) -> Optional[Dict[str, Any]]:
    """Message-level id match first; otherwise a message whose events carry the id."""
    found = _best((match_rank(m.get("msg_id"), stored_id), m) for m in messages)
    if found is not None:
        return found

    def _event_rank(message):
        ranks = [
            match_rank(evt.get("sg_message_id"), stored_id)
            for evt in (message.get("events") or [])
            if isinstance(evt, dict)
        ]
        ranks = [r for r in ranks if r is not None]
        return min(ranks) if ranks else None

    return _best((_event_rank(m), m) for m in messages)


def outcome_for_message(message: Optional[Dict[str, Any]]) -> Optional[PollOutcome]:
    if not message:
        return None
    events = [e for e in (message.get("events") or []) if isinstance(e, dict)]
    if not events:
        return None
    # The provider lists events newest first
    latest = events[0]
    event_type = latest.get("event") or latest.get("event_name")
    event_id = latest.get("sg_event_id")
    return PollOutcome(
        status=map_event_status(event_type),
        event_type=event_type,
        event_id=str(event_id) if event_id else None,
        error_message=error_for_event(None, latest.get("reason")),
    )


def _log(event: str, level: str = "info", **fields) -> None:
    getattr(current_app.logger, level)(json.dumps({"event": event, **fields}, default=str))


class Reconciler:
    def __init__(self, store: EmailLogStore, client: SendGridClient, *, batch_limit: int = 50):
        self.store = store
        self.client = client
        self.batch_limit = batch_limit

    def run(self, org_id: int) -> ReconcileResult:
        try:
            self.client.check_auth()
        except ProviderError as exc:
            _log("mail_reconcile_auth_failed", "warning", org_id=org_id, status_code=exc.status_code)
            raise ReconcileError(
                "SendGrid API key is invalid or lacks required permissions",
                details=exc.details or str(exc),
            ) from exc

        rows = self.store.outstanding_for_org(org_id, limit=self.batch_limit)
        if not rows:
            return ReconcileResult()

        targets = [PollTarget(r.id, r.recipient_email, r.provider_message_id) for r in rows]
        outcomes = asyncio.run(self._poll_all(targets))

        result = ReconcileResult(checked=len(targets))
        for target, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                _log(
                    "mail_reconcile_row_failed", "warning",
                    email_log_id=target.log_id,
                    error=f"{type(outcome).__name__}: {outcome}",
                )
                continue
            if outcome is None:
                _log("mail_reconcile_no_match", email_log_id=target.log_id, provider_msg_id=target.message_id)
                continue
            try:
                changed = self.store.apply_to_row(
                    target.log_id,
                    org_id=org_id,
                    status=outcome.status,
                    event_id=outcome.event_id,
                    error_message=outcome.error_message,
                )
            except SQLAlchemyError:
                self.store.rollback()
                current_app.logger.exception("mail_reconcile_write_failed email_log_id=%s", target.log_id)
                continue
            if changed:
                result.updated += 1
                _log("mail_reconcile", email_log_id=target.log_id, status=outcome.status, provider_event=outcome.event_type)

        _log("mail_reconcile_done", org_id=org_id, checked=result.checked, updated=result.updated)
        return result

    async def _poll_all(self, targets: List[PollTarget]) -> List[Any]:
        async with self.client.async_client() as http:
            return await asyncio.gather(
                *(self._poll_one(http, t) for t in targets),
                return_exceptions=True,
            )

    async def _poll_one(self, http, target: PollTarget) -> Optional[PollOutcome]:
        messages = await self.client.search_messages(http, target.recipient_email)
        return outcome_for_message(find_matching_message(messages, target.message_id))


def reconcile_org(store: EmailLogStore, org_id: int) -> ReconcileResult:
    """Entry point shared by the HTTP trigger and the CLI."""
    settings = ProfileSettings.query.filter_by(org_id=org_id).one_or_none()
    api_key = settings.api_key if settings is not None else None
    if not api_key:
        raise ReconcileError("SendGrid API key not configured")
    reconciler = Reconciler(
        store,
        build_client(api_key),
        batch_limit=int(current_app.config.get("RECONCILE_BATCH_LIMIT", 50)),
    )
    return reconciler.run(org_id)
