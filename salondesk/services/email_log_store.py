"""
Repository over the ``email_logs`` table.

One instance is built in ``create_app()`` and reached through
``get_email_log_store()``; the webhook ingestor, the poller and the send path
all receive it explicitly. Every method is scoped by ``org_id`` except the
webhook matching methods, because provider callbacks carry no tenant.
Each mutation is its own single-row (or single-statement) commit.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy import func, literal, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from salondesk.models import EmailLog, WebhookEvent
from salondesk.services.delivery_status import OUTSTANDING_STATUSES
from salondesk.services.message_ids import DELIMITER, normalize_message_id
from salondesk.utils.helpers import utcnow


class EmailLogStore:
    def __init__(self, db):
        self.db = db

    @property
    def session(self):
        return self.db.session

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def rollback(self) -> None:
        self.session.rollback()

    # ---- send path -------------------------------------------------------

    def record_send(
        self,
        *,
        org_id: int,
        recipients: Iterable[str],
        subject: Optional[str],
        status: str,
        invoice_number: Optional[str] = None,
        provider_message_id: Optional[str] = None,
        error_message: Optional[str] = None,
        attachment_path: Optional[str] = None,
    ) -> List[EmailLog]:
        """Fan a single logical send out into one row per recipient."""
        now = utcnow()
        canonical = normalize_message_id(provider_message_id)
        rows = []
        for addr in recipients:
            row = EmailLog(
                org_id=org_id,
                invoice_number=invoice_number,
                recipient_email=addr.strip().lower(),
                subject=subject,
                status=status,
                provider_message_id=canonical,
                error_message=error_message,
                attachment_path=attachment_path,
                sent_at=now,
                updated_at=now,
            )
            self.session.add(row)
            rows.append(row)
        self._commit()
        return rows

    # ---- tenant reads ----------------------------------------------------

    def list_for_org(self, org_id: int, status: Optional[str] = None) -> List[EmailLog]:
        stmt = select(EmailLog).where(EmailLog.org_id == org_id)
        if status:
            stmt = stmt.where(EmailLog.status == status)
        stmt = stmt.order_by(EmailLog.sent_at.desc(), EmailLog.id.desc())
        return list(self.session.execute(stmt).scalars())

    def get_for_org(self, org_id: int, log_id: int) -> Optional[EmailLog]:
        stmt = select(EmailLog).where(EmailLog.id == log_id, EmailLog.org_id == org_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def outstanding_for_org(self, org_id: int, limit: int = 50) -> List[EmailLog]:
        stmt = (
            select(EmailLog)
            .where(
                EmailLog.org_id == org_id,
                EmailLog.status.in_(OUTSTANDING_STATUSES),
                EmailLog.provider_message_id.isnot(None),
            )
            .order_by(EmailLog.sent_at.desc(), EmailLog.id.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    # ---- tenant writes ---------------------------------------------------

    def set_status(self, org_id: int, log_id: int, status: str) -> Optional[EmailLog]:
        row = self.get_for_org(org_id, log_id)
        if row is None:
            return None
        row.status = status
        row.updated_at = utcnow()
        self._commit()
        return row

    def apply_to_row(
        self,
        log_id: int,
        *,
        status: str,
        event_id: Optional[str],
        error_message: Optional[str],
        org_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        stmt = update(EmailLog).where(EmailLog.id == log_id)
        if org_id is not None:
            stmt = stmt.where(EmailLog.org_id == org_id)
        stmt = stmt.values(
            status=status,
            provider_event_id=event_id,
            error_message=error_message,
            updated_at=now or utcnow(),
        ).execution_options(synchronize_session=False)
        result = self.session.execute(stmt)
        self._commit()
        return result.rowcount > 0

    def apply_by_message_id_for_org(
        self,
        org_id: int,
        message_id: str,
        *,
        status: str,
        event_id: Optional[str],
        error_message: Optional[str],
    ) -> int:
        canonical = normalize_message_id(message_id)
        stmt = (
            update(EmailLog)
            .where(
                EmailLog.org_id == org_id,
                or_(EmailLog.provider_message_id == message_id, EmailLog.provider_message_id == canonical),
            )
            .values(status=status, provider_event_id=event_id, error_message=error_message, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self._commit()
        return result.rowcount

    # ---- webhook matching (tenant-agnostic) ------------------------------

    @staticmethod
    def _message_id_predicate(full_id: str, canonical_id: str):
        """
        Row matches when its stored id equals the full incoming id, equals the
        canonical incoming id, or is a dot-terminated prefix of the full id.
        The prefix test compares substrings so ids containing LIKE wildcards
        ('_' is common in provider ids) cannot widen the match.
        """
        stored = EmailLog.provider_message_id
        prefix_len = func.length(stored) + len(DELIMITER)
        return or_(
            stored == full_id,
            stored == canonical_id,
            func.substr(literal(full_id), 1, prefix_len) == stored + DELIMITER,
        )

    def apply_by_message_id(
        self,
        full_id: str,
        canonical_id: str,
        *,
        status: str,
        event_id: Optional[str],
        error_message: Optional[str],
        now: Optional[datetime] = None,
    ) -> int:
        stmt = (
            update(EmailLog)
            .where(EmailLog.provider_message_id.isnot(None), self._message_id_predicate(full_id, canonical_id))
            .values(
                status=status,
                provider_event_id=event_id,
                error_message=error_message,
                updated_at=now or utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self._commit()
        return result.rowcount

    def first_by_message_id(self, full_id: str, canonical_id: str) -> Optional[EmailLog]:
        stmt = (
            select(EmailLog)
            .where(EmailLog.provider_message_id.isnot(None), self._message_id_predicate(full_id, canonical_id))
            .order_by(EmailLog.sent_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def recent_for_recipient(
        self,
        recipient_email: str,
        *,
        since: datetime,
        limit: int = 5,
    ) -> List[EmailLog]:
        stmt = (
            select(EmailLog)
            .where(
                EmailLog.recipient_email == recipient_email.strip().lower(),
                EmailLog.sent_at >= since,
            )
            .order_by(EmailLog.sent_at.desc(), EmailLog.id.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def record_webhook_event(
        self,
        *,
        raw_event,
        match_kind: str,
        email_log: Optional[EmailLog] = None,
        event_type: Optional[str] = None,
        message_id: Optional[str] = None,
        event_id: Optional[str] = None,
        event_timestamp=None,
    ) -> WebhookEvent:
        try:
            ts = int(event_timestamp) if event_timestamp is not None else None
        except (TypeError, ValueError):
            ts = None
        evt = WebhookEvent(
            email_log_id=email_log.id if email_log is not None else None,
            org_id=email_log.org_id if email_log is not None else None,
            event_type=(str(event_type)[:40] if event_type is not None else None),
            provider_message_id=message_id,
            provider_event_id=event_id,
            event_timestamp=ts,
            match_kind=match_kind,
            raw_event=raw_event if isinstance(raw_event, dict) else {"value": raw_event},
            processed_at=utcnow(),
        )
        self.session.add(evt)
        self._commit()
        return evt


def get_email_log_store() -> EmailLogStore:
    return current_app.extensions["email_log_store"]
