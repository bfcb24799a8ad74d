"""Delivery log: one row per send attempt, with filtering and metrics."""

import json
import logging
import math
from collections import Counter, defaultdict
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..customers.models import Customer
from .models import NotificationLog
from .schemas import (
    ChannelMetrics,
    FailureReason,
    LogEntryResponse,
    LogFilters,
    LogPage,
    NotificationMetrics,
    TypeMetrics,
)

logger = logging.getLogger(__name__)

_UPDATABLE = {"status", "error_message", "sent_at", "message_id", "subject", "content"}


def _uuid_or_none(value) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _json_safe(data: dict | None) -> dict | None:
    """Coerce dates, UUIDs and other non-JSON values to strings."""
    if data is None:
        return None
    return json.loads(json.dumps(data, default=str))


def to_response(entry: NotificationLog) -> LogEntryResponse:
    customer_name = None
    if entry.customer is not None:
        customer_name = entry.customer.full_name or None
    return LogEntryResponse(
        id=str(entry.id),
        customer_id=str(entry.customer_id) if entry.customer_id else None,
        customer_name=customer_name,
        type=entry.type,
        channel=entry.channel,
        recipient=entry.recipient,
        subject=entry.subject,
        content=entry.content,
        status=entry.status,
        error_message=entry.error_message,
        template_id=str(entry.template_id) if entry.template_id else None,
        template_data=entry.template_data,
        message_id=entry.message_id,
        is_test=bool(entry.is_test),
        sent_at=entry.sent_at,
        created_at=entry.created_at,
    )


class NotificationLogger:
    """Append-mostly store of send attempts."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(
        self,
        type: str,
        channel: str,
        recipient: str,
        status: str = "pending",
        customer_id=None,
        subject: str | None = None,
        content: str | None = None,
        error_message: str | None = None,
        template_id=None,
        template_data: dict | None = None,
        message_id: str | None = None,
        is_test: bool = False,
    ) -> str:
        """Persist a new row and return its id."""
        if status == "failed" and not error_message:
            error_message = "Unknown error"
        entry = NotificationLog(
            customer_id=_uuid_or_none(customer_id),
            type=type,
            channel=channel,
            recipient=recipient,
            subject=subject,
            content=content,
            status=status,
            error_message=error_message if status == "failed" else None,
            template_id=_uuid_or_none(template_id),
            template_data=_json_safe(template_data),
            message_id=message_id,
            is_test=is_test,
            sent_at=datetime.now(UTC) if status == "sent" else None,
        )
        self.db.add(entry)
        self.db.commit()
        logger.debug("Logged %s %s notification to %s as %s", type, channel, recipient, status)
        return str(entry.id)

    def update(self, log_id, **patch) -> None:
        """Apply a status transition or field patch to an existing row."""
        entry = self.get(log_id)
        if entry is None:
            raise LookupError(f"Notification log {log_id} not found")
        unknown = set(patch) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update log fields: {', '.join(sorted(unknown))}")
        for key, value in patch.items():
            setattr(entry, key, value)
        if entry.status == "sent" and entry.sent_at is None:
            entry.sent_at = datetime.now(UTC)
        if entry.status == "failed":
            entry.sent_at = None
            entry.error_message = entry.error_message or "Unknown error"
        self.db.commit()

    def get(self, log_id) -> NotificationLog | None:
        uid = _uuid_or_none(log_id)
        if uid is None:
            return None
        return self.db.query(NotificationLog).filter(NotificationLog.id == uid).first()

    def _filtered(self, filters: LogFilters):
        q = self.db.query(NotificationLog)
        if filters.channel:
            q = q.filter(NotificationLog.channel == filters.channel)
        if filters.status:
            q = q.filter(NotificationLog.status == filters.status)
        if filters.type:
            q = q.filter(NotificationLog.type == filters.type)
        if filters.customer_id:
            q = q.filter(NotificationLog.customer_id == _uuid_or_none(filters.customer_id))
        if filters.start_date:
            q = q.filter(NotificationLog.created_at >= filters.start_date)
        if filters.end_date:
            q = q.filter(NotificationLog.created_at <= filters.end_date)
        if not filters.include_tests:
            q = q.filter(NotificationLog.is_test == False)  # noqa: E712
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            full_name = func.coalesce(Customer.first_name, "") + " " + func.coalesce(Customer.last_name, "")
            q = q.outerjoin(Customer, NotificationLog.customer_id == Customer.id).filter(
                or_(
                    NotificationLog.recipient.ilike(pattern),
                    Customer.first_name.ilike(pattern),
                    Customer.last_name.ilike(pattern),
                    full_name.ilike(pattern),
                )
            )
        return q

    def query(self, filters: LogFilters | None = None, page: int = 1, limit: int = 50) -> LogPage:
        """Newest first, paginated."""
        filters = filters or LogFilters()
        q = self._filtered(filters)
        total = q.count()
        rows = (
            q.order_by(NotificationLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return LogPage(
            items=[to_response(r) for r in rows],
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
            current_page=page,
            per_page=limit,
        )

    def find(self, filters: LogFilters, limit: int) -> list[NotificationLog]:
        return self._filtered(filters).order_by(NotificationLog.created_at.desc()).limit(limit).all()

    def get_metrics(self, start: datetime | None = None, end: datetime | None = None) -> NotificationMetrics:
        """Aggregate non-test log entries in the given window."""
        rows = self._filtered(LogFilters(start_date=start, end_date=end, include_tests=False)).all()

        by_status = Counter(r.status for r in rows)
        by_channel: dict[str, ChannelMetrics] = {"email": ChannelMetrics(), "sms": ChannelMetrics()}
        per_type: dict[str, Counter] = defaultdict(Counter)
        reasons: Counter = Counter()

        for r in rows:
            channel = by_channel.setdefault(r.channel, ChannelMetrics())
            if r.status == "sent":
                channel.sent += 1
            elif r.status == "failed":
                channel.failed += 1
                reasons[r.error_message or "Unknown error"] += 1
            per_type[r.type][r.status] += 1

        sent, failed = by_status["sent"], by_status["failed"]
        delivered_or_failed = sent + failed

        by_type = []
        for type_name, counts in per_type.items():
            attempts = counts["sent"] + counts["failed"]
            by_type.append(
                TypeMetrics(
                    type=type_name,
                    sent=counts["sent"],
                    failed=counts["failed"],
                    success_rate=round(counts["sent"] / attempts * 100, 2) if attempts else 0.0,
                )
            )
        by_type.sort(key=lambda t: (-(t.sent + t.failed), t.type))

        failure_reasons = [
            FailureReason(reason=reason, count=count, percentage=round(count / failed * 100, 2))
            for reason, count in sorted(reasons.items(), key=lambda item: (-item[1], item[0]))
        ]

        return NotificationMetrics(
            total_sent=sent,
            total_failed=failed,
            total_pending=by_status["pending"],
            delivery_rate=round(sent / delivered_or_failed * 100, 2) if delivered_or_failed else 0.0,
            by_channel=by_channel,
            by_type=by_type,
            failure_reasons=failure_reasons,
        )
