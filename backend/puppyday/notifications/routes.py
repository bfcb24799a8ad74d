"""Admin notification API: sending, delivery log, resend, metrics and settings."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..audit.service import audit
from ..auth.models import User
from ..config import settings
from ..database.base import get_db
from ..dependencies import get_delivery_log, get_notification_service, require_admin
from ..rate_limit import limiter
from . import settings_service
from .delivery_log import NotificationLogger, to_response
from .schemas import (
    BulkResendRequest,
    LogFilters,
    NotificationMessage,
    NotificationSettingResponse,
    NotificationSettingUpdate,
)
from .service import MAX_BULK_RESEND, NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/notifications", tags=["notifications"])


class InvalidParameter(ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid {name} parameter")


def _int_param(raw: str | None, name: str, default: int, low: int, high: int | None = None) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidParameter(name) from None
    if value < low or (high is not None and value > high):
        raise InvalidParameter(name)
    return value


def _choice_param(raw: str | None, name: str, choices: tuple[str, ...]) -> str | None:
    if not raw:
        return None
    if raw not in choices:
        raise InvalidParameter(name)
    return raw


def _date_param(raw: str | None, name: str) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidParameter(name) from None


# ── Sending ────────────────────────────────────────────────────────────


@router.post("/send")
@limiter.limit(settings.rate_limit_send)
def send_notification(
    request: Request,
    body: NotificationMessage,
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
    user: User = Depends(require_admin),
):
    result = service.send(body)
    audit(db, request, "notification_send", f"type={body.type}, channel={body.channel}, success={result.success}")
    db.commit()
    return JSONResponse(result.model_dump(mode="json"), status_code=200 if result.success else 422)


@router.post("/send/batch")
@limiter.limit(settings.rate_limit_send)
def send_notification_batch(
    request: Request,
    body: list[NotificationMessage],
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
    user: User = Depends(require_admin),
):
    if len(body) > MAX_BULK_RESEND:
        return JSONResponse({"error": f"At most {MAX_BULK_RESEND} messages per batch"}, status_code=400)
    results = service.send_batch(body)
    sent = sum(1 for r in results if r.success)
    audit(db, request, "notification_batch", f"count={len(results)}, sent={sent}")
    db.commit()
    return JSONResponse(
        {
            "total": len(results),
            "sent": sent,
            "failed": len(results) - sent,
            "results": [r.model_dump(mode="json") for r in results],
        }
    )


# ── Delivery log ───────────────────────────────────────────────────────


@router.get("/logs")
def list_logs(
    page: str | None = None,
    limit: str | None = None,
    channel: str | None = None,
    status: str | None = None,
    type: str | None = None,
    customer_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    search: str | None = None,
    delivery_log: NotificationLogger = Depends(get_delivery_log),
    user: User = Depends(require_admin),
):
    try:
        page_num = _int_param(page, "page", 1, 1)
        per_page = _int_param(limit, "limit", 50, 1, 100)
        filters = LogFilters(
            channel=_choice_param(channel, "channel", ("email", "sms")),
            status=_choice_param(status, "status", ("sent", "failed", "pending")),
            type=type or None,
            customer_id=customer_id or None,
            start_date=_date_param(start_date, "start_date"),
            end_date=_date_param(end_date, "end_date"),
            search=search or None,
        )
    except InvalidParameter as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    result = delivery_log.query(filters, page=page_num, limit=per_page)
    return JSONResponse(result.model_dump(mode="json"))


@router.get("/logs/{log_id}")
def get_log(
    log_id: str,
    delivery_log: NotificationLogger = Depends(get_delivery_log),
    user: User = Depends(require_admin),
):
    entry = delivery_log.get(log_id)
    if entry is None:
        return JSONResponse({"error": "Notification log not found"}, status_code=404)
    return JSONResponse(to_response(entry).model_dump(mode="json"))


@router.post("/logs/{log_id}/resend")
def resend_log(
    log_id: str,
    request: Request,
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
    user: User = Depends(require_admin),
):
    result = service.resend(log_id)
    audit(db, request, "notification_resend", f"log={log_id}, success={result.success}")
    db.commit()
    if result.error_kind == "log_not_found":
        return JSONResponse({"error": result.error}, status_code=404)
    if result.error_kind == "not_resendable":
        return JSONResponse({"error": result.error}, status_code=400)
    return JSONResponse(result.model_dump(mode="json"))


@router.post("/resend/bulk")
def bulk_resend(
    request: Request,
    body: BulkResendRequest,
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
    user: User = Depends(require_admin),
):
    if not body.log_ids and not any((body.status, body.channel, body.type, body.start_date, body.end_date)):
        return JSONResponse({"error": "Provide log_ids or at least one filter"}, status_code=400)
    summary = service.bulk_resend(body)
    audit(db, request, "notification_bulk_resend", f"total={summary.total}, succeeded={summary.succeeded}")
    db.commit()
    return JSONResponse(summary.model_dump(mode="json"))


# ── Metrics ────────────────────────────────────────────────────────────


@router.get("/metrics")
def get_metrics(
    start_date: str | None = None,
    end_date: str | None = None,
    delivery_log: NotificationLogger = Depends(get_delivery_log),
    user: User = Depends(require_admin),
):
    try:
        start = _date_param(start_date, "start_date")
        end = _date_param(end_date, "end_date")
    except InvalidParameter as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    return JSONResponse(delivery_log.get_metrics(start, end).model_dump(mode="json"))


# ── Channel settings ───────────────────────────────────────────────────


@router.get("/settings")
def list_settings(
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    rows = settings_service.list_settings(db)
    return JSONResponse(
        {"settings": [NotificationSettingResponse.model_validate(r).model_dump(mode="json") for r in rows]}
    )


@router.put("/settings/{notification_type}")
def update_setting(
    notification_type: str,
    request: Request,
    body: NotificationSettingUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    try:
        setting = settings_service.update_setting(db, notification_type, body)
    except LookupError as exc:
        return JSONResponse({"error": str(exc)}, status_code=404)
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    audit(db, request, "notification_settings_update", f"type={notification_type}")
    db.commit()
    return JSONResponse(NotificationSettingResponse.model_validate(setting).model_dump(mode="json"))
