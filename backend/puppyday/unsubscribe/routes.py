"""Public unsubscribe endpoint and its result pages."""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..dependencies import get_delivery_log, get_preference_store, get_token_codec
from ..notifications.delivery_log import NotificationLogger
from ..preferences.service import PreferenceStore
from ..rate_limit import limiter
from .tokens import UnsubscribeTokenCodec

logger = logging.getLogger(__name__)

router = APIRouter(tags=["unsubscribe"])

_ERROR_MESSAGES = {
    "missing_token": "This unsubscribe link is incomplete.",
    "invalid_token": "This unsubscribe link is invalid or has expired.",
    "update_failed": "We couldn't update your preferences. Please try again later.",
    "rate_limited": "Too many requests. Please wait a minute and try again.",
}


def _error_redirect(reason: str) -> RedirectResponse:
    return RedirectResponse(url=f"/unsubscribe/error?{urlencode({'reason': reason})}", status_code=303)


@router.get("/api/unsubscribe")
@limiter.limit(settings.rate_limit_unsubscribe)
def unsubscribe(
    request: Request,
    token: str | None = None,
    codec: UnsubscribeTokenCodec = Depends(get_token_codec),
    store: PreferenceStore = Depends(get_preference_store),
    delivery_log: NotificationLogger = Depends(get_delivery_log),
):
    if not token:
        return _error_redirect("missing_token")

    payload = codec.validate(token)
    if payload is None:
        logger.info("Rejected unsubscribe token from %s", request.client.host if request.client else "unknown")
        return _error_redirect("invalid_token")

    if payload.notification_type == "marketing":
        result = store.disable_marketing(payload.user_id)
    else:
        result = store.disable_channel(payload.user_id, payload.notification_type, payload.channel)

    if not result.success:
        logger.warning("Unsubscribe failed for customer %s: %s", payload.user_id, result.error)
        return _error_redirect("update_failed")

    try:
        delivery_log.create(
            type=payload.notification_type,
            channel=payload.channel,
            recipient="unsubscribe",
            status="sent",
            customer_id=payload.user_id,
            content=f"Unsubscribed from {payload.notification_type} via {payload.channel}",
        )
    except SQLAlchemyError:
        delivery_log.db.rollback()
        logger.warning("Could not log unsubscribe for customer %s", payload.user_id, exc_info=True)

    logger.info(
        "Customer %s unsubscribed from %s/%s", payload.user_id, payload.notification_type, payload.channel
    )
    query = urlencode({"type": payload.notification_type, "channel": payload.channel})
    return RedirectResponse(url=f"/unsubscribe/success?{query}", status_code=303)


@router.get("/unsubscribe/success")
def unsubscribe_success(request: Request, type: str = "", channel: str = ""):
    templates = request.app.state.templates
    return templates.TemplateResponse(
        request,
        "unsubscribe_success.html",
        {"notification_type": type, "channel": channel, "business": settings.business_context},
    )


@router.get("/unsubscribe/error")
def unsubscribe_error(request: Request, reason: str = "invalid_token"):
    templates = request.app.state.templates
    message = _ERROR_MESSAGES.get(reason, _ERROR_MESSAGES["invalid_token"])
    return templates.TemplateResponse(
        request,
        "unsubscribe_error.html",
        {"message": message, "business": settings.business_context},
        status_code=400,
    )
