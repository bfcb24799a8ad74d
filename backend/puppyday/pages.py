"""Server-rendered admin pages."""

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from .auth.models import User
from .dependencies import get_delivery_log, require_admin
from .notifications.delivery_log import NotificationLogger
from .notifications.schemas import LogFilters

router = APIRouter(tags=["pages"])


@router.get("/")
def index():
    return RedirectResponse(url="/admin", status_code=303)


@router.get("/admin", response_class=HTMLResponse)
def admin_dashboard(
    request: Request,
    delivery_log: NotificationLogger = Depends(get_delivery_log),
    user: User = Depends(require_admin),
):
    """Last 30 days of delivery metrics and the most recent failures."""
    templates = request.app.state.templates
    since = datetime.now(UTC) - timedelta(days=30)
    metrics = delivery_log.get_metrics(start=since)
    failures = delivery_log.query(LogFilters(status="failed"), page=1, limit=10)
    return templates.TemplateResponse(
        request,
        "admin.html",
        {
            "user": user,
            "metrics": metrics,
            "failures": failures.items,
        },
    )
