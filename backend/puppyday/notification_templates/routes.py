"""Admin API for notification templates: edit, history, rollback, preview and test send."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..audit.service import audit
from ..auth.models import User
from ..database.base import get_db
from ..dependencies import get_notification_service, get_template_store, require_admin
from ..notifications.errors import TemplateInvalid, TemplateNotFound, TemplateVersionNotFound
from ..notifications.schemas import NotificationMessage
from ..notifications.service import NotificationService
from .schemas import PreviewRequest, RollbackRequest, SendTestRequest, TemplateUpdateRequest
from .service import TemplateStore, history_to_response, to_response

router = APIRouter(prefix="/admin/notifications/templates", tags=["notification-templates"])


def _not_found(exc: Exception) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=404)


@router.get("")
def list_templates(
    channel: str | None = None,
    active: bool | None = None,
    store: TemplateStore = Depends(get_template_store),
    user: User = Depends(require_admin),
):
    if channel and channel not in ("email", "sms"):
        return JSONResponse({"error": "Invalid channel parameter"}, status_code=400)
    templates = store.list_templates(channel=channel, active=active)
    return JSONResponse({"templates": [to_response(t).model_dump(mode="json") for t in templates]})


@router.get("/{template_id}")
def get_template(
    template_id: str,
    store: TemplateStore = Depends(get_template_store),
    user: User = Depends(require_admin),
):
    try:
        template = store.get(template_id)
    except TemplateNotFound as exc:
        return _not_found(exc)
    return JSONResponse(to_response(template).model_dump(mode="json"))


@router.put("/{template_id}")
def update_template(
    template_id: str,
    request: Request,
    body: TemplateUpdateRequest,
    db: Session = Depends(get_db),
    store: TemplateStore = Depends(get_template_store),
    user: User = Depends(require_admin),
):
    try:
        template = store.update(template_id, body, changed_by=user.id)
    except TemplateNotFound as exc:
        return _not_found(exc)
    except TemplateInvalid as exc:
        return JSONResponse({"error": "Template validation failed", "errors": exc.errors}, status_code=400)

    audit(db, request, "template_update", f"id={template.id}, v={template.version}, reason={body.change_reason}")
    db.commit()
    return JSONResponse(to_response(template).model_dump(mode="json"))


@router.get("/{template_id}/history")
def get_history(
    template_id: str,
    store: TemplateStore = Depends(get_template_store),
    user: User = Depends(require_admin),
):
    try:
        entries = store.history(template_id)
    except TemplateNotFound as exc:
        return _not_found(exc)
    return JSONResponse({"history": [history_to_response(h).model_dump(mode="json") for h in entries]})


@router.post("/{template_id}/rollback")
def rollback_template(
    template_id: str,
    request: Request,
    body: RollbackRequest,
    db: Session = Depends(get_db),
    store: TemplateStore = Depends(get_template_store),
    user: User = Depends(require_admin),
):
    try:
        template = store.rollback(template_id, body.version, body.reason, changed_by=user.id)
    except (TemplateNotFound, TemplateVersionNotFound) as exc:
        return _not_found(exc)

    audit(db, request, "template_rollback", f"id={template.id}, to=v{body.version}, now=v{template.version}")
    db.commit()
    return JSONResponse(to_response(template).model_dump(mode="json"))


@router.post("/{template_id}/preview")
def preview_template(
    template_id: str,
    body: PreviewRequest,
    store: TemplateStore = Depends(get_template_store),
    user: User = Depends(require_admin),
):
    try:
        preview = store.preview(template_id, body.sample_data)
    except TemplateNotFound as exc:
        return _not_found(exc)
    return JSONResponse(preview.model_dump(mode="json"))


@router.post("/{template_id}/test")
def send_test(
    template_id: str,
    request: Request,
    body: SendTestRequest,
    db: Session = Depends(get_db),
    store: TemplateStore = Depends(get_template_store),
    service: NotificationService = Depends(get_notification_service),
    user: User = Depends(require_admin),
):
    """Send the template to an arbitrary recipient through the normal pipeline, flagged as a test."""
    try:
        template = store.get(template_id)
    except TemplateNotFound as exc:
        return _not_found(exc)
    if not template.is_active:
        return JSONResponse({"error": "Cannot send a test of an inactive template"}, status_code=400)

    result = service.send(
        NotificationMessage(
            type=template.trigger_event,
            channel=template.channel,
            recipient=body.recipient,
            template_data=body.sample_data,
            is_test=True,
        )
    )
    audit(db, request, "template_test_send", f"id={template.id}, to={body.recipient}, success={result.success}")
    db.commit()
    return JSONResponse(result.model_dump(mode="json"), status_code=200 if result.success else 422)
