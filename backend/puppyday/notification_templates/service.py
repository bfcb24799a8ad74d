"""Template store with versioning, history, rollback and preview."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from ..config import settings
from ..notifications.errors import TemplateInvalid, TemplateNotFound, TemplateVersionNotFound
from . import engine
from .models import NotificationTemplate, NotificationTemplateHistory
from .schemas import (
    TemplateHistoryEntry,
    TemplatePreview,
    TemplateResponse,
    TemplateUpdateRequest,
    TemplateVariable,
)

logger = logging.getLogger(__name__)

_CONTENT_FIELDS = ("subject_template", "html_template", "text_template", "sms_template", "variables")


def _as_uuid(value) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def to_response(t: NotificationTemplate) -> TemplateResponse:
    return TemplateResponse(
        id=str(t.id),
        name=t.name,
        description=t.description,
        type=t.type,
        trigger_event=t.trigger_event,
        channel=t.channel,
        subject_template=t.subject_template,
        html_template=t.html_template,
        text_template=t.text_template,
        sms_template=t.sms_template,
        variables=[TemplateVariable(**v) for v in t.variables or []],
        is_active=bool(t.is_active),
        version=t.version,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


def history_to_response(h: NotificationTemplateHistory) -> TemplateHistoryEntry:
    return TemplateHistoryEntry(
        id=str(h.id),
        template_id=str(h.template_id),
        version=h.version,
        subject_template=h.subject_template,
        html_template=h.html_template,
        text_template=h.text_template,
        sms_template=h.sms_template,
        variables=[TemplateVariable(**v) for v in h.variables or []],
        changed_by=str(h.changed_by) if h.changed_by else None,
        change_reason=h.change_reason,
        created_at=h.created_at,
    )


class TemplateStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_active(self, notification_type: str, channel: str) -> NotificationTemplate | None:
        return (
            self.db.query(NotificationTemplate)
            .filter(
                NotificationTemplate.trigger_event == notification_type,
                NotificationTemplate.channel == channel,
                NotificationTemplate.is_active == True,  # noqa: E712
            )
            .first()
        )

    def list_templates(self, channel: str | None = None, active: bool | None = None) -> list[NotificationTemplate]:
        q = self.db.query(NotificationTemplate)
        if channel:
            q = q.filter(NotificationTemplate.channel == channel)
        if active is not None:
            q = q.filter(NotificationTemplate.is_active == active)
        return q.order_by(NotificationTemplate.trigger_event.asc(), NotificationTemplate.channel.asc()).all()

    def get(self, template_id) -> NotificationTemplate:
        uid = _as_uuid(template_id)
        template = (
            self.db.query(NotificationTemplate).filter(NotificationTemplate.id == uid).first() if uid else None
        )
        if template is None:
            raise TemplateNotFound(f"Template {template_id} not found")
        return template

    def _snapshot(self, template: NotificationTemplate, changed_by, reason: str) -> None:
        self.db.add(
            NotificationTemplateHistory(
                template_id=template.id,
                version=template.version,
                name=template.name,
                description=template.description,
                type=template.type,
                trigger_event=template.trigger_event,
                channel=template.channel,
                subject_template=template.subject_template,
                html_template=template.html_template,
                text_template=template.text_template,
                sms_template=template.sms_template,
                variables=list(template.variables or []),
                changed_by=_as_uuid(changed_by),
                change_reason=reason,
            )
        )

    def update(self, template_id, patch: TemplateUpdateRequest, changed_by=None) -> NotificationTemplate:
        """Validate, snapshot the current version, apply the patch and bump the version."""
        template = self.get(template_id)
        fields = patch.model_dump(exclude_unset=True, exclude={"change_reason"})
        if not fields:
            raise TemplateInvalid(["No changes provided"])

        candidate = {name: getattr(template, name) for name in _CONTENT_FIELDS}
        candidate.update({k: v for k, v in fields.items() if k in _CONTENT_FIELDS})
        report = engine.validate(template.channel, **candidate)
        if not report.valid:
            raise TemplateInvalid(report.errors)

        self._snapshot(template, changed_by, patch.change_reason)
        for key, value in fields.items():
            setattr(template, key, value)
        template.version = (template.version or 1) + 1
        template.updated_by = _as_uuid(changed_by)
        self.db.commit()

        logger.info(
            "Template %s (%s/%s) updated to v%d: %s",
            template.id, template.trigger_event, template.channel, template.version, patch.change_reason,
        )
        return template

    def history(self, template_id) -> list[NotificationTemplateHistory]:
        template = self.get(template_id)
        return (
            self.db.query(NotificationTemplateHistory)
            .filter(NotificationTemplateHistory.template_id == template.id)
            .order_by(NotificationTemplateHistory.version.desc())
            .all()
        )

    def rollback(self, template_id, version: int, reason: str, changed_by=None) -> NotificationTemplate:
        """Restore the content of a previous version as a new version."""
        template = self.get(template_id)
        target = (
            self.db.query(NotificationTemplateHistory)
            .filter(
                NotificationTemplateHistory.template_id == template.id,
                NotificationTemplateHistory.version == version,
            )
            .first()
        )
        if target is None:
            raise TemplateVersionNotFound(f"Version {version} not found for template {template_id}")

        self._snapshot(template, changed_by, f"Rolled back to version {version}: {reason}")
        for name in _CONTENT_FIELDS:
            setattr(template, name, getattr(target, name))
        template.version = (template.version or 1) + 1
        template.updated_by = _as_uuid(changed_by)
        self.db.commit()

        logger.info("Template %s rolled back to v%d (now v%d)", template.id, version, template.version)
        return template

    def preview(self, template_id, sample_data: dict) -> TemplatePreview:
        template = self.get(template_id)
        business = settings.business_context

        if template.channel == "sms":
            text = engine.render(template.sms_template, sample_data, business)
            segments = engine.calculate_segment_count(text)
            warnings = []
            if len(text) > engine.SMS_SINGLE_SEGMENT_LENGTH:
                warnings.append(f"Message is {len(text)} characters ({segments} SMS segments)")
            return TemplatePreview(
                channel="sms",
                text=text,
                character_count=len(text),
                segment_count=segments,
                warnings=warnings,
            )

        return TemplatePreview(
            channel="email",
            subject=engine.render(template.subject_template, sample_data, business),
            html=engine.render(template.html_template, sample_data, business, escape_html=True) or None,
            text=engine.render(template.text_template, sample_data, business) or None,
        )
