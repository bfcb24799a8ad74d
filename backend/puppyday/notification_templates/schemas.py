"""Notification template request/response schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class TemplateVariable(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    required: bool = False
    max_length: int | None = Field(None, gt=0)
    example_value: str | None = None


class TemplateResponse(BaseModel):
    id: str
    name: str
    description: str | None
    type: str
    trigger_event: str
    channel: str
    subject_template: str | None
    html_template: str | None
    text_template: str | None
    sms_template: str | None
    variables: list[TemplateVariable]
    is_active: bool
    version: int
    created_at: datetime | None
    updated_at: datetime | None


class TemplateUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    subject_template: str | None = None
    html_template: str | None = None
    text_template: str | None = None
    sms_template: str | None = None
    variables: list[TemplateVariable] | None = None
    is_active: bool | None = None
    change_reason: str = Field(..., min_length=1, max_length=1000)


class TemplateHistoryEntry(BaseModel):
    id: str
    template_id: str
    version: int
    subject_template: str | None
    html_template: str | None
    text_template: str | None
    sms_template: str | None
    variables: list[TemplateVariable]
    changed_by: str | None
    change_reason: str | None
    created_at: datetime | None


class RollbackRequest(BaseModel):
    version: int = Field(..., ge=1)
    reason: str = Field(..., min_length=1, max_length=1000)


class PreviewRequest(BaseModel):
    sample_data: dict[str, Any] = {}


class TemplatePreview(BaseModel):
    channel: Literal["email", "sms"]
    subject: str | None = None
    html: str | None = None
    text: str | None = None
    character_count: int | None = None
    segment_count: int | None = None
    warnings: list[str] = []


class SendTestRequest(BaseModel):
    recipient: str = Field(..., min_length=1, max_length=255)
    sample_data: dict[str, Any] = {}
