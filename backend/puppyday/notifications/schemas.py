"""Notification request/response schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, StrictBool


class NotificationMessage(BaseModel):
    """A send request. Consumed once by the orchestrator; only its outcome is stored."""

    type: str = Field(..., min_length=1, max_length=100)
    channel: Literal["email", "sms"]
    recipient: str = Field(..., min_length=1, max_length=255)
    template_data: dict[str, Any] = {}
    user_id: str | None = None
    is_test: bool = False


class LogFilters(BaseModel):
    channel: Literal["email", "sms"] | None = None
    status: Literal["sent", "failed", "pending"] | None = None
    type: str | None = None
    customer_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
    include_tests: bool = True


class LogEntryResponse(BaseModel):
    id: str
    customer_id: str | None
    customer_name: str | None
    type: str
    channel: str
    recipient: str
    subject: str | None
    content: str | None
    status: str
    error_message: str | None
    template_id: str | None
    template_data: dict | None
    message_id: str | None
    is_test: bool
    sent_at: datetime | None
    created_at: datetime | None


class LogPage(BaseModel):
    items: list[LogEntryResponse]
    total: int
    total_pages: int
    current_page: int
    per_page: int


class ChannelMetrics(BaseModel):
    sent: int = 0
    failed: int = 0


class TypeMetrics(BaseModel):
    type: str
    sent: int
    failed: int
    success_rate: float


class FailureReason(BaseModel):
    reason: str
    count: int
    percentage: float


class NotificationMetrics(BaseModel):
    total_sent: int
    total_failed: int
    total_pending: int
    delivery_rate: float
    by_channel: dict[str, ChannelMetrics]
    by_type: list[TypeMetrics]
    failure_reasons: list[FailureReason]


class ResendResult(BaseModel):
    log_id: str
    success: bool
    new_log_id: str | None = None
    error: str | None = None


class BulkResendRequest(BaseModel):
    log_ids: list[str] | None = Field(None, max_length=100)
    status: Literal["failed"] | None = None
    channel: Literal["email", "sms"] | None = None
    type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class BulkResendSummary(BaseModel):
    total: int
    succeeded: int
    failed: int
    results: list[ResendResult]


class NotificationSettingResponse(BaseModel):
    notification_type: str
    email_enabled: bool
    sms_enabled: bool
    schedule_enabled: bool
    schedule_cron: str | None
    last_sent_at: datetime | None
    total_sent_count: int
    total_failed_count: int

    model_config = {"from_attributes": True}


class NotificationSettingUpdate(BaseModel):
    email_enabled: StrictBool | None = None
    sms_enabled: StrictBool | None = None
    schedule_enabled: StrictBool | None = None
    schedule_cron: str | None = None
