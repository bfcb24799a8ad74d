"""Result types and error taxonomy shared by the notification core.

The orchestrator never raises across its public boundary: every outcome is a
``NotificationResult`` carrying an ``error`` string and an ``error_kind``.
Editor-time failures in the template service use exceptions instead, which the
routes translate into JSON errors.
"""

import enum

from pydantic import BaseModel


class NotificationErrorKind(enum.StrEnum):
    PREFERENCE_BLOCKED = "preference_blocked"
    CHANNEL_DISABLED = "channel_disabled"
    TEMPLATE_NOT_FOUND = "template_not_found"
    TEMPLATE_INVALID = "template_invalid"
    PROVIDER_FAILURE = "provider_failure"
    PROVIDER_TIMEOUT = "provider_timeout"
    TOKEN_INVALID = "token_invalid"
    LOG_NOT_FOUND = "log_not_found"
    NOT_RESENDABLE = "not_resendable"
    STORAGE_ERROR = "storage_error"


class PreferenceBlockReason(enum.StrEnum):
    """Closed set of reasons a customer preference can block a send.

    The values are the literal strings written to the delivery log.
    """

    MARKETING_DISABLED = "customer_preference_marketing_disabled"
    EMAIL_REMINDERS_DISABLED = "customer_preference_email_reminders_disabled"
    SMS_REMINDERS_DISABLED = "customer_preference_sms_reminders_disabled"
    EMAIL_RETENTION_DISABLED = "customer_preference_email_retention_disabled"
    SMS_RETENTION_DISABLED = "customer_preference_sms_retention_disabled"


class PreferenceDecision(BaseModel):
    allowed: bool
    reason: PreferenceBlockReason | None = None


class OperationResult(BaseModel):
    success: bool
    error: str | None = None


class NotificationResult(BaseModel):
    success: bool
    log_id: str | None = None
    message_id: str | None = None
    error: str | None = None
    error_kind: NotificationErrorKind | None = None


class SendResult(BaseModel):
    """What a channel provider reports back for one send."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    segment_count: int | None = None


class ValidationReport(BaseModel):
    valid: bool
    errors: list[str] = []
    warnings: list[str] = []


class TemplateNotFound(Exception):
    pass


class TemplateVersionNotFound(Exception):
    pass


class TemplateInvalid(Exception):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors
