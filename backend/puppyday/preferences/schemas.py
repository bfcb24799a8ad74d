"""Customer notification preference schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, StrictBool


class NotificationPreferences(BaseModel):
    marketing_enabled: bool = True
    email_appointment_reminders: bool = True
    sms_appointment_reminders: bool = True
    email_retention_reminders: bool = True
    sms_retention_reminders: bool = True

    @classmethod
    def from_stored(cls, raw: Any) -> "NotificationPreferences":
        """Merge a stored JSON blob over the defaults, field by field.

        Only real booleans are taken from the blob; anything else falls back to
        that field's default.
        """
        if not isinstance(raw, dict):
            return cls()
        values = {name: raw[name] for name in cls.model_fields if isinstance(raw.get(name), bool)}
        return cls(**values)


class PreferencesUpdateRequest(BaseModel):
    """Partial update; unknown keys and non-booleans are rejected."""

    model_config = ConfigDict(extra="forbid")

    marketing_enabled: StrictBool | None = None
    email_appointment_reminders: StrictBool | None = None
    sms_appointment_reminders: StrictBool | None = None
    email_retention_reminders: StrictBool | None = None
    sms_retention_reminders: StrictBool | None = None
