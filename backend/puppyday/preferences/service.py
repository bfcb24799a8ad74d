"""Customer notification preference store.

Reads fail open to the default preference set; writes fail closed with an
explicit ``OperationResult`` carrying the storage error.
"""

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..customers.models import Customer
from ..notifications.categories import NotificationChannel, is_marketing, is_transactional
from ..notifications.errors import OperationResult, PreferenceBlockReason, PreferenceDecision
from .schemas import NotificationPreferences

logger = logging.getLogger(__name__)

# (notification type, channel) -> flag flipped by an unsubscribe link
_CHANNEL_FLAGS = {
    ("appointment_reminder", NotificationChannel.EMAIL): "email_appointment_reminders",
    ("appointment_reminder", NotificationChannel.SMS): "sms_appointment_reminders",
    ("retention_reminder", NotificationChannel.EMAIL): "email_retention_reminders",
    ("retention_reminder", NotificationChannel.SMS): "sms_retention_reminders",
}

_REMINDER_BLOCKS = {
    NotificationChannel.EMAIL: PreferenceBlockReason.EMAIL_REMINDERS_DISABLED,
    NotificationChannel.SMS: PreferenceBlockReason.SMS_REMINDERS_DISABLED,
}

_RETENTION_BLOCKS = {
    NotificationChannel.EMAIL: PreferenceBlockReason.EMAIL_RETENTION_DISABLED,
    NotificationChannel.SMS: PreferenceBlockReason.SMS_RETENTION_DISABLED,
}


def has_channel_opt_out(notification_type: str, channel: str) -> bool:
    return (notification_type, channel) in _CHANNEL_FLAGS


def as_uuid(customer_id) -> UUID:
    return customer_id if isinstance(customer_id, UUID) else UUID(str(customer_id))


class PreferenceStore:
    """Preference access backed by the ``customers.preferences`` JSON column."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _load_customer(self, customer_id) -> Customer | None:
        return self.db.query(Customer).filter(Customer.id == as_uuid(customer_id)).first()

    def get(self, customer_id) -> NotificationPreferences:
        try:
            customer = self._load_customer(customer_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("Preference read failed for customer %s, using defaults", customer_id, exc_info=True)
            return NotificationPreferences()
        except ValueError:
            logger.warning("Preference read failed for customer %s, using defaults", customer_id, exc_info=True)
            return NotificationPreferences()
        if customer is None or not customer.preferences:
            return NotificationPreferences()
        return NotificationPreferences.from_stored(customer.preferences)

    def update(self, customer_id, partial: dict) -> OperationResult:
        """Shallow-merge ``partial`` over the current preferences and persist."""
        try:
            customer = self._load_customer(customer_id)
            if customer is None:
                return OperationResult(success=False, error="Customer not found")
            current = NotificationPreferences.from_stored(customer.preferences)
            merged = {**current.model_dump(), **partial}
            customer.preferences = merged
            self.db.commit()
        except (SQLAlchemyError, ValueError) as exc:
            self.db.rollback()
            logger.error("Preference update failed for customer %s: %s", customer_id, exc)
            return OperationResult(success=False, error=str(exc))

        logger.info("Updated notification preferences for customer %s: %s", customer_id, sorted(partial))
        return OperationResult(success=True)

    def check_allowed(self, customer_id, notification_type: str, channel: str) -> PreferenceDecision:
        """Decide whether a customer accepts ``notification_type`` on ``channel``.

        Transactional types always pass. Otherwise the marketing gate is
        evaluated before the channel-specific gate and the first failing gate
        determines the reason.
        """
        if is_transactional(notification_type):
            return PreferenceDecision(allowed=True)

        prefs = self.get(customer_id)

        if is_marketing(notification_type) and not prefs.marketing_enabled:
            return PreferenceDecision(allowed=False, reason=PreferenceBlockReason.MARKETING_DISABLED)

        if notification_type in ("appointment_reminder", "retention_reminder"):
            flag = _CHANNEL_FLAGS.get((notification_type, channel))
            if flag and not getattr(prefs, flag):
                blocks = _REMINDER_BLOCKS if notification_type == "appointment_reminder" else _RETENTION_BLOCKS
                return PreferenceDecision(allowed=False, reason=blocks[NotificationChannel(channel)])

        return PreferenceDecision(allowed=True)

    def disable_marketing(self, customer_id) -> OperationResult:
        return self.update(customer_id, {"marketing_enabled": False})

    def disable_channel(self, customer_id, notification_type: str, channel: str) -> OperationResult:
        flag = _CHANNEL_FLAGS.get((notification_type, channel))
        if flag is None:
            return OperationResult(success=False, error="Invalid notification type or channel")
        return self.update(customer_id, {flag: False})
