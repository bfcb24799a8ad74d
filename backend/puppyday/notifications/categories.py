"""Notification channels, types and their transactional/marketing classification."""

import enum


class NotificationChannel(enum.StrEnum):
    EMAIL = "email"
    SMS = "sms"


class NotificationCategory(enum.StrEnum):
    TRANSACTIONAL = "transactional"
    REMINDER = "reminder"
    MARKETING = "marketing"


MARKETING_TYPES = frozenset({"marketing", "retention_reminder", "birthday_greeting", "review_request"})
REMINDER_TYPES = frozenset({"appointment_reminder"})

# Types that get a settings row on first startup
DEFAULT_NOTIFICATION_TYPES = [
    "booking_confirmation",
    "appointment_reminder",
    "appointment_status_checked_in",
    "appointment_status_ready",
    "appointment_cancelled",
    "report_card_ready",
    "waitlist_available",
    "retention_reminder",
    "birthday_greeting",
    "review_request",
    "payment_receipt",
    "payment_failed",
    "membership_renewal",
    "admin_daily_summary",
]


def categorize(notification_type: str) -> NotificationCategory:
    """Classify a notification type. Unknown types count as transactional."""
    if notification_type in MARKETING_TYPES:
        return NotificationCategory.MARKETING
    if notification_type in REMINDER_TYPES:
        return NotificationCategory.REMINDER
    return NotificationCategory.TRANSACTIONAL


def is_transactional(notification_type: str) -> bool:
    return categorize(notification_type) == NotificationCategory.TRANSACTIONAL


def is_marketing(notification_type: str) -> bool:
    return categorize(notification_type) == NotificationCategory.MARKETING
