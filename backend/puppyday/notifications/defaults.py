"""Startup seed: channel settings for every known type and starter templates."""

import logging

from sqlalchemy.orm import Session

from ..notification_templates.models import NotificationTemplate
from .categories import DEFAULT_NOTIFICATION_TYPES
from .models import NotificationSetting

logger = logging.getLogger(__name__)

_SMS_ENABLED = {"appointment_reminder", "appointment_status_checked_in", "appointment_status_ready", "waitlist_available"}

_STARTER_TEMPLATES = [
    {
        "name": "Booking Confirmation Email",
        "description": "Sent when a customer books an appointment",
        "type": "booking_confirmation",
        "trigger_event": "booking_confirmation",
        "channel": "email",
        "subject_template": "Appointment Confirmed for {{pet_name}} - {{appointment_date}}",
        "html_template": (
            "<h1>Appointment Confirmed!</h1>"
            "<p>Hi {{customer_name}},</p>"
            "<p>We can't wait to see {{pet_name}} on <strong>{{appointment_date}}</strong> "
            "at <strong>{{appointment_time}}</strong> for a {{service_name}}.</p>"
            "<p>{{business.name}}<br>{{business.address}}<br>{{business.phone}}</p>"
        ),
        "text_template": (
            "Hi {{customer_name}},\n\n"
            "Your appointment for {{pet_name}} is confirmed for {{appointment_date}} at "
            "{{appointment_time}} ({{service_name}}).\n\n"
            "{{business.name}}\n{{business.address}}\n{{business.phone}}\n"
        ),
        "variables": [
            {"name": "customer_name", "required": True, "max_length": 50, "example_value": "Sarah"},
            {"name": "pet_name", "required": True, "max_length": 30, "example_value": "Max"},
            {"name": "appointment_date", "required": True, "max_length": 30, "example_value": "Monday, December 16"},
            {"name": "appointment_time", "required": True, "max_length": 10, "example_value": "10:00 AM"},
            {"name": "service_name", "required": False, "max_length": 50, "example_value": "Full Groom"},
        ],
    },
    {
        "name": "Appointment Reminder SMS",
        "description": "Sent the day before an appointment",
        "type": "appointment_reminder",
        "trigger_event": "appointment_reminder",
        "channel": "sms",
        "sms_template": (
            "Reminder: {{pet_name}}'s grooming at {{business.name}} is tomorrow at "
            "{{appointment_time}}. See you soon!"
        ),
        "variables": [
            {"name": "pet_name", "required": True, "max_length": 30, "example_value": "Max"},
            {"name": "appointment_time", "required": True, "max_length": 10, "example_value": "10:00 AM"},
        ],
    },
    {
        "name": "Retention Reminder Email",
        "description": "Sent when a pet is due for its next groom",
        "type": "retention_reminder",
        "trigger_event": "retention_reminder",
        "channel": "email",
        "subject_template": "{{pet_name}} is due for a groom!",
        "html_template": (
            "<p>Hi {{customer_name}},</p>"
            "<p>It has been {{weeks_since_last}} weeks since {{pet_name}}'s last visit. "
            "Book now to keep {{pet_name}} looking their best.</p>"
            "<p><a href=\"{{booking_url}}\">Book an appointment</a></p>"
            "<p><small><a href=\"{{unsubscribe_url}}\">Unsubscribe</a></small></p>"
        ),
        "text_template": (
            "Hi {{customer_name}},\n\n"
            "It has been {{weeks_since_last}} weeks since {{pet_name}}'s last visit. "
            "Book now: {{booking_url}}\n\n"
            "Unsubscribe: {{unsubscribe_url}}\n"
        ),
        "variables": [
            {"name": "customer_name", "required": True, "max_length": 50, "example_value": "Sarah"},
            {"name": "pet_name", "required": True, "max_length": 30, "example_value": "Max"},
            {"name": "weeks_since_last", "required": False, "max_length": 3, "example_value": "8"},
            {"name": "booking_url", "required": True, "max_length": 100, "example_value": "https://thepuppyday.com/book"},
            {"name": "unsubscribe_url", "required": False, "max_length": 200},
        ],
    },
]


def seed_notification_defaults(db: Session) -> None:
    """Insert missing settings rows and starter templates. Caller commits."""
    existing = {s.notification_type for s in db.query(NotificationSetting.notification_type).all()}
    added = 0
    for notification_type in DEFAULT_NOTIFICATION_TYPES:
        if notification_type in existing:
            continue
        db.add(
            NotificationSetting(
                notification_type=notification_type,
                email_enabled=True,
                sms_enabled=notification_type in _SMS_ENABLED,
            )
        )
        added += 1

    for starter in _STARTER_TEMPLATES:
        found = (
            db.query(NotificationTemplate)
            .filter(
                NotificationTemplate.trigger_event == starter["trigger_event"],
                NotificationTemplate.channel == starter["channel"],
            )
            .first()
        )
        if found is None:
            db.add(NotificationTemplate(**starter))
            added += 1

    if added:
        db.flush()
        logger.info("Seeded %d notification defaults", added)
