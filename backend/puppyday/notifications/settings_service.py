"""Per-type channel settings: lookup, admin updates and send counters."""

import logging
import re
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from .models import NotificationSetting
from .schemas import NotificationSettingUpdate

logger = logging.getLogger(__name__)

_CRON_FIELD_RE = re.compile(r"^[\d*/,\-]+$")


def is_valid_cron(expr: str) -> bool:
    """Five whitespace-separated fields of digits, ``*``, ``/``, ``,`` and ``-``."""
    fields = expr.split()
    return len(fields) == 5 and all(_CRON_FIELD_RE.match(f) for f in fields)


def get_setting(db: Session, notification_type: str) -> NotificationSetting | None:
    return db.query(NotificationSetting).filter(NotificationSetting.notification_type == notification_type).first()


def list_settings(db: Session) -> list[NotificationSetting]:
    return db.query(NotificationSetting).order_by(NotificationSetting.notification_type.asc()).all()


def update_setting(db: Session, notification_type: str, patch: NotificationSettingUpdate) -> NotificationSetting:
    """Apply a partial update. Raises LookupError / ValueError for the route to map."""
    fields = patch.model_dump(exclude_unset=True)
    if not fields:
        raise ValueError("At least one field must be provided")
    for name in ("email_enabled", "sms_enabled", "schedule_enabled"):
        if name in fields and fields[name] is None:
            raise ValueError(f"{name} must be a boolean")
    cron = fields.get("schedule_cron")
    if cron is not None and not is_valid_cron(cron):
        raise ValueError("Invalid cron expression")

    setting = get_setting(db, notification_type)
    if setting is None:
        raise LookupError(f"Notification settings for '{notification_type}' not found")

    for key, value in fields.items():
        setattr(setting, key, value)
    db.flush()
    logger.info("Updated notification settings for %s: %s", notification_type, sorted(fields))
    return setting


def record_outcome(db: Session, notification_type: str, success: bool) -> None:
    """Bump the sent/failed counters after a provider outcome."""
    setting = get_setting(db, notification_type)
    if setting is None:
        return
    if success:
        setting.total_sent_count = (setting.total_sent_count or 0) + 1
        setting.last_sent_at = datetime.now(UTC)
    else:
        setting.total_failed_count = (setting.total_failed_count or 0) + 1
    db.commit()
