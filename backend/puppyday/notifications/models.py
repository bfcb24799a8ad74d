"""Delivery log and per-type channel settings models."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..customers.models import Customer
from ..database.base import Base


class NotificationLog(Base):
    """One row per send attempt, successful or not."""

    __tablename__ = "notification_logs"
    __table_args__ = (
        Index("ix_notification_logs_status_created", "status", "created_at"),
        Index("ix_notification_logs_type_channel", "type", "channel"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(100), nullable=False)
    channel = Column(String(10), nullable=False)  # "email" | "sms"
    recipient = Column(String(255), nullable=False)
    subject = Column(String(500), nullable=True)
    content = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # "pending" | "sent" | "failed"
    error_message = Column(Text, nullable=True)
    template_id = Column(UUID(as_uuid=True), nullable=True)
    template_data = Column(JSON, nullable=True)
    message_id = Column(String(255), nullable=True)
    is_test = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        index=True,
    )

    customer = relationship(Customer, lazy="joined")


class NotificationSetting(Base):
    """System-level switches for one notification type."""

    __tablename__ = "notification_settings"

    notification_type = Column(String(100), primary_key=True)
    email_enabled = Column(Boolean, nullable=False, default=False)
    sms_enabled = Column(Boolean, nullable=False, default=False)
    schedule_enabled = Column(Boolean, nullable=False, default=False)
    schedule_cron = Column(String(100), nullable=True)
    last_sent_at = Column(DateTime(timezone=True), nullable=True)
    total_sent_count = Column(Integer, nullable=False, default=0)
    total_failed_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    def channel_enabled(self, channel: str) -> bool:
        if channel == "email":
            return bool(self.email_enabled)
        if channel == "sms":
            return bool(self.sms_enabled)
        return False
