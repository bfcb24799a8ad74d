"""Notification template and template history models."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..database.base import Base


class NotificationTemplate(Base):
    __tablename__ = "notification_templates"
    __table_args__ = (UniqueConstraint("trigger_event", "channel", name="uq_template_trigger_channel"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    type = Column(String(100), nullable=False)
    trigger_event = Column(String(100), nullable=False, index=True)
    channel = Column(String(10), nullable=False)
    subject_template = Column(Text, nullable=True)
    html_template = Column(Text, nullable=True)
    text_template = Column(Text, nullable=True)
    sms_template = Column(Text, nullable=True)
    # [{"name", "description", "required", "max_length", "example_value"}]
    variables = Column(JSON, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    history = relationship(
        "NotificationTemplateHistory",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="NotificationTemplateHistory.version.desc()",
    )


class NotificationTemplateHistory(Base):
    """Snapshot of a template as it was before an update or rollback."""

    __tablename__ = "notification_template_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("notification_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    type = Column(String(100), nullable=False)
    trigger_event = Column(String(100), nullable=False)
    channel = Column(String(10), nullable=False)
    subject_template = Column(Text, nullable=True)
    html_template = Column(Text, nullable=True)
    text_template = Column(Text, nullable=True)
    sms_template = Column(Text, nullable=True)
    variables = Column(JSON, default=list)
    changed_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    change_reason = Column(Text, default="")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )

    template = relationship("NotificationTemplate", back_populates="history")
