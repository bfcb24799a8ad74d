"""Shared test fixtures."""

import itertools
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from puppyday.audit.models import AuditLog
from puppyday.auth.models import User
from puppyday.customers.models import Customer
from puppyday.database.base import Base
from puppyday.notification_templates.models import NotificationTemplate, NotificationTemplateHistory
from puppyday.notification_templates.service import TemplateStore
from puppyday.notifications.delivery_log import NotificationLogger
from puppyday.notifications.errors import SendResult
from puppyday.notifications.models import NotificationLog, NotificationSetting
from puppyday.notifications.service import ChannelSettings, NotificationService
from puppyday.preferences.service import PreferenceStore
from puppyday.unsubscribe.tokens import UnsubscribeTokenCodec

# Models must be imported so Base.metadata.create_all() sees all tables.
_ALL_MODELS = [AuditLog, Customer, NotificationLog, NotificationSetting, NotificationTemplate, NotificationTemplateHistory]

TEST_BUSINESS = {
    "name": "Puppy Day",
    "address": "14936 Leffingwell Rd, La Mirada, CA 90638",
    "phone": "(657) 252-2903",
    "email": "puppyday14936@gmail.com",
    "hours": "Monday-Saturday, 9:00 AM - 5:00 PM",
    "website": "https://thepuppyday.com",
}


class FakeEmailProvider:
    """Records calls; returns ``result`` (or raises ``error``) on send."""

    def __init__(self, result: SendResult | None = None, error: Exception | None = None) -> None:
        self.calls: list[dict] = []
        self.result = result
        self.error = error
        self._ids = itertools.count(1)

    def send(self, to, subject, html=None, text=None):
        self.calls.append({"to": to, "subject": subject, "html": html, "text": text})
        if self.error:
            raise self.error
        return self.result or SendResult(success=True, message_id=f"email-{next(self._ids)}")


class FakeSmsProvider:
    def __init__(self, result: SendResult | None = None, error: Exception | None = None) -> None:
        self.calls: list[dict] = []
        self.result = result
        self.error = error
        self._ids = itertools.count(1)

    def send(self, to, body):
        self.calls.append({"to": to, "body": body})
        if self.error:
            raise self.error
        return self.result or SendResult(success=True, message_id=f"SM{next(self._ids)}", segment_count=1)


@pytest.fixture
def db_session():
    """Create an in-memory SQLite database for testing.

    Note: SQLite doesn't support all PostgreSQL features (JSONB, UUID),
    but works for basic service logic testing.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestSession = sessionmaker(bind=engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_user(db_session):
    """Create an admin staff user."""
    user = User(
        id=uuid.uuid4(),
        email="admin@example.com",
        password_hash="$2b$12$fakehash",
        role="admin",
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def customer(db_session):
    """Customer with no stored preferences (all defaults)."""
    c = Customer(
        id=uuid.uuid4(),
        email="sarah@example.com",
        phone="+15555550123",
        first_name="Sarah",
        last_name="Johnson",
    )
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def enabled_settings(db_session):
    """Email and SMS enabled for the types used in tests."""
    rows = [
        NotificationSetting(notification_type=t, email_enabled=True, sms_enabled=True)
        for t in ("booking_confirmation", "appointment_reminder", "retention_reminder", "marketing")
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture
def booking_email_template(db_session):
    t = NotificationTemplate(
        id=uuid.uuid4(),
        name="Booking Confirmation Email",
        type="booking_confirmation",
        trigger_event="booking_confirmation",
        channel="email",
        subject_template="Appointment confirmed for {{pet_name}}",
        html_template="<p>Hi {{customer_name}}, see you on {{appointment_date}}.</p>",
        text_template="Hi {{customer_name}}, see you on {{appointment_date}}. {{business.name}}",
        variables=[
            {"name": "pet_name", "required": True, "max_length": 30},
            {"name": "customer_name", "required": True, "max_length": 50},
            {"name": "appointment_date", "required": False, "example_value": "Monday, December 16"},
        ],
        is_active=True,
        version=1,
    )
    db_session.add(t)
    db_session.commit()
    return t


@pytest.fixture
def reminder_sms_template(db_session):
    t = NotificationTemplate(
        id=uuid.uuid4(),
        name="Appointment Reminder SMS",
        type="appointment_reminder",
        trigger_event="appointment_reminder",
        channel="sms",
        sms_template="Reminder: {{pet_name}} is booked tomorrow at {{appointment_time}}.",
        variables=[
            {"name": "pet_name", "required": True, "max_length": 30},
            {"name": "appointment_time", "required": True, "max_length": 10},
        ],
        is_active=True,
        version=1,
    )
    db_session.add(t)
    db_session.commit()
    return t


@pytest.fixture
def retention_email_template(db_session):
    t = NotificationTemplate(
        id=uuid.uuid4(),
        name="Retention Reminder Email",
        type="retention_reminder",
        trigger_event="retention_reminder",
        channel="email",
        subject_template="{{pet_name}} is due for a groom",
        text_template="Book now: {{booking_url}} / Unsubscribe: {{unsubscribe_url}}",
        variables=[
            {"name": "pet_name", "required": True},
            {"name": "booking_url", "required": True},
        ],
        is_active=True,
        version=1,
    )
    db_session.add(t)
    db_session.commit()
    return t


@pytest.fixture
def birthday_email_template(db_session):
    """Marketing template with no per-channel opt-out flag."""
    db_session.add(NotificationSetting(notification_type="birthday_greeting", email_enabled=True, sms_enabled=False))
    t = NotificationTemplate(
        id=uuid.uuid4(),
        name="Birthday Greeting Email",
        type="birthday_greeting",
        trigger_event="birthday_greeting",
        channel="email",
        subject_template="Happy birthday, {{pet_name}}!",
        text_template="Treats are on us. Unsubscribe: {{unsubscribe_url}}",
        variables=[{"name": "pet_name", "required": True}],
        is_active=True,
        version=1,
    )
    db_session.add(t)
    db_session.commit()
    return t

@pytest.fixture
def email_provider():
    return FakeEmailProvider()


@pytest.fixture
def sms_provider():
    return FakeSmsProvider()


@pytest.fixture
def token_codec():
    return UnsubscribeTokenCodec(secret="test-unsubscribe-secret", ttl_days=30, base_url="https://thepuppyday.com")


@pytest.fixture
def notification_service(db_session, email_provider, sms_provider, token_codec):
    """Orchestrator wired to the SQLite session and fresh fake providers."""
    return NotificationService(
        preferences=PreferenceStore(db_session),
        templates=TemplateStore(db_session),
        delivery_log=NotificationLogger(db_session),
        channel_settings=ChannelSettings(db_session),
        email_provider=email_provider,
        sms_provider=sms_provider,
        business=TEST_BUSINESS,
        token_codec=token_codec,
        provider_timeout=2.0,
    )
