"""Tests for the notification orchestrator."""

import threading
import uuid
from datetime import datetime
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import OperationalError

from conftest import FakeEmailProvider
from puppyday.notifications.errors import SendResult
from puppyday.notifications.models import NotificationLog, NotificationSetting
from puppyday.notifications.schemas import BulkResendRequest, NotificationMessage
from puppyday.preferences.service import PreferenceStore

BOOKING_DATA = {"pet_name": "Max", "customer_name": "Sarah", "appointment_date": "Monday"}


def _booking(user_id=None, **overrides):
    fields = {
        "type": "booking_confirmation",
        "channel": "email",
        "recipient": "sarah@example.com",
        "template_data": BOOKING_DATA,
        "user_id": str(user_id) if user_id else None,
    }
    fields.update(overrides)
    return NotificationMessage(**fields)


def _logs(db_session):
    return db_session.query(NotificationLog).order_by(NotificationLog.created_at.asc()).all()


class TestSendSuccess:
    def test_booking_confirmation_end_to_end(
        self, db_session, notification_service, email_provider, customer, enabled_settings, booking_email_template
    ):
        result = notification_service.send(_booking(customer.id))

        assert result.success is True
        assert result.error is None
        assert len(email_provider.calls) == 1
        call = email_provider.calls[0]
        assert call["to"] == "sarah@example.com"
        assert call["subject"] == "Appointment confirmed for Max"
        assert call["text"] == "Hi Sarah, see you on Monday. Puppy Day"

        logs = _logs(db_session)
        assert len(logs) == 1
        assert logs[0].status == "sent"
        assert logs[0].sent_at is not None
        assert logs[0].error_message is None
        assert logs[0].subject == "Appointment confirmed for Max"
        assert logs[0].message_id == result.message_id
        assert logs[0].template_id == booking_email_template.id
        assert logs[0].customer_id == customer.id
        assert str(logs[0].id) == result.log_id

    def test_sms_uses_sms_provider(
        self, db_session, notification_service, email_provider, sms_provider, enabled_settings, reminder_sms_template
    ):
        result = notification_service.send(
            NotificationMessage(
                type="appointment_reminder",
                channel="sms",
                recipient="+15555550123",
                template_data={"pet_name": "Max", "appointment_time": "10:00 AM"},
            )
        )

        assert result.success is True
        assert email_provider.calls == []
        assert sms_provider.calls == [{"to": "+15555550123", "body": "Reminder: Max is booked tomorrow at 10:00 AM."}]
        assert _logs(db_session)[0].subject is None

    def test_html_values_escaped(
        self, notification_service, email_provider, enabled_settings, booking_email_template
    ):
        data = dict(BOOKING_DATA, customer_name="<img src=x>")
        notification_service.send(_booking(template_data=data))
        assert "&lt;img src=x&gt;" in email_provider.calls[0]["html"]

    def test_counters_updated(self, db_session, notification_service, enabled_settings, booking_email_template):
        notification_service.send(_booking())
        setting = db_session.get(NotificationSetting, "booking_confirmation")
        assert setting.total_sent_count == 1
        assert setting.last_sent_at is not None

    def test_test_sends_flagged_and_not_counted(
        self, db_session, notification_service, enabled_settings, booking_email_template
    ):
        notification_service.send(_booking(is_test=True))
        assert _logs(db_session)[0].is_test is True
        assert db_session.get(NotificationSetting, "booking_confirmation").total_sent_count == 0


class TestPreferenceGate:
    def test_anonymous_send_skips_preference_check(
        self, notification_service, email_provider, enabled_settings, booking_email_template
    ):
        with patch.object(PreferenceStore, "check_allowed") as check:
            result = notification_service.send(_booking())
        assert check.call_count == 0
        assert result.success is True
        assert len(email_provider.calls) == 1

    def test_customer_send_checks_preferences_once(
        self, notification_service, customer, enabled_settings, booking_email_template
    ):
        with patch.object(PreferenceStore, "check_allowed", wraps=notification_service.preferences.check_allowed) as check:
            notification_service.send(_booking(customer.id))
        check.assert_called_once_with(str(customer.id), "booking_confirmation", "email")

    def test_marketing_disabled_blocks_retention(
        self, db_session, notification_service, email_provider, customer, enabled_settings, retention_email_template
    ):
        customer.preferences = {"marketing_enabled": False}
        db_session.commit()

        result = notification_service.send(
            NotificationMessage(
                type="retention_reminder",
                channel="email",
                recipient="sarah@example.com",
                template_data={"pet_name": "Max", "booking_url": "https://thepuppyday.com/book"},
                user_id=str(customer.id),
            )
        )

        assert result.success is False
        assert result.error == "customer_preference_marketing_disabled"
        assert result.error_kind == "preference_blocked"
        assert email_provider.calls == []
        logs = _logs(db_session)
        assert len(logs) == 1
        assert logs[0].status == "failed"
        assert logs[0].error_message == "customer_preference_marketing_disabled"
        assert logs[0].sent_at is None
        assert logs[0].is_test is False

    def test_blocked_send_keeps_test_flag(
        self, db_session, notification_service, customer, enabled_settings, reminder_sms_template
    ):
        customer.preferences = {"sms_appointment_reminders": False}
        db_session.commit()
        notification_service.send(
            NotificationMessage(
                type="appointment_reminder",
                channel="sms",
                recipient="+15555550123",
                user_id=str(customer.id),
                is_test=True,
            )
        )
        assert _logs(db_session)[0].is_test is True

    def test_marketing_send_gets_unsubscribe_link(
        self, notification_service, email_provider, token_codec, customer, enabled_settings, retention_email_template
    ):
        notification_service.send(
            NotificationMessage(
                type="retention_reminder",
                channel="email",
                recipient="sarah@example.com",
                template_data={"pet_name": "Max", "booking_url": "https://thepuppyday.com/book"},
                user_id=str(customer.id),
            )
        )
        text = email_provider.calls[0]["text"]
        assert "https://thepuppyday.com/api/unsubscribe?token=" in text
        token = text.split("token=")[1]
        assert token_codec.validate(token).user_id == str(customer.id)

    def test_birthday_greeting_link_opts_out_of_marketing(
        self, db_session, notification_service, email_provider, token_codec, customer, birthday_email_template
    ):
        notification_service.send(
            NotificationMessage(
                type="birthday_greeting",
                channel="email",
                recipient="sarah@example.com",
                template_data={"pet_name": "Max"},
                user_id=str(customer.id),
            )
        )
        token = email_provider.calls[0]["text"].split("token=")[1]
        payload = token_codec.validate(token)
        assert payload.notification_type == "marketing"

        store = PreferenceStore(db_session)
        assert store.disable_marketing(payload.user_id).success is True
        assert store.get(customer.id).marketing_enabled is False

    def test_reminder_link_keeps_channel(
        self, notification_service, sms_provider, token_codec, customer, enabled_settings, reminder_sms_template
    ):
        reminder_sms_template.sms_template += " Stop: {{unsubscribe_url}}"
        notification_service.send(
            NotificationMessage(
                type="appointment_reminder",
                channel="sms",
                recipient="+15555550123",
                template_data={"pet_name": "Max", "appointment_time": "9:00 AM"},
                user_id=str(customer.id),
            )
        )
        payload = token_codec.validate(sms_provider.calls[0]["body"].split("token=")[1])
        assert (payload.notification_type, payload.channel) == ("appointment_reminder", "sms")


class TestConfigurationFailures:
    def test_missing_settings_row_is_channel_disabled(self, db_session, notification_service, email_provider, booking_email_template):
        result = notification_service.send(_booking())
        assert result.success is False
        assert result.error_kind == "channel_disabled"
        assert result.error == "Notification type 'booking_confirmation' is disabled for channel 'email'"
        assert email_provider.calls == []
        assert _logs(db_session)[0].status == "failed"

    def test_disabled_channel(self, db_session, notification_service, sms_provider, enabled_settings, reminder_sms_template):
        db_session.get(NotificationSetting, "appointment_reminder").sms_enabled = False
        db_session.commit()
        result = notification_service.send(
            NotificationMessage(type="appointment_reminder", channel="sms", recipient="+15555550123")
        )
        assert result.error_kind == "channel_disabled"
        assert sms_provider.calls == []

    def test_missing_template(self, db_session, notification_service, email_provider, enabled_settings):
        result = notification_service.send(_booking())
        assert result.success is False
        assert result.error_kind == "template_not_found"
        assert result.error == "Template not found for notification type 'booking_confirmation' and channel 'email'"
        assert email_provider.calls == []
        logs = _logs(db_session)
        assert len(logs) == 1
        assert logs[0].error_message == result.error


class TestProviderFailures:
    def test_provider_failure_logged(
        self, db_session, notification_service, email_provider, enabled_settings, booking_email_template
    ):
        email_provider.result = SendResult(success=False, error="Mailbox unavailable")

        result = notification_service.send(_booking())

        assert result.success is False
        assert result.error == "Mailbox unavailable"
        assert result.error_kind == "provider_failure"
        logs = _logs(db_session)
        assert len(logs) == 1
        assert logs[0].status == "failed"
        assert logs[0].error_message == "Mailbox unavailable"
        assert logs[0].sent_at is None
        assert db_session.get(NotificationSetting, "booking_confirmation").total_failed_count == 1

    def test_provider_exception_does_not_escape(
        self, db_session, notification_service, email_provider, enabled_settings, booking_email_template
    ):
        email_provider.error = ConnectionError("SMTP connection refused")
        result = notification_service.send(_booking())
        assert result.success is False
        assert result.error == "SMTP connection refused"
        assert _logs(db_session)[0].status == "failed"

    def test_provider_timeout(self, db_session, notification_service, enabled_settings, booking_email_template):
        release = threading.Event()

        class HangingProvider:
            def send(self, to, subject, html=None, text=None):
                release.wait(5)
                return SendResult(success=True, message_id="late")

        notification_service.email_provider = HangingProvider()
        notification_service.provider_timeout = 0.05
        try:
            result = notification_service.send(_booking())
        finally:
            release.set()

        assert result.success is False
        assert result.error_kind == "provider_timeout"
        assert result.error == "Provider timeout: email provider did not respond within 0.05s"
        assert _logs(db_session)[0].error_message == result.error

    def test_storage_error_returns_result(self, db_session, notification_service, booking_email_template):
        notification_service.channel_settings = MagicMock()
        notification_service.channel_settings.is_enabled.side_effect = [
            OperationalError("SELECT", {}, Exception("db down")),
            True,
        ]
        result = notification_service.send(_booking())
        assert result.success is False
        assert result.error_kind == "storage_error"
        failed = db_session.query(NotificationLog).one()
        assert failed.status == "failed"
        assert str(failed.id) == result.log_id

        assert notification_service.send(_booking()).success is True
        assert db_session.query(NotificationLog).count() == 2

    def test_failed_flush_does_not_break_later_sends(
        self, db_session, notification_service, enabled_settings, booking_email_template
    ):
        real_create = notification_service.delivery_log.create
        calls = []

        def flaky_create(**fields):
            calls.append(fields)
            if len(calls) == 1:
                db_session.add(
                    NotificationLog(
                        type="booking_confirmation",
                        channel="email",
                        recipient="broken@example.com",
                        status="pending",
                        template_data={"unserializable": object()},
                    )
                )
                db_session.flush()
            return real_create(**fields)

        with patch.object(notification_service.delivery_log, "create", side_effect=flaky_create):
            results = notification_service.send_batch([_booking(), _booking(recipient="second@example.com")])

        assert results[0].error_kind == "storage_error"
        assert results[1].success is True
        rows = db_session.query(NotificationLog).all()
        assert sorted((r.recipient, r.status) for r in rows) == [
            ("sarah@example.com", "failed"),
            ("second@example.com", "sent"),
        ]

    def test_non_json_template_data_is_logged_as_text(
        self, db_session, notification_service, enabled_settings, booking_email_template
    ):
        when = datetime(2026, 12, 16, 9, 30)
        result = notification_service.send(_booking(template_data={**BOOKING_DATA, "appointment_date": when}))
        assert result.success is True
        assert db_session.query(NotificationLog).one().template_data["appointment_date"] == str(when)

    def test_hung_providers_do_not_starve_later_sends(
        self, db_session, notification_service, enabled_settings, booking_email_template
    ):
        release = threading.Event()

        class HangingProvider:
            def send(self, to, subject, html=None, text=None):
                release.wait(5)
                return SendResult(success=True, message_id="late")

        notification_service.provider_timeout = 0.05
        notification_service.email_provider = HangingProvider()
        try:
            for _ in range(10):
                assert notification_service.send(_booking()).error_kind == "provider_timeout"
            notification_service.email_provider = FakeEmailProvider()
            result = notification_service.send(_booking())
        finally:
            release.set()

        assert result.success is True


class TestBatchAndResend:
    def test_send_batch_one_result_per_message(
        self, db_session, notification_service, enabled_settings, booking_email_template
    ):
        results = notification_service.send_batch([_booking(), _booking(type="marketing")])
        assert [r.success for r in results] == [True, False]
        assert results[1].error_kind == "template_not_found"
        assert len(_logs(db_session)) == 2

    def test_resend_failed_entry(
        self, db_session, notification_service, email_provider, enabled_settings, booking_email_template
    ):
        email_provider.result = SendResult(success=False, error="Timeout talking to SMTP")
        first = notification_service.send(_booking())
        email_provider.result = None

        result = notification_service.resend(first.log_id)

        assert result.success is True
        assert result.log_id != first.log_id
        assert len(email_provider.calls) == 2
        assert email_provider.calls[1]["subject"] == "Appointment confirmed for Max"
        statuses = sorted(log.status for log in _logs(db_session))
        assert statuses == ["failed", "sent"]

    def test_resend_sent_entry_refused(self, notification_service, enabled_settings, booking_email_template):
        first = notification_service.send(_booking())
        result = notification_service.resend(first.log_id)
        assert result.success is False
        assert result.error == "Cannot resend notification with status 'sent'"
        assert result.error_kind == "not_resendable"

    def test_resend_missing_entry(self, notification_service):
        result = notification_service.resend(uuid.uuid4())
        assert result.error == "Original notification log entry not found"
        assert result.error_kind == "log_not_found"

    def test_bulk_resend_by_filter(
        self, db_session, notification_service, email_provider, enabled_settings, booking_email_template
    ):
        email_provider.result = SendResult(success=False, error="Mailbox full")
        notification_service.send(_booking())
        notification_service.send(_booking(recipient="other@example.com"))
        email_provider.result = None

        summary = notification_service.bulk_resend(BulkResendRequest(status="failed", channel="email"))

        assert summary.total == 2
        assert summary.succeeded == 2
        assert summary.failed == 0

    def test_bulk_resend_reports_per_entry(self, notification_service, enabled_settings, booking_email_template):
        sent = notification_service.send(_booking())
        summary = notification_service.bulk_resend(BulkResendRequest(log_ids=[sent.log_id, str(uuid.uuid4())]))
        assert summary.total == 2
        assert summary.succeeded == 0
        assert [r.error for r in summary.results] == [
            "Cannot resend notification with status 'sent'",
            "Original notification log entry not found",
        ]
