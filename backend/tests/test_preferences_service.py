"""Tests for the customer preference store."""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from puppyday.customers.models import Customer
from puppyday.notifications.errors import PreferenceBlockReason
from puppyday.preferences.schemas import NotificationPreferences
from puppyday.preferences.service import PreferenceStore

DEFAULTS = {
    "marketing_enabled": True,
    "email_appointment_reminders": True,
    "sms_appointment_reminders": True,
    "email_retention_reminders": True,
    "sms_retention_reminders": True,
}


def _set_prefs(db_session, customer, prefs):
    customer.preferences = prefs
    db_session.commit()


class TestFromStored:
    def test_none_gives_defaults(self):
        assert NotificationPreferences.from_stored(None).model_dump() == DEFAULTS

    def test_non_dict_gives_defaults(self):
        assert NotificationPreferences.from_stored(["marketing_enabled"]).model_dump() == DEFAULTS

    def test_non_boolean_fields_fall_back_individually(self):
        prefs = NotificationPreferences.from_stored(
            {"marketing_enabled": "false", "sms_retention_reminders": False, "email_appointment_reminders": 0}
        )
        assert prefs.marketing_enabled is True
        assert prefs.email_appointment_reminders is True
        assert prefs.sms_retention_reminders is False


class TestGet:
    def test_no_stored_preferences_returns_defaults(self, db_session, customer):
        store = PreferenceStore(db_session)
        assert store.get(customer.id).model_dump() == DEFAULTS

    def test_empty_object_returns_defaults(self, db_session, customer):
        _set_prefs(db_session, customer, {})
        assert PreferenceStore(db_session).get(customer.id).model_dump() == DEFAULTS

    def test_unknown_customer_returns_defaults(self, db_session):
        assert PreferenceStore(db_session).get(uuid.uuid4()).model_dump() == DEFAULTS

    def test_malformed_id_returns_defaults(self, db_session):
        assert PreferenceStore(db_session).get("not-a-uuid").model_dump() == DEFAULTS

    def test_keeps_valid_booleans_and_replaces_invalid(self, db_session, customer):
        _set_prefs(db_session, customer, {"marketing_enabled": False, "sms_appointment_reminders": "yes"})
        prefs = PreferenceStore(db_session).get(customer.id)
        assert prefs.marketing_enabled is False
        assert prefs.sms_appointment_reminders is True

    def test_storage_error_returns_defaults(self):
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))
        assert PreferenceStore(db).get(uuid.uuid4()).model_dump() == DEFAULTS


class TestUpdate:
    def test_merges_partial_over_current(self, db_session, customer):
        _set_prefs(db_session, customer, {"marketing_enabled": False})
        store = PreferenceStore(db_session)

        result = store.update(customer.id, {"sms_retention_reminders": False})

        assert result.success is True
        db_session.refresh(customer)
        assert customer.preferences["marketing_enabled"] is False
        assert customer.preferences["sms_retention_reminders"] is False
        assert customer.preferences["email_appointment_reminders"] is True

    def test_unknown_customer_fails(self, db_session):
        result = PreferenceStore(db_session).update(uuid.uuid4(), {"marketing_enabled": False})
        assert result.success is False
        assert result.error == "Customer not found"

    def test_storage_error_is_reported_not_raised(self):
        db = MagicMock()
        db.query.return_value.filter.return_value.first.return_value = Customer(preferences={})
        db.commit.side_effect = OperationalError("UPDATE", {}, Exception("disk full"))

        result = PreferenceStore(db).update(uuid.uuid4(), {"marketing_enabled": False})

        assert result.success is False
        assert "disk full" in result.error
        db.rollback.assert_called_once()


class TestCheckAllowed:
    @pytest.mark.parametrize("notification_type", ["booking_confirmation", "appointment_status_ready", "report_card_ready"])
    @pytest.mark.parametrize("channel", ["email", "sms"])
    def test_transactional_always_allowed(self, db_session, customer, notification_type, channel):
        _set_prefs(db_session, customer, {k: False for k in DEFAULTS})
        decision = PreferenceStore(db_session).check_allowed(customer.id, notification_type, channel)
        assert decision.allowed is True
        assert decision.reason is None

    def test_transactional_does_not_read_preferences(self):
        db = MagicMock()
        decision = PreferenceStore(db).check_allowed(uuid.uuid4(), "booking_confirmation", "email")
        assert decision.allowed is True
        db.query.assert_not_called()

    def test_marketing_blocked_when_disabled(self, db_session, customer):
        _set_prefs(db_session, customer, {"marketing_enabled": False})
        decision = PreferenceStore(db_session).check_allowed(customer.id, "marketing", "email")
        assert decision.allowed is False
        assert decision.reason == "customer_preference_marketing_disabled"

    def test_retention_sms_blocked_by_channel_flag(self, db_session, customer):
        _set_prefs(db_session, customer, {"marketing_enabled": True, "sms_retention_reminders": False})
        decision = PreferenceStore(db_session).check_allowed(customer.id, "retention_reminder", "sms")
        assert decision.allowed is False
        assert decision.reason == "customer_preference_sms_retention_disabled"

    def test_marketing_gate_evaluated_first(self, db_session, customer):
        _set_prefs(db_session, customer, {"marketing_enabled": False, "sms_retention_reminders": False})
        decision = PreferenceStore(db_session).check_allowed(customer.id, "retention_reminder", "sms")
        assert decision.reason == PreferenceBlockReason.MARKETING_DISABLED

    def test_retention_other_channel_still_allowed(self, db_session, customer):
        _set_prefs(db_session, customer, {"sms_retention_reminders": False})
        decision = PreferenceStore(db_session).check_allowed(customer.id, "retention_reminder", "email")
        assert decision.allowed is True

    def test_reminder_email_blocked(self, db_session, customer):
        _set_prefs(db_session, customer, {"email_appointment_reminders": False})
        decision = PreferenceStore(db_session).check_allowed(customer.id, "appointment_reminder", "email")
        assert decision.reason == "customer_preference_email_reminders_disabled"

    def test_reminder_sms_blocked(self, db_session, customer):
        _set_prefs(db_session, customer, {"sms_appointment_reminders": False})
        decision = PreferenceStore(db_session).check_allowed(customer.id, "appointment_reminder", "sms")
        assert decision.reason == "customer_preference_sms_reminders_disabled"

    def test_reminders_ignore_marketing_flag(self, db_session, customer):
        _set_prefs(db_session, customer, {"marketing_enabled": False})
        decision = PreferenceStore(db_session).check_allowed(customer.id, "appointment_reminder", "sms")
        assert decision.allowed is True


class TestDisable:
    def test_disable_marketing(self, db_session, customer):
        result = PreferenceStore(db_session).disable_marketing(customer.id)
        assert result.success is True
        db_session.refresh(customer)
        assert customer.preferences["marketing_enabled"] is False
        assert customer.preferences["email_retention_reminders"] is True

    def test_disable_channel_flips_one_flag(self, db_session, customer):
        result = PreferenceStore(db_session).disable_channel(customer.id, "appointment_reminder", "sms")
        assert result.success is True
        db_session.refresh(customer)
        assert customer.preferences["sms_appointment_reminders"] is False
        assert customer.preferences["email_appointment_reminders"] is True

    def test_disable_channel_rejects_unknown_pair_before_storage(self):
        db = MagicMock()
        result = PreferenceStore(db).disable_channel(uuid.uuid4(), "booking_confirmation", "email")
        assert result.success is False
        assert result.error == "Invalid notification type or channel"
        db.query.assert_not_called()
