"""Notification orchestrator.

``send`` walks one message through preference check, channel settings,
template lookup, rendering, dispatch and logging. It never raises: every
outcome comes back as a ``NotificationResult`` and leaves exactly one row in
the delivery log.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..notification_templates import engine
from ..notification_templates.service import TemplateStore
from ..preferences.service import PreferenceStore, has_channel_opt_out
from ..unsubscribe.tokens import UnsubscribeTokenCodec
from . import settings_service
from .categories import is_transactional
from .delivery_log import NotificationLogger
from .errors import NotificationErrorKind, NotificationResult, SendResult
from .providers import EmailProvider, SMSProvider
from .schemas import BulkResendRequest, BulkResendSummary, LogFilters, NotificationMessage, ResendResult

logger = logging.getLogger(__name__)

MAX_BULK_RESEND = 100


class ChannelSettings:
    """System-level channel switches backed by ``notification_settings``."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def is_enabled(self, notification_type: str, channel: str) -> bool:
        setting = settings_service.get_setting(self.db, notification_type)
        return setting is not None and setting.channel_enabled(channel)

    def record_outcome(self, notification_type: str, success: bool) -> None:
        settings_service.record_outcome(self.db, notification_type, success)


class NotificationService:
    def __init__(
        self,
        preferences: PreferenceStore,
        templates: TemplateStore,
        delivery_log: NotificationLogger,
        channel_settings: ChannelSettings,
        email_provider: EmailProvider,
        sms_provider: SMSProvider,
        business: dict | None = None,
        token_codec: UnsubscribeTokenCodec | None = None,
        provider_timeout: float = 10.0,
    ) -> None:
        self.preferences = preferences
        self.templates = templates
        self.delivery_log = delivery_log
        self.channel_settings = channel_settings
        self.email_provider = email_provider
        self.sms_provider = sms_provider
        self.business = business or {}
        self.token_codec = token_codec
        self.provider_timeout = provider_timeout
        self._log_id: str | None = None

    # ── Public API ─────────────────────────────────────────────────────

    def send(self, message: NotificationMessage) -> NotificationResult:
        self._log_id = None
        try:
            return self._send(message)
        except SQLAlchemyError as exc:
            logger.exception("Storage error while sending %s/%s", message.type, message.channel)
            return self._storage_failure(message, f"Storage error: {exc}")

    def _storage_failure(self, message: NotificationMessage, error: str) -> NotificationResult:
        """Roll the session back and record the failure on this message's row."""
        db = self.delivery_log.db
        db.rollback()
        log_id = self._log_id
        try:
            if log_id is not None and self.delivery_log.get(log_id) is not None:
                self.delivery_log.update(log_id, status="failed", error_message=error)
            else:
                log_id = self._fail(message, error, NotificationErrorKind.STORAGE_ERROR).log_id
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not log storage failure for %s/%s", message.type, message.channel)
            log_id = None
        return NotificationResult(
            success=False,
            log_id=log_id,
            error=error,
            error_kind=NotificationErrorKind.STORAGE_ERROR,
        )

    def send_batch(self, messages: list[NotificationMessage]) -> list[NotificationResult]:
        """Send sequentially; one result per message, in order."""
        return [self.send(m) for m in messages]

    def resend(self, log_id) -> NotificationResult:
        """Re-run a failed send with the parameters recorded in its log entry."""
        entry = self.delivery_log.get(log_id)
        if entry is None:
            return NotificationResult(
                success=False,
                error="Original notification log entry not found",
                error_kind=NotificationErrorKind.LOG_NOT_FOUND,
            )
        if entry.status != "failed":
            return NotificationResult(
                success=False,
                error=f"Cannot resend notification with status '{entry.status}'",
                error_kind=NotificationErrorKind.NOT_RESENDABLE,
            )

        logger.info("Resending notification %s (%s/%s to %s)", entry.id, entry.type, entry.channel, entry.recipient)
        return self.send(
            NotificationMessage(
                type=entry.type,
                channel=entry.channel,
                recipient=entry.recipient,
                template_data=entry.template_data or {},
                user_id=str(entry.customer_id) if entry.customer_id else None,
                is_test=bool(entry.is_test),
            )
        )

    def bulk_resend(self, request: BulkResendRequest) -> BulkResendSummary:
        """Resend explicit log ids, or the failed entries matching the filters (max 100)."""
        if request.log_ids:
            log_ids = request.log_ids[:MAX_BULK_RESEND]
        else:
            filters = LogFilters(
                status=request.status or "failed",
                channel=request.channel,
                type=request.type,
                start_date=request.start_date,
                end_date=request.end_date,
            )
            log_ids = [str(e.id) for e in self.delivery_log.find(filters, MAX_BULK_RESEND)]

        results = []
        for log_id in log_ids:
            outcome = self.resend(log_id)
            results.append(
                ResendResult(
                    log_id=str(log_id),
                    success=outcome.success,
                    new_log_id=outcome.log_id,
                    error=outcome.error,
                )
            )

        succeeded = sum(1 for r in results if r.success)
        logger.info("Bulk resend: %d/%d succeeded", succeeded, len(results))
        return BulkResendSummary(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=results,
        )

    # ── State machine ──────────────────────────────────────────────────

    def _fail(
        self,
        message: NotificationMessage,
        error: str,
        kind: NotificationErrorKind,
        **log_fields,
    ) -> NotificationResult:
        log_id = self.delivery_log.create(
            type=message.type,
            channel=message.channel,
            recipient=message.recipient,
            status="failed",
            customer_id=message.user_id,
            error_message=error,
            template_data=message.template_data,
            is_test=message.is_test,
            **log_fields,
        )
        return NotificationResult(success=False, log_id=log_id, error=error, error_kind=kind)

    def _send(self, message: NotificationMessage) -> NotificationResult:
        # 1-2. Customer preferences; anonymous sends skip the check entirely
        if message.user_id:
            decision = self.preferences.check_allowed(message.user_id, message.type, message.channel)
            if not decision.allowed:
                reason = decision.reason.value if decision.reason else "customer_preference"
                logger.info("Notification %s/%s blocked by preference: %s", message.type, message.channel, reason)
                return self._fail(message, reason, NotificationErrorKind.PREFERENCE_BLOCKED)

        # 3. System-level channel switch
        if not self.channel_settings.is_enabled(message.type, message.channel):
            return self._fail(
                message,
                f"Notification type '{message.type}' is disabled for channel '{message.channel}'",
                NotificationErrorKind.CHANNEL_DISABLED,
            )

        # 4. Active template
        template = self.templates.get_active(message.type, message.channel)
        if template is None:
            return self._fail(
                message,
                f"Template not found for notification type '{message.type}' and channel '{message.channel}'",
                NotificationErrorKind.TEMPLATE_NOT_FOUND,
            )

        # 5. Render
        data = self._render_context(message)
        subject = None
        html = None
        if message.channel == "email":
            subject = engine.render(template.subject_template, data, self.business)
            html = engine.render(template.html_template, data, self.business, escape_html=True) or None
            text = engine.render(template.text_template, data, self.business) or None
            content = text or html
            if not subject or not content:
                return self._fail(
                    message,
                    "Email requires subject and body content",
                    NotificationErrorKind.TEMPLATE_INVALID,
                    template_id=template.id,
                )
        else:
            text = engine.render(template.sms_template, data, self.business)
            content = text
            if not text:
                return self._fail(
                    message,
                    "SMS template rendered an empty message",
                    NotificationErrorKind.TEMPLATE_INVALID,
                    template_id=template.id,
                )

        log_id = self.delivery_log.create(
            type=message.type,
            channel=message.channel,
            recipient=message.recipient,
            status="pending",
            customer_id=message.user_id,
            subject=subject,
            content=content,
            template_id=template.id,
            template_data=message.template_data,
            is_test=message.is_test,
        )
        self._log_id = log_id

        # 6. Dispatch
        result, kind = self._dispatch(message, subject, html, text)

        # 7. Record the outcome
        if result.success:
            self.delivery_log.update(log_id, status="sent", message_id=result.message_id)
            logger.info("Sent %s %s notification to %s (log %s)", message.type, message.channel, message.recipient, log_id)
        else:
            error = result.error or "Unknown error"
            self.delivery_log.update(log_id, status="failed", error_message=error)
            logger.warning("Failed %s %s notification to %s: %s", message.type, message.channel, message.recipient, error)
        if not message.is_test:
            self.channel_settings.record_outcome(message.type, result.success)

        # 8
        return NotificationResult(
            success=result.success,
            log_id=log_id,
            message_id=result.message_id,
            error=None if result.success else (result.error or "Unknown error"),
            error_kind=None if result.success else kind,
        )

    def _render_context(self, message: NotificationMessage) -> dict:
        data = dict(message.template_data)
        if self.token_codec and message.user_id and not is_transactional(message.type):
            data.setdefault("unsubscribe_url", self._unsubscribe_url(message))
        return data

    def _unsubscribe_url(self, message: NotificationMessage) -> str:
        # Only reminder and retention types have a per-channel opt-out flag
        if has_channel_opt_out(message.type, message.channel):
            return self.token_codec.generate_url(message.user_id, message.type, message.channel)
        return self.token_codec.generate_marketing_url(message.user_id, message.channel)

    def _dispatch(
        self,
        message: NotificationMessage,
        subject: str | None,
        html: str | None,
        text: str | None,
    ) -> tuple[SendResult, NotificationErrorKind]:
        # One worker per call: an abandoned call keeps only its own thread busy
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notification-provider")
        if message.channel == "email":
            future = pool.submit(self.email_provider.send, message.recipient, subject, html, text)
        else:
            future = pool.submit(self.sms_provider.send, message.recipient, text)

        try:
            result = future.result(timeout=self.provider_timeout)
        except FutureTimeout:
            error = (
                f"Provider timeout: {message.channel} provider did not respond "
                f"within {self.provider_timeout:g}s"
            )
            return SendResult(success=False, error=error), NotificationErrorKind.PROVIDER_TIMEOUT
        except Exception as exc:
            logger.exception("%s provider raised for %s", message.channel, message.recipient)
            return SendResult(success=False, error=str(exc) or exc.__class__.__name__), NotificationErrorKind.PROVIDER_FAILURE
        finally:
            pool.shutdown(wait=False)

        if result is None:
            return SendResult(success=False, error="Provider returned no result"), NotificationErrorKind.PROVIDER_FAILURE
        return result, NotificationErrorKind.PROVIDER_FAILURE
