"""Email and SMS channel providers with a Protocol for dependency injection.

Providers report outcomes as ``SendResult`` and never retry; resends are a
caller concern. The SMTP password may be stored Fernet-encrypted with a key
derived from SECRET_KEY.
"""

import base64
import hashlib
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import Protocol

import httpx
from cryptography.fernet import Fernet, InvalidToken

from ..config import settings
from ..notification_templates.engine import calculate_segment_count
from .errors import SendResult

logger = logging.getLogger(__name__)


# ── Credential encryption ─────────────────────────────────────────────


def _derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet key from the app SECRET_KEY using SHA-256."""
    digest = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(digest)


def encrypt_value(plaintext: str) -> str:
    f = Fernet(_derive_fernet_key(settings.secret_key))
    return f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    f = Fernet(_derive_fernet_key(settings.secret_key))
    return f.decrypt(ciphertext.encode()).decode()


# ── Interfaces ─────────────────────────────────────────────────────────


class EmailProvider(Protocol):
    def send(self, to: str, subject: str, html: str | None = None, text: str | None = None) -> SendResult: ...


class SMSProvider(Protocol):
    def send(self, to: str, body: str) -> SendResult: ...


# ── SMTP ───────────────────────────────────────────────────────────────


class SmtpEmailProvider:
    """Sends multipart (text + HTML) mail over SMTP with STARTTLS."""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_name: str,
        timeout: float = 15,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_name = from_name
        self.timeout = timeout

    def _password(self) -> str:
        # Fernet tokens start with 'gAAAAA'
        if self.password.startswith("gAAAAA"):
            return decrypt_value(self.password)
        return self.password

    def _build(self, to: str, subject: str, html: str | None, text: str | None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.user))
        msg["To"] = to
        msg["Reply-To"] = self.user
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.user.split("@")[-1] if "@" in self.user else "local")
        msg["Subject"] = subject
        if text:
            msg.attach(MIMEText(text, "plain", "utf-8"))
        if html:
            msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def send(self, to: str, subject: str, html: str | None = None, text: str | None = None) -> SendResult:
        msg = self._build(to, subject, html, text)
        try:
            password = self._password()
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(self.user, password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError, InvalidToken) as exc:
            logger.error("SMTP send to %s failed: %s", to, exc)
            return SendResult(success=False, error=f"SMTP error: {exc}")
        return SendResult(success=True, message_id=msg["Message-ID"])


# ── Twilio ─────────────────────────────────────────────────────────────


class TwilioSmsProvider:
    """Sends SMS through the Twilio Messages REST endpoint."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 15,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.account_sid = account_sid
        self.from_number = from_number
        self._client = httpx.Client(
            base_url=api_base,
            auth=(account_sid, auth_token),
            timeout=timeout,
            transport=transport,
        )

    def send(self, to: str, body: str) -> SendResult:
        segments = calculate_segment_count(body)
        try:
            response = self._client.post(
                f"/Accounts/{self.account_sid}/Messages.json",
                data={"To": to, "From": self.from_number, "Body": body},
            )
        except httpx.HTTPError as exc:
            logger.error("Twilio request to %s failed: %s", to, exc)
            return SendResult(success=False, error=f"SMS provider unreachable: {exc}", segment_count=segments)

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code >= 400:
            message = payload.get("message") or response.text or f"HTTP {response.status_code}"
            logger.warning("Twilio rejected SMS to %s: %s", to, message)
            return SendResult(success=False, error=f"SMS provider error: {message}", segment_count=segments)

        return SendResult(
            success=True,
            message_id=payload.get("sid"),
            segment_count=int(payload.get("num_segments") or segments),
        )


# ── Unconfigured fallbacks ─────────────────────────────────────────────


class UnconfiguredEmailProvider:
    """Used when SMTP credentials are missing; every send fails."""

    def send(self, to: str, subject: str, html: str | None = None, text: str | None = None) -> SendResult:
        return SendResult(success=False, error="Email provider not configured")


class UnconfiguredSmsProvider:
    """Used when Twilio credentials are missing; every send fails."""

    def send(self, to: str, body: str) -> SendResult:
        return SendResult(success=False, error="SMS provider not configured")


def create_email_provider() -> EmailProvider:
    """Factory: SMTP when credentials are configured, otherwise a failing stub."""
    if not settings.smtp_user or not settings.smtp_password:
        logger.info("SMTP not configured, email sends will fail")
        return UnconfiguredEmailProvider()
    return SmtpEmailProvider(
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        from_name=settings.smtp_from_name,
        timeout=settings.provider_timeout_seconds,
    )


def create_sms_provider() -> SMSProvider:
    """Factory: Twilio when credentials are configured, otherwise a failing stub."""
    if not (settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_from_number):
        logger.info("Twilio not configured, SMS sends will fail")
        return UnconfiguredSmsProvider()
    return TwilioSmsProvider(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        api_base=settings.twilio_api_base,
        timeout=settings.provider_timeout_seconds,
    )
