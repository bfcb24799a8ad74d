"""Signed, expiring unsubscribe tokens.

Wire format: ``base64url(json_payload).base64url(hmac_sha256(encoded_payload))``
with unpadded segments. The payload is
``{"userId", "notificationType", "channel", "expiresAt"}`` where ``expiresAt``
is epoch milliseconds.
"""

import base64
import binascii
import hashlib
import hmac
import json
import time
from urllib.parse import urlencode

from pydantic import BaseModel

from ..config import settings

_DAY_MS = 24 * 60 * 60 * 1000


class UnsubscribePayload(BaseModel):
    user_id: str
    notification_type: str
    channel: str
    expires_at: int  # epoch milliseconds


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _now_ms() -> int:
    return int(time.time() * 1000)


class UnsubscribeTokenCodec:
    def __init__(self, secret: str, ttl_days: int = 30, base_url: str = "") -> None:
        if not secret:
            raise ValueError("Unsubscribe secret must not be empty")
        self._secret = secret.encode()
        self.ttl_days = ttl_days
        self.base_url = base_url.rstrip("/")

    def _sign(self, encoded_payload: str) -> str:
        digest = hmac.new(self._secret, encoded_payload.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def generate(self, user_id: str, notification_type: str, channel: str, now_ms: int | None = None) -> str:
        issued = _now_ms() if now_ms is None else now_ms
        payload = {
            "userId": str(user_id),
            "notificationType": notification_type,
            "channel": channel,
            "expiresAt": issued + self.ttl_days * _DAY_MS,
        }
        encoded = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
        return f"{encoded}.{self._sign(encoded)}"

    def validate(self, token: str | None, now_ms: int | None = None) -> UnsubscribePayload | None:
        """Return the payload, or None for any malformed, tampered or expired token.

        The signature is checked before the payload is parsed. Callers get no
        indication of which check failed.
        """
        if not token:
            return None
        parts = token.split(".")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            return None
        encoded, signature = parts

        try:
            expected = self._sign(encoded)
        except UnicodeEncodeError:
            return None
        if not hmac.compare_digest(expected.encode(), signature.encode("utf-8", "replace")):
            return None

        try:
            data = json.loads(_b64decode(encoded))
        except (ValueError, binascii.Error):
            return None
        if not isinstance(data, dict):
            return None

        user_id = data.get("userId")
        notification_type = data.get("notificationType")
        channel = data.get("channel")
        expires_at = data.get("expiresAt")
        if not all(isinstance(v, str) and v for v in (user_id, notification_type, channel)):
            return None
        if not isinstance(expires_at, int) or isinstance(expires_at, bool):
            return None

        now = _now_ms() if now_ms is None else now_ms
        if expires_at <= now:
            return None

        return UnsubscribePayload(
            user_id=user_id,
            notification_type=notification_type,
            channel=channel,
            expires_at=expires_at,
        )

    def generate_url(self, user_id: str, notification_type: str, channel: str) -> str:
        token = self.generate(user_id, notification_type, channel)
        return f"{self.base_url}/api/unsubscribe?{urlencode({'token': token})}"

    def generate_marketing_url(self, user_id: str, channel: str = "email") -> str:
        return self.generate_url(user_id, "marketing", channel)


def create_token_codec() -> UnsubscribeTokenCodec:
    return UnsubscribeTokenCodec(
        secret=settings.effective_unsubscribe_secret,
        ttl_days=settings.unsubscribe_token_ttl_days,
        base_url=settings.app_url,
    )
