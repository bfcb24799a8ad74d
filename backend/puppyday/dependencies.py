"""Shared FastAPI dependencies."""

from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .auth.models import User
from .config import settings
from .database.base import get_db
from .notification_templates.service import TemplateStore
from .notifications.delivery_log import NotificationLogger
from .notifications.service import ChannelSettings, NotificationService
from .preferences.service import PreferenceStore
from .unsubscribe.tokens import UnsubscribeTokenCodec, create_token_codec


class AuthRequired(Exception):
    """Raised when user is not authenticated. Handled by exception handler in main.py."""

    def __init__(self, api: bool = False) -> None:
        super().__init__("Authentication required")
        self.api = api


class AdminRequired(Exception):
    """Raised when an authenticated user lacks the admin role."""


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Get the authenticated user from session, or redirect to login."""
    api = request.url.path.startswith("/api/")
    user_id_str = request.session.get("user_id")
    if not user_id_str:
        raise AuthRequired(api)
    try:
        user_id = UUID(user_id_str)
    except (ValueError, AttributeError):
        request.session.clear()
        raise AuthRequired(api)
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        request.session.clear()
        raise AuthRequired(api)
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise AdminRequired()
    return user


def get_token_codec() -> UnsubscribeTokenCodec:
    return create_token_codec()


def get_preference_store(db: Session = Depends(get_db)) -> PreferenceStore:
    return PreferenceStore(db)


def get_template_store(db: Session = Depends(get_db)) -> TemplateStore:
    return TemplateStore(db)


def get_delivery_log(db: Session = Depends(get_db)) -> NotificationLogger:
    return NotificationLogger(db)


def get_notification_service(
    request: Request,
    db: Session = Depends(get_db),
    codec: UnsubscribeTokenCodec = Depends(get_token_codec),
) -> NotificationService:
    """Wire the orchestrator to this request's session and the app's providers."""
    return NotificationService(
        preferences=PreferenceStore(db),
        templates=TemplateStore(db),
        delivery_log=NotificationLogger(db),
        channel_settings=ChannelSettings(db),
        email_provider=request.app.state.email_provider,
        sms_provider=request.app.state.sms_provider,
        business=settings.business_context,
        token_codec=codec,
        provider_timeout=settings.provider_timeout_seconds,
    )
