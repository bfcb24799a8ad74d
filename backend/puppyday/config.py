import logging
import logging.handlers
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql://puppyday:puppyday@db:5432/puppyday"
    secret_key: str = "change-me"

    # Public URL of the app, used to build unsubscribe links
    app_url: str = "http://localhost:8000"
    unsubscribe_secret: str = ""
    unsubscribe_token_ttl_days: int = 30

    # Email (SMTP)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""  # plain or Fernet-encrypted (see notifications.providers)
    smtp_from_name: str = "Puppy Day"

    # SMS (Twilio REST)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    twilio_api_base: str = "https://api.twilio.com/2010-04-01"

    provider_timeout_seconds: float = 10.0

    # Rate limits (slowapi syntax)
    rate_limit_unsubscribe: str = "20/minute"
    rate_limit_send: str = "30/minute"

    # Business context exposed to templates as {{business.*}}
    business_name: str = "Puppy Day"
    business_address: str = "14936 Leffingwell Rd, La Mirada, CA 90638"
    business_phone: str = "(657) 252-2903"
    business_email: str = "puppyday14936@gmail.com"
    business_hours: str = "Monday-Saturday, 9:00 AM - 5:00 PM"
    business_website: str = "https://thepuppyday.com"

    # Bootstrap admin
    admin_email: str = ""
    admin_password: str = ""

    # HTTP
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True
    trusted_hosts: str = "*"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_max_bytes: int = 10_485_760  # 10 MB
    log_backup_count: int = 5

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def effective_database_url(self) -> str:
        """Database URL with the legacy ``postgres://`` scheme normalized."""
        if self.database_url.startswith("postgres://"):
            return "postgresql://" + self.database_url[len("postgres://"):]
        return self.database_url

    @property
    def effective_unsubscribe_secret(self) -> str:
        return self.unsubscribe_secret or self.secret_key

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def trusted_hosts_list(self) -> list[str]:
        return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

    @property
    def business_context(self) -> dict[str, str]:
        return {
            "name": self.business_name,
            "address": self.business_address,
            "phone": self.business_phone,
            "email": self.business_email,
            "hours": self.business_hours,
            "website": self.business_website,
        }


settings = Settings()


def setup_logging() -> None:
    """Configure application-wide logging with rotating file handlers.

    Creates three handlers:
    - Console: INFO+ with brief format (for docker compose logs)
    - app.log: DEBUG+ with detailed format, rotated at 10 MB x 5 backups
    - error.log: ERROR+ only, rotated at 10 MB x 5 backups
    """
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))
    root.addHandler(console)

    detail_fmt = logging.Formatter(
        "%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app_handler = logging.handlers.RotatingFileHandler(
        log_dir / "app.log",
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    app_handler.setLevel(logging.DEBUG)
    app_handler.setFormatter(detail_fmt)
    root.addHandler(app_handler)

    err_handler = logging.handlers.RotatingFileHandler(
        log_dir / "error.log",
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    err_handler.setLevel(logging.ERROR)
    err_handler.setFormatter(detail_fmt)
    root.addHandler(err_handler)

    # Provider and driver chatter stays out of the app log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s, dir=%s, max=%s MB x %d backups",
        settings.log_level, log_dir, settings.log_max_bytes // 1_048_576, settings.log_backup_count,
    )
