import os
import logging
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300


@dataclass(frozen=True)
class StoreConfig:
    """Upstash Redis REST configuration"""

    url: Optional[str] = None
    token: Optional[str] = None
    key_prefix: str = "otp:"
    timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.token)


@dataclass(frozen=True)
class EmailConfig:
    """Resend transactional email configuration"""

    api_key: Optional[str] = None
    api_url: str = "https://api.resend.com/emails"
    mail_from: str = "no-reply@vrlcs.example"
    recipient: Optional[str] = None
    timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.recipient)


@dataclass(frozen=True)
class OTPSettings:
    store: StoreConfig = field(default_factory=StoreConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    ttl_seconds: int = DEFAULT_TTL
    subject_prefix: str = "VRL"
    cors_origin: str = "*"

    @classmethod
    def from_env(cls) -> "OTPSettings":
        """Build settings from the process environment (and a local .env file)"""
        load_dotenv()

        timeout = _parse_float(os.getenv("HTTP_TIMEOUT"), 10.0, "HTTP_TIMEOUT")
        store_url = os.getenv("UPSTASH_REDIS_REST_URL")

        return cls(
            store=StoreConfig(
                url=store_url.rstrip("/") if store_url else None,
                token=os.getenv("UPSTASH_REDIS_REST_TOKEN"),
                key_prefix=os.getenv("OTP_KEY_PREFIX", "otp:"),
                timeout=timeout,
            ),
            email=EmailConfig(
                api_key=os.getenv("RESEND_API_KEY"),
                api_url=os.getenv("RESEND_API_URL", "https://api.resend.com/emails"),
                mail_from=os.getenv("MAIL_FROM", "no-reply@vrlcs.example"),
                recipient=os.getenv("OWNER_EMAIL"),
                timeout=timeout,
            ),
            ttl_seconds=parse_ttl(os.getenv("OTP_TTL")),
            subject_prefix=os.getenv("OTP_SUBJECT_PREFIX", "VRL"),
            cors_origin=os.getenv("CORS_ORIGIN") or "*",
        )


def parse_ttl(raw: Optional[str]) -> int:
    """OTP_TTL in whole seconds; anything unusable falls back to the default"""
    if raw is None or not raw.strip():
        return DEFAULT_TTL
    try:
        ttl = int(raw.strip())
    except ValueError:
        logger.warning(f"⚠️ Ignoring non-integer OTP_TTL={raw!r}, using {DEFAULT_TTL}")
        return DEFAULT_TTL
    if ttl < 1:
        logger.warning(f"⚠️ Ignoring non-positive OTP_TTL={ttl}, using {DEFAULT_TTL}")
        return DEFAULT_TTL
    return ttl


def _parse_float(raw: Optional[str], default: float, name: str) -> float:
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"⚠️ Ignoring invalid {name}={raw!r}, using {default}")
        return default
    return value if value > 0 else default
