import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

import requests

from config import EmailConfig

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, to: Optional[str], subject: str, body: str) -> bool:
        ...

    @property
    def is_configured(self) -> bool:
        ...


def build_otp_email(purpose: str, code: str, ttl_seconds: int, prefix: str = "VRL") -> Tuple[str, str]:
    """Subject and plain-text body of the passcode email"""
    subject = f"{prefix} OTP for {purpose.upper()}".strip()
    body = f"Your one-time code is: {code}\nIt expires in {ttl_seconds} seconds."
    return subject, body


class ResendEmailNotifier:
    """Sends plain-text mail through the Resend HTTP API. Fails closed, never retries."""

    def __init__(self, config: EmailConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def send(self, to: Optional[str], subject: str, body: str) -> bool:
        if not self.config.api_key:
            logger.error("❌ RESEND_API_KEY is not set")
            return False
        if not to:
            logger.error("❌ No recipient configured (OWNER_EMAIL)")
            return False

        payload = {
            "from": self.config.mail_from,
            "to": to,
            "subject": subject,
            "text": body,
        }
        try:
            response = self.session.post(
                self.config.api_url,
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"❌ Email API unreachable: {e}")
            return False

        if not response.ok:
            logger.error(f"❌ Email API rejected send ({response.status_code}): {response.text[:200]}")
            return False

        logger.info(f"✅ Email '{subject}' accepted for delivery")
        return True


@dataclass
class SentEmail:
    to: Optional[str]
    subject: str
    body: str


class InMemoryNotifier:
    """Collects messages in ``outbox`` instead of sending them"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.outbox: List[SentEmail] = []

    @property
    def is_configured(self) -> bool:
        return not self.fail

    def send(self, to: Optional[str], subject: str, body: str) -> bool:
        if self.fail:
            return False
        self.outbox.append(SentEmail(to=to, subject=subject, body=body))
        return True
