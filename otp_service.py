"""
Request/verify protocol for one-time passcodes.

Whoever holds a ``request_id`` may verify against it: the id is a 128-bit
bearer credential, not just a lookup key, and it is only ever handed to the
caller after the code has been stored and emailed.
"""

import hmac
import logging
from enum import Enum
from typing import Optional

from config import OTPSettings
from email_utils import Notifier, build_otp_email
from otp_utils import OTPStore, generate_otp, generate_request_id

logger = logging.getLogger(__name__)


class Purpose(str, Enum):
    LOGIN = "login"
    LAB1 = "lab1"
    LAB2 = "lab2"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Purpose":
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            raise InvalidPurposeError() from None


class OTPError(Exception):
    status_code = 500
    message = "server error"

    def __init__(self, message: Optional[str] = None):
        if message:
            self.message = message
        super().__init__(self.message)


class InvalidPurposeError(OTPError):
    status_code = 400
    message = "invalid purpose"


class MissingFieldsError(OTPError):
    status_code = 400
    message = "missing fields"


class InvalidOrExpiredError(OTPError):
    status_code = 401
    message = "invalid/expired"


class BadCodeError(OTPError):
    status_code = 401
    message = "bad code"


class StoreFailedError(OTPError):
    message = "store failed"


class EmailFailedError(OTPError):
    message = "email failed"


class OTPService:
    def __init__(self, store: OTPStore, notifier: Notifier, settings: OTPSettings):
        self.store = store
        self.notifier = notifier
        self.settings = settings

    def request_otp(self, purpose: Optional[str]) -> str:
        """Issue a code for ``purpose``, email it, and return the request id"""
        purpose = Purpose.parse(purpose)

        code = generate_otp()
        request_id = generate_request_id()
        ttl = self.settings.ttl_seconds

        if not self.store.store(request_id, code, purpose.value, ttl):
            raise StoreFailedError()

        subject, body = build_otp_email(purpose.value, code, ttl, self.settings.subject_prefix)
        if not self.notifier.send(self.settings.email.recipient, subject, body):
            # id is never returned, drop the unreachable entry
            self.store.delete(request_id)
            raise EmailFailedError()

        logger.info(f"Issued {purpose.value} OTP {request_id[:8]}… (ttl={ttl}s)")
        return request_id

    def verify_otp(self, request_id: Optional[str], code: Optional[str]) -> None:
        """Consume the entry for ``request_id`` if ``code`` matches; raise otherwise"""
        request_id = (request_id or "").strip()
        code = (code or "").strip()
        if not request_id or not code:
            raise MissingFieldsError()

        entry = self.store.fetch(request_id)
        if entry is None:
            logger.info(f"Verification for unknown or expired OTP {request_id[:8]}…")
            raise InvalidOrExpiredError()

        if not hmac.compare_digest(entry.code.encode(), code.encode()):
            logger.info(f"Wrong code submitted for OTP {request_id[:8]}…")
            raise BadCodeError()

        # one-time use: consumed before the caller hears about success
        self.store.delete(request_id)
        logger.info(f"✅ Verified {entry.purpose} OTP {request_id[:8]}…")
