import json
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Tuple
from urllib.parse import quote

import requests

from config import StoreConfig

logger = logging.getLogger(__name__)

OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp() -> str:
    """Uniform 6-digit code in [100000, 999999]"""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def generate_request_id() -> str:
    """128-bit bearer token, 32 lowercase hex chars"""
    return secrets.token_hex(16)


@dataclass(frozen=True)
class OTPEntry:
    code: str
    purpose: str

    def to_json(self) -> str:
        return json.dumps({"code": self.code, "purpose": self.purpose})

    @classmethod
    def from_json(cls, raw: str) -> Optional["OTPEntry"]:
        try:
            data = json.loads(raw)
            return cls(code=str(data["code"]), purpose=str(data["purpose"]))
        except (ValueError, TypeError, KeyError):
            return None


class OTPStoreError(Exception):
    """The backing key-value store could not be consulted"""


class OTPStore(Protocol):
    def store(self, request_id: str, code: str, purpose: str, ttl_seconds: int) -> bool:
        ...

    def fetch(self, request_id: str) -> Optional[OTPEntry]:
        ...

    def delete(self, request_id: str) -> None:
        ...

    def ping(self) -> bool:
        ...


class UpstashOTPStore:
    """OTP entries kept in Upstash Redis through its REST API"""

    def __init__(self, config: StoreConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def _key(self, request_id: str) -> str:
        return quote(f"{self.config.key_prefix}{request_id}", safe="")

    def _get(self, path: str, params: Optional[Dict[str, int]] = None) -> requests.Response:
        return self.session.get(
            f"{self.config.url}/{path}",
            params=params,
            headers={"Authorization": f"Bearer {self.config.token}"},
            timeout=self.config.timeout,
        )

    def store(self, request_id: str, code: str, purpose: str, ttl_seconds: int) -> bool:
        if not self.config.is_configured:
            logger.error("❌ OTP store is not configured (UPSTASH_REDIS_REST_URL/TOKEN)")
            return False

        value = quote(OTPEntry(code=code, purpose=purpose).to_json(), safe="")
        try:
            response = self._get(
                f"set/{self._key(request_id)}/{value}", params={"EX": ttl_seconds}
            )
        except requests.RequestException as e:
            logger.error(f"❌ OTP store unreachable: {e}")
            return False

        if not response.ok:
            logger.error(f"❌ OTP store rejected SET ({response.status_code})")
        return response.ok

    def fetch(self, request_id: str) -> Optional[OTPEntry]:
        if not self.config.is_configured:
            raise OTPStoreError("OTP store is not configured")

        try:
            response = self._get(f"get/{self._key(request_id)}")
        except requests.RequestException as e:
            raise OTPStoreError(f"OTP store unreachable: {e}") from e

        if not response.ok:
            logger.warning(f"⚠️ OTP store rejected GET ({response.status_code})")
            return None

        try:
            result = response.json().get("result")
        except (ValueError, AttributeError):
            logger.warning("⚠️ OTP store returned a malformed GET response")
            return None
        if result is None:
            return None

        entry = OTPEntry.from_json(result)
        if entry is None:
            logger.warning(f"⚠️ Discarding unreadable OTP entry {request_id[:8]}…")
        return entry

    def delete(self, request_id: str) -> None:
        if not self.config.is_configured:
            return
        try:
            response = self._get(f"del/{self._key(request_id)}")
            if not response.ok:
                logger.warning(f"⚠️ OTP store rejected DEL ({response.status_code})")
        except requests.RequestException as e:
            # entry still expires through its TTL
            logger.warning(f"⚠️ Could not delete OTP entry {request_id[:8]}…: {e}")

    def ping(self) -> bool:
        if not self.config.is_configured:
            return False
        try:
            return self._get("ping").ok
        except requests.RequestException as e:
            logger.error(f"❌ OTP store ping failed: {e}")
            return False


class InMemoryOTPStore:
    """Process-local store with the same expiry contract, for tests and local runs"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._entries: Dict[str, Tuple[OTPEntry, float]] = {}
        self._lock = threading.Lock()

    def store(self, request_id: str, code: str, purpose: str, ttl_seconds: int) -> bool:
        with self._lock:
            self._entries[request_id] = (
                OTPEntry(code=code, purpose=purpose),
                self.clock() + ttl_seconds,
            )
        return True

    def fetch(self, request_id: str) -> Optional[OTPEntry]:
        with self._lock:
            record = self._entries.get(request_id)
            if not record:
                return None
            entry, expires_at = record
            if self.clock() >= expires_at:
                self._entries.pop(request_id, None)
                return None
            return entry

    def delete(self, request_id: str) -> None:
        with self._lock:
            self._entries.pop(request_id, None)

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
