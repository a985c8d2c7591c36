import re

import pytest
import requests
from fastapi.testclient import TestClient

from config import EmailConfig, OTPSettings, StoreConfig
from email_utils import InMemoryNotifier
from main import create_app
from otp_utils import InMemoryOTPStore

CODE_PATTERN = re.compile(r"one-time code is: (\d{6})")


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Stands in for requests.Session; replies from a queue and records calls"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _reply(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        reply = self.responses.pop(0) if self.responses else FakeResponse()
        if isinstance(reply, Exception):
            raise reply
        return reply

    def get(self, url, **kwargs):
        return self._reply("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._reply("POST", url, **kwargs)


def extract_code(notifier: InMemoryNotifier) -> str:
    match = CODE_PATTERN.search(notifier.outbox[-1].body)
    assert match, notifier.outbox[-1].body
    return match.group(1)


@pytest.fixture
def settings():
    return OTPSettings(
        store=StoreConfig(url="https://kv.example.test", token="kv-token"),
        email=EmailConfig(api_key="re_test", recipient="owner@example.test"),
        ttl_seconds=300,
        cors_origin="https://lab.example.test",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryOTPStore(clock=clock)


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def client(settings, store, notifier):
    return TestClient(create_app(settings, store=store, notifier=notifier))


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
