import pytest

from email_utils import InMemoryNotifier
from otp_service import (
    BadCodeError,
    EmailFailedError,
    InvalidOrExpiredError,
    InvalidPurposeError,
    MissingFieldsError,
    OTPService,
    Purpose,
    StoreFailedError,
)
from tests.conftest import extract_code


class FailingStore:
    def __init__(self):
        self.deleted = []

    def store(self, request_id, code, purpose, ttl_seconds):
        return False

    def fetch(self, request_id):
        return None

    def delete(self, request_id):
        self.deleted.append(request_id)

    def ping(self):
        return False


@pytest.fixture
def service(store, notifier, settings):
    return OTPService(store, notifier, settings)


@pytest.mark.parametrize("raw, expected", [("login", Purpose.LOGIN), (" LAB2 ", Purpose.LAB2)])
def test_purpose_parse(raw, expected):
    assert Purpose.parse(raw) is expected


@pytest.mark.parametrize("purpose", ["login", "lab1", "lab2"])
def test_request_then_verify_succeeds_exactly_once(service, notifier, purpose):
    request_id = service.request_otp(purpose)
    code = extract_code(notifier)

    service.verify_otp(request_id, code)

    with pytest.raises(InvalidOrExpiredError):
        service.verify_otp(request_id, code)


def test_request_stores_entry_and_emails_owner(service, store, notifier):
    request_id = service.request_otp("Lab1")

    entry = store.fetch(request_id)
    assert entry.purpose == "lab1"

    sent = notifier.outbox[0]
    assert sent.to == "owner@example.test"
    assert sent.subject == "VRL OTP for LAB1"
    assert entry.code in sent.body
    assert "300 seconds" in sent.body


@pytest.mark.parametrize("purpose", [None, "", "admin", "lab3"])
def test_invalid_purpose_has_no_side_effects(service, store, notifier, purpose):
    with pytest.raises(InvalidPurposeError):
        service.request_otp(purpose)
    assert len(store) == 0
    assert notifier.outbox == []


def test_store_failure_skips_email(notifier, settings):
    service = OTPService(FailingStore(), notifier, settings)
    with pytest.raises(StoreFailedError):
        service.request_otp("login")
    assert notifier.outbox == []


def test_email_failure_discards_entry(store, settings):
    service = OTPService(store, InMemoryNotifier(fail=True), settings)
    with pytest.raises(EmailFailedError):
        service.request_otp("login")
    assert len(store) == 0


@pytest.mark.parametrize("request_id, code", [(None, "123456"), ("abc", None), ("", ""), ("  ", "1")])
def test_verify_requires_both_fields(service, request_id, code):
    with pytest.raises(MissingFieldsError):
        service.verify_otp(request_id, code)


def test_wrong_code_keeps_entry_for_retry(service, store, notifier):
    request_id = service.request_otp("login")
    code = extract_code(notifier)
    wrong = "100000" if code != "100000" else "100001"

    with pytest.raises(BadCodeError):
        service.verify_otp(request_id, wrong)

    assert store.fetch(request_id) is not None
    service.verify_otp(request_id, code)


def test_expired_entry_is_rejected(service, notifier, clock):
    request_id = service.request_otp("lab2")
    code = extract_code(notifier)

    clock.advance(300)

    with pytest.raises(InvalidOrExpiredError):
        service.verify_otp(request_id, code)


def test_unknown_request_id_is_rejected(service):
    with pytest.raises(InvalidOrExpiredError):
        service.verify_otp("0" * 32, "123456")


def test_submitted_code_is_trimmed(service, notifier):
    request_id = service.request_otp("login")
    service.verify_otp(request_id, f" {extract_code(notifier)}\n")


def test_error_messages_and_statuses():
    assert (InvalidPurposeError.status_code, InvalidPurposeError().message) == (400, "invalid purpose")
    assert (MissingFieldsError.status_code, MissingFieldsError().message) == (400, "missing fields")
    assert (InvalidOrExpiredError.status_code, InvalidOrExpiredError().message) == (401, "invalid/expired")
    assert (BadCodeError.status_code, BadCodeError().message) == (401, "bad code")
    assert (StoreFailedError.status_code, StoreFailedError().message) == (500, "store failed")
    assert (EmailFailedError.status_code, EmailFailedError().message) == (500, "email failed")
