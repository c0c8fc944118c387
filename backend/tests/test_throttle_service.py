"""
Login lockout and one-time code request throttling.
"""

from datetime import timedelta

import pytest

from conftest import PASSWORD, last_code
from solemate.extensions import db
from solemate.models import SecurityEvent
from solemate.services import auth_service, otp_service, throttle_service
from solemate.services.errors import TooManyRequests
from solemate.time_utils import utcnow


PHONE = "+919812345678"


def _fail_logins(count: int, email: str = "shopper@example.com") -> None:
    for _ in range(count):
        assert auth_service.login(email, "Wrong1234") is None


def test_code_requests_are_limited_per_target(db_session):
    for _ in range(throttle_service.MAX_OTP_REQUESTS):
        otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)
    code = last_code(PHONE)

    with pytest.raises(TooManyRequests) as excinfo:
        otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)

    assert excinfo.value.status_code == 429
    assert excinfo.value.details["retry_after_seconds"] > 0
    # The throttled request did not replace the live code
    assert otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, PHONE, code).target == PHONE


def test_code_request_limit_is_per_target(db_session):
    for _ in range(throttle_service.MAX_OTP_REQUESTS):
        otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)

    otp_service.request_challenge(otp_service.PURPOSE_LOGIN, "+919800000009")


def test_code_request_budget_refills_after_window(db_session):
    for _ in range(throttle_service.MAX_OTP_REQUESTS):
        otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)

    old = utcnow() - throttle_service.OTP_REQUEST_WINDOW - timedelta(minutes=1)
    db.session.query(SecurityEvent).update({SecurityEvent.occurred_at: old})
    db.session.commit()

    otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)


def test_repeated_failures_lock_the_account(user):
    _fail_logins(throttle_service.MAX_FAILED_LOGINS)

    locked, seconds = throttle_service.is_locked("shopper@example.com")
    assert locked is True
    assert 0 < seconds <= throttle_service.LOCKOUT_DURATION.total_seconds()

    # Correct credentials are refused while locked
    with pytest.raises(TooManyRequests):
        auth_service.login("shopper@example.com", PASSWORD)


def test_lock_expires_after_duration(user):
    _fail_logins(throttle_service.MAX_FAILED_LOGINS)

    old = utcnow() - throttle_service.LOCKOUT_DURATION - timedelta(minutes=1)
    db.session.query(SecurityEvent).update({SecurityEvent.occurred_at: old})
    db.session.commit()

    assert auth_service.login("shopper@example.com", PASSWORD) is not None


def test_successful_login_resets_failure_count(user):
    _fail_logins(throttle_service.MAX_FAILED_LOGINS - 1)
    assert auth_service.login("shopper@example.com", PASSWORD) is not None

    assert throttle_service.get_recent_failed_logins("shopper@example.com") == []
    _fail_logins(1)
    assert throttle_service.is_locked("shopper@example.com") == (False, None)


def test_failed_login_records_client_details(user):
    auth_service.login("Shopper@Example.com", "Wrong1234", user_agent="pytest", ip_address="10.0.0.1")

    event = db.session.query(SecurityEvent).one()
    assert event.event_type == throttle_service.EVENT_LOGIN_FAILED
    assert event.identifier == "shopper@example.com"
    assert event.success is False
    assert (event.ip_address, event.user_agent) == ("10.0.0.1", "pytest")
