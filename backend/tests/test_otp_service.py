"""
One-time code issuance and verification tests.
"""

from datetime import timedelta

import pytest

from conftest import last_code
from solemate.extensions import db
from solemate.models import OtpChallenge
from solemate.services import messaging_service, otp_service
from solemate.services.errors import InvalidOrExpired, StorageError
from solemate.time_utils import utcnow


PHONE = "+919812345678"


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


def test_request_sends_code_and_stores_only_hash(db_session):
    challenge = otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)

    code = last_code(PHONE)
    assert len(code) == 6
    assert challenge.code_hash != code
    assert challenge.code_hash == otp_service.hash_code(code)
    assert messaging_service.get_outbox()[-1]["target"] == PHONE


def test_verify_succeeds_once(db_session):
    otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)
    code = last_code(PHONE)

    identity = otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, PHONE, code)
    assert identity.target == PHONE

    with pytest.raises(InvalidOrExpired):
        otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, PHONE, code)


def test_wrong_code_counts_attempts_until_exhausted(app, db_session):
    challenge = otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)
    code = last_code(PHONE)
    max_attempts = app.config["OTP_MAX_ATTEMPTS"]

    for _ in range(max_attempts):
        with pytest.raises(InvalidOrExpired):
            otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, PHONE, _wrong(code))

    assert db.session.get(OtpChallenge, challenge.id).attempts == max_attempts

    # Even the right code is refused once attempts are used up
    with pytest.raises(InvalidOrExpired) as exc:
        otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, PHONE, code)
    assert exc.value.details["reason"] == "attempts_exhausted"


def test_expired_code_is_rejected(db_session):
    challenge = otp_service.request_challenge(otp_service.PURPOSE_SIGNUP, PHONE)
    code = last_code(PHONE)
    challenge.expires_at = utcnow() - timedelta(seconds=1)
    db.session.commit()

    with pytest.raises(InvalidOrExpired):
        otp_service.verify_challenge(otp_service.PURPOSE_SIGNUP, PHONE, code)


def test_new_request_invalidates_previous_code(db_session):
    otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)
    first = last_code(PHONE)
    otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)
    second = last_code(PHONE)

    assert db.session.query(OtpChallenge).filter_by(target=PHONE).count() == 1
    if first != second:
        with pytest.raises(InvalidOrExpired):
            otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, PHONE, first)
    otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, PHONE, second)


def test_purpose_and_context_are_enforced(db_session):
    otp_service.request_challenge(otp_service.PURPOSE_ORDER_TRACKING, PHONE, context="ORD-1")
    code = last_code(PHONE)

    with pytest.raises(InvalidOrExpired):
        otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, PHONE, code)
    with pytest.raises(InvalidOrExpired):
        otp_service.verify_challenge(otp_service.PURPOSE_ORDER_TRACKING, PHONE, code, context="ORD-2")

    identity = otp_service.verify_challenge(otp_service.PURPOSE_ORDER_TRACKING, PHONE, code, context="ORD-1")
    assert identity.context == "ORD-1"


@pytest.mark.parametrize("code", [None, "", "12345", "1234567", "abcdef", " 12 34 "])
def test_malformed_codes_rejected(db_session, code):
    otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)

    with pytest.raises(InvalidOrExpired):
        otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, PHONE, code)


def test_failed_dispatch_persists_nothing(app, db_session, monkeypatch):
    monkeypatch.setitem(app.config, "MESSAGE_BACKEND", "carrier-pigeon")

    with pytest.raises(StorageError):
        otp_service.request_challenge(otp_service.PURPOSE_LOGIN, PHONE)

    assert db.session.query(OtpChallenge).count() == 0
