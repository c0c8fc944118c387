"""
Authentication tests: password rules, login, phone OTP, guest migration,
email verification and password reset/change.
"""

import pytest

from conftest import PASSWORD, last_code
from solemate.extensions import db
from solemate.models import AuthToken
from solemate.services import auth_service, auth_token_service, cart_service, otp_service, session_service
from solemate.services.auth_service import PasswordValidationError
from solemate.services.errors import InvalidOrExpired, NotFound
from solemate.services.owner import UserOwner
from solemate.validation import ConflictError, ValidationError


@pytest.mark.parametrize("password", ["short1", "allletters", "12345678"])
def test_weak_passwords_rejected(password):
    with pytest.raises(PasswordValidationError):
        auth_service.validate_password_strength(password)


def test_password_hash_round_trip():
    hashed = auth_service.hash_password(PASSWORD)
    assert hashed.startswith("$2")
    assert auth_service.verify_password(PASSWORD, hashed) is True
    assert auth_service.verify_password("Wrong1234", hashed) is False
    assert auth_service.verify_password(PASSWORD, None) is False


def test_signup_issues_token(db_session):
    result = auth_service.signup("New.Shopper@Example.com", PASSWORD, full_name="New")

    assert result.user.email == "new.shopper@example.com"
    assert result.migration.migrated is False
    assert auth_token_service.validate_token(result.token).user.id == result.user.id


def test_signup_duplicate_email_conflicts(user):
    with pytest.raises(ConflictError):
        auth_service.signup("shopper@example.com", PASSWORD)


def test_signup_invalid_email(db_session):
    with pytest.raises(ValidationError):
        auth_service.signup("not-an-email", PASSWORD)


def test_login_wrong_password_returns_none(user):
    assert auth_service.login("shopper@example.com", "Wrong1234") is None
    assert auth_service.login("nobody@example.com", PASSWORD) is None


def test_login_with_guest_token_migrates_cart(catalog, guest, user):
    _, token, guest_owner = guest
    cart_service.add_item(guest_owner, catalog["runner_9"].id, 1)

    result = auth_service.login("Shopper@example.com", PASSWORD, guest_token=token)

    assert result.user.id == user.id
    assert result.migration.migrated is True
    assert len(cart_service.get_cart(UserOwner(user.id))) == 1
    assert session_service.validate_session(token) is False


def test_every_auth_path_migrates_exactly_once(catalog, guest, user, monkeypatch):
    _, token, _ = guest
    calls = []
    real_migrate = auth_service.migrate

    def _counting(session_or_token, user_id):
        calls.append((session_or_token, user_id))
        return real_migrate(session_or_token, user_id)

    monkeypatch.setattr(auth_service, "migrate", _counting)

    auth_service.login("shopper@example.com", PASSWORD, guest_token=token)
    assert calls == [(token, user.id)]

    _, signup_token = session_service.create_session()
    signed_up = auth_service.signup("fresh@example.com", PASSWORD, guest_token=signup_token)
    assert calls[1:] == [(signup_token, signed_up.user.id)]

    phone = "+919812345670"
    _, phone_signup_token = session_service.create_session()
    auth_service.request_phone_otp(otp_service.PURPOSE_SIGNUP, phone)
    phone_user = auth_service.verify_phone_signup(phone, last_code(phone), guest_token=phone_signup_token).user
    assert calls[2:] == [(phone_signup_token, phone_user.id)]

    _, phone_login_token = session_service.create_session()
    auth_service.request_phone_otp(otp_service.PURPOSE_LOGIN, phone)
    auth_service.verify_phone_login(phone, last_code(phone), guest_token=phone_login_token)
    assert calls[3:] == [(phone_login_token, phone_user.id)]

    # Failed attempts never migrate
    auth_service.login("shopper@example.com", "Wrong1234", guest_token=token)
    assert len(calls) == 4


def test_phone_signup_and_login(catalog, guest):
    _, token, guest_owner = guest
    phone = "+91 98123-45678"
    cart_service.add_item(guest_owner, catalog["runner_10"].id, 1)

    auth_service.request_phone_otp(otp_service.PURPOSE_SIGNUP, phone)
    signup = auth_service.verify_phone_signup(phone, last_code("+919812345678"), guest_token=token)

    assert signup.user.phone == "+919812345678"
    assert signup.user.phone_verified_at is not None
    assert signup.user.password_hash is None
    assert signup.migration.cart_items_moved == 1

    auth_service.request_phone_otp(otp_service.PURPOSE_LOGIN, phone)
    login = auth_service.verify_phone_login(phone, last_code("+919812345678"))
    assert login.user.id == signup.user.id


def test_phone_login_for_unknown_number_is_not_found(db_session):
    with pytest.raises(NotFound):
        auth_service.request_phone_otp(otp_service.PURPOSE_LOGIN, "+919800000000")


def test_phone_signup_for_registered_number_conflicts(db_session):
    auth_service.create_user(phone="+919800000001")
    with pytest.raises(ConflictError):
        auth_service.request_phone_otp(otp_service.PURPOSE_SIGNUP, "+919800000001")


def test_phone_login_with_wrong_code(db_session):
    auth_service.create_user(phone="+919800000002")
    auth_service.request_phone_otp(otp_service.PURPOSE_LOGIN, "+919800000002")
    code = last_code("+919800000002")

    with pytest.raises(InvalidOrExpired):
        auth_service.verify_phone_login("+919800000002", "000000" if code != "000000" else "111111")


def test_revoked_token_no_longer_validates(user):
    result = auth_service.login("shopper@example.com", PASSWORD)

    assert auth_token_service.revoke_token(result.token) is True
    assert auth_token_service.validate_token(result.token) is None


def test_signup_sends_verification_code_and_verify_email(db_session):
    result = auth_service.signup("verify.me@example.com", PASSWORD)
    assert result.user.email_verified_at is None

    with pytest.raises(InvalidOrExpired):
        auth_service.verify_email(result.user, "000000" if last_code("verify.me@example.com") != "000000" else "111111")

    user = auth_service.verify_email(result.user, last_code("verify.me@example.com"))
    assert user.email_verified_at is not None

    with pytest.raises(ConflictError):
        auth_service.request_email_verification(user)


def test_signup_succeeds_when_verification_email_fails(app, db_session, monkeypatch):
    monkeypatch.setitem(app.config, "MESSAGE_BACKEND", "carrier-pigeon")

    result = auth_service.signup("offline@example.com", PASSWORD)

    assert result.user.id is not None
    assert auth_token_service.validate_token(result.token) is not None


def test_phone_only_account_cannot_request_email_verification(db_session):
    phone_user = auth_service.create_user(phone="+919800000010", phone_verified=True)
    with pytest.raises(ValidationError):
        auth_service.request_email_verification(phone_user)


def test_forgot_password_is_silent_for_unknown_email(db_session):
    auth_service.forgot_password("nobody@example.com")
    with pytest.raises(AssertionError):
        last_code("nobody@example.com")


def test_reset_password_revokes_every_token(user):
    first = auth_service.login("shopper@example.com", PASSWORD).token
    second = auth_service.login("shopper@example.com", PASSWORD).token

    auth_service.forgot_password("Shopper@Example.com")
    auth_service.reset_password("shopper@example.com", last_code("shopper@example.com"), "NewPassword456")

    assert auth_token_service.validate_token(first) is None
    assert auth_token_service.validate_token(second) is None
    assert auth_service.authenticate("shopper@example.com", PASSWORD) is None
    assert auth_service.authenticate("shopper@example.com", "NewPassword456").id == user.id


def test_reset_password_code_is_single_use(user):
    auth_service.forgot_password("shopper@example.com")
    code = last_code("shopper@example.com")
    auth_service.reset_password("shopper@example.com", code, "NewPassword456")

    with pytest.raises(InvalidOrExpired):
        auth_service.reset_password("shopper@example.com", code, "Another789xyz")


def test_weak_reset_password_keeps_code(user):
    auth_service.forgot_password("shopper@example.com")
    code = last_code("shopper@example.com")

    with pytest.raises(PasswordValidationError):
        auth_service.reset_password("shopper@example.com", code, "weak")

    auth_service.reset_password("shopper@example.com", code, "NewPassword456")


def test_change_password_keeps_only_current_token(user):
    current = auth_service.login("shopper@example.com", PASSWORD).token
    other = auth_service.login("shopper@example.com", PASSWORD).token
    current_id = auth_token_service.validate_token(current).token.id

    revoked = auth_service.change_password(user, PASSWORD, "NewPassword456", keep_token_id=current_id)

    assert revoked == 1
    assert auth_token_service.validate_token(current) is not None
    assert auth_token_service.validate_token(other) is None
    assert db.session.query(AuthToken).filter_by(revoked_reason="Password changed").count() == 1


def test_change_password_requires_current_password(user):
    with pytest.raises(PasswordValidationError):
        auth_service.change_password(user, "Wrong1234", "NewPassword456")

    phone_user = auth_service.create_user(phone="+919800000011", phone_verified=True)
    with pytest.raises(PasswordValidationError):
        auth_service.change_password(phone_user, PASSWORD, "NewPassword456")
