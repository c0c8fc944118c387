# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Customers sign up and log in with email + password or with a phone
OTP. Every successful path ends in _complete_authentication, which is the
single place a guest session is migrated to the account.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with at least one letter and one digit
- Bearer tokens managed separately (see auth_token_service.py)
- Phone identity proven through otp_service (see otp_service.py)
- Password login locked out after repeated failures (see throttle_service.py)
- Password reset and change revoke the user's other bearer tokens
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..validation import ConflictError, ValidationError, normalize_email, normalize_phone
from solemate.time_utils import utcnow
from . import otp_service, throttle_service
from .auth_token_service import issue_token, revoke_all_user_tokens
from .concurrency import atomic
from .errors import InvalidOrExpired, NotFound, StorageError, TooManyRequests
from .migration_service import MigrationResult, migrate


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


@dataclass
class AuthResult:
    user: User
    token: str
    migration: MigrationResult

    def to_dict(self) -> dict:
        return {
            "user": self.user.to_dict(),
            "token": self.token,
            "migration": self.migration.to_dict(),
        }


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    Phone-only accounts have no hash and never pass.
    """
    if not password_hash or not isinstance(password, str):
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def _complete_authentication(
    user: User,
    guest_token: str | None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> AuthResult:
    """
    Finish any successful login/signup: migrate the guest session, then
    issue the bearer token.

    NOTE: Migration runs first so a failed migration never leaves the
    client holding a token with the guest cart stranded.
    """
    migration = migrate(guest_token, user.id)

    user.last_login_at = utcnow()
    _, plaintext = issue_token(user.id, user_agent=user_agent, ip_address=ip_address)

    current_app.logger.info("User %s authenticated (guest migrated=%s)", user.id, migration.migrated)
    return AuthResult(user=user, token=plaintext, migration=migration)


def create_user(
    *,
    email: str | None = None,
    phone: str | None = None,
    password: str | None = None,
    full_name: str | None = None,
    is_admin: bool = False,
    phone_verified: bool = False,
) -> User:
    """
    Create a user. Email/phone uniqueness is global.

    Raises:
        ConflictError: email or phone already registered
        PasswordValidationError: weak password
    """
    if email is None and phone is None:
        raise ValueError("email or phone is required")

    if email is not None and db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("An account with this email already exists")
    if phone is not None and db.session.query(User.id).filter_by(phone=phone).first():
        raise ConflictError("An account with this phone number already exists")

    password_hash = hash_password(password) if password is not None else None

    with atomic():
        user = User(
            email=email,
            phone=phone,
            full_name=(full_name or "").strip() or None,
            password_hash=password_hash,
            is_admin=is_admin,
            is_active=True,
            phone_verified_at=utcnow() if phone_verified else None,
        )
        db.session.add(user)
    return user


def signup(
    email: str,
    password: str,
    full_name: str | None = None,
    guest_token: str | None = None,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> AuthResult:
    user = create_user(email=normalize_email(email), password=password, full_name=full_name)
    current_app.logger.info("User %s signed up with email", user.id)

    # The account is usable before the email is verified; a failed send
    # only means the user asks for a new code later.
    try:
        request_email_verification(user)
    except (StorageError, TooManyRequests) as e:
        current_app.logger.warning("Verification email not sent to user %s: %s", user.id, e.message)

    return _complete_authentication(user, guest_token, user_agent, ip_address)


def authenticate(email: str, password: str) -> User | None:
    """
    Returns User if credentials valid, None otherwise.

    Unknown email and wrong password are indistinguishable to the caller.
    """
    email = (email or "").strip().lower()
    if not email:
        return None

    user = db.session.query(User).filter(
        User.email == email,
        User.is_active.is_(True),
    ).first()

    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def login(
    email: str,
    password: str,
    guest_token: str | None = None,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> AuthResult | None:
    """
    Password login. Returns None on bad credentials.

    Raises TooManyRequests while the email is locked out. The lock is
    checked before the password, so even correct credentials are refused
    until it expires.
    """
    identifier = (email or "").strip().lower()
    throttle_service.ensure_login_allowed(identifier)

    user = authenticate(email, password)
    if user is None:
        remaining = throttle_service.record_failed_login(
            identifier, ip_address=ip_address, user_agent=user_agent,
        )
        current_app.logger.warning("Failed login for %s (%s attempts left)", identifier, remaining)
        return None

    throttle_service.record_successful_login(
        identifier, user_id=user.id, ip_address=ip_address, user_agent=user_agent,
    )
    return _complete_authentication(user, guest_token, user_agent, ip_address)


def request_phone_otp(purpose: str, phone: str) -> dict:
    """
    Send a login or signup code to a phone number.

    Raises:
        NotFound: LOGIN for a phone with no active account
        ConflictError: SIGNUP for a phone that is already registered
    """
    if purpose not in (otp_service.PURPOSE_LOGIN, otp_service.PURPOSE_SIGNUP):
        raise ValueError("purpose must be LOGIN or SIGNUP")

    phone = normalize_phone(phone)
    user = db.session.query(User).filter_by(phone=phone).first()

    if purpose == otp_service.PURPOSE_LOGIN and (user is None or not user.is_active):
        raise NotFound("No account found for this phone number")
    if purpose == otp_service.PURPOSE_SIGNUP and user is not None:
        raise ConflictError("An account with this phone number already exists")

    challenge = otp_service.request_challenge(purpose, phone)
    return {"phone": phone, "expires_at": challenge.to_dict()["expires_at"]}


def verify_phone_signup(
    phone: str,
    code: str,
    guest_token: str | None = None,
    full_name: str | None = None,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> AuthResult:
    phone = normalize_phone(phone)
    otp_service.verify_challenge(otp_service.PURPOSE_SIGNUP, phone, code)
    user = create_user(phone=phone, full_name=full_name, phone_verified=True)
    current_app.logger.info("User %s signed up with phone", user.id)
    return _complete_authentication(user, guest_token, user_agent, ip_address)


def verify_phone_login(
    phone: str,
    code: str,
    guest_token: str | None = None,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> AuthResult:
    phone = normalize_phone(phone)
    otp_service.verify_challenge(otp_service.PURPOSE_LOGIN, phone, code)

    user = db.session.query(User).filter(User.phone == phone, User.is_active.is_(True)).first()
    if user is None:
        raise NotFound("No account found for this phone number")
    if user.phone_verified_at is None:
        user.phone_verified_at = utcnow()
    return _complete_authentication(user, guest_token, user_agent, ip_address)


# =============================================================================
# EMAIL VERIFICATION
# =============================================================================

def request_email_verification(user: User) -> dict:
    """
    Send a verification code to the user's email.

    Raises:
        ValidationError: the account has no email
        ConflictError: the email is already verified
    """
    if not user.email:
        raise ValidationError("This account has no email address")
    if user.email_verified_at is not None:
        raise ConflictError("Email is already verified")

    challenge = otp_service.request_challenge(
        otp_service.PURPOSE_EMAIL_VERIFICATION, user.email, context=str(user.id),
    )
    return {"email": user.email, "expires_at": challenge.to_dict()["expires_at"]}


def verify_email(user: User, code: str | None) -> User:
    """Mark the email verified. Verifying an already verified email is a no-op."""
    if not user.email:
        raise ValidationError("This account has no email address")
    if user.email_verified_at is not None:
        return user

    otp_service.verify_challenge(
        otp_service.PURPOSE_EMAIL_VERIFICATION, user.email, code, context=str(user.id),
    )
    with atomic():
        user.email_verified_at = utcnow()

    current_app.logger.info("User %s verified email", user.id)
    return user


# =============================================================================
# PASSWORD RESET / CHANGE
# =============================================================================

def _active_password_user(email: str) -> User | None:
    user = db.session.query(User).filter(
        User.email == email,
        User.is_active.is_(True),
    ).first()
    if user is None or not user.password_hash:
        return None
    return user


def forgot_password(email: str) -> None:
    """
    Send a password reset code when an active password account exists.

    SECURITY: Returns the same way whether or not the email is registered,
    so the endpoint cannot be used to enumerate accounts. Send failures and
    request throttling are logged rather than reported for the same reason.
    """
    email = normalize_email(email)
    user = _active_password_user(email)
    if user is None:
        current_app.logger.info("Password reset requested for unknown email")
        return

    try:
        otp_service.request_challenge(otp_service.PURPOSE_PASSWORD_RESET, email, context=str(user.id))
    except (StorageError, TooManyRequests) as e:
        current_app.logger.warning("Password reset code not sent to user %s: %s", user.id, e.message)


def reset_password(email: str, code: str | None, new_password: str) -> User:
    """
    Set a new password with a reset code, then revoke every bearer token.

    Raises:
        PasswordValidationError: weak password (checked before the code is spent)
        InvalidOrExpired: wrong, expired or already used code
    """
    email = normalize_email(email)
    new_hash = hash_password(new_password)

    user = _active_password_user(email)
    if user is None:
        raise InvalidOrExpired("Invalid or expired code")

    otp_service.verify_challenge(otp_service.PURPOSE_PASSWORD_RESET, email, code, context=str(user.id))

    with atomic():
        user.password_hash = new_hash
        # Proving control of the email also verifies it
        if user.email_verified_at is None:
            user.email_verified_at = utcnow()
        revoked = revoke_all_user_tokens(user.id, "Password reset", commit=False)

    current_app.logger.info("User %s reset password (%s tokens revoked)", user.id, revoked)
    return user


def change_password(
    user: User,
    current_password: str,
    new_password: str,
    *,
    keep_token_id: int | None = None,
) -> int:
    """
    Change the password of a signed-in user.

    Every other bearer token is revoked; keep_token_id is the token the
    request came in with.

    Returns the number of tokens revoked.

    Raises PasswordValidationError for a wrong current password, a
    phone-only account, or a weak new password.
    """
    if not user.password_hash:
        raise PasswordValidationError("This account has no password set")
    if not verify_password(current_password, user.password_hash):
        raise PasswordValidationError("Current password is incorrect")

    new_hash = hash_password(new_password)

    with atomic():
        user.password_hash = new_hash
        revoked = revoke_all_user_tokens(
            user.id, "Password changed", except_token_id=keep_token_id, commit=False,
        )

    current_app.logger.info("User %s changed password (%s tokens revoked)", user.id, revoked)
    return revoked
