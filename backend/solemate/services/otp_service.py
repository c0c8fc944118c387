# Overview: Service-layer operations for one-time codes; encapsulates business logic and database work.

"""
OTP Verification Service

WHY: Phone login/signup and guest order tracking prove control of a contact
(phone or email) without a password.

SECURITY FEATURES:
- 6-digit codes from the secrets module
- Only an HMAC-SHA256 of the code is stored, keyed by SECRET_KEY
- Expiry after OTP_TTL_MINUTES (default 10)
- At most OTP_MAX_ATTEMPTS wrong guesses per challenge (default 5)
- Single use: consumed_at is set on success
- A new request for the same (purpose, target) deletes older unconsumed codes
- Requests per target are throttled (see throttle_service.py)
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import OtpChallenge
from solemate.time_utils import utcnow, as_utc_naive
from . import messaging_service, throttle_service
from .concurrency import atomic, lock_for_update
from .errors import InvalidOrExpired, StorageError


PURPOSE_LOGIN = "LOGIN"
PURPOSE_SIGNUP = "SIGNUP"
PURPOSE_ORDER_TRACKING = "ORDER_TRACKING"
PURPOSE_EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
PURPOSE_PASSWORD_RESET = "PASSWORD_RESET"
VALID_PURPOSES = {
    PURPOSE_LOGIN,
    PURPOSE_SIGNUP,
    PURPOSE_ORDER_TRACKING,
    PURPOSE_EMAIL_VERIFICATION,
    PURPOSE_PASSWORD_RESET,
}

_SUBJECTS = {
    PURPOSE_ORDER_TRACKING: "Your SoleMate order tracking code",
    PURPOSE_EMAIL_VERIFICATION: "Verify your SoleMate email",
    PURPOSE_PASSWORD_RESET: "Reset your SoleMate password",
}

CODE_LENGTH = 6
CODE_PATTERN = re.compile(r"^\d{6}$")

DEFAULT_TTL_MINUTES = 10
DEFAULT_MAX_ATTEMPTS = 5


@dataclass(frozen=True)
class VerifiedIdentity:
    purpose: str
    target: str
    context: str | None


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def hash_code(code: str) -> str:
    key = current_app.config["SECRET_KEY"].encode("utf-8")
    return hmac.new(key, code.encode("utf-8"), hashlib.sha256).hexdigest()


def _ttl() -> timedelta:
    return timedelta(minutes=int(current_app.config.get("OTP_TTL_MINUTES", DEFAULT_TTL_MINUTES)))


def _max_attempts() -> int:
    return int(current_app.config.get("OTP_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS))


def _message_for(purpose: str, code: str) -> str:
    minutes = _ttl().seconds // 60
    if purpose == PURPOSE_ORDER_TRACKING:
        return f"Your SoleMate order tracking code is {code}. It expires in {minutes} minutes."
    if purpose == PURPOSE_PASSWORD_RESET:
        return (
            f"Your SoleMate password reset code is {code}. It expires in {minutes} minutes. "
            "If you did not ask to reset your password, ignore this message."
        )
    return f"Your SoleMate verification code is {code}. It expires in {minutes} minutes."


def request_challenge(purpose: str, target: str, context: str | None = None) -> OtpChallenge:
    """
    Issue a fresh code for (purpose, target) and send it to the target.

    Raises:
        ValueError: unknown purpose
        TooManyRequests: the target used up its request budget
        StorageError: the code could not be dispatched (nothing is persisted)
    """
    if purpose not in VALID_PURPOSES:
        raise ValueError(f"Invalid OTP purpose: {purpose}")

    code = generate_code()
    now = utcnow()

    with atomic():
        throttle_service.record_otp_request(target, purpose)

        db.session.query(OtpChallenge).filter(
            OtpChallenge.purpose == purpose,
            OtpChallenge.target == target,
            OtpChallenge.consumed_at.is_(None),
        ).delete(synchronize_session=False)

        challenge = OtpChallenge(
            purpose=purpose,
            target=target,
            context=context,
            code_hash=hash_code(code),
            attempts=0,
            created_at=now,
            expires_at=now + _ttl(),
        )
        db.session.add(challenge)
        db.session.flush()

        # Dispatch inside the transaction so a failed send leaves no live code
        if not messaging_service.send(
            target,
            _message_for(purpose, code),
            subject=_SUBJECTS.get(purpose, "Your SoleMate verification code"),
        ):
            raise StorageError("Could not send verification code", details={"target": target})

    current_app.logger.info("OTP challenge %s issued for %s", purpose, target)
    return challenge


def verify_challenge(
    purpose: str,
    target: str,
    code: str | None,
    context: str | None = None,
) -> VerifiedIdentity:
    """
    Check a code against the newest live challenge for (purpose, target).

    Every failure raises InvalidOrExpired; a wrong guess still counts
    against the attempt limit and is committed.
    """
    code = (code or "").strip() if isinstance(code, str) else ""
    if not CODE_PATTERN.match(code):
        raise InvalidOrExpired("Invalid or expired code")

    challenge = lock_for_update(
        db.session.query(OtpChallenge).filter(
            OtpChallenge.purpose == purpose,
            OtpChallenge.target == target,
            OtpChallenge.consumed_at.is_(None),
        ).order_by(OtpChallenge.id.desc())
    ).first()

    if challenge is None:
        raise InvalidOrExpired("Invalid or expired code")
    if context is not None and challenge.context != context:
        raise InvalidOrExpired("Invalid or expired code")
    if as_utc_naive(challenge.expires_at) <= utcnow():
        raise InvalidOrExpired("Invalid or expired code", details={"reason": "expired"})
    if challenge.attempts >= _max_attempts():
        raise InvalidOrExpired("Too many attempts, request a new code", details={"reason": "attempts_exhausted"})

    if not hmac.compare_digest(challenge.code_hash, hash_code(code)):
        with atomic():
            challenge.attempts += 1
        raise InvalidOrExpired(
            "Invalid or expired code",
            details={"attempts_remaining": max(_max_attempts() - challenge.attempts, 0)},
        )

    with atomic():
        challenge.consumed_at = utcnow()
        challenge.attempts += 1

    return VerifiedIdentity(purpose=purpose, target=target, context=challenge.context)
