# Overview: Service-layer operations for login lockout and code request throttling; encapsulates business logic and database work.

"""
Throttling Service

WHY: Prevent brute-force attacks on passwords and one-time codes.
- Password login: after MAX_FAILED_LOGINS failures within LOCKOUT_WINDOW the
  identifier is locked for LOCKOUT_DURATION.
- One-time codes: at most MAX_OTP_REQUESTS codes per target within
  OTP_REQUEST_WINDOW. Each code already caps wrong guesses, so this bounds
  the total guesses an attacker gets by re-requesting codes.

Uses the security_events table for tracking. A successful login resets
the lockout clock: only failures after the latest success are counted.
"""

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import SecurityEvent
from solemate.time_utils import utcnow, as_utc_naive
from .concurrency import atomic
from .errors import TooManyRequests


EVENT_LOGIN_FAILED = "LOGIN_FAILED"
EVENT_LOGIN_SUCCESS = "LOGIN_SUCCESS"
EVENT_OTP_REQUESTED = "OTP_REQUESTED"

# Configuration constants
MAX_FAILED_LOGINS = 10                          # Lock after 10 failed attempts
LOCKOUT_WINDOW = timedelta(minutes=15)          # Within 15 minutes
LOCKOUT_DURATION = timedelta(minutes=15)        # Lockout for 15 minutes

MAX_OTP_REQUESTS = 5                            # Codes per target
OTP_REQUEST_WINDOW = timedelta(minutes=15)


def _record(
    event_type: str,
    identifier: str,
    *,
    success: bool,
    user_id: int | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        identifier=identifier,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent[:500] if user_agent else None,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    return event


def _recent_events(event_type: str, identifier: str, since) -> list[SecurityEvent]:
    return (
        db.session.query(SecurityEvent)
        .filter(
            SecurityEvent.event_type == event_type,
            SecurityEvent.identifier == identifier,
            SecurityEvent.occurred_at >= since,
        )
        .order_by(SecurityEvent.occurred_at.asc(), SecurityEvent.id.asc())
        .all()
    )


# =============================================================================
# PASSWORD LOGIN
# =============================================================================

def get_recent_failed_logins(identifier: str) -> list[SecurityEvent]:
    """Failures within LOCKOUT_WINDOW that happened after the latest successful login."""
    cutoff = utcnow() - LOCKOUT_WINDOW

    last_success = (
        db.session.query(SecurityEvent.occurred_at)
        .filter(
            SecurityEvent.event_type == EVENT_LOGIN_SUCCESS,
            SecurityEvent.identifier == identifier,
        )
        .order_by(SecurityEvent.occurred_at.desc())
        .first()
    )
    if last_success is not None:
        cutoff = max(cutoff, as_utc_naive(last_success[0]))

    return _recent_events(EVENT_LOGIN_FAILED, identifier, cutoff)


def is_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    failures = get_recent_failed_logins(identifier)
    if len(failures) < MAX_FAILED_LOGINS:
        return False, None

    lockout_end = as_utc_naive(failures[-1].occurred_at) + LOCKOUT_DURATION
    now = utcnow()
    if now >= lockout_end:
        return False, None
    return True, max(int((lockout_end - now).total_seconds()), 1)


def ensure_login_allowed(identifier: str) -> None:
    """Raises TooManyRequests while the identifier is locked out."""
    locked, seconds_remaining = is_locked(identifier)
    if locked:
        raise TooManyRequests(
            "Account temporarily locked due to too many failed login attempts",
            details={"retry_after_seconds": seconds_remaining},
        )


def record_failed_login(
    identifier: str,
    *,
    user_id: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid credentials",
) -> int:
    """
    Record a failed login attempt.

    Returns the number of attempts left before lockout.
    """
    with atomic():
        _record(
            EVENT_LOGIN_FAILED, identifier,
            success=False, user_id=user_id, reason=reason,
            ip_address=ip_address, user_agent=user_agent,
        )
    return max(MAX_FAILED_LOGINS - len(get_recent_failed_logins(identifier)), 0)


def record_successful_login(
    identifier: str,
    *,
    user_id: int,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    with atomic():
        _record(
            EVENT_LOGIN_SUCCESS, identifier,
            success=True, user_id=user_id,
            ip_address=ip_address, user_agent=user_agent,
        )


# =============================================================================
# ONE-TIME CODES
# =============================================================================

def record_otp_request(target: str, purpose: str) -> None:
    """
    Count a code request against the target's budget.

    Runs inside the caller's transaction so a request that fails to send
    does not use up the budget.

    Raises TooManyRequests once MAX_OTP_REQUESTS were issued within
    OTP_REQUEST_WINDOW.
    """
    now = utcnow()
    recent = _recent_events(EVENT_OTP_REQUESTED, target, now - OTP_REQUEST_WINDOW)
    if len(recent) >= MAX_OTP_REQUESTS:
        retry_at = as_utc_naive(recent[0].occurred_at) + OTP_REQUEST_WINDOW
        raise TooManyRequests(
            "Too many code requests, please try again later",
            details={"retry_after_seconds": max(int((retry_at - now).total_seconds()), 1)},
        )
    _record(EVENT_OTP_REQUESTED, target, success=True, reason=purpose)
    db.session.flush()
