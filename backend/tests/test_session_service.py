"""
Guest session store tests.
"""

from datetime import timedelta

from solemate.extensions import db
from solemate.models import GuestSession
from solemate.services import session_service
from solemate.time_utils import utcnow


def test_create_session_returns_plaintext_and_stores_hash(db_session):
    session, token = session_service.create_session()

    assert len(token) == 64
    int(token, 16)
    assert session.token_hash == session_service.hash_token(token)
    assert session.token_hash != token
    assert session.migrated_at is None


def test_new_session_validates(guest):
    _, token, _ = guest
    assert session_service.validate_session(token) is True
    assert session_service.resolve_session(token).id == guest[0].id


def test_validate_rejects_bad_input_without_raising(db_session):
    assert session_service.validate_session(None) is False
    assert session_service.validate_session("") is False
    assert session_service.validate_session("not-a-real-token") is False
    assert session_service.validate_session(12345) is False


def test_expired_session_does_not_validate(guest):
    session, token, _ = guest
    session.expires_at = utcnow() - timedelta(seconds=1)
    db.session.commit()

    assert session_service.validate_session(token) is False


def test_migrated_session_does_not_validate(guest, user):
    session, token, _ = guest
    session_service.invalidate_session(session, user.id)
    db.session.commit()

    assert session_service.validate_session(token) is False


def test_get_or_create_reuses_live_session(guest):
    session, token, _ = guest
    resolved, same_token, created = session_service.get_or_create_session(token)

    assert created is False
    assert resolved.id == session.id
    assert same_token == token


def test_get_or_create_issues_new_session_for_invalid_token(db_session):
    session, token, created = session_service.get_or_create_session("stale-token")

    assert created is True
    assert token != "stale-token"
    assert session_service.validate_session(token) is True
    assert db.session.query(GuestSession).count() == 1


def test_extend_session_pushes_expiry(guest):
    session, token, _ = guest
    session.expires_at = utcnow() + timedelta(hours=1)
    db.session.commit()

    extended = session_service.extend_session(token)

    assert extended is not None
    assert extended.expires_at > utcnow() + timedelta(days=29)


def test_extend_unknown_session_returns_none(db_session):
    assert session_service.extend_session("nope") is None
