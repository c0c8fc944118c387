from __future__ import annotations

from ..extensions import db
from solemate.time_utils import to_utc_z


class OtpChallenge(db.Model):
    """
    One-time code bound to a purpose and a contact target.

    Only an HMAC of the code is stored. A challenge validates at most once:
    consumed_at is set on the first successful verification.

    PURPOSES:
    - LOGIN: phone login
    - SIGNUP: phone signup
    - ORDER_TRACKING: guest order lookup (context holds the order number)
    """
    __tablename__ = "otp_challenges"
    __table_args__ = (
        db.Index("ix_otp_challenges_purpose_target", "purpose", "target"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purpose = db.Column(db.String(32), nullable=False)
    target = db.Column(db.String(255), nullable=False)
    context = db.Column(db.String(64), nullable=True)

    code_hash = db.Column(db.String(64), nullable=False)
    attempts = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purpose": self.purpose,
            "target": self.target,
            "context": self.context,
            "attempts": self.attempts,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "consumed_at": to_utc_z(self.consumed_at) if self.consumed_at else None,
        }
