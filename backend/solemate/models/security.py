from __future__ import annotations

from ..extensions import db
from solemate.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Audit trail of login attempts and one-time code requests.

    WHY: Throttling counts recent events per identifier (email, phone) so
    brute force across requests or re-issued codes is bounded.

    IMMUTABLE: Never updated. Old rows are removed by maintenance cleanup.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_type_identifier", "event_type", "identifier", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # NULL for unknown identifiers

    # LOGIN_FAILED, LOGIN_SUCCESS, OTP_REQUESTED
    event_type = db.Column(db.String(32), nullable=False)
    identifier = db.Column(db.String(255), nullable=False)

    success = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "identifier": self.identifier,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
