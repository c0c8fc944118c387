# Overview: Service-layer operations for guest order tracking by contact verification.

"""
Guest Order Tracking

A guest who lost the tracking link proves ownership of an order by
receiving a one-time code at the contact stored on it. The code is bound
to the order number (challenge context), so it cannot unlock another order.

Unknown order numbers and mismatched contacts both raise the same NotFound,
so the endpoint does not reveal which orders exist.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, User
from ..validation import normalize_contact
from . import order_service, otp_service
from .errors import NotFound


def _contacts_for(order: Order) -> set[str]:
    contacts = {order.guest_email, order.guest_phone}
    if order.user_id is not None:
        user = db.session.query(User).filter_by(id=order.user_id).first()
        if user is not None:
            contacts.update({user.email, user.phone})
    return {c for c in contacts if c}


def _matching_order(order_number: str, contact: str) -> tuple[Order, str]:
    order_number = (order_number or "").strip().upper()
    normalized = normalize_contact(contact)

    order = order_service.find_by_order_number(order_number) if order_number else None
    if order is None or normalized not in _contacts_for(order):
        raise NotFound("No order matches that order number and contact")
    return order, normalized


def request_tracking(order_number: str, contact: str) -> dict:
    order, target = _matching_order(order_number, contact)
    otp_service.request_challenge(otp_service.PURPOSE_ORDER_TRACKING, target, context=order.order_number)
    return {"order_number": order.order_number, "sent_to": target}


def verify_tracking(order_number: str, contact: str, code: str) -> dict:
    order, target = _matching_order(order_number, contact)
    otp_service.verify_challenge(
        otp_service.PURPOSE_ORDER_TRACKING, target, code, context=order.order_number
    )
    return order_service.order_summary(order, include_token=True)
