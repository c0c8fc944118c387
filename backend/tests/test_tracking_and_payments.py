"""
Guest order tracking by one-time code, and signed payment callbacks.
"""

import json

import pytest

from conftest import GUEST_CONTACT, SHIPPING_ADDRESS, last_code
from solemate.extensions import db
from solemate.models import InventoryLog, Order
from solemate.services import cart_service, inventory_service, order_service, payment_service, tracking_service
from solemate.services.errors import InvalidOrExpired, NotFound, OutOfStock


@pytest.fixture
def guest_order(catalog, guest_owner):
    cart_service.add_item(guest_owner, catalog["runner_9"].id, 1)
    return order_service.checkout(guest_owner, dict(SHIPPING_ADDRESS), "ONLINE", dict(GUEST_CONTACT))


def test_tracking_with_matching_email(guest_order):
    sent = tracking_service.request_tracking(guest_order.order_number, "ASHA@example.com")
    assert sent["sent_to"] == "asha@example.com"

    summary = tracking_service.verify_tracking(guest_order.order_number, "asha@example.com", last_code("asha@example.com"))

    assert summary["order_number"] == guest_order.order_number
    assert summary["tracking_token"] == guest_order.tracking_token


def test_tracking_with_mismatched_contact_is_not_found(guest_order):
    with pytest.raises(NotFound):
        tracking_service.request_tracking(guest_order.order_number, "someone-else@example.com")
    with pytest.raises(NotFound):
        tracking_service.request_tracking("ORD-19990101-DEADBEEF", "asha@example.com")


def test_tracking_code_is_bound_to_the_order(catalog, guest_owner, guest_order):
    cart_service.add_item(guest_owner, catalog["runner_10"].id, 1)
    second = order_service.checkout(guest_owner, dict(SHIPPING_ADDRESS), "COD", dict(GUEST_CONTACT))

    tracking_service.request_tracking(guest_order.order_number, "+919876543210")
    code = last_code("+919876543210")

    with pytest.raises(InvalidOrExpired):
        tracking_service.verify_tracking(second.order_number, "+919876543210", code)


def test_signature_verification(app):
    body = b'{"order_number": "ORD-1", "status": "captured"}'
    good = payment_service.compute_signature(body)

    assert payment_service.verify_signature(body, good) is True
    assert payment_service.verify_signature(body + b" ", good) is False
    assert payment_service.verify_signature(body, "0" * 64) is False
    assert payment_service.verify_signature(body, None) is False


def test_captured_callback_marks_order_paid(guest_order):
    order = payment_service.handle_payment_callback(
        {"order_number": guest_order.order_number, "status": "captured", "payment_id": "pay_123"}
    )

    assert order.status == "PAID"
    assert order.payment_status == "SUCCESS"
    assert order.gateway_payment_id == "pay_123"
    assert order.paid_at is not None


def test_repeated_callback_is_idempotent(guest_order):
    payload = {"order_number": guest_order.order_number, "status": "success", "payment_id": "pay_1"}
    first = payment_service.handle_payment_callback(payload)
    paid_at = first.paid_at

    second = payment_service.handle_payment_callback(payload)

    assert second.payment_status == "SUCCESS"
    assert second.paid_at == paid_at


def test_failed_callback_then_retry_success(guest_order):
    failed = payment_service.handle_payment_callback(
        {"order_number": guest_order.order_number, "status": "failed"}
    )
    assert (failed.status, failed.payment_status) == ("PENDING", "FAILED")

    paid = payment_service.handle_payment_callback(
        {"order_number": guest_order.order_number, "status": "captured"}
    )
    assert (paid.status, paid.payment_status) == ("PAID", "SUCCESS")


def test_callback_for_unknown_order(db_session):
    with pytest.raises(NotFound):
        payment_service.handle_payment_callback({"order_number": "ORD-0-NOPE", "status": "captured"})


def test_callback_with_unknown_status(guest_order):
    with pytest.raises(ValueError):
        payment_service.handle_payment_callback({"order_number": guest_order.order_number, "status": "refunded"})
    assert db.session.get(Order, guest_order.id).payment_status == "PENDING"


@pytest.fixture
def sold_out_order(catalog, guest_owner):
    """ONLINE order holding both units of runner_10."""
    cart_service.add_item(guest_owner, catalog["runner_10"].id, 2)
    order = order_service.checkout(guest_owner, dict(SHIPPING_ADDRESS), "ONLINE", dict(GUEST_CONTACT))
    assert inventory_service.get_available_quantity(catalog["runner_10"].id) == 0
    return order


def _held(order_id):
    return -sum(log.quantity for log in db.session.query(InventoryLog).filter_by(order_id=order_id))


def test_failed_callback_releases_stock(catalog, sold_out_order):
    payment_service.handle_payment_callback({"order_number": sold_out_order.order_number, "status": "failed"})

    assert inventory_service.get_available_quantity(catalog["runner_10"].id) == 2
    assert _held(sold_out_order.id) == 0

    # A duplicate failure does not release twice
    payment_service.handle_payment_callback({"order_number": sold_out_order.order_number, "status": "failed"})
    assert inventory_service.get_available_quantity(catalog["runner_10"].id) == 2


def test_capture_after_failure_takes_stock_again(catalog, sold_out_order):
    payment_service.handle_payment_callback({"order_number": sold_out_order.order_number, "status": "failed"})
    order = payment_service.handle_payment_callback(
        {"order_number": sold_out_order.order_number, "status": "captured", "payment_id": "pay_retry"}
    )

    assert (order.status, order.payment_status) == ("PAID", "SUCCESS")
    assert inventory_service.get_available_quantity(catalog["runner_10"].id) == 0
    assert _held(order.id) == 2


def test_capture_after_stock_was_sold_cancels_order(catalog, sold_out_order):
    payment_service.handle_payment_callback({"order_number": sold_out_order.order_number, "status": "failed"})
    inventory_service.record_movement(
        variant_id=catalog["runner_10"].id, movement_type="REMOVE", quantity=2, note="Sold in store",
    )

    order = payment_service.handle_payment_callback(
        {"order_number": sold_out_order.order_number, "status": "captured"}
    )

    assert order.status == "CANCELLED"
    assert order.payment_status == "SUCCESS"
    assert order.cancel_reason
    assert inventory_service.get_available_quantity(catalog["runner_10"].id) == 0
    assert _held(order.id) == 0


def test_payment_retry_without_stock_is_refused(catalog, sold_out_order):
    order_service.update_payment_status(sold_out_order.id, "FAILED")
    inventory_service.record_movement(
        variant_id=catalog["runner_10"].id, movement_type="REMOVE", quantity=1, note="Sold in store",
    )

    with pytest.raises(OutOfStock):
        order_service.update_payment_status(sold_out_order.id, "PENDING")

    order = db.session.get(Order, sold_out_order.id)
    assert (order.status, order.payment_status) == ("PENDING", "FAILED")
    assert inventory_service.get_available_quantity(catalog["runner_10"].id) == 1


def test_cancel_after_failed_payment_does_not_release_twice(catalog, guest_owner, sold_out_order):
    payment_service.handle_payment_callback({"order_number": sold_out_order.order_number, "status": "failed"})

    order_service.cancel(guest_owner, sold_out_order.id, "Changed my mind")

    assert inventory_service.get_available_quantity(catalog["runner_10"].id) == 2
    assert _held(sold_out_order.id) == 0
