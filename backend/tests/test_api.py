"""
HTTP-level tests: envelopes, guest session headers, checkout and webhooks.
"""

from conftest import (
    GUEST_CONTACT,
    PASSWORD,
    SHIPPING_ADDRESS,
    auth_headers,
    get_auth_token,
    guest_headers,
    last_code,
    signed_webhook,
)
from solemate.extensions import db
from solemate.models import Order
from solemate.services import inventory_service, session_service, throttle_service


def _add_to_cart(client, variant_id, quantity=1, headers=None):
    return client.post("/api/cart/items", json={"variant_id": variant_id, "quantity": quantity}, headers=headers or {})


def test_health(client, db_session):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json["status"] == "healthy"


def test_session_create_and_validate(client, db_session):
    created = client.post("/api/session/create")
    assert created.status_code == 201
    token = created.json["data"]["session_id"]

    valid = client.get("/api/session/validate", headers=guest_headers(token))
    assert valid.status_code == 200
    assert valid.json["success"] is True

    invalid = client.get("/api/session/validate", headers=guest_headers("bogus"))
    assert invalid.status_code == 401
    assert invalid.json["toast"]["type"] == "error"


def test_first_cart_touch_issues_guest_session(client, catalog):
    response = _add_to_cart(client, catalog["runner_9"].id)

    assert response.status_code == 201
    body = response.json
    assert body["success"] is True
    assert body["toast"] == {"type": "success", "message": "Item added to cart"}
    token = response.headers["X-Session-Id"]
    assert session_service.validate_session(token)

    cart = client.get("/api/cart", headers=guest_headers(token))
    assert cart.json["data"]["count"] == 1
    assert "X-Session-Id" not in cart.headers


def test_out_of_stock_is_a_warning_toast(client, catalog):
    response = _add_to_cart(client, catalog["runner_10"].id, 3)

    assert response.status_code == 409
    assert response.json["success"] is False
    assert response.json["toast"]["type"] == "warning"
    assert response.json["data"]["available_quantity"] == 2


def test_invalid_quantity_is_validation_error(client, catalog):
    response = _add_to_cart(client, catalog["runner_9"].id, "two")
    assert response.status_code == 400
    assert response.json["success"] is False


def test_patch_zero_removes_line(client, catalog):
    token = _add_to_cart(client, catalog["runner_9"].id).headers["X-Session-Id"]
    item_id = client.get("/api/cart", headers=guest_headers(token)).json["data"]["items"][0]["id"]

    response = client.patch(f"/api/cart/items/{item_id}", json={"quantity": 0}, headers=guest_headers(token))

    assert response.status_code == 200
    assert client.get("/api/cart", headers=guest_headers(token)).json["data"]["count"] == 0


def test_empty_cart_checkout_is_warning(client, user):
    token = get_auth_token(client, user.email)
    response = client.post(
        "/api/orders/checkout",
        json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "COD"},
        headers=auth_headers(token),
    )
    assert response.status_code == 400
    assert response.json["toast"]["type"] == "warning"


def test_guest_checkout_and_public_tracking(client, catalog):
    token = _add_to_cart(client, catalog["runner_9"].id, 2).headers["X-Session-Id"]

    missing_contact = client.post(
        "/api/orders/checkout",
        json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "COD"},
        headers=guest_headers(token),
    )
    assert missing_contact.status_code == 400

    placed = client.post(
        "/api/orders/checkout",
        json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "cod", "guest_contact": GUEST_CONTACT},
        headers=guest_headers(token),
    )
    assert placed.status_code == 201
    order = placed.json["data"]
    assert order["total_amount_cents"] == 590000

    tracked = client.get(f"/api/orders/track/{order['tracking_token']}")
    assert tracked.status_code == 200
    assert tracked.json["data"]["order_number"] == order["order_number"]

    assert client.get("/api/orders/track/not-a-token").status_code == 404

    cancelled = client.post(f"/api/orders/{order['id']}/cancel", json={}, headers=guest_headers(token))
    assert cancelled.status_code == 200
    assert cancelled.json["data"]["status"] == "CANCELLED"


def test_other_users_order_is_forbidden(client, catalog, user, other_user):
    token = get_auth_token(client, user.email)
    _add_to_cart(client, catalog["runner_9"].id, headers=auth_headers(token))
    order_id = client.post(
        "/api/orders/checkout",
        json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "COD"},
        headers=auth_headers(token),
    ).json["data"]["id"]

    other_token = get_auth_token(client, other_user.email)
    response = client.post(f"/api/orders/{order_id}/cancel", json={}, headers=auth_headers(other_token))

    assert response.status_code == 403


def test_login_migrates_guest_cart(client, catalog, user):
    guest_token = _add_to_cart(client, catalog["runner_9"].id).headers["X-Session-Id"]

    login = client.post(
        "/api/auth/login",
        json={"email": user.email, "password": PASSWORD},
        headers=guest_headers(guest_token),
    )
    assert login.status_code == 200
    assert login.json["data"]["migration"]["cart_items_moved"] == 1

    bearer = login.json["data"]["token"]
    cart = client.get("/api/cart", headers=auth_headers(bearer))
    assert cart.json["data"]["count"] == 1

    assert client.get("/api/session/validate", headers=guest_headers(guest_token)).status_code == 401


def test_login_failure(client, user):
    response = client.post("/api/auth/login", json={"email": user.email, "password": "Wrong1234"})
    assert response.status_code == 401
    assert response.json["success"] is False


def test_logout_revokes_token(client, user):
    token = get_auth_token(client, user.email)
    assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 200

    assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
    assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


def test_webhook_rejects_tampered_signature(client, catalog, user):
    token = get_auth_token(client, user.email)
    _add_to_cart(client, catalog["runner_9"].id, headers=auth_headers(token))
    order = client.post(
        "/api/orders/checkout",
        json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "ONLINE"},
        headers=auth_headers(token),
    ).json["data"]

    body, headers = signed_webhook({"order_number": order["order_number"], "status": "captured", "payment_id": "pay_9"})
    tampered = body.replace(b"captured", b"failed\x20\x20")

    rejected = client.post("/api/payments/webhook", data=tampered, headers=headers)
    assert rejected.status_code == 401
    assert db.session.get(Order, order["id"]).payment_status == "PENDING"

    accepted = client.post("/api/payments/webhook", data=body, headers=headers)
    assert accepted.status_code == 200
    assert accepted.json["data"]["status"] == "PAID"


def test_admin_routes_require_admin(client, user, admin):
    user_token = get_auth_token(client, user.email)
    assert client.get("/api/admin/orders").status_code == 401
    assert client.get("/api/admin/orders", headers=auth_headers(user_token)).status_code == 403

    admin_token = get_auth_token(client, admin.email)
    response = client.get("/api/admin/orders/analytics", headers=auth_headers(admin_token))
    assert response.status_code == 200
    assert response.json["data"]["total_orders"] == 0


def test_admin_fulfilment_flow(client, catalog, user, admin):
    token = get_auth_token(client, user.email)
    _add_to_cart(client, catalog["runner_9"].id, headers=auth_headers(token))
    order = client.post(
        "/api/orders/checkout",
        json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "COD"},
        headers=auth_headers(token),
    ).json["data"]

    admin_headers = auth_headers(get_auth_token(client, admin.email))
    url = f"/api/admin/orders/{order['id']}/status"

    skipped = client.patch(url, json={"status": "DELIVERED"}, headers=admin_headers)
    assert skipped.status_code == 409

    for status in ("PAID", "SHIPPED", "DELIVERED"):
        response = client.patch(url, json={"status": status, "courier_name": "Delhivery"}, headers=admin_headers)
        assert response.status_code == 200, response.json

    delivered = client.get(f"/api/admin/orders/{order['id']}", headers=admin_headers).json["data"]
    assert delivered["status"] == "DELIVERED"
    assert delivered["courier_name"] == "Delhivery"


def test_admin_inventory_and_products(client, catalog, admin):
    admin_headers = auth_headers(get_auth_token(client, admin.email))
    variant_id = catalog["runner_9"].id

    set_response = client.put(f"/api/admin/inventory/{variant_id}", json={"quantity": 12}, headers=admin_headers)
    assert set_response.json["data"]["quantity"] == 12

    movement = client.post(
        f"/api/admin/inventory/{variant_id}/movements",
        json={"type": "REMOVE", "quantity": 20},
        headers=admin_headers,
    )
    assert movement.status_code == 409

    logs = client.get(f"/api/admin/inventory/{variant_id}/logs", headers=admin_headers).json["data"]
    assert sum(entry["quantity"] for entry in logs["items"]) == 12

    created = client.post(
        "/api/admin/products",
        json={
            "name": "Trail Grip Mid",
            "brand": "Summit",
            "category": "OUTDOOR",
            "gender": "WOMEN",
            "variants": [{"sku": "SUM-6", "size": "6", "color": "Olive", "price_cents": 899900, "initial_quantity": 4}],
        },
        headers=admin_headers,
    )
    assert created.status_code == 201
    assert created.json["data"]["variants"][0]["quantity_available"] == 4

    duplicate = client.post(
        f"/api/admin/products/{created.json['data']['id']}/variants",
        json={"sku": "SUM-6", "size": "7", "color": "Olive", "price_cents": 899900},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409

    public = client.get("/api/products", query_string={"brand": "Summit"}).json["data"]
    assert public["pagination"]["total"] == 1


def test_order_tracking_endpoints(client, catalog):
    token = _add_to_cart(client, catalog["runner_9"].id).headers["X-Session-Id"]
    order = client.post(
        "/api/orders/checkout",
        json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "COD", "guest_contact": GUEST_CONTACT},
        headers=guest_headers(token),
    ).json["data"]

    requested = client.post(
        "/api/order-tracking/request",
        json={"order_number": order["order_number"], "contact": "asha@example.com"},
    )
    assert requested.status_code == 200

    verified = client.post(
        "/api/order-tracking/verify",
        json={"order_number": order["order_number"], "contact": "asha@example.com", "code": last_code()},
    )
    assert verified.status_code == 200
    assert verified.json["data"]["tracking_token"] == order["tracking_token"]


def test_cancel_with_non_string_reason(client, catalog, user):
    token = get_auth_token(client, user.email)
    _add_to_cart(client, catalog["runner_9"].id, headers=auth_headers(token))
    order_id = client.post(
        "/api/orders/checkout",
        json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "COD"},
        headers=auth_headers(token),
    ).json["data"]["id"]

    response = client.post(f"/api/orders/{order_id}/cancel", json={"reason": 123}, headers=auth_headers(token))

    assert response.status_code == 200
    assert response.json["data"]["cancel_reason"] == "123"


def test_cancel_with_array_body_is_validation_error(client, catalog, user):
    token = get_auth_token(client, user.email)
    _add_to_cart(client, catalog["runner_9"].id, headers=auth_headers(token))
    order_id = client.post(
        "/api/orders/checkout",
        json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "COD"},
        headers=auth_headers(token),
    ).json["data"]["id"]

    response = client.post(f"/api/orders/{order_id}/cancel", json=["oops"], headers=auth_headers(token))

    assert response.status_code == 400
    assert db.session.get(Order, order_id).status == "PENDING"


def test_cart_line_is_capped(client, catalog):
    variant_id = catalog["runner_9"].id
    token = _add_to_cart(client, variant_id, quantity=5).headers["X-Session-Id"]

    # Stock allows it, but the line would hold 11
    inventory_service.record_movement(variant_id=variant_id, movement_type="ADD", quantity=20)

    assert _add_to_cart(client, variant_id, quantity=5, headers=guest_headers(token)).status_code == 200
    over = _add_to_cart(client, variant_id, quantity=1, headers=guest_headers(token))

    assert over.status_code == 400
    assert client.get("/api/cart", headers=guest_headers(token)).json["data"]["items"][0]["quantity"] == 10


def test_removing_missing_cart_line_is_info(client, catalog):
    token = _add_to_cart(client, catalog["runner_9"].id).headers["X-Session-Id"]

    response = client.delete("/api/cart/items/999999", headers=guest_headers(token))

    assert response.status_code == 200
    assert response.json["data"] == {"removed": False}
    assert response.json["toast"]["type"] == "info"


def test_migrating_unknown_session_is_info(client, user):
    token = get_auth_token(client, user.email)
    headers = {**auth_headers(token), **guest_headers("no-such-session")}

    response = client.post("/api/session/migrate", headers=headers)

    assert response.status_code == 200
    assert response.json["toast"]["type"] == "info"
    assert response.json["data"]["migrated"] is False


def test_login_lockout_is_429(client, user):
    for _ in range(throttle_service.MAX_FAILED_LOGINS):
        assert client.post("/api/auth/login", json={"email": user.email, "password": "Wrong1234"}).status_code == 401

    locked = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})

    assert locked.status_code == 429
    assert locked.json["toast"]["type"] == "warning"
    assert locked.json["data"]["retry_after_seconds"] > 0


def test_phone_code_requests_are_throttled(client, db_session):
    for _ in range(throttle_service.MAX_OTP_REQUESTS):
        assert client.post("/api/auth/otp/request", json={"phone": "+919812345678", "purpose": "SIGNUP"}).status_code == 200

    response = client.post("/api/auth/otp/request", json={"phone": "+919812345678", "purpose": "SIGNUP"})
    assert response.status_code == 429


def test_signup_sends_email_verification(client, db_session):
    signup = client.post("/api/auth/signup", json={"email": "new@example.com", "password": PASSWORD})
    assert signup.status_code == 201
    token = signup.json["data"]["token"]

    verified = client.post("/api/auth/email/verify", json={"code": last_code("new@example.com")}, headers=auth_headers(token))

    assert verified.status_code == 200
    assert verified.json["data"]["email_verified_at"] is not None

    again = client.post("/api/auth/email/verification/request", headers=auth_headers(token))
    assert again.status_code == 200
    assert again.json["toast"]["type"] == "info"


def test_password_reset_flow(client, user):
    old_token = get_auth_token(client, user.email)

    unknown = client.post("/api/auth/password/forgot", json={"email": "nobody@example.com"})
    known = client.post("/api/auth/password/forgot", json={"email": user.email})
    assert unknown.status_code == known.status_code == 200
    assert unknown.json["message"] == known.json["message"]

    reset = client.post(
        "/api/auth/password/reset",
        json={"email": user.email, "code": last_code(user.email), "password": "NewPassword456"},
    )
    assert reset.status_code == 200

    assert client.get("/api/auth/me", headers=auth_headers(old_token)).status_code == 401
    assert get_auth_token(client, user.email) is None
    assert get_auth_token(client, user.email, "NewPassword456") is not None


def test_password_change_keeps_current_session(client, user):
    current = get_auth_token(client, user.email)
    other_device = get_auth_token(client, user.email)

    wrong = client.post(
        "/api/auth/password/change",
        json={"current_password": "Wrong1234", "new_password": "NewPassword456"},
        headers=auth_headers(current),
    )
    assert wrong.status_code == 400

    changed = client.post(
        "/api/auth/password/change",
        json={"current_password": PASSWORD, "new_password": "NewPassword456"},
        headers=auth_headers(current),
    )
    assert changed.status_code == 200
    assert changed.json["data"]["sessions_revoked"] == 1

    assert client.get("/api/auth/me", headers=auth_headers(current)).status_code == 200
    assert client.get("/api/auth/me", headers=auth_headers(other_device)).status_code == 401
