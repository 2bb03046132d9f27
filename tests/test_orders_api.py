from decimal import Decimal

import pytest

from storefront.common.models import CouponUsage, Notification, Order, Product, Transaction
from storefront.common.services import order_service as order_module


def _error(response):
    return response.status_code, response.get_json()


def test_create_order_persists_order_items_and_side_effects(client, seed, http, session_factory, stock_of, order_payload):
    response = client.post("/api/orders", json=order_payload())

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["message"] == "Order created successfully"
    order = body["data"]
    assert order["order_number"].startswith("ORD-001")
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert order["total"] == 220.0
    assert order["shipping_fee"] == 20.0
    assert order["shipping_address"]["delivery_option"] == {"name": "Standard", "price": 20.0}
    assert [it["quantity"] for it in order["order_items"]] == [2]
    assert order["user"]["email"] == "ama@example.com"

    assert stock_of("prod-phone") == 3

    with session_factory() as session:
        txn = session.query(Transaction).filter(Transaction.order_id == order["id"]).one()
        assert txn.transaction_reference == f"TXN-{order['id'][:8]}"
        assert txn.payment_provider == "cash"
        assert txn.amount == Decimal("220.00")
        assert txn.customer_email == "ama@example.com"
        assert txn.meta["customer_name"] == "Ama Mensah"
        notes = session.query(Notification).filter(Notification.type == "order").all()
        assert len(notes) == 1
        assert notes[0].title == f"New Order: {order['order_number']}"
        assert "GHS 220.00" in notes[0].message

    subjects = http.subjects()
    assert f"[REGULAR] Order Confirmation - {order['order_number']}" in subjects
    assert f"[REGULAR] New Order Received - {order['order_number']}" in subjects
    confirmation = next(m for m in http.sent if "Order Confirmation" in m["subject"])
    assert confirmation["to"] == "ama@example.com"
    assert "Pixel 8" in confirmation["html"]


def test_total_is_recomputed_from_components(place_order):
    order = place_order(subtotal=200, delivery_fee=15, tax=5, discount=10, total=999)
    assert order["total"] == 210.0


def test_subtotal_falls_back_to_item_lines(place_order):
    order = place_order(
        subtotal=0,
        delivery_fee=0,
        total=150,
        order_items=[
            {"product_id": "prod-phone", "quantity": 1, "unit_price": 100},
            {"product_id": "prod-case", "unit_price": 50},
        ],
    )
    assert order["subtotal"] == 150.0
    assert order["total"] == 150.0
    assert sorted(it["total_price"] for it in order["order_items"]) == [50.0, 100.0]


def test_create_order_validation_errors(client, seed, order_payload):
    status, body = _error(client.post("/api/orders", json=order_payload(order_items=[])))
    assert status == 400 and body["message"] == "Order items are required"

    status, body = _error(client.post("/api/orders", json=order_payload(delivery_address=None)))
    assert status == 400 and body["message"] == "Delivery address is required"

    status, body = _error(client.post("/api/orders", json=order_payload(total=0)))
    assert status == 400 and body["message"] == "Invalid total amount"

    status, body = _error(
        client.post("/api/orders", json=order_payload(order_items=[{"product_id": "  ", "quantity": 1}]))
    )
    assert status == 400 and body["error"] == "INVALID_PRODUCT_IDS"

    status, body = _error(
        client.post(
            "/api/orders",
            json=order_payload(order_items=[{"product_id": "prod-gone", "quantity": 1, "unit_price": 10}]),
        )
    )
    assert status == 400
    assert body["error"] == "PRODUCTS_NOT_FOUND"
    assert body["missing_product_ids"] == ["prod-gone"]


def test_create_order_rejects_unreasonable_totals(client, seed, order_payload):
    status, body = _error(client.post("/api/orders", json=order_payload(subtotal=10, delivery_fee=0, discount=50)))
    assert status == 400 and body["error"] == "NEGATIVE_ORDER_TOTAL"

    status, body = _error(client.post("/api/orders", json=order_payload(subtotal=2_000_000, total=2_000_020)))
    assert status == 400 and body["error"] == "INVALID_TOTAL_PESEWAS_DETECTED"


def test_nothing_is_written_when_validation_fails(client, seed, session_factory, order_payload):
    client.post("/api/orders", json=order_payload(order_items=[{"product_id": "prod-gone", "quantity": 1}]))
    with session_factory() as session:
        assert session.query(Order).count() == 0


@pytest.mark.parametrize(
    "item, code",
    [
        ({"quantity": "two"}, "INVALID_ITEM_QUANTITY"),
        ({"quantity": 0}, "INVALID_ITEM_QUANTITY"),
        ({"quantity": -10}, "INVALID_ITEM_QUANTITY"),
        ({"quantity": True}, "INVALID_ITEM_QUANTITY"),
        ({"quantity": 1, "unit_price": "ten"}, None),
        ({"quantity": 1, "unit_price": -100}, "INVALID_ITEM_PRICE"),
    ],
)
def test_bad_item_lines_are_rejected_before_anything_is_written(client, seed, session_factory, stock_of, order_payload,
                                                                 item, code):
    line = {"product_id": "prod-phone", "product_name": "Pixel 8", "subtotal": 200, **item}
    status, body = _error(client.post("/api/orders", json=order_payload(order_items=[line])))

    assert status == 400
    assert body["success"] is False
    if code:
        assert body["error"] == code
    assert stock_of("prod-phone") == 5
    with session_factory() as session:
        assert session.query(Order).count() == 0


def test_whole_number_float_quantity_is_accepted(place_order, stock_of):
    order = place_order(order_items=[{"product_id": "prod-phone", "quantity": 2.0, "unit_price": 100}])
    assert order["order_items"][0]["quantity"] == 2
    assert stock_of("prod-phone") == 3


def test_failed_item_insert_discards_order(client, seed, components, session_factory, monkeypatch, order_payload):
    service = components["order_service"]
    validate = service._validate_products

    def validate_then_delist(items):
        checked = validate(items)
        with session_factory() as session:
            session.query(Product).filter(Product.id == "prod-phone").delete()
        return checked

    monkeypatch.setattr(service, "_validate_products", validate_then_delist)
    status, body = _error(client.post("/api/orders", json=order_payload()))

    assert status == 500
    assert body["error"] == "PRODUCT_NOT_FOUND"
    assert body["message"] == "Failed to create order"
    with session_factory() as session:
        assert session.query(Order).count() == 0


def test_unexpected_item_error_discards_order_and_answers_json(client, seed, session_factory, monkeypatch, order_payload):
    def broken_line_total(item):
        raise RuntimeError("price lookup exploded")

    monkeypatch.setattr(order_module, "_line_total", broken_line_total)
    status, body = _error(client.post("/api/orders", json=order_payload()))

    assert status == 500
    assert body == {"success": False, "message": "Internal server error", "error": "price lookup exploded"}
    with session_factory() as session:
        assert session.query(Order).count() == 0


def test_paystack_order_is_paid_and_links_existing_transaction(client, seed, session_factory, order_payload):
    with session_factory() as session:
        session.add(
            Transaction(
                transaction_reference="PSK-123",
                paystack_reference="PSK-123",
                payment_method="paystack",
                payment_provider="paystack",
                amount=Decimal("220.00"),
                status="paid",
                payment_status="paid",
                customer_email="ama@example.com",
                meta={"channel": "card"},
            )
        )

    response = client.post("/api/orders", json=order_payload(payment_method="paystack", payment_reference="PSK-123"))
    order = response.get_json()["data"]

    assert order["payment_status"] == "paid"
    assert order["shipping_address"]["payment_reference"] == "PSK-123"
    with session_factory() as session:
        rows = session.query(Transaction).all()
        assert len(rows) == 1
        assert rows[0].order_id == order["id"]
        assert rows[0].meta == {"channel": "card", "customer_name": "Ama Mensah", "order_number": order["order_number"]}


def test_pre_order_skips_stock_and_is_tagged(client, seed, http, stock_of, order_payload):
    response = client.post(
        "/api/orders",
        json=order_payload(
            is_pre_order=True,
            pre_order_shipping_option="air_freight",
            estimated_arrival_date="2025-03-10",
            notes="Gift wrap please",
        ),
    )
    order = response.get_json()["data"]

    assert stock_of("prod-phone") == 5
    assert order["is_pre_order"] is True
    assert order["pre_order_shipping_option"] == "air_freight"
    assert order["notes"].startswith("Gift wrap please")
    assert "[PRE-ORDER] Shipping: air_freight. Estimated Arrival: March 10, 2025" in order["notes"]
    assert any(s.startswith("[PRE-ORDER] Order Confirmation") for s in http.subjects())


def test_selling_out_raises_alert(client, seed, http, components, stock_of, order_payload):
    client.post(
        "/api/orders",
        json=order_payload(
            subtotal=50,
            delivery_fee=0,
            total=50,
            order_items=[{"product_id": "prod-case", "product_name": "Phone Case", "quantity": 1, "unit_price": 50}],
        ),
    )

    assert stock_of("prod-case") == 0
    alerts = [n for n in components["notification_service"].list_notifications(unread_only=True) if n["type"] == "alert"]
    assert [n["message"] for n in alerts] == ["Phone Case is now out of stock"]
    alert_mail = next(m for m in http.sent if m["subject"] == "Product Out of Stock: Phone Case")
    assert "noreply@" in alert_mail["from"]


def test_insufficient_stock_does_not_fail_order(client, seed, stock_of, order_payload):
    response = client.post(
        "/api/orders",
        json=order_payload(order_items=[{"product_id": "prod-case", "quantity": 3, "unit_price": 50}], subtotal=150, total=170),
    )
    assert response.status_code == 200
    assert stock_of("prod-case") == 1


def test_coupon_usage_is_recorded(place_order, session_factory):
    order = place_order(coupon_id="coupon-new-year", discount=20, total=200)
    with session_factory() as session:
        usage = session.query(CouponUsage).one()
        assert usage.order_id == order["id"]
        assert usage.discount_amount == Decimal("20.00")
        assert usage.order_total == Decimal("200.00")


def test_email_failures_do_not_fail_order(client, seed, http, order_payload):
    http.fail_status = 500
    response = client.post("/api/orders", json=order_payload())
    assert response.status_code == 200
    assert response.get_json()["success"] is True


def test_guest_confirmation_goes_to_customer_bio(client, seed, http, order_payload):
    client.post(
        "/api/orders",
        json=order_payload(user_id=None, customer_bio={"name": "Yaw", "email": "yaw@example.com", "phone": "0200000000"}),
    )
    confirmation = next(m for m in http.sent if "Order Confirmation" in m["subject"])
    assert confirmation["to"] == "yaw@example.com"


def test_sequential_order_numbers(place_order):
    first = place_order()
    second = place_order()
    assert first["order_number"][4:7] == "001"
    assert second["order_number"][4:7] == "002"
    assert first["order_number"][7:] == second["order_number"][7:]


def test_list_orders_requires_admin(client, seed, place_order, admin_headers, customer_headers):
    place_order()
    place_order(user_id="user-kofi")

    assert client.get("/api/orders").status_code == 401
    assert client.get("/api/orders", headers=customer_headers).status_code == 403

    everything = client.get("/api/orders", headers=admin_headers).get_json()["data"]
    assert len(everything) == 2
    assert everything[0]["created_at"] >= everything[1]["created_at"]

    filtered = client.get("/api/orders?user_id=user-kofi", headers=admin_headers).get_json()["data"]
    assert [o["user_id"] for o in filtered] == ["user-kofi"]


def test_get_order(client, place_order):
    order = place_order()
    assert client.get(f"/api/orders/{order['id']}").get_json()["data"]["order_number"] == order["order_number"]
    missing = client.get("/api/orders/does-not-exist")
    assert missing.status_code == 404
    assert missing.get_json() == {"success": False, "message": "Order not found"}


def test_track_order(client, place_order):
    order = place_order(user_id=None, customer_bio={"name": "Yaw", "email": "Yaw@Example.com"})

    found = client.post("/api/orders/track", json={"order_number_or_id": order["order_number"], "email": " yaw@example.COM "})
    assert found.status_code == 200
    assert found.get_json()["data"]["items"][0]["product_id"] == "prod-phone"

    by_id = client.post("/api/orders/track", json={"order_number_or_id": order["id"], "email": "yaw@example.com"})
    assert by_id.status_code == 200

    wrong = client.post("/api/orders/track", json={"order_number_or_id": order["order_number"], "email": "eve@example.com"})
    unknown = client.post("/api/orders/track", json={"order_number_or_id": "ORD-999010199", "email": "yaw@example.com"})
    assert wrong.status_code == unknown.status_code == 404
    assert wrong.get_json() == unknown.get_json()

    assert client.post("/api/orders/track", json={"email": "yaw@example.com"}).status_code == 400
    assert client.post("/api/orders/track", json={"order_number_or_id": order["order_number"], "email": 42}).status_code == 400
    assert client.post("/api/orders/track", json={"order_number_or_id": 7, "email": "yaw@example.com"}).status_code == 400


def test_status_update_to_cancelled_restores_stock_once(client, place_order, admin_headers, stock_of, http):
    order = place_order()
    assert stock_of("prod-phone") == 3

    response = client.put(
        f"/api/orders/{order['id']}/status",
        json={"status": "cancelled", "tracking_number": "TRK-1"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["status"] == "cancelled"
    assert data["tracking_number"] == "TRK-1"
    assert stock_of("prod-phone") == 5
    assert f"[REGULAR] Order Update - {order['order_number']}" in http.subjects()

    client.put(f"/api/orders/{order['id']}/status", json={"status": "cancelled"}, headers=admin_headers)
    assert stock_of("prod-phone") == 5


def test_refunded_orders_keep_stock_on_cancel(client, place_order, admin_headers, stock_of):
    order = place_order()
    client.put(f"/api/orders/{order['id']}/payment-status", json={"payment_status": "refunded"}, headers=admin_headers)
    client.put(f"/api/orders/{order['id']}/status", json={"status": "cancelled"}, headers=admin_headers)
    assert stock_of("prod-phone") == 3


def test_status_update_validation_and_auth(client, place_order, admin_headers):
    order = place_order()
    assert client.put(f"/api/orders/{order['id']}/status", json={"status": "shipped"}).status_code == 401
    bad = client.put(f"/api/orders/{order['id']}/status", json={"status": "lost"}, headers=admin_headers)
    assert bad.status_code == 400
    missing = client.put("/api/orders/nope/status", json={"status": "shipped"}, headers=admin_headers)
    assert missing.status_code == 404


def test_payment_status_update_mirrors_transactions(client, place_order, admin_headers, session_factory):
    order = place_order()

    bad = client.put(f"/api/orders/{order['id']}/payment-status", json={"payment_status": "settled"}, headers=admin_headers)
    assert bad.status_code == 400
    assert bad.get_json()["message"] == "Invalid payment status. Must be: pending, paid, failed, or refunded"

    ok = client.put(f"/api/orders/{order['id']}/payment-status", json={"payment_status": "paid"}, headers=admin_headers)
    assert ok.get_json()["data"]["payment_status"] == "paid"
    with session_factory() as session:
        txn = session.query(Transaction).filter(Transaction.order_id == order["id"]).one()
        assert txn.payment_status == "paid"
        assert txn.status == "paid"


def test_guest_cancellation_requires_matching_email(client, place_order, stock_of, http):
    order = place_order(user_id=None, customer_bio={"name": "Yaw", "email": "yaw@example.com"})

    assert client.post(f"/api/orders/{order['id']}/cancel", json={}).status_code == 400
    assert client.post(f"/api/orders/{order['id']}/cancel", json={"email": 42}).status_code == 400
    assert client.post(f"/api/orders/{order['id']}/cancel", json={"email": "eve@example.com"}).status_code == 403

    response = client.post(
        f"/api/orders/{order['id']}/cancel",
        json={"email": "YAW@example.com", "cancellation_reason": "Changed my mind"},
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["status"] == "cancelled"
    assert data["notes"].endswith("[CANCELLED] Changed my mind")
    assert stock_of("prod-phone") == 5
    cancellation = next(m for m in http.sent if "Order Cancelled" in m["subject"])
    assert cancellation["to"] == "yaw@example.com"
    assert "Changed my mind" in cancellation["html"]


def test_cancel_pre_order_leaves_stock_alone(client, place_order, stock_of):
    order = place_order(is_pre_order=True)
    client.post(f"/api/orders/{order['id']}/cancel", json={})
    assert stock_of("prod-phone") == 5


def test_download_pdf(client, place_order):
    order = place_order()
    response = client.get(f"/api/orders/{order['id']}/pdf")
    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert response.headers["Content-Disposition"] == f'attachment; filename="order-{order["order_number"]}.pdf"'
    assert response.data.startswith(b"%PDF")
    assert client.get("/api/orders/missing/pdf").status_code == 404


def test_wishlist_reminder(client, seed, components, session_factory, admin_headers, http):
    from storefront.common.models import WishlistItem

    with session_factory() as session:
        session.add(WishlistItem(user_id="user-ama", product_id="prod-case"))
        session.add(WishlistItem(user_id="user-kofi", product_id="prod-case"))

    sent = client.post("/api/orders/reminders/wishlist/user-ama", headers=admin_headers)
    assert sent.status_code == 200
    assert sent.get_json()["data"] == {"success": True}
    reminder = next(m for m in http.sent if m["subject"] == "Items in your wishlist are waiting!")
    assert "Phone Case" in reminder["html"]
    assert "40.00" in reminder["html"]

    skipped = client.post("/api/orders/reminders/wishlist/user-kofi", headers=admin_headers).get_json()["data"]
    assert skipped["skipped"] is True

    components["settings_service"].set("email_wishlist_reminders", "false")
    disabled = client.post("/api/orders/reminders/wishlist/user-ama", headers=admin_headers).get_json()["data"]
    assert disabled["reason"] == "Wishlist reminder emails disabled in settings"

    assert client.post("/api/orders/reminders/wishlist/nobody", headers=admin_headers).status_code == 404


def test_cart_abandonment_reminder(client, seed, admin_headers, http):
    response = client.post(
        "/api/orders/reminders/cart-abandonment",
        json={"user_id": "user-ama", "cart_items": [{"product_name": "Pixel 8", "product_price": 100, "quantity": 1}]},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert "Don't forget your items!" in http.subjects()
    assert client.post("/api/orders/reminders/cart-abandonment", json={}, headers=admin_headers).status_code == 400
