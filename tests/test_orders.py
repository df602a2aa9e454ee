from __future__ import annotations

import base64

import pytest
from sqlalchemy import func, select

from canteen.errors import Forbidden, StateConflict, ValidationFailed
from canteen.models import Order, OrderItem
from canteen.ordering import orders
from canteen.schemas import CartLine


def _cart(*pairs):
    return [CartLine(item_id=i, quantity=q) for i, q in pairs]


def test_total_uses_menu_prices(db, make_user, make_item):
    u = make_user()
    dosa = make_item("Masala Dosa", 60)
    tea = make_item("Tea", 15, category="Beverages")

    order = orders.place_order(db, u, _cart((dosa.id, 2), (tea.id, 3)), payment_method="offline")

    assert order.status == "pending"
    assert order.payment_status == "pending"
    assert order.total == 165
    assert [(i.name, i.price, i.quantity, i.total) for i in order.items] == [
        ("Masala Dosa", 60, 2, 120),
        ("Tea", 15, 3, 45),
    ]
    assert order.total == sum(i.total for i in order.items)
    assert u.orders == [order]


def test_line_snapshots_survive_menu_edits(db, make_user, make_item):
    u = make_user()
    item = make_item("Samosa", 20)
    order = orders.place_order(db, u, _cart((item.id, 1)), payment_method="online")

    item.price = 35
    item.name = "Jumbo Samosa"
    db.commit()
    db.refresh(order)

    assert order.items[0].name == "Samosa"
    assert order.items[0].price == 20
    assert order.total == 20


@pytest.mark.parametrize("case", ["missing", "unavailable", "wrong_service"])
def test_bad_line_rejects_whole_cart(db, make_user, make_item, case):
    u = make_user()
    good = make_item("Tea", 15)
    if case == "missing":
        bad_id = good.id + 999
    elif case == "unavailable":
        bad_id = make_item("Biryani", 80, available=False).id
    else:
        bad_id = make_item("Lab Record Cover", 10, service_type="xerox").id

    with pytest.raises(ValidationFailed):
        orders.place_order(db, u, _cart((good.id, 1), (bad_id, 1)), payment_method="offline")

    assert db.scalar(select(func.count()).select_from(Order)) == 0
    assert db.scalar(select(func.count()).select_from(OrderItem)) == 0


def test_empty_cart_is_rejected(db, make_user):
    with pytest.raises(ValidationFailed):
        orders.place_order(db, make_user(), [], payment_method="offline")


def test_owner_can_cancel_pending_order(db, make_user, make_item):
    u = make_user()
    order = orders.place_order(db, u, _cart((make_item().id, 1)), payment_method="offline")

    orders.cancel_order(db, order, u)
    assert order.status == "cancelled"


@pytest.mark.parametrize("status", ["preparing", "ready", "completed", "cancelled"])
def test_cancel_only_from_pending(db, make_user, make_item, status):
    u = make_user()
    order = orders.place_order(db, u, _cart((make_item().id, 1)), payment_method="offline")
    order.status = status
    db.commit()

    with pytest.raises(StateConflict):
        orders.cancel_order(db, order, u)
    db.refresh(order)
    assert order.status == status


def test_stranger_cannot_cancel_but_admin_can(db, make_user, make_item):
    owner, stranger, admin = make_user(), make_user(), make_user("Admin", role="admin")
    order = orders.place_order(db, owner, _cart((make_item().id, 1)), payment_method="offline")

    with pytest.raises(Forbidden):
        orders.cancel_order(db, order, stranger)
    orders.cancel_order(db, order, admin)
    assert order.status == "cancelled"


def test_status_follows_transition_table(db, make_user, make_item):
    u = make_user()
    order = orders.place_order(db, u, _cart((make_item().id, 1)), payment_method="offline")

    for status in ("preparing", "ready", "completed"):
        orders.update_status(db, order, status)
        assert order.status == status

    with pytest.raises(StateConflict):
        orders.update_status(db, order, "cancelled")
    assert [h["status"] for h in order.status_history] == ["pending", "completed"]


def test_skipping_ahead_is_rejected(db, make_user, make_item):
    order = orders.place_order(db, make_user(), _cart((make_item().id, 1)), payment_method="offline")
    with pytest.raises(StateConflict):
        orders.update_status(db, order, "completed")
    with pytest.raises(ValidationFailed):
        orders.update_status(db, order, "delivered")
    assert order.status == "pending"


def test_qr_payload_only_for_canteen(db, make_user, make_item):
    u = make_user()
    order = orders.place_order(db, u, _cart((make_item("Tea", 15).id, 2)), payment_method="offline")

    payload = orders.qr_payload(order)
    assert payload["order_id"] == order.id
    assert payload["user_id"] == u.id
    assert payload["total"] == 30
    assert payload["items"] == [{"name": "Tea", "quantity": 2}]

    xerox_item = make_item("Transparent File", 15, service_type="xerox")
    xo = orders.place_order(db, u, _cart((xerox_item.id, 1)), payment_method="offline", service_type="xerox")
    with pytest.raises(ValidationFailed):
        orders.qr_payload(xo)


# -------------------
# HTTP
# -------------------
def test_place_order_endpoint_ignores_client_price(client, make_user, make_item, headers):
    u = make_user()
    item = make_item("Veg Biryani", 80)

    r = client.post(
        "/api/orders",
        json={
            "items": [{"itemId": item.id, "quantity": 2, "price": 1}],
            "paymentMethod": "online",
            "serviceType": "canteen",
            "specialInstructions": "less spicy",
        },
        headers=headers(u),
    )
    assert r.status_code == 201
    body = r.json()
    assert body["order"]["total"] == 160
    assert body["order"]["special_instructions"] == "less spicy"
    assert body["qr_code_data"]["order_id"] == body["order"]["id"]


def test_place_order_validation_errors(client, make_user, make_item, headers):
    u = make_user()
    item = make_item()

    assert client.post("/api/orders", json={"items": [], "payment_method": "online"}, headers=headers(u)).status_code == 400
    r = client.post(
        "/api/orders",
        json={"items": [{"item_id": item.id, "quantity": 0}], "payment_method": "online"},
        headers=headers(u),
    )
    assert r.status_code == 400
    assert r.json()["detail"]

    r = client.post("/api/orders", json={"items": [{"item_id": item.id, "quantity": 1}], "payment_method": "cash"}, headers=headers(u))
    assert r.status_code == 400


def test_orders_require_token(client):
    assert client.get("/api/orders/my-orders").status_code == 401
    assert client.get("/api/orders/my-orders", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_my_orders_filters_by_service_type(client, db, make_user, make_item, headers):
    u = make_user()
    tea = make_item("Tea", 15)
    cover = make_item("Lab Record Cover", 10, service_type="xerox")
    orders.place_order(db, u, _cart((tea.id, 1)), payment_method="offline")
    orders.place_order(db, u, _cart((cover.id, 1)), payment_method="offline", service_type="xerox")
    orders.place_order(db, make_user(), _cart((tea.id, 1)), payment_method="offline")

    assert len(client.get("/api/orders/my-orders", headers=headers(u)).json()) == 2
    only = client.get("/api/orders/my-orders", params={"service_type": "xerox"}, headers=headers(u)).json()
    assert [o["service_type"] for o in only] == ["xerox"]


def test_order_access_is_owner_or_admin(client, db, make_user, make_item, headers):
    owner, stranger, admin = make_user(), make_user(), make_user("Admin", role="admin")
    order = orders.place_order(db, owner, _cart((make_item().id, 1)), payment_method="offline")

    assert client.get(f"/api/orders/{order.id}", headers=headers(owner)).status_code == 200
    assert client.get(f"/api/orders/{order.id}", headers=headers(stranger)).status_code == 403
    assert client.get(f"/api/orders/{order.id}", headers=headers(admin)).status_code == 200
    assert client.get("/api/orders/9999", headers=headers(admin)).status_code == 404


def test_cancel_endpoint(client, db, make_user, make_item, headers):
    u = make_user()
    order = orders.place_order(db, u, _cart((make_item().id, 1)), payment_method="offline")

    r = client.post(f"/api/orders/{order.id}/cancel", headers=headers(u))
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "cancelled"

    r = client.post(f"/api/orders/{order.id}/cancel", headers=headers(u))
    assert r.status_code == 400
    assert r.json()["detail"] == "Order cannot be cancelled"


def test_status_update_is_admin_only(client, db, make_user, make_item, headers):
    u, admin = make_user(), make_user("Admin", role="admin")
    order = orders.place_order(db, u, _cart((make_item().id, 1)), payment_method="offline")

    assert client.put(f"/api/orders/{order.id}/status", json={"status": "preparing"}, headers=headers(u)).status_code == 403

    r = client.put(f"/api/orders/{order.id}/status", json={"status": "preparing"}, headers=headers(admin))
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "preparing"

    r = client.put(f"/api/orders/{order.id}/status", json={"status": "pending"}, headers=headers(admin))
    assert r.status_code == 400


def test_qr_endpoint_returns_png_data_url(client, db, make_user, make_item, headers):
    u = make_user()
    order = orders.place_order(db, u, _cart((make_item("Coffee", 20).id, 1)), payment_method="offline")

    r = client.get(f"/api/orders/{order.id}/qr", headers=headers(u))
    assert r.status_code == 200
    body = r.json()
    prefix = "data:image/png;base64,"
    assert body["qr_code"].startswith(prefix)
    assert base64.b64decode(body["qr_code"][len(prefix):])[:8] == b"\x89PNG\r\n\x1a\n"
    assert body["order_data"]["items"] == [{"name": "Coffee", "quantity": 1}]


def test_admin_listing_and_stats(client, db, make_user, make_item, headers):
    u, admin = make_user(), make_user("Admin", role="admin")
    item = make_item("Tea", 15)
    first = orders.place_order(db, u, _cart((item.id, 2)), payment_method="offline")
    orders.place_order(db, u, _cart((item.id, 1)), payment_method="offline")
    for status in ("preparing", "ready", "completed"):
        orders.update_status(db, first, status)

    assert client.get("/api/orders/admin/all", headers=headers(u)).status_code == 403

    listed = client.get("/api/orders/admin/all", params={"status": "pending"}, headers=headers(admin)).json()
    assert len(listed) == 1
    assert listed[0]["user"]["email"] == u.email

    stats = client.get("/api/orders/admin/stats", headers=headers(admin)).json()
    assert stats["total_orders"] == 2
    assert stats["completed_orders"] == 1
    assert stats["total_revenue"] == 30
    assert stats["orders_by_status"] == {"completed": 1, "pending": 1}
