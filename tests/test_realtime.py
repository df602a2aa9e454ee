from __future__ import annotations

import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from canteen.ordering import orders
from canteen.realtime import ADMINS_TOPIC, Notifier, SubscriptionRegistry, notifier, topic_for
from canteen.schemas import CartLine


class FakeSocket:
    def __init__(self, broken: bool = False):
        self.sent = []
        self.broken = broken

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)


def test_registry_tracks_topics_both_ways():
    reg = SubscriptionRegistry()
    a, b = FakeSocket(), FakeSocket()
    ca, cb = reg.register(a), reg.register(b)

    reg.subscribe(ca, "queue-1")
    reg.subscribe(cb, "queue-1")
    reg.subscribe(ca, "order-7")

    assert set(reg.subscribers("queue-1")) == {ca, cb}
    assert reg.topics_of(ca) == {"queue-1", "order-7"}

    reg.unsubscribe(ca, "queue-1")
    assert set(reg.subscribers("queue-1")) == {cb}

    reg.drop(cb)
    assert reg.subscribers("queue-1") == {}
    assert len(reg) == 1


def test_subscribe_for_unknown_connection_is_ignored():
    reg = SubscriptionRegistry()
    reg.subscribe("nope", "queue-1")
    assert reg.subscribers("queue-1") == {}


def test_emit_reaches_only_topic_subscribers():
    n = Notifier()
    a, b = FakeSocket(), FakeSocket()
    ca = n.registry.register(a)
    n.registry.register(b)
    n.registry.subscribe(ca, topic_for("queue", 3))

    delivered = asyncio.run(n.emit("queue-3", "queue-updated", {"queue_id": 3}))

    assert delivered == 1
    assert a.sent == [{"event": "queue-updated", "data": {"queue_id": 3}}]
    assert b.sent == []


def test_emit_many_sends_once_per_connection():
    n = Notifier()
    admin = FakeSocket()
    c = n.registry.register(admin)
    n.registry.subscribe(c, "order-1")
    n.registry.subscribe(c, ADMINS_TOPIC)

    asyncio.run(n.emit_many(["order-1", ADMINS_TOPIC], "order-updated", {"order_id": 1, "status": "ready"}))
    assert len(admin.sent) == 1


def test_failed_send_drops_connection_and_spares_the_rest():
    n = Notifier()
    good, dead = FakeSocket(), FakeSocket(broken=True)
    cg, cd = n.registry.register(good), n.registry.register(dead)

    assert asyncio.run(n.broadcast("menu-updated", {})) == 1
    assert good.sent
    assert cd not in n.registry.connections()
    assert cg in n.registry.connections()


# -------------------
# WebSocket endpoint
# -------------------
def test_ws_rejects_missing_or_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws"):
            pass
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?token=garbage"):
            pass


def test_ws_subscribe_and_unsubscribe(client, make_user, headers):
    token = headers(make_user())["Authorization"].split(" ", 1)[1]
    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"action": "join-queue", "id": 4})
        assert ws.receive_json() == {"event": "subscribed", "data": {"topic": "queue-4"}}

        ws.send_json({"action": "leave-queue", "id": 4})
        assert ws.receive_json() == {"event": "unsubscribed", "data": {"topic": "queue-4"}}

        ws.send_json({"action": "dance", "id": 1})
        assert ws.receive_json()["event"] == "error"

        ws.send_text("not json")
        assert ws.receive_json() == {"event": "error", "data": {"detail": "Invalid JSON"}}


def test_ws_queue_subscriber_sees_join(client, make_user, make_queue, headers):
    watcher, joiner = make_user(), make_user()
    q = make_queue()
    token = headers(watcher)["Authorization"].split(" ", 1)[1]

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"action": "join-queue", "id": q.id})
        ws.receive_json()

        assert client.post(f"/api/queue/{q.id}/join", headers=headers(joiner)).status_code == 200

        msg = ws.receive_json()
        assert msg["event"] == "queue-updated"
        assert msg["data"]["queue_id"] == q.id
        assert msg["data"]["current_number"] == 1
        assert [c["user_id"] for c in msg["data"]["customers"]] == [joiner.id]


def test_ws_admin_hears_new_orders(client, make_user, make_item, headers):
    admin, student = make_user("Admin", role="admin"), make_user()
    item = make_item("Tea", 15)
    token = headers(admin)["Authorization"].split(" ", 1)[1]

    with client.websocket_connect(f"/ws?token={token}") as ws:
        # round trip so the connection is registered before the order lands
        ws.send_json({"action": "join-queue", "id": 0})
        ws.receive_json()

        r = client.post(
            "/api/orders",
            json={"items": [{"item_id": item.id, "quantity": 1}], "payment_method": "offline"},
            headers=headers(student),
        )
        assert r.status_code == 201

        msg = ws.receive_json()
        assert msg["event"] == "new-order"
        assert msg["data"]["order"]["total"] == 15


def _token(headers, user):
    return headers(user)["Authorization"].split(" ", 1)[1]


def test_ws_tracking_a_record_needs_owner_or_admin(client, db, make_user, make_item, headers):
    owner, stranger, admin = make_user(), make_user(), make_user("Admin", role="admin")
    order = orders.place_order(db, owner, [CartLine(item_id=make_item().id, quantity=1)], payment_method="offline")

    with client.websocket_connect(f"/ws?token={_token(headers, stranger)}") as ws:
        ws.send_json({"action": "track-order", "id": order.id})
        assert ws.receive_json() == {"event": "error", "data": {"detail": "Access denied"}}

        ws.send_json({"action": "track-xerox", "id": 999})
        assert ws.receive_json() == {"event": "error", "data": {"detail": "Xerox order not found"}}

        ws.send_json({"action": "track-order", "id": "abc"})
        assert ws.receive_json()["event"] == "error"

        # the status change that follows reaches nobody on this socket
        assert client.put(
            f"/api/orders/{order.id}/status", json={"status": "preparing"}, headers=headers(admin)
        ).status_code == 200
        ws.send_json({"action": "join-queue", "id": 1})
        assert ws.receive_json()["event"] == "subscribed"

    for user in (owner, admin):
        with client.websocket_connect(f"/ws?token={_token(headers, user)}") as ws:
            ws.send_json({"action": "track-order", "id": order.id})
            assert ws.receive_json() == {"event": "subscribed", "data": {"topic": f"order-{order.id}"}}


def test_ws_owner_hears_status_of_tracked_order(client, db, make_user, make_item, headers):
    owner, admin = make_user(), make_user("Admin", role="admin")
    order = orders.place_order(db, owner, [CartLine(item_id=make_item().id, quantity=1)], payment_method="offline")

    with client.websocket_connect(f"/ws?token={_token(headers, owner)}") as ws:
        ws.send_json({"action": "track-order", "id": order.id})
        ws.receive_json()

        client.put(f"/api/orders/{order.id}/status", json={"status": "preparing"}, headers=headers(admin))
        assert ws.receive_json() == {
            "event": "order-updated",
            "data": {"order_id": order.id, "status": "preparing"},
        }


def test_ws_admin_topic_follows_stored_role(client, db, make_user, headers):
    admin = make_user("Admin", role="admin")
    token = _token(headers, admin)

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"action": "join-queue", "id": 1})
        ws.receive_json()
        assert len(notifier.registry.subscribers(ADMINS_TOPIC)) == 1

    # demoted after the token was issued
    admin.role = "student"
    db.commit()

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"action": "join-queue", "id": 1})
        ws.receive_json()
        assert notifier.registry.subscribers(ADMINS_TOPIC) == {}
