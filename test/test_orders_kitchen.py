from decimal import Decimal

import pytest
from sqlmodel import select

from bites import order_routes
from bites.inventory_models import InventoryItem, MenuRecipe, StockMovement, UnitOfMeasure
from bites.models import KitchenTicket, MenuItem, Order, OrderAnalytics, OrderStatus
from bites.order_service import (
    InvalidTransitionError,
    OrderLine,
    check_transition,
    compute_order_status_from_tickets,
    summarize_lines,
)


def _order_body(table=5, items=None):
    items = items or [{"itemName": "Masala Dosa", "quantity": 2, "price_cents": 15000}]
    return {
        "table": table,
        "items": items,
        "price_cents": sum(i["price_cents"] * i["quantity"] for i in items),
    }


@pytest.fixture(name="events_sent")
def events_sent_fixture(monkeypatch):
    sent = []
    monkeypatch.setattr(order_routes, "notify_order_event", lambda event, payload: sent.append((event, payload)) or 0)
    return sent


@pytest.fixture(name="waiter")
def waiter_fixture(login_as):
    return login_as("waiter")


@pytest.fixture(name="chef")
def chef_fixture(login_as):
    return login_as("chef")


def _ticket_ids(client):
    return [t["id"] for t in client.get("/api/v1/kitchenorders").json()]


# ============ PURE HELPERS ============

def test_summarize_lines_first_seen_wins_ties():
    lines = [OrderLine("Dosa", 2, 100), OrderLine("Chai", 1, 50), OrderLine("Chai", 1, 50)]
    assert summarize_lines(lines) == (300, 4, "Dosa", 2)
    assert summarize_lines([OrderLine("Chai", 1, 50), OrderLine("Dosa", 1, 100)])[2:] == ("Chai", 1)
    assert summarize_lines([]) == (0, 0, "N/A", 0)


def test_check_transition_rules():
    assert check_transition(OrderStatus.pending, OrderStatus.preparing) is True
    assert check_transition(OrderStatus.preparing, OrderStatus.preparing) is False
    assert check_transition(OrderStatus.preparing, OrderStatus.cancelled) is True
    with pytest.raises(InvalidTransitionError):
        check_transition(OrderStatus.completed, OrderStatus.received)
    with pytest.raises(InvalidTransitionError):
        check_transition(OrderStatus.served, OrderStatus.cancelled)
    with pytest.raises(InvalidTransitionError):
        check_transition(OrderStatus.cancelled, OrderStatus.pending)


def test_order_status_from_tickets():
    def tickets(*statuses):
        return [KitchenTicket(order_id=1, status=s) for s in statuses]

    assert compute_order_status_from_tickets([]) == OrderStatus.pending
    assert compute_order_status_from_tickets(tickets(OrderStatus.served, OrderStatus.served)) == OrderStatus.served
    assert compute_order_status_from_tickets(tickets(OrderStatus.completed, OrderStatus.served)) == OrderStatus.completed
    assert compute_order_status_from_tickets(tickets(OrderStatus.completed, OrderStatus.pending)) == OrderStatus.preparing
    assert compute_order_status_from_tickets(tickets(OrderStatus.received, OrderStatus.pending)) == OrderStatus.received
    assert compute_order_status_from_tickets(tickets(OrderStatus.cancelled)) == OrderStatus.cancelled
    assert compute_order_status_from_tickets(tickets(OrderStatus.cancelled, OrderStatus.served)) == OrderStatus.served


# ============ TABLE ORDERS ============

def test_new_table_order(waiter, session, events_sent):
    response = waiter.post("/api/v1/order", json=_order_body())
    assert response.status_code == 200
    result = response.json()["result"]
    assert result["isUpdate"] is False
    assert result["message"] == "New order created"
    assert result["order"]["price_cents"] == 30000
    assert result["order"]["items"] == [{"itemName": "Masala Dosa", "quantity": 2, "price_cents": 15000}]

    analytics = session.exec(select(OrderAnalytics)).one()
    assert analytics.total_amount_cents == 30000
    assert analytics.total_items_sold == 2
    assert analytics.top_item_name == "Masala Dosa"

    event, payload = events_sent[0]
    assert event == "new-order"
    assert payload["isUpdate"] is False
    assert payload["kitchenOrder"]["tableNumber"] == 5


def test_second_submission_extends_open_order(waiter, session, events_sent):
    waiter.post("/api/v1/order", json=_order_body())
    response = waiter.post("/api/v1/order", json=_order_body(items=[
        {"itemName": "Masala Dosa", "quantity": 1, "price_cents": 15000},
        {"itemName": "Masala Chai", "quantity": 2, "price_cents": 5000},
    ]))
    result = response.json()["result"]
    assert result["isUpdate"] is True
    assert result["message"] == "Order updated"
    assert result["order"]["price_cents"] == 55000
    assert result["order"]["items"] == [
        {"itemName": "Masala Dosa", "quantity": 3, "price_cents": 15000},
        {"itemName": "Masala Chai", "quantity": 2, "price_cents": 5000},
    ]

    assert len(session.exec(select(Order)).all()) == 1
    assert len(session.exec(select(KitchenTicket)).all()) == 2

    analytics = session.exec(select(OrderAnalytics)).one()
    assert analytics.total_amount_cents == 55000
    assert analytics.total_items_sold == 5
    assert analytics.top_item_name == "Masala Dosa"


def test_other_tables_get_their_own_order(waiter, session, events_sent):
    waiter.post("/api/v1/order", json=_order_body(table=1))
    response = waiter.post("/api/v1/order", json=_order_body(table=2))
    assert response.json()["result"]["isUpdate"] is False
    assert len(session.exec(select(Order)).all()) == 2


@pytest.mark.parametrize("body", [
    None,
    {"items": [{"itemName": "Dosa", "quantity": 1, "price_cents": 100}], "price_cents": 100},
    {"table": 3, "items": [], "price_cents": 0},
    {"table": 3, "items": [{"itemName": "Dosa", "quantity": 0, "price_cents": 100}], "price_cents": 0},
    {"table": 3, "items": [{"itemName": "", "quantity": 1, "price_cents": 100}], "price_cents": 100},
    {"table": "x", "items": [{"itemName": "Dosa", "quantity": 1, "price_cents": 100}], "price_cents": 100},
])
def test_invalid_table_order(waiter, body, events_sent):
    response = waiter.post("/api/v1/order", json=body)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid request data"
    assert events_sent == []


def test_order_requires_permission(login_as, client):
    assert client.post("/api/v1/order", json=_order_body()).status_code == 401
    chef = login_as("chef")
    assert chef.post("/api/v1/order", json=_order_body()).status_code == 403


def test_order_consumes_recipe_stock(waiter, session, events_sent):
    dosa = MenuItem(item_name="Masala Dosa", price_cents=15000, category="Mains")
    batter = InventoryItem(name="Dosa batter", sku="BAT-1", unit=UnitOfMeasure.kilogram, quantity=Decimal("10"))
    session.add(dosa)
    session.add(batter)
    session.commit()
    session.add(MenuRecipe(
        menu_item_id=dosa.id,
        inventory_item_id=batter.id,
        quantity_required=Decimal("200"),
        unit=UnitOfMeasure.gram,
    ))
    session.commit()

    response = waiter.post("/api/v1/order", json=_order_body())
    assert response.status_code == 200

    session.expire_all()
    batter = session.get(InventoryItem, batter.id)
    assert float(batter.quantity) == pytest.approx(9.6)
    movement = session.exec(select(StockMovement)).one()
    assert movement.type.value == "out"
    assert movement.order_id == response.json()["result"]["order"]["id"]


def test_order_detail_and_fetch_rows(waiter, events_sent):
    order_id = waiter.post("/api/v1/order", json=_order_body()).json()["result"]["order"]["id"]

    detail = waiter.get(f"/api/v1/orders/{order_id}").json()
    assert len(detail["tickets"]) == 1
    assert detail["lines"][0]["itemName"] == "Masala Dosa"
    assert waiter.get("/api/v1/orders/999").status_code == 404

    rows = waiter.get("/api/v1/fetchorders").json()
    assert rows[0]["items"] == [{"itemName": "Masala Dosa (2)"}]
    assert rows[0]["tableNumber"] == 5


# ============ ONLINE ORDERS ============

def test_online_checkout(client, session):
    response = client.post("/api/v1/orders", json={
        "username": "guest42",
        "items": [
            {"itemName": "Paneer Tikka", "price_cents": 24000},
            {"itemName": "Masala Chai", "quantity": 2, "price_cents": 5000},
        ],
    })
    assert response.status_code == 201
    order = response.json()["order"]
    assert order["source"] == "online"
    assert order["price_cents"] == 34000
    assert session.exec(select(KitchenTicket)).all() == []


@pytest.mark.parametrize("body", [None, {}, {"items": []}, {"items": [{"itemName": "Dosa", "price_cents": -1}]}])
def test_online_checkout_rejects_empty_cart(client, body):
    response = client.post("/api/v1/orders", json=body)
    assert response.status_code == 400
    assert response.json()["detail"] == "Cart is empty or invalid request."


# ============ KITCHEN ============

def test_kitchen_flow_updates_order(waiter, chef, events_sent):
    order_id = waiter.post("/api/v1/order", json=_order_body()).json()["result"]["order"]["id"]
    [ticket_id] = _ticket_ids(chef)

    response = chef.put(f"/api/v1/kitchenorders/{ticket_id}", json={"status": "preparing"})
    assert response.status_code == 200
    assert response.json()["kitchenOrder"]["status"] == "preparing"
    assert response.json()["order"]["status"] == "preparing"
    assert events_sent[-1][0] == "order-updated"

    backwards = chef.put(f"/api/v1/kitchenorders/{ticket_id}", json={"status": "received"})
    assert backwards.status_code == 400

    chef.put(f"/api/v1/kitchenorders/{ticket_id}", json={"status": "completed"})
    served = waiter.put(f"/api/v1/kitchenorders/{ticket_id}", json={"status": "served"})
    assert served.json()["order"]["status"] == "served"
    assert chef.get(f"/api/v1/orders/{order_id}").json()["status"] == "served"

    cancel = chef.put(f"/api/v1/kitchenorders/{ticket_id}", json={"status": "cancelled"})
    assert cancel.status_code == 400


def test_served_order_is_not_reopened_by_new_submission(waiter, chef, events_sent):
    waiter.post("/api/v1/order", json=_order_body())
    [ticket_id] = _ticket_ids(chef)
    chef.put(f"/api/v1/kitchenorders/{ticket_id}", json={"status": "served"})

    again = waiter.post("/api/v1/order", json=_order_body())
    assert again.json()["result"]["isUpdate"] is False


def test_ticket_status_is_per_ticket(waiter, chef, events_sent):
    waiter.post("/api/v1/order", json=_order_body())
    waiter.post("/api/v1/order", json=_order_body())
    first, second = sorted(_ticket_ids(chef))

    response = chef.put(f"/api/v1/kitchenorders/{first}", json={"status": "completed"})
    assert response.json()["order"]["status"] == "preparing"

    pending = chef.get("/api/v1/kitchenorders", params={"status": "pending"}).json()
    assert [t["id"] for t in pending] == [second]
    assert chef.get("/api/v1/kitchenorders", params={"status": "bogus"}).status_code == 400


def test_kitchen_update_errors(waiter, chef, login_as, events_sent):
    waiter.post("/api/v1/order", json=_order_body())
    [ticket_id] = _ticket_ids(chef)

    missing = chef.put(f"/api/v1/kitchenorders/{ticket_id}", json={})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Status is required"

    bad_id = chef.put("/api/v1/kitchenorders/abc", json={"status": "preparing"})
    assert bad_id.status_code == 400
    assert bad_id.json()["detail"] == "Invalid order ID"

    assert chef.put("/api/v1/kitchenorders/999", json={"status": "preparing"}).status_code == 404
    assert chef.put(f"/api/v1/kitchenorders/{ticket_id}", json={"status": "flying"}).status_code == 400

    cashier = login_as("cashier")
    assert cashier.put(f"/api/v1/kitchenorders/{ticket_id}", json={"status": "preparing"}).status_code == 403


def test_delete_ticket_reduces_order(waiter, chef, events_sent):
    waiter.post("/api/v1/order", json=_order_body())
    waiter.post("/api/v1/order", json=_order_body(items=[{"itemName": "Masala Chai", "quantity": 1, "price_cents": 5000}]))
    first, second = sorted(_ticket_ids(chef))

    response = chef.delete(f"/api/v1/kitchenorders/{second}")
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == second
    assert body["order"]["price_cents"] == 30000
    assert [i["itemName"] for i in body["order"]["items"]] == ["Masala Dosa"]
    assert events_sent[-1][0] == "order-deleted"

    assert _ticket_ids(chef) == [first]
    assert chef.delete(f"/api/v1/kitchenorders/{second}").status_code == 404


def test_delete_ticket_takes_off_the_amount_it_added(waiter, chef, events_sent):
    discounted = {**_order_body(), "price_cents": 27000}
    waiter.post("/api/v1/order", json=discounted)
    extra = _order_body(items=[{"itemName": "Masala Chai", "quantity": 2, "price_cents": 5000}])
    result = waiter.post("/api/v1/order", json={**extra, "price_cents": 9000}).json()["result"]
    assert result["order"]["price_cents"] == 36000

    second = max(_ticket_ids(chef))
    body = chef.delete(f"/api/v1/kitchenorders/{second}").json()
    assert body["order"]["price_cents"] == 27000


# ============ LIVE EVENTS ============

def test_notify_endpoint(waiter, client):
    missing = waiter.post("/api/v1/notify", json={"data": {"x": 1}})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Missing type in payload"

    response = waiter.post("/api/v1/notify", json={"type": "refresh", "data": {"table": 2}})
    assert response.json() == {"success": True, "sentTo": 0}

    assert client.post("/api/v1/notify", json={"type": "refresh"}).status_code == 401


def test_events_stream_requires_login(client):
    assert client.get("/api/v1/events").status_code == 401
