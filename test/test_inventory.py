from decimal import Decimal

import pytest
from sqlmodel import select

from bites.inventory_models import StockMovement, UnitOfMeasure, convert_units
from bites.models import MenuItem


@pytest.fixture(name="manager")
def manager_fixture(login_as):
    return login_as("manager")


def _create_supplier(client, name="Fresh Farms"):
    response = client.post("/api/v1/inventory/suppliers", json={"name": name, "contact": "Ravi", "phone": "555-0100"})
    assert response.status_code == 201
    return response.json()


def _create_item(client, **overrides):
    body = {
        "name": "Basmati Rice",
        "sku": "RICE-01",
        "unit": "kilogram",
        "quantity": 10,
        "reorderLevel": 2,
        "maxCapacity": 50,
    }
    body.update(overrides)
    response = client.post("/api/v1/inventory/items", json=body)
    assert response.status_code == 201, response.text
    return response.json()


# ============ UNITS ============

def test_convert_units():
    assert convert_units(Decimal("1500"), UnitOfMeasure.gram, UnitOfMeasure.kilogram) == Decimal("1.5")
    assert convert_units(Decimal("2"), UnitOfMeasure.liter, UnitOfMeasure.milliliter) == Decimal("2000")
    with pytest.raises(ValueError):
        convert_units(Decimal("1"), UnitOfMeasure.liter, UnitOfMeasure.kilogram)


# ============ ITEMS ============

def test_create_item_with_supplier_and_variants(manager):
    supplier = _create_supplier(manager)
    item = _create_item(
        manager,
        supplierId=supplier["id"],
        variants=[{"size": "5kg bag", "quantity": 2}],
    )
    assert item["supplier"]["name"] == "Fresh Farms"
    assert item["variants"][0]["size"] == "5kg bag"
    assert item["quantity"] == 10
    assert item["isLowStock"] is False

    listed = manager.get("/api/v1/inventory").json()
    assert [i["sku"] for i in listed] == ["RICE-01"]


def test_create_item_validation(manager):
    _create_item(manager)
    duplicate = manager.post("/api/v1/inventory/items", json={"name": "Other", "sku": "RICE-01"})
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "SKU already exists"

    assert manager.post("/api/v1/inventory/items", json={"name": "X", "sku": "X-1", "supplierId": 99}).status_code == 404
    assert manager.post("/api/v1/inventory/items", json={"name": "X", "sku": "X-2", "quantity": -1}).status_code == 422


def test_update_item(manager):
    supplier = _create_supplier(manager)
    item = _create_item(manager, supplierId=supplier["id"])
    _create_item(manager, name="Ghee", sku="GHEE-01")

    updated = manager.put(
        f"/api/v1/inventory/items/{item['id']}",
        json={"reorderLevel": 12, "maxCapacity": 80, "supplierId": None},
    ).json()
    assert updated["reorderLevel"] == 12
    assert updated["maxCapacity"] == 80
    assert updated["supplierId"] is None
    assert updated["isLowStock"] is True

    clash = manager.put(f"/api/v1/inventory/items/{item['id']}", json={"sku": "GHEE-01"})
    assert clash.status_code == 400
    assert manager.put("/api/v1/inventory/items/999", json={"name": "x"}).status_code == 404


def test_delete_item_removes_ledger(manager, session):
    item = _create_item(manager)
    manager.post("/api/v1/inventory/stock", json={"inventoryItemId": item["id"], "type": "in", "quantity": 5})

    assert manager.delete(f"/api/v1/inventory/items/{item['id']}").json()["success"] is True
    assert manager.get("/api/v1/inventory").json() == []
    session.expire_all()
    assert session.exec(select(StockMovement)).all() == []


# ============ STOCK ============

def test_stock_in_and_out(manager):
    supplier = _create_supplier(manager)
    item = _create_item(manager)

    stock_in = manager.post("/api/v1/inventory/stock", json={
        "inventoryItemId": item["id"],
        "type": "in",
        "quantity": 5,
        "price_cents": 45000,
        "supplierId": supplier["id"],
    })
    assert stock_in.status_code == 201
    assert stock_in.json()["item"]["quantity"] == 15
    assert stock_in.json()["transaction"]["supplierName"] == "Fresh Farms"

    stock_out = manager.post("/api/v1/inventory/stock", json={"inventoryItemId": item["id"], "type": "out", "quantity": 4.5})
    assert stock_out.json()["item"]["quantity"] == 10.5

    too_much = manager.post("/api/v1/inventory/stock", json={"inventoryItemId": item["id"], "type": "out", "quantity": 11})
    assert too_much.status_code == 400
    assert too_much.json()["detail"] == "Cannot stock out more than available quantity"

    transactions = manager.get("/api/v1/inventory", params={"type": "transactions"}).json()
    assert [t["type"] for t in transactions] == ["out", "in"]


def test_stock_validation(manager):
    item = _create_item(manager)
    assert manager.post("/api/v1/inventory/stock", json={"inventoryItemId": 999, "type": "in", "quantity": 1}).status_code == 404
    assert manager.post("/api/v1/inventory/stock", json={"inventoryItemId": item["id"], "type": "in", "quantity": 0}).status_code == 422
    assert manager.post("/api/v1/inventory/stock", json={"inventoryItemId": item["id"], "type": "sideways", "quantity": 1}).status_code == 422


def test_wastage(manager):
    item = _create_item(manager)
    response = manager.post("/api/v1/inventory/wastage", json={"inventoryItemId": item["id"], "quantity": 1.5, "reason": "spilled"})
    assert response.status_code == 201
    assert response.json()["wastage"]["reason"] == "spilled"
    assert response.json()["item"]["quantity"] == 8.5

    too_much = manager.post("/api/v1/inventory/wastage", json={"inventoryItemId": item["id"], "quantity": 20})
    assert too_much.json()["detail"] == "Cannot waste more than available quantity"


# ============ SUPPLIERS ============

def test_supplier_crud(manager):
    supplier = _create_supplier(manager)
    _create_supplier(manager, name="Aroma Spices")

    updated = manager.put(f"/api/v1/inventory/suppliers/{supplier['id']}", json={"email": "orders@fresh.test"}).json()
    assert updated["email"] == "orders@fresh.test"
    assert updated["name"] == "Fresh Farms"

    names = [s["name"] for s in manager.get("/api/v1/inventory", params={"type": "suppliers"}).json()]
    assert names == ["Aroma Spices", "Fresh Farms"]

    assert manager.delete(f"/api/v1/inventory/suppliers/{supplier['id']}").json()["success"] is True
    assert manager.put("/api/v1/inventory/suppliers/999", json={"name": "x"}).status_code == 404


def test_supplier_update_ignores_null_required_fields(manager):
    supplier = _create_supplier(manager)
    response = manager.put(
        f"/api/v1/inventory/suppliers/{supplier['id']}",
        json={"name": None, "contact": None, "phone": None},
    )
    assert response.status_code == 200
    updated = response.json()
    assert updated["name"] == "Fresh Farms"
    assert updated["contact"] == "Ravi"
    assert updated["phone"] is None


def test_supplier_with_items_cannot_be_deleted(manager):
    supplier = _create_supplier(manager)
    _create_item(manager, supplierId=supplier["id"])
    response = manager.delete(f"/api/v1/inventory/suppliers/{supplier['id']}")
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot delete supplier with associated inventory items"


def test_deleting_supplier_keeps_purchase_history(manager):
    supplier = _create_supplier(manager)
    item = _create_item(manager)
    manager.post("/api/v1/inventory/stock", json={
        "inventoryItemId": item["id"], "type": "in", "quantity": 3, "supplierId": supplier["id"],
    })

    manager.delete(f"/api/v1/inventory/suppliers/{supplier['id']}")
    [movement] = manager.get("/api/v1/inventory", params={"type": "transactions"}).json()
    assert movement["supplierId"] is None
    assert movement["quantity"] == 3


# ============ REPORTS ============

def test_reports(manager):
    item = _create_item(manager)
    _create_item(manager, name="Saffron", sku="SAF-01", unit="gram", quantity=1, reorderLevel=5)
    manager.post("/api/v1/inventory/stock", json={"inventoryItemId": item["id"], "type": "in", "quantity": 5})
    manager.post("/api/v1/inventory/stock", json={"inventoryItemId": item["id"], "type": "out", "quantity": 2})
    manager.post("/api/v1/inventory/stock", json={"inventoryItemId": item["id"], "type": "out", "quantity": 1})
    manager.post("/api/v1/inventory/wastage", json={"inventoryItemId": item["id"], "quantity": 1})

    def report(kind):
        response = manager.get("/api/v1/inventory/reports", params={"type": kind})
        assert response.status_code == 200
        assert response.json()["type"] == kind
        return response.json()["data"]

    assert [row["sku"] for row in report("summary")] == ["RICE-01", "SAF-01"]
    assert len(report("consumption")) == 2
    assert len(report("purchase")) == 1
    assert report("wastage")[0]["quantity"] == 1
    assert report("ingredient-usage") == [
        {"inventoryItemId": item["id"], "name": "Basmati Rice", "unit": "kilogram", "totalUsed": 3},
    ]
    assert [row["sku"] for row in report("low-stock")] == ["SAF-01"]

    invalid = manager.get("/api/v1/inventory/reports", params={"type": "profit"})
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid report type"


def test_inventory_permissions(login_as):
    chef = login_as("chef")
    assert chef.get("/api/v1/inventory").status_code == 200
    assert chef.post("/api/v1/inventory/suppliers", json={"name": "x"}).status_code == 403
    waiter = login_as("waiter")
    assert waiter.get("/api/v1/inventory").status_code == 403


# ============ RECIPES ============

def test_menu_recipe(manager, session):
    item = _create_item(manager)
    dish = MenuItem(item_name="Veg Biryani", price_cents=28000, category="Mains")
    session.add(dish)
    session.commit()

    response = manager.put(f"/api/v1/menu/{dish.id}/recipe", json={"items": [
        {"inventory_item_id": item["id"], "quantity_required": 150, "unit": "gram", "waste_percentage": 10},
    ]})
    assert response.json()["items_count"] == 1

    recipe = manager.get(f"/api/v1/menu/{dish.id}/recipe").json()
    assert recipe["item_name"] == "Veg Biryani"
    assert recipe["items"][0]["inventory_item_name"] == "Basmati Rice"
    assert recipe["items"][0]["quantity_required"] == 150

    missing = manager.put(f"/api/v1/menu/{dish.id}/recipe", json={"items": [
        {"inventory_item_id": 999, "quantity_required": 1, "unit": "gram"},
    ]})
    assert missing.status_code == 404
