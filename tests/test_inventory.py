from bson import ObjectId

from inventory import POSITIVE_MESSAGE, REQUIRED_MESSAGE


def test_create_and_list(client, auth_headers, mongo, make_item):
    item_id = make_item("Serum", quantity=4, price=250, shadesCode="S-12", paymentStatus="Paid", expiryDate="2025-06-30T00:00:00Z")

    items = client.get("/api/inventory", headers=auth_headers).json()["inventory"]

    assert len(items) == 1
    assert items[0]["_id"] == item_id
    assert items[0]["total"] == 1000
    assert items[0]["paymentStatus"] == "Paid"
    stored = mongo.inventory.find_one({"_id": ObjectId(item_id)})
    assert stored["expiryDate"].tzinfo is None
    assert stored["dateEntered"] is not None


def test_payment_status_defaults_to_unpaid(client, auth_headers, make_item):
    make_item()
    assert client.get("/api/inventory", headers=auth_headers).json()["inventory"][0]["paymentStatus"] == "Unpaid"


def test_missing_fields(client, auth_headers):
    resp = client.post("/api/inventory", json={"name": "Gel", "quantity": 2}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == REQUIRED_MESSAGE


def test_non_positive_numbers(client, auth_headers):
    body = {"name": "Gel", "brandName": "X", "category": "Hair", "quantity": 0, "stockIn": 3, "pricePerUnit": 10}
    resp = client.post("/api/inventory", json=body, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == POSITIVE_MESSAGE


def test_update_recomputes_total(client, auth_headers, mongo, make_item):
    item_id = make_item("Gel", quantity=2, price=50)
    body = {"name": "Gel", "brandName": "X", "category": "Hair", "quantity": 6, "stockIn": 6, "pricePerUnit": 40}

    resp = client.put(f"/api/inventory/{item_id}", json=body, headers=auth_headers)

    assert resp.status_code == 200
    stored = mongo.inventory.find_one({"_id": ObjectId(item_id)})
    assert stored["total"] == 240
    assert stored["brandName"] == "X"


def test_other_owner_cannot_touch_item(client, other_headers, make_item):
    item_id = make_item()
    body = {"name": "Gel", "brandName": "X", "category": "Hair", "quantity": 1, "stockIn": 1, "pricePerUnit": 1}

    assert client.get("/api/inventory", headers=other_headers).json()["inventory"] == []
    assert client.put(f"/api/inventory/{item_id}", json=body, headers=other_headers).status_code == 404
    resp = client.delete(f"/api/inventory/{item_id}", headers=other_headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == "Inventory item not found"


def test_delete(client, auth_headers, mongo, make_item):
    item_id = make_item()
    assert client.delete(f"/api/inventory/{item_id}", headers=auth_headers).status_code == 200
    assert mongo.inventory.count_documents({}) == 0
    assert client.delete(f"/api/inventory/{item_id}", headers=auth_headers).status_code == 404
