import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import database
import notifications
from auth import create_access_token, hash_password
from database import now_utc

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


def insert_user(mongo, email: str, verified: bool = True) -> ObjectId:
    now = now_utc()
    return mongo.users.insert_one({
        "email": email,
        "password": PASSWORD_HASH,
        "isVerified": verified,
        "createdAt": now,
        "updatedAt": now,
    }).inserted_id


def bearer(user_id: ObjectId, email: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, email)}"}


@pytest.fixture
def mongo(monkeypatch):
    fake = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", fake)
    return fake


@pytest.fixture
def client(mongo):
    from main import app

    return TestClient(app)


@pytest.fixture
def owner(mongo):
    return insert_user(mongo, "owner@salon.test")


@pytest.fixture
def auth_headers(owner):
    return bearer(owner, "owner@salon.test")


@pytest.fixture
def other_headers(mongo):
    other = insert_user(mongo, "rival@salon.test")
    return bearer(other, "rival@salon.test")


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def fake_send(to, otp, purpose="verify"):
        sent.append({"to": to, "otp": otp, "purpose": purpose})

    monkeypatch.setattr(notifications, "send_otp_email", fake_send)
    return sent


@pytest.fixture
def make_package(client, auth_headers):
    def _make(name="Haircut", headers=None, **pricing):
        if not pricing:
            pricing = {"menPricing": {"basic": 200}}
        resp = client.post(
            "/api/packages",
            json={"name": name, "description": f"{name} service", **pricing},
            headers=headers or auth_headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["packageId"]

    return _make


@pytest.fixture
def make_item(client, auth_headers):
    def _make(name="Shampoo", quantity=5, price=100, headers=None, **extra):
        body = {
            "name": name,
            "brandName": "Loreal",
            "category": "Hair care",
            "quantity": quantity,
            "stockIn": quantity,
            "pricePerUnit": price,
            **extra,
        }
        resp = client.post("/api/inventory", json=body, headers=headers or auth_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    return _make


@pytest.fixture
def make_bill(client, auth_headers):
    def _make(package_id, headers=None, **fields):
        body = {
            "services": [{"packageId": package_id, "gender": "men", "serviceLevel": "basic"}],
            "attendantBy": "Asha",
            **fields,
        }
        return client.post("/api/bills", json=body, headers=headers or auth_headers)

    return _make
