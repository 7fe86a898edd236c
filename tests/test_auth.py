from datetime import timedelta

import jwt
from fastapi.testclient import TestClient

import notifications
from auth import _jwt_secret, decode_access_token
from database import now_utc
from tests.conftest import PASSWORD, insert_user


def _signup(client, email="new@salon.test", password="hunter22"):
    return client.post("/api/auth/signup", json={"email": email, "password": password})


def test_signup_verify_signin(client, mongo, sent_emails):
    resp = _signup(client, email="New@Salon.test")
    assert resp.status_code == 201
    assert sent_emails[0]["to"] == "new@salon.test"

    stored = mongo.users.find_one({"email": "new@salon.test"})
    assert stored["isVerified"] is False
    assert stored["createdAt"] == stored["updatedAt"]
    assert stored["password"] != "hunter22"

    resp = client.post("/api/auth/signin", json={"email": "new@salon.test", "password": "hunter22"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Please verify your email first"

    resp = client.post("/api/auth/verify-otp", json={"email": "new@salon.test", "otp": sent_emails[0]["otp"]})
    assert resp.status_code == 200
    user = decode_access_token(resp.json()["token"])
    assert user.user_id == stored["_id"]
    assert "otp" not in mongo.users.find_one({"_id": stored["_id"]})

    resp = client.post("/api/auth/signin", json={"email": "NEW@salon.test", "password": "hunter22"})
    assert resp.status_code == 200
    assert decode_access_token(resp.json()["token"]).email == "new@salon.test"


def test_duplicate_signup(client, sent_emails):
    _signup(client)
    resp = _signup(client)
    assert resp.status_code == 400
    assert resp.json()["error"] == "User already exists"


def test_signup_email_failure_creates_no_user(client, mongo, monkeypatch):
    def failing(to, otp, purpose="verify"):
        raise notifications.NotificationError("smtp down")

    monkeypatch.setattr(notifications, "send_otp_email", failing)

    resp = _signup(client)

    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to send verification email. Please try again."
    assert mongo.users.count_documents({}) == 0


def test_wrong_or_expired_otp(client, mongo, sent_emails):
    _signup(client)
    resp = client.post("/api/auth/verify-otp", json={"email": "new@salon.test", "otp": "000000"})
    assert resp.status_code == 400

    mongo.users.update_one({"email": "new@salon.test"}, {"$set": {"otpExpiry": now_utc() - timedelta(minutes=1)}})
    resp = client.post("/api/auth/verify-otp", json={"email": "new@salon.test", "otp": sent_emails[0]["otp"]})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid or expired OTP"


def test_signin_rejects_bad_credentials(client, owner):
    resp = client.post("/api/auth/signin", json={"email": "owner@salon.test", "password": "wrong-pass"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid credentials"

    resp = client.post("/api/auth/signin", json={"email": "ghost@salon.test", "password": PASSWORD})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid credentials"


def test_protected_routes_need_token(client):
    resp = client.get("/api/packages")
    assert resp.status_code == 401
    assert resp.json()["error"] == "Authentication required"

    resp = client.get("/api/packages", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid token"


def test_expired_token_is_rejected(client, owner):
    token = jwt.encode(
        {"userId": str(owner), "email": "owner@salon.test", "exp": now_utc() - timedelta(seconds=5)},
        _jwt_secret(),
        algorithm="HS256",
    )
    resp = client.get("/api/bills", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_cookie_auth(client, mongo):
    resp = client.post("/api/auth/signin", json={"email": "owner@salon.test", "password": PASSWORD})
    assert resp.status_code == 401

    insert_user(mongo, "owner@salon.test")
    token = client.post("/api/auth/signin", json={"email": "owner@salon.test", "password": PASSWORD}).json()["token"]
    resp = client.get("/api/user/profile", headers={"Cookie": f"auth-token={token}"})
    assert resp.status_code == 200
    assert resp.json()["user"]["email"] == "owner@salon.test"


def test_profile_hides_secrets(client, auth_headers):
    resp = client.get("/api/user/profile", headers=auth_headers)
    user = resp.json()["user"]
    assert user["email"] == "owner@salon.test"
    assert "password" not in user
    assert "otp" not in user


def test_change_password_two_phases(client, mongo, owner, auth_headers, sent_emails):
    resp = client.post("/api/auth/change-password", json={"currentPassword": "nope", "newPassword": "brandnew"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Current password is incorrect"

    resp = client.post("/api/auth/change-password", json={"currentPassword": PASSWORD, "newPassword": "abc"}, headers=auth_headers)
    assert resp.status_code == 400

    resp = client.post("/api/auth/change-password", json={"currentPassword": PASSWORD, "newPassword": "brandnew"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["requiresOTP"] is True
    assert sent_emails[-1]["purpose"] == "password"

    resp = client.post("/api/auth/change-password", json={"otp": sent_emails[-1]["otp"], "newPassword": "brandnew"}, headers=auth_headers)
    assert resp.status_code == 200

    old = client.post("/api/auth/signin", json={"email": "owner@salon.test", "password": PASSWORD})
    new = client.post("/api/auth/signin", json={"email": "owner@salon.test", "password": "brandnew"})
    assert old.status_code == 401
    assert new.status_code == 200
    assert "otp" not in mongo.users.find_one({"_id": owner})


def test_signout_clears_cookie(client):
    resp = client.post("/api/auth/signout")
    assert resp.status_code == 200
    assert "auth-token" in resp.headers.get("set-cookie", "")


def test_unhandled_errors_render_json(mongo, monkeypatch, auth_headers):
    from main import app
    import packages

    def boom(*args, **kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(packages, "get_documents", boom)
    resp = TestClient(app, raise_server_exceptions=False).get("/api/packages", headers=auth_headers)

    assert resp.status_code == 500
    assert resp.json()["error"] == "Internal server error"
