import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Cookie, Depends, HTTPException, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import notifications
from config import settings
from database import collection, create_document, now_utc, serialize
from logger import get_logger
from schemas import ChangePasswordRequest, SigninRequest, SignupRequest, User, VerifyOtpRequest

logger = get_logger("auth")

router = APIRouter()
security = HTTPBearer(auto_error=False)

TOKEN_TTL = timedelta(days=7)
OTP_TTL = timedelta(minutes=10)
BCRYPT_ROUNDS = 12
JWT_ALGORITHM = "HS256"
AUTH_COOKIE = "auth-token"
MIN_PASSWORD_LENGTH = 6
_FALLBACK_SECRET = "fallback-secret-for-build"


# ----- Helpers -----

@dataclass
class AuthUser:
    user_id: ObjectId
    email: str


def _jwt_secret() -> str:
    if settings.jwt_secret:
        return settings.jwt_secret
    if settings.is_production:
        raise RuntimeError("JWT_SECRET is required in production")
    return _FALLBACK_SECRET


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


def create_access_token(user_id: ObjectId, email: str) -> str:
    payload = {
        "userId": str(user_id),
        "email": email,
        "exp": datetime.now(timezone.utc) + TOKEN_TTL,
    }
    return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[AuthUser]:
    try:
        payload = jwt.decode(token, _jwt_secret(), algorithms=[JWT_ALGORITHM])
        return AuthUser(user_id=ObjectId(payload["userId"]), email=payload.get("email", ""))
    except (jwt.PyJWTError, InvalidId, KeyError, TypeError):
        return None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_cookie: Optional[str] = Cookie(None, alias=AUTH_COOKIE),
) -> AuthUser:
    token = credentials.credentials if credentials else auth_cookie
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = decode_access_token(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def _issue_otp(user_filter: dict, email: str, purpose: str) -> None:
    otp = generate_otp()
    collection("users").update_one(
        user_filter,
        {"$set": {"otp": otp, "otpExpiry": now_utc() + OTP_TTL, "updatedAt": now_utc()}},
    )
    notifications.send_otp_email(email, otp, purpose=purpose)


# ----- Auth Endpoints -----

@router.post("/api/auth/signup", status_code=201)
def signup(payload: SignupRequest):
    email = payload.email.strip().lower()
    users = collection("users")
    if users.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists")

    otp = generate_otp()
    try:
        notifications.send_otp_email(email, otp, purpose="verify")
    except notifications.NotificationError:
        logger.exception("[AUTH] Failed to send signup OTP to %s", email)
        raise HTTPException(status_code=500, detail="Failed to send verification email. Please try again.")

    user = User(email=email, password=hash_password(payload.password), otp=otp, otpExpiry=now_utc() + OTP_TTL)
    create_document("users", user)
    logger.info("[AUTH] Signup pending verification for %s", email)
    return {"message": "User created successfully. Please check your email for OTP."}


@router.post("/api/auth/verify-otp")
def verify_otp(payload: VerifyOtpRequest):
    email = payload.email.strip().lower()
    users = collection("users")
    user = users.find_one({"email": email, "otp": payload.otp.strip(), "otpExpiry": {"$gt": now_utc()}})
    if not user:
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")

    users.update_one(
        {"_id": user["_id"]},
        {"$set": {"isVerified": True, "updatedAt": now_utc()}, "$unset": {"otp": "", "otpExpiry": ""}},
    )
    logger.info("[AUTH] Email verified for %s", email)
    return {"message": "Email verified successfully", "token": create_access_token(user["_id"], user["email"])}


@router.post("/api/auth/signin")
def signin(payload: SigninRequest):
    email = payload.email.strip().lower()
    user = collection("users").find_one({"email": email})
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("isVerified"):
        raise HTTPException(status_code=401, detail="Please verify your email first")
    if not verify_password(payload.password, user["password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"message": "Sign in successful", "token": create_access_token(user["_id"], user["email"])}


@router.post("/api/auth/signout")
def signout(response: Response):
    response.delete_cookie(AUTH_COOKIE)
    return {"message": "Signed out"}


@router.post("/api/auth/change-password")
def change_password(payload: ChangePasswordRequest, current: AuthUser = Depends(get_current_user)):
    users = collection("users")
    user = users.find_one({"_id": current.user_id})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if not payload.otp:
        if not payload.currentPassword or not payload.newPassword:
            raise HTTPException(status_code=400, detail="Current password and new password are required")
        if not verify_password(payload.currentPassword, user["password"]):
            raise HTTPException(status_code=400, detail="Current password is incorrect")
        if len(payload.newPassword) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=400, detail="New password must be at least 6 characters long")
        try:
            _issue_otp({"_id": user["_id"]}, user["email"], purpose="password")
        except notifications.NotificationError:
            logger.exception("[AUTH] Failed to send password-change OTP to %s", user["email"])
            raise HTTPException(status_code=500, detail="Failed to send OTP email")
        return {"message": "OTP sent to your email", "requiresOTP": True}

    expiry = user.get("otpExpiry")
    if not user.get("otp") or user["otp"] != payload.otp.strip() or not expiry or expiry < now_utc():
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")
    if not payload.newPassword or len(payload.newPassword) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="New password must be at least 6 characters long")

    users.update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password": hash_password(payload.newPassword), "updatedAt": now_utc()},
            "$unset": {"otp": "", "otpExpiry": ""},
        },
    )
    logger.info("[AUTH] Password changed for %s", user["email"])
    return {"message": "Password changed successfully"}


@router.get("/api/user/profile")
def profile(current: AuthUser = Depends(get_current_user)):
    user = collection("users").find_one(
        {"_id": current.user_id},
        {"password": 0, "otp": 0, "otpExpiry": 0},
    )
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": serialize(user)}
