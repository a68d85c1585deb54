import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

import config
from errors import Forbidden, Unauthorized
from schemas import TokenPayload

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

RESET_PURPOSE = "password_reset"


# Utilities

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def _encode(data: Dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Issue a session token for a stored user document."""
    payload = {
        "id": str(user.get("_id") or user.get("id")),
        "role": user.get("role", "user"),
        "email": user["email"],
        "userName": user["userName"],
    }
    return _encode(payload, expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))


def create_reset_token(user_id: str) -> str:
    return _encode(
        {"id": user_id, "purpose": RESET_PURPOSE},
        timedelta(minutes=config.RESET_TOKEN_EXPIRE_MINUTES),
    )


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise Unauthorized("Invalid or expired token")


def decode_reset_token(token: str) -> str:
    payload = decode_token(token)
    if payload.get("purpose") != RESET_PURPOSE or not payload.get("id"):
        raise Unauthorized("Invalid or expired token")
    return payload["id"]


# OTP

def generate_otp() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(config.OTP_LENGTH))


def hash_otp(otp: str) -> str:
    return hmac.new(config.OTP_SECRET.encode(), otp.encode(), hashlib.sha256).hexdigest()


def otp_matches(otp: str, digest: str) -> bool:
    return hmac.compare_digest(hash_otp(otp), digest)


# Dependencies

def get_current_user(authorization: Optional[str] = Header(default=None)) -> TokenPayload:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("No token provided")
    token = authorization.split(" ", 1)[1]
    payload = decode_token(token)
    if payload.get("purpose"):
        raise Unauthorized("Invalid token")
    try:
        return TokenPayload.model_validate(payload)
    except ValidationError:
        raise Unauthorized("Invalid token")


def require_roles(*roles: str):
    def dependency(current_user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
        if current_user.role not in roles:
            raise Forbidden("Access denied: insufficient role")
        return current_user

    return dependency


def require_owner_or_roles(*roles: str):
    def dependency(user_id: str, current_user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
        if current_user.id != user_id and current_user.role not in roles:
            raise Forbidden("Access denied: not owner or insufficient role")
        return current_user

    return dependency


def require_same_user(user_id: str, current_user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
    if current_user.id != user_id:
        raise Forbidden("You are not authorized to access this resource")
    return current_user
