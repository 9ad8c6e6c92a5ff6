import secrets
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Request, Response, Depends
from sqlalchemy.orm import Session

from . import config
from .db import get_db, now_utc
from .errors import UnauthorizedError
from .models import User

# ------------------------------------------------------------------------------
# Passwords
# ------------------------------------------------------------------------------
def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    """OAuth-only accounts have no hash and never match."""
    if not hashed or plain is None:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # malformed hash in the row
        return False

# ------------------------------------------------------------------------------
# JWT
# ------------------------------------------------------------------------------
def make_jwt(claims: dict, secret: str, expires_in: timedelta) -> str:
    issued = now_utc()
    payload = {**claims, "iat": issued, "exp": issued + expires_in}
    return jwt.encode(payload, secret, algorithm=config.JWT_ALGORITHM)


def decode_jwt(token: str, secret: str, expected_type: str) -> dict:
    """
    Verify signature + expiry and check the token type claim.
    Raises jwt.InvalidTokenError on any failure.
    """
    payload = jwt.decode(token, secret, algorithms=[config.JWT_ALGORITHM])
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError("wrong token type")
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("missing subject")
    return payload


def new_token_id() -> str:
    return secrets.token_hex(16)

# ------------------------------------------------------------------------------
# Request helpers
# ------------------------------------------------------------------------------
def get_token_from_request(request: Request) -> Optional[str]:
    """
    Access token from:
    1. Cookie: access_token
    2. Header: Authorization: Bearer <token>
    """
    token = request.cookies.get(config.ACCESS_TOKEN_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header[:7].lower() == "bearer ":
            token = auth_header[7:].strip()
    return token or None


def current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Require a valid access token (cookie or bearer) that resolves to a live user."""
    token = get_token_from_request(request)
    if not token:
        raise UnauthorizedError("Not authenticated")
    try:
        payload = decode_jwt(token, config.JWT_SECRET, "access")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid or expired access token")
    user = db.get(User, payload["sub"])
    if not user:
        raise UnauthorizedError("User not found")
    return user

# ------------------------------------------------------------------------------
# Cookie helpers
# ------------------------------------------------------------------------------
def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    same_site = "strict" if config.IS_PRODUCTION else "lax"
    response.set_cookie(
        key=config.ACCESS_TOKEN_COOKIE,
        value=access_token,
        httponly=True,
        secure=config.IS_PRODUCTION,
        samesite=same_site,
        max_age=int(config.JWT_EXPIRES_IN.total_seconds()),
        path="/",
    )
    response.set_cookie(
        key=config.REFRESH_TOKEN_COOKIE,
        value=refresh_token,
        httponly=True,
        secure=config.IS_PRODUCTION,
        samesite=same_site,
        max_age=int(config.JWT_REFRESH_EXPIRES_IN.total_seconds()),
        path="/",
    )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(config.ACCESS_TOKEN_COOKIE, path="/", httponly=True)
    response.delete_cookie(config.REFRESH_TOKEN_COOKIE, path="/", httponly=True)
