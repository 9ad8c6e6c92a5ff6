"""
Server-side authentication: register / login / refresh / logout, profile and
password changes, and account lookup for OAuth sign-in.

Every method works on the session it is given and keeps no state of its own,
so one instance can serve concurrent requests.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import config
from .errors import ConflictError, UnauthorizedError, ValidationError, NotFoundError
from .logging_config import get_logger
from .models import User
from .security import hash_password, verify_password, make_jwt, decode_jwt, new_token_id

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH = "Invalid or expired refresh token"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def as_dict(self) -> dict:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatar": user.avatar,
        "role": user.role,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
    }


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def _find_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()

    def register(self, name: str, email: str, password: str) -> Tuple[User, TokenPair]:
        email_n = normalize_email(email)
        if self._find_by_email(email_n):
            raise ConflictError("User with this email already exists")

        user = User(name=(name or "").strip(), email=email_n, password=hash_password(password))
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            # lost a race with a concurrent signup for the same address
            self.db.rollback()
            raise ConflictError("User with this email already exists")

        tokens = self.generate_tokens(user)
        logger.info(f"registered user {user.id}")
        return user, tokens

    def login(self, email: str, password: str) -> Tuple[User, TokenPair]:
        user = self._find_by_email(email)
        # same message for unknown email, OAuth-only account and wrong password
        if not user or not verify_password(password, user.password):
            raise UnauthorizedError(INVALID_CREDENTIALS)
        return user, self.generate_tokens(user)

    def validate_user(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def refresh_token(self, refresh_token: str) -> TokenPair:
        try:
            payload = decode_jwt(refresh_token, config.JWT_REFRESH_SECRET, "refresh")
        except jwt.InvalidTokenError as e:
            logger.info(f"refresh rejected: {e}")
            raise UnauthorizedError(INVALID_REFRESH)

        user = self.validate_user(payload["sub"])
        if not user:
            raise UnauthorizedError(INVALID_REFRESH)
        # rotation: only the most recently issued refresh token is accepted
        if not user.refresh_token_id or payload.get("jti") != user.refresh_token_id:
            logger.info(f"refresh rejected for user {user.id}: token already rotated")
            raise UnauthorizedError(INVALID_REFRESH)

        return self.generate_tokens(user)

    def generate_tokens(self, user: User) -> TokenPair:
        claims = {"sub": user.id, "email": user.email}
        jti = new_token_id()
        access = make_jwt({**claims, "type": "access"}, config.JWT_SECRET, config.JWT_EXPIRES_IN)
        refresh = make_jwt({**claims, "type": "refresh", "jti": jti}, config.JWT_REFRESH_SECRET, config.JWT_REFRESH_EXPIRES_IN)
        user.refresh_token_id = jti
        self.db.commit()
        return TokenPair(access_token=access, refresh_token=refresh)

    def logout(self, user: User) -> None:
        user.refresh_token_id = None
        self.db.commit()

    def update_profile(self, user_id: str, name: Optional[str] = None, avatar: Optional[str] = None) -> User:
        user = self.validate_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        if name is not None:
            user.name = name.strip()
        if avatar is not None:
            user.avatar = avatar.strip() or None
        self.db.commit()
        self.db.refresh(user)
        return user

    def update_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = self.validate_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        if not verify_password(current_password, user.password):
            raise ValidationError("Current password is incorrect", errors={"currentPassword": ["Current password is incorrect"]})
        if verify_password(new_password, user.password):
            raise ValidationError(
                "New password must be different from the current password",
                errors={"newPassword": ["New password must be different from the current password"]},
            )
        user.password = hash_password(new_password)
        self.db.commit()

    def oauth_login(self, provider: str, oauth_id: str, email: str, name: str = "", avatar: Optional[str] = None) -> Tuple[User, TokenPair]:
        """Sign in with an external identity, linking or creating the local account."""
        email_n = normalize_email(email)
        if not email_n:
            raise UnauthorizedError("OAuth account has no email")

        user = self.db.execute(
            select(User).where(User.oauth_provider == provider, User.oauth_id == oauth_id)
        ).scalar_one_or_none()
        if not user:
            user = self._find_by_email(email_n)
            if user:
                user.oauth_provider = provider
                user.oauth_id = oauth_id
                if avatar and not user.avatar:
                    user.avatar = avatar
            else:
                user = User(
                    name=(name or email_n.split("@")[0]).strip()[:100],
                    email=email_n,
                    password=None,
                    avatar=avatar or None,
                    oauth_provider=provider,
                    oauth_id=oauth_id,
                )
                self.db.add(user)
            self.db.flush()
            logger.info(f"linked {provider} identity to user {user.id}")

        return user, self.generate_tokens(user)
