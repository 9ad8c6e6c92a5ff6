import re
from typing import Literal, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

LinkSource = Literal["instagram", "facebook", "twitter", "tiktok", "youtube", "linkedin", "other"]
LinkCategory = Literal["nature", "cooking", "food", "sports", "music", "tech", "entertainment", "other"]


def _check_password_strength(v: str) -> str:
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", v):
        raise ValueError("Password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9]", v):
        raise ValueError("Password must contain at least one special character")
    return v


class _CamelModel(BaseModel):
    # clients send camelCase; python code reads snake_case
    model_config = ConfigDict(populate_by_name=True)


class RegisterIn(_CamelModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        if len(v.strip()) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v.strip()

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _check_password_strength(v)


class LoginIn(_CamelModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class RefreshIn(_CamelModel):
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class GoogleAuthIn(_CamelModel):
    id_token: str = Field(alias="idToken", min_length=1)


class UpdateProfileIn(_CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    avatar: Optional[str] = Field(default=None, max_length=500)


class UpdatePasswordIn(_CamelModel):
    current_password: str = Field(alias="currentPassword", min_length=8, max_length=128)
    new_password: str = Field(alias="newPassword", min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _check_password_strength(v)


def _check_http_url(v: str, message: str) -> str:
    v = (v or "").strip()
    parts = urlsplit(v)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        raise ValueError(message)
    return v


class LinkCreate(_CamelModel):
    url: str = Field(min_length=1, max_length=2048)
    source: Optional[LinkSource] = None
    title: Optional[str] = Field(default=None, max_length=500)
    category: Optional[LinkCategory] = None
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl", max_length=2048)

    @field_validator("url")
    @classmethod
    def _url(cls, v: str) -> str:
        return _check_http_url(v, "Please provide a valid URL")

    @field_validator("thumbnail_url")
    @classmethod
    def _thumbnail_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return _check_http_url(v, "thumbnailUrl must be a valid URL")

    @field_validator("title")
    @classmethod
    def _title(cls, v: Optional[str]) -> Optional[str]:
        return (v or "").strip() or None
