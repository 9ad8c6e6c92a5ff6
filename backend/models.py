import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from .db import Base, now_utc

LINK_SOURCES = ("instagram", "facebook", "twitter", "tiktok", "youtube", "linkedin", "other")
LINK_CATEGORIES = ("nature", "cooking", "food", "sports", "music", "tech", "entertainment", "other")


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=True)  # bcrypt hash, NULL for OAuth-only accounts
    avatar = Column(String(500), nullable=True)
    role = Column(String(50), nullable=False, default="user")
    oauth_provider = Column(String(50), nullable=True)
    oauth_id = Column(String(255), nullable=True, index=True)
    # jti of the one refresh token that may still be exchanged
    refresh_token_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    links = relationship("Link", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)


class Link(Base):
    __tablename__ = "links"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    url = Column(String(2048), nullable=False)
    source = Column(String(20), nullable=False, default="other")  # one of LINK_SOURCES
    title = Column(String(500), nullable=True)
    category = Column(String(50), nullable=True)
    thumbnail_url = Column(String(2048), nullable=True)

    created_at = Column(DateTime(timezone=True), default=now_utc, index=True)

    user = relationship("User", back_populates="links")
