"""SQLAlchemy models for the system of record.

Every synced Instagram row carries the platform's natural ID (or a natural
composite key) under a unique constraint so repeated syncs upsert in place.
"""

import datetime as dt
import uuid

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Base(DeclarativeBase):
    pass


class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    name: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now)


class OAuthSession(Base):
    __tablename__ = "oauth_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    state: Mapped[str] = mapped_column(String(64), unique=True)
    redirect_uri: Mapped[str] = mapped_column(String(512))
    user_id: Mapped[str | None] = mapped_column(ForeignKey("app_users.id"))
    consumed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now)


class IgAccount(Base):
    __tablename__ = "ig_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("app_users.id"), index=True)
    instagram_user_id: Mapped[str] = mapped_column(String(64), unique=True)
    username: Mapped[str] = mapped_column(String(255))
    access_token: Mapped[str | None] = mapped_column(Text)
    long_lived_token: Mapped[str | None] = mapped_column(Text)
    token_expires_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now)

    @property
    def token(self) -> str:
        return self.long_lived_token or self.access_token or ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "instagram_user_id": self.instagram_user_id,
            "username": self.username,
            "token_expires_at": self.token_expires_at.isoformat() if self.token_expires_at else None,
        }


class IgMedia(Base):
    __tablename__ = "ig_media"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ig_account_id: Mapped[str] = mapped_column(ForeignKey("ig_accounts.id"), index=True)
    media_id: Mapped[str] = mapped_column(String(64), unique=True)
    caption: Mapped[str | None] = mapped_column(Text)
    media_type: Mapped[str | None] = mapped_column(String(32))
    media_url: Mapped[str | None] = mapped_column(Text)
    permalink: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    like_count: Mapped[int] = mapped_column(Integer, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, default=0)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    reach: Mapped[int] = mapped_column(Integer, default=0)
    saved: Mapped[int] = mapped_column(Integer, default=0)
    engagement: Mapped[int] = mapped_column(Integer, default=0)


class IgStory(Base):
    __tablename__ = "ig_stories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ig_account_id: Mapped[str] = mapped_column(ForeignKey("ig_accounts.id"), index=True)
    story_id: Mapped[str] = mapped_column(String(64), unique=True)
    media_type: Mapped[str | None] = mapped_column(String(32))
    media_url: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    reach: Mapped[int] = mapped_column(Integer, default=0)
    replies: Mapped[int] = mapped_column(Integer, default=0)
    exits: Mapped[int] = mapped_column(Integer, default=0)


class IgInsightDaily(Base):
    __tablename__ = "ig_insights_daily"
    __table_args__ = (UniqueConstraint("ig_account_id", "date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ig_account_id: Mapped[str] = mapped_column(ForeignKey("ig_accounts.id"), index=True)
    date: Mapped[dt.date] = mapped_column(Date)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    reach: Mapped[int] = mapped_column(Integer, default=0)
    profile_views: Mapped[int] = mapped_column(Integer, default=0)
    follower_count: Mapped[int] = mapped_column(Integer, default=0)


class IgDemographic(Base):
    __tablename__ = "ig_demographics"
    __table_args__ = (UniqueConstraint("ig_account_id", "dimension", "key"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ig_account_id: Mapped[str] = mapped_column(ForeignKey("ig_accounts.id"), index=True)
    dimension: Mapped[str] = mapped_column(String(32))
    key: Mapped[str] = mapped_column(String(255))
    value: Mapped[int] = mapped_column(Integer, default=0)


class WrappedReport(Base):
    __tablename__ = "wrapped_reports"
    __table_args__ = (UniqueConstraint("user_id", "year"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("app_users.id"), index=True)
    year: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(255))
    summary: Mapped[str] = mapped_column(Text)
    slides_json: Mapped[list] = mapped_column(JSON)
    ai_image_ref: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "year": self.year,
            "title": self.title,
            "summary": self.summary,
            "slides": self.slides_json,
            "ai_image_ref": self.ai_image_ref,
        }
