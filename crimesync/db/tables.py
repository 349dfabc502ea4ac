"""SQLAlchemy ORM models for the local cache, one table per entity family."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Enum as SAEnum, Float, Index, Integer, String, Text,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from crimesync.models import CrimeType, Feedback

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class UTCDateTime(TypeDecorator):
    """Store UTC, always hand back aware datetimes (SQLite drops tzinfo)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class ReportRow(Base):
    __tablename__ = "crime_reports"

    id = Column(String(64), primary_key=True)
    type = Column(SAEnum(CrimeType), nullable=False)
    description = Column(Text, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    author_display_name = Column(String(200), nullable=True)

    useful_count = Column(Integer, nullable=False, default=0)
    not_useful_count = Column(Integer, nullable=False, default=0)
    user_feedback = Column(SAEnum(Feedback), nullable=False, default=Feedback.NONE)

    distance_meters = Column(Integer, nullable=True)
    distance_km = Column(String(16), nullable=True)

    last_synced_at = Column(UTCDateTime, nullable=False, default=EPOCH)

    __table_args__ = (
        Index("ix_crime_reports_last_synced_at", "last_synced_at"),
        Index("ix_crime_reports_created_at", "created_at"),
    )


class PostRow(Base):
    __tablename__ = "posts"

    id = Column(String(64), primary_key=True)
    group_id = Column(String(64), nullable=True)
    author_id = Column(String(64), nullable=False)
    author_username = Column(String(200), nullable=True)
    group_name = Column(String(200), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False)

    # Engagement
    like_count = Column(Integer, nullable=False, default=0)
    dislike_count = Column(Integer, nullable=False, default=0)
    is_liked = Column(Boolean, nullable=False, default=False)
    is_disliked = Column(Boolean, nullable=False, default=False)
    comment_count = Column(Integer, nullable=False, default=0)
    is_important = Column(Boolean, nullable=False, default=False)
    media_url = Column(String(2000), nullable=True)

    last_synced_at = Column(UTCDateTime, nullable=False, default=EPOCH)

    __table_args__ = (
        Index("ix_posts_group_id", "group_id"),
        Index("ix_posts_author_id", "author_id"),
        Index("ix_posts_last_synced_at", "last_synced_at"),
    )


class GroupRow(Base):
    __tablename__ = "groups"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    creator_username = Column(String(200), nullable=True)
    member_count = Column(Integer, nullable=False, default=0)
    is_member = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=True)

    last_synced_at = Column(UTCDateTime, nullable=False, default=EPOCH)

    __table_args__ = (
        Index("ix_groups_name", "name"),
        Index("ix_groups_last_synced_at", "last_synced_at"),
    )


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    username = Column(String(200), nullable=False)
    email = Column(String(320), nullable=False)
    created_at = Column(UTCDateTime, nullable=True)

    last_synced_at = Column(UTCDateTime, nullable=False, default=EPOCH)

    __table_args__ = (
        Index("ix_users_last_synced_at", "last_synced_at"),
    )
