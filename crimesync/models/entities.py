"""Entity models: the logical shape of everything the sync core caches."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

REPORT_DESCRIPTION_MAX = 500
POST_CONTENT_MAX = 1000
GROUP_NAME_MAX = 100
ANONYMOUS_AUTHOR = "anonymous"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityFamily(str, Enum):
    REPORTS = "reports"
    POSTS = "posts"
    GROUPS = "groups"
    USERS = "users"


class CrimeType(str, Enum):
    ASSALTO = "Assalto"
    FURTO = "Furto"
    AGRESSAO = "Agressão"
    VANDALISMO = "Vandalismo"
    ROUBO = "Roubo"
    OUTRO = "Outro"


class Feedback(str, Enum):
    NONE = "none"
    USEFUL = "useful"
    NOT_USEFUL = "not_useful"


class _Cached(BaseModel):
    """Shared behaviour: every timestamp is timezone-aware UTC."""

    model_config = ConfigDict(use_enum_values=False)

    last_synced_at: Optional[datetime] = None

    @field_validator("*", mode="after")
    @classmethod
    def normalize_utc(cls, value):
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return value


class Report(_Cached):
    id: str
    type: CrimeType
    description: str = Field(min_length=1, max_length=REPORT_DESCRIPTION_MAX)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    created_at: datetime
    author_display_name: Optional[str] = None
    useful_count: int = Field(default=0, ge=0)
    not_useful_count: int = Field(default=0, ge=0)
    user_feedback: Feedback = Feedback.NONE

    # Display annotations from the nearby read path
    distance_meters: Optional[int] = None
    distance_km: Optional[str] = None

    @field_validator("user_feedback", mode="before")
    @classmethod
    def null_feedback_is_none(cls, value):
        return Feedback.NONE if value is None else value

    @property
    def is_anonymous(self) -> bool:
        return not self.author_display_name or self.author_display_name == ANONYMOUS_AUTHOR


class Post(_Cached):
    id: str
    group_id: Optional[str] = None
    author_id: str
    author_username: Optional[str] = None
    group_name: Optional[str] = None
    content: str = Field(min_length=1, max_length=POST_CONTENT_MAX)
    created_at: datetime
    like_count: int = Field(default=0, ge=0)
    dislike_count: int = Field(default=0, ge=0)
    is_liked: bool = False
    is_disliked: bool = False
    comment_count: int = Field(default=0, ge=0)
    is_important: bool = False
    media_url: Optional[str] = None

    @model_validator(mode="after")
    def check_exclusive_reaction(self):
        if self.is_liked and self.is_disliked:
            raise ValueError("a post cannot be both liked and disliked")
        return self


class Group(_Cached):
    id: str
    name: str = Field(min_length=1, max_length=GROUP_NAME_MAX)
    description: Optional[str] = None
    creator_username: Optional[str] = None
    member_count: int = Field(default=0, ge=0)
    is_member: bool = False
    created_at: Optional[datetime] = None


class User(_Cached):
    id: str
    username: str
    email: str
    created_at: Optional[datetime] = None


class Pagination(BaseModel):
    page: int = 1
    limit: int = 20
    total: int = 0
    total_pages: int = 0
    has_next_page: bool = False
    has_prev_page: bool = False
