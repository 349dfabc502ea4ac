"""Decode service payloads into entity models.

The service speaks snake_case with Portuguese names for some fields
(``tipo``, ``descricao``, ``nome``, ``conteudo``...). English names are
accepted too so fixtures and newer endpoints decode the same way.
"""
from __future__ import annotations

from typing import Any

from crimesync.models import Group, Pagination, Post, Report, User


def _pick(raw: dict, *names: str, default: Any = None) -> Any:
    for name in names:
        if name in raw and raw[name] is not None:
            return raw[name]
    return default


def _present(raw: dict, *names: str) -> bool:
    return any(name in raw for name in names)


def _id(value: Any) -> str | None:
    return None if value is None else str(value)


def report_from_wire(raw: dict) -> Report:
    return Report(
        id=str(raw["id"]),
        type=_pick(raw, "tipo", "type"),
        description=_pick(raw, "descricao", "description"),
        latitude=_pick(raw, "lat", "latitude"),
        longitude=_pick(raw, "lon", "longitude"),
        created_at=_pick(raw, "created_at", "createdAt"),
        author_display_name=_pick(raw, "author_username", "author_display_name"),
        useful_count=_pick(raw, "useful_count", default=0),
        not_useful_count=_pick(raw, "not_useful_count", default=0),
        user_feedback=_pick(raw, "user_feedback"),
        distance_meters=_pick(raw, "distance_meters"),
        distance_km=_pick(raw, "distance_km"),
    )


def post_from_wire(raw: dict) -> Post:
    return Post(
        id=str(raw["id"]),
        group_id=_id(_pick(raw, "group_id")),
        author_id=_id(_pick(raw, "author_id", "user_id")),
        author_username=_pick(raw, "author_username"),
        group_name=_pick(raw, "group_name"),
        content=_pick(raw, "conteudo", "content"),
        created_at=_pick(raw, "created_at"),
        like_count=_pick(raw, "like_count", "likes_count", default=0),
        dislike_count=_pick(raw, "dislike_count", "dislikes_count", default=0),
        is_liked=bool(_pick(raw, "is_liked", default=False)),
        is_disliked=bool(_pick(raw, "is_disliked", default=False)),
        comment_count=_pick(raw, "comment_count", "comments_count", default=0),
        is_important=bool(_pick(raw, "is_important", default=False)),
        media_url=_pick(raw, "media_url", "image_url"),
    )


def group_from_wire(raw: dict, is_member: bool | None = None) -> Group:
    fields: dict[str, Any] = {
        "id": str(raw["id"]),
        "name": _pick(raw, "nome", "name"),
        "description": _pick(raw, "descricao", "description"),
        "creator_username": _pick(raw, "criador_username", "creator_username"),
        "member_count": _pick(raw, "member_count", default=0),
        "created_at": _pick(raw, "created_at"),
    }
    # Only set the flag when someone actually knows it, so the cache can keep
    # its own value otherwise (see GroupCache._merge_values)
    if is_member is not None:
        fields["is_member"] = is_member
    elif _present(raw, "is_member"):
        fields["is_member"] = bool(raw["is_member"])
    return Group(**fields)


def user_from_wire(raw: dict) -> User:
    return User(
        id=str(raw["id"]),
        username=raw["username"],
        email=raw["email"],
        created_at=_pick(raw, "created_at"),
    )


def pagination_from_wire(raw: dict | None) -> Pagination:
    raw = raw or {}
    return Pagination(
        page=_pick(raw, "page", default=1),
        limit=_pick(raw, "limit", default=20),
        total=_pick(raw, "total", default=0),
        total_pages=_pick(raw, "totalPages", "total_pages", default=0),
        has_next_page=bool(_pick(raw, "hasNextPage", "has_next_page", default=False)),
        has_prev_page=bool(_pick(raw, "hasPrevPage", "has_prev_page", default=False)),
    )
