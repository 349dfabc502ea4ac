"""Sync repositories. Fetch from the API, write through to the cache, fall
back to cached rows when the API can't be reached.

Read paths never raise for remote failures or bad input; they return one of
``Fresh`` / ``Stale`` / ``Failed`` (see ``crimesync.result``).
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional

from config.settings import settings
from crimesync import geo
from crimesync.db.cache import FamilyCache, LocalCache
from crimesync.errors import ErrorKind, InvalidInput
from crimesync.models import (
    GROUP_NAME_MAX,
    POST_CONTENT_MAX,
    REPORT_DESCRIPTION_MAX,
    CrimeType,
    EntityFamily,
    Group,
    Post,
    Report,
    User,
)
from crimesync.remote import RemoteClient, RemoteEmpty, RemoteOk, RemoteOutcome
from crimesync.result import Failed, Fresh, Result, from_cache
from crimesync.sync.background import BackgroundTasks
from crimesync.sync.locks import KeyedLock

logger = logging.getLogger(__name__)

# Operation-specific wording for errors the caller will show
NEARBY_MESSAGES = {
    ErrorKind.UNREACHABLE: "No connection. Showing saved reports.",
}
CREATE_REPORT_MESSAGES = {
    ErrorKind.INVALID: f"Invalid data. Check the type and description (max {REPORT_DESCRIPTION_MAX} chars).",
}
GROUP_POSTS_MESSAGES = {
    ErrorKind.FORBIDDEN: "You are not a member of this group.",
    ErrorKind.NOT_FOUND: "Group not found.",
}
CREATE_POST_MESSAGES = {
    ErrorKind.FORBIDDEN: "You are not a member of this group.",
    ErrorKind.INVALID: f"Invalid content (max {POST_CONTENT_MAX} characters).",
    ErrorKind.NOT_FOUND: "Group not found.",
}
DELETE_POST_MESSAGES = {
    ErrorKind.FORBIDDEN: "Only the author can delete this post.",
    ErrorKind.NOT_FOUND: "Post not found.",
}
CREATE_GROUP_MESSAGES = {
    ErrorKind.CONFLICT: "A group with this name already exists.",
    ErrorKind.INVALID: "Invalid group name.",
}
JOIN_GROUP_MESSAGES = {
    ErrorKind.NOT_FOUND: "Group not found.",
    ErrorKind.CONFLICT: "You are already a member of this group.",
}
LEAVE_GROUP_MESSAGES = {
    ErrorKind.NOT_FOUND: "Group not found.",
    ErrorKind.INVALID: "You are not a member of this group.",
}


class SyncRepository:
    """Fetch-then-cache orchestration for one entity family."""

    family: EntityFamily

    def __init__(
        self,
        remote: RemoteClient,
        cache: LocalCache,
        locks: KeyedLock | None = None,
        tasks: BackgroundTasks | None = None,
    ):
        self.remote = remote
        self.cache = cache
        self.locks = locks or KeyedLock()
        self.tasks = tasks or BackgroundTasks()

    @property
    def store(self) -> FamilyCache:
        return self.cache.family(self.family)

    def lock_key(self, entity_id: str) -> tuple[str, str]:
        return (self.family.value, entity_id)

    # ── Write-through ─────────────────────────────────────────────────────

    async def write_through(self, entities: Iterable[Any]) -> list:
        """Batch upsert, serialized against reactions on the same ids."""
        entities = list(entities)
        if not entities:
            return []
        async with self.locks.hold_many(self.lock_key(e.id) for e in entities):
            return await self.store.upsert_many(entities)

    async def write_one(self, entity: Any) -> Any:
        stored = await self.write_through([entity])
        return stored[0]

    # ── Core read operation ───────────────────────────────────────────────

    async def fetch_and_cache(
        self,
        remote_call: Callable[[], Awaitable[RemoteOutcome]],
        cache_read: Callable[[], Awaitable[Any]],
        cache_write: Callable[[Any], Awaitable[Any]],
        *,
        empty: Any = None,
        messages: dict[ErrorKind, str] | None = None,
        meta: Callable[[Any], Any] | None = None,
        operation: str = "",
    ) -> Result:
        """Fresh data on success (already cached), cached data + error on failure.

        The remote call and the write-through run as one detached task, so a
        caller that gives up waiting doesn't stop the response being cached.
        """
        async def fetch_then_write():
            outcome = await remote_call()
            if isinstance(outcome, RemoteOk):
                return outcome, await cache_write(outcome.body)
            return outcome, None

        outcome, stored = await self.tasks.run_to_completion(
            fetch_then_write(), name=f"fetch:{self.family.value}:{operation}"
        )

        if isinstance(outcome, RemoteOk):
            return Fresh(data=stored, meta=meta(outcome.body) if meta else None)
        if isinstance(outcome, RemoteEmpty):
            return Fresh(data=empty)

        error = outcome.error.with_context(messages)
        cached = await cache_read()
        logger.warning(
            f"{operation or self.family.value}: remote failed ({error}); "
            f"serving {len(cached) if isinstance(cached, list) else int(cached is not None)} cached",
            extra={"family": self.family.value, "error_kind": error.kind.value},
        )
        return from_cache(cached, error, empty)

    async def _mutate(
        self,
        remote_call: Callable[[], Awaitable[RemoteOutcome]],
        on_success: Callable[[Any], Awaitable[Any]],
        *,
        messages: dict[ErrorKind, str] | None = None,
        operation: str = "",
    ) -> Result:
        """Remote-first writes: nothing is cached unless the server accepted it."""
        async def call_then_apply():
            outcome = await remote_call()
            if isinstance(outcome, (RemoteOk, RemoteEmpty)):
                body = outcome.body if isinstance(outcome, RemoteOk) else None
                return outcome, await on_success(body)
            return outcome, None

        outcome, applied = await self.tasks.run_to_completion(
            call_then_apply(), name=f"mutate:{self.family.value}:{operation}"
        )
        if isinstance(outcome, (RemoteOk, RemoteEmpty)):
            return Fresh(data=applied)

        error = outcome.error.with_context(messages)
        logger.warning(
            f"{operation or self.family.value}: {error}",
            extra={"family": self.family.value, "error_kind": error.kind.value},
        )
        return Failed(error=error)

    async def get_cached(self, entity_id: str):
        return await self.store.get(entity_id)

    def observe(self, **filters) -> AsyncIterator[list]:
        return self.store.observe(**filters)


class ReportRepository(SyncRepository):
    family = EntityFamily.REPORTS

    async def get_reports_near(
        self, latitude: float, longitude: float, radius_km: float = 5.0
    ) -> Result:
        try:
            geo.validate_coordinates(latitude, longitude)
            geo.validate_radius(radius_km)
        except InvalidInput as e:
            return Failed(error=e.to_error(), empty=[])

        center = (latitude, longitude)

        async def cache_write(reports: list[Report]) -> list[Report]:
            # The server filters too; re-filter so only in-radius rows are
            # cached and every row carries its distance
            return await self.write_through(geo.filter_within_radius(center, radius_km, reports))

        async def cache_read() -> list[Report]:
            return geo.filter_within_radius(center, radius_km, await self.cache.reports.list_all())

        return await self.fetch_and_cache(
            lambda: self.remote.fetch_nearby_reports(latitude, longitude, radius_km),
            cache_read,
            cache_write,
            empty=[],
            messages=NEARBY_MESSAGES,
            operation="nearby",
        )

    async def get_report(self, report_id: str) -> Result:
        return await self.fetch_and_cache(
            lambda: self.remote.fetch_report(report_id),
            lambda: self.cache.reports.get(report_id),
            self.write_one,
            operation="report",
        )

    async def create_report(
        self,
        crime_type: CrimeType | str,
        description: str,
        latitude: float,
        longitude: float,
        anonymous: bool = False,
    ) -> Result:
        try:
            crime_type = _valid_crime_type(crime_type)
            description = _bounded_text(description, REPORT_DESCRIPTION_MAX, "Description")
            geo.validate_coordinates(latitude, longitude)
        except InvalidInput as e:
            return Failed(error=e.to_error())

        async def on_success(report: Optional[Report]):
            return await self.write_one(report) if report is not None else None

        return await self._mutate(
            lambda: self.remote.create_report(crime_type, description, latitude, longitude, anonymous),
            on_success,
            messages=CREATE_REPORT_MESSAGES,
            operation="create_report",
        )

    async def cached_reports(self) -> list[Report]:
        return await self.cache.reports.list_all()

    def observe_reports(self) -> AsyncIterator[list[Report]]:
        return self.cache.reports.observe()


class PostRepository(SyncRepository):
    family = EntityFamily.POSTS

    async def get_group_posts(self, group_id: str, page: int = 1, limit: int | None = None) -> Result:
        limit = limit or settings.FEED_PAGE_SIZE
        return await self.fetch_and_cache(
            lambda: self.remote.fetch_group_posts(group_id, page, limit),
            lambda: self.cache.posts.list_by_group(group_id),
            lambda page_: self.write_through(page_.posts),
            empty=[],
            messages=GROUP_POSTS_MESSAGES,
            meta=lambda page_: page_.pagination,
            operation="group_posts",
        )

    async def get_user_feed(self, page: int = 1, limit: int | None = None) -> Result:
        limit = limit or settings.FEED_PAGE_SIZE
        return await self.fetch_and_cache(
            lambda: self.remote.fetch_user_feed(page, limit),
            self.cache.posts.list_all,
            lambda page_: self.write_through(page_.posts),
            empty=[],
            meta=lambda page_: page_.pagination,
            operation="feed",
        )

    async def get_post(self, post_id: str) -> Result:
        return await self.fetch_and_cache(
            lambda: self.remote.fetch_post(post_id),
            lambda: self.cache.posts.get(post_id),
            self.write_one,
            operation="post",
        )

    async def create_post(self, group_id: str, content: str, media_url: str | None = None) -> Result:
        try:
            content = _bounded_text(content, POST_CONTENT_MAX, "Content")
        except InvalidInput as e:
            return Failed(error=e.to_error())

        async def on_success(post: Optional[Post]):
            return await self.write_one(post) if post is not None else None

        return await self._mutate(
            lambda: self.remote.create_post(group_id, content, media_url),
            on_success,
            messages=CREATE_POST_MESSAGES,
            operation="create_post",
        )

    async def delete_post(self, post_id: str) -> Result:
        async def on_success(_body):
            async with self.locks.hold(self.lock_key(post_id)):
                return await self.cache.posts.delete(post_id)

        return await self._mutate(
            lambda: self.remote.delete_post(post_id),
            on_success,
            messages=DELETE_POST_MESSAGES,
            operation="delete_post",
        )

    @staticmethod
    def can_delete_post(post: Post, user_id: str | None) -> bool:
        return user_id is not None and post.author_id == user_id

    def observe_group_posts(self, group_id: str) -> AsyncIterator[list[Post]]:
        return self.cache.posts.observe(group_id=group_id)

    def observe_feed(self) -> AsyncIterator[list[Post]]:
        return self.cache.posts.observe()


class GroupRepository(SyncRepository):
    family = EntityFamily.GROUPS

    async def get_groups(self, search: str | None = None) -> Result:
        if search:
            cache_read = lambda: self.cache.groups.search(search)  # noqa: E731
        else:
            cache_read = self.cache.groups.list_all
        return await self.fetch_and_cache(
            lambda: self.remote.fetch_groups(search),
            cache_read,
            self.write_through,
            empty=[],
            operation="groups",
        )

    async def get_group(self, group_id: str) -> Result:
        return await self.fetch_and_cache(
            lambda: self.remote.fetch_group(group_id),
            lambda: self.cache.groups.get(group_id),
            self.write_one,
            operation="group",
        )

    async def create_group(self, name: str, description: str | None = None) -> Result:
        try:
            name = _bounded_text(name, GROUP_NAME_MAX, "Group name")
        except InvalidInput as e:
            return Failed(error=e.to_error().with_context(CREATE_GROUP_MESSAGES))

        async def on_success(group: Optional[Group]):
            if group is None:
                return None
            return await self.write_one(group.model_copy(update={"is_member": True}))

        return await self._mutate(
            lambda: self.remote.create_group(name, description),
            on_success,
            messages=CREATE_GROUP_MESSAGES,
            operation="create_group",
        )

    async def join_group(self, group_id: str) -> Result:
        return await self._set_membership(group_id, True)

    async def leave_group(self, group_id: str) -> Result:
        return await self._set_membership(group_id, False)

    async def _set_membership(self, group_id: str, is_member: bool) -> Result:
        async def on_success(_body):
            async with self.locks.hold(self.lock_key(group_id)):
                return await self.cache.groups.set_membership(group_id, is_member)

        if is_member:
            call, messages, operation = self.remote.join_group, JOIN_GROUP_MESSAGES, "join_group"
        else:
            call, messages, operation = self.remote.leave_group, LEAVE_GROUP_MESSAGES, "leave_group"
        return await self._mutate(
            lambda: call(group_id), on_success, messages=messages, operation=operation,
        )

    async def get_my_groups(self) -> list[Group]:
        return await self.cache.groups.list_members_of()

    def observe_groups(self, search: str | None = None) -> AsyncIterator[list[Group]]:
        return self.cache.groups.observe(search=search)

    def observe_my_groups(self) -> AsyncIterator[list[Group]]:
        return self.cache.groups.observe(member_only=True)


class UserRepository(SyncRepository):
    family = EntityFamily.USERS

    async def get_profile(self) -> Result:
        return await self.fetch_and_cache(
            self.remote.fetch_profile,
            self.cache.users.current,
            self.write_one,
            operation="profile",
        )

    async def current_user(self) -> Optional[User]:
        return await self.cache.users.current()

    async def is_owner(self, author_id: str) -> bool:
        user = await self.cache.users.current()
        return user is not None and user.id == author_id


def _valid_crime_type(value: CrimeType | str) -> CrimeType:
    try:
        return CrimeType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in CrimeType)
        raise InvalidInput(f"Invalid crime type. Use: {allowed}") from None


def _bounded_text(value: str, max_len: int, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise InvalidInput(f"{label} is required")
    if len(value) > max_len:
        raise InvalidInput(f"{label} must be at most {max_len} characters")
    return value

