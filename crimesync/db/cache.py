"""Local cache: async CRUD per entity family + change notification.

Writes go through one lock per cache (SQLite has a single writer anyway), so
every upsert/delete/local write is mutually exclusive with every other one.
Reads are not locked.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Generic, Iterable, Optional, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from crimesync.db.engine import create_cache_engine, create_session_factory
from crimesync.db.tables import EPOCH, Base, GroupRow, PostRow, ReportRow, UserRow
from crimesync.models import EntityFamily, Group, Post, Report, User, utcnow

logger = logging.getLogger(__name__)

M = TypeVar("M", Report, Post, Group, User)


def _escape_like(value: str) -> str:
    """Escape LIKE wildcard characters in user input."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ChangeFeed:
    """Monotonic version counter that observers can wait on."""

    def __init__(self):
        self.version = 0
        self._cond = asyncio.Condition()

    async def bump(self):
        async with self._cond:
            self.version += 1
            self._cond.notify_all()

    async def wait_past(self, version: int):
        async with self._cond:
            await self._cond.wait_for(lambda: self.version > version)


class FamilyCache(Generic[M]):
    """CRUD for one entity family. Subclasses set the row/model pair."""

    family: EntityFamily
    row_cls: type
    model_cls: type

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        write_lock: asyncio.Lock,
    ):
        self._sessions = sessions
        self._write_lock = write_lock
        self.changes = ChangeFeed()
        self._columns = [c.name for c in self.row_cls.__table__.columns]

    # ── Conversion ────────────────────────────────────────────────────────

    def _row_to_model(self, row) -> M:
        return self.model_cls.model_validate(
            {name: getattr(row, name) for name in self._columns}
        )

    def _model_to_values(self, entity: M) -> dict:
        data = entity.model_dump()
        return {name: data[name] for name in self._columns if name in data}

    def _merge_values(self, existing, entity: M, values: dict) -> dict:
        """Hook for families that keep some local-only columns across upserts."""
        return values

    def _ordering(self):
        return self.row_cls.created_at.desc()

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get(self, entity_id: str) -> Optional[M]:
        async with self._sessions() as session:
            row = await session.get(self.row_cls, entity_id)
            return self._row_to_model(row) if row else None

    async def _select(self, *criteria) -> list[M]:
        stmt = select(self.row_cls).where(*criteria).order_by(self._ordering())
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return [self._row_to_model(r) for r in result.scalars().all()]

    async def list_all(self) -> list[M]:
        return await self._select()

    async def query(self, **filters) -> list[M]:
        """Filtered read used by fallbacks and observers."""
        if filters:
            raise TypeError(f"{self.family.value} cache has no filters: {sorted(filters)}")
        return await self.list_all()

    async def count(self) -> int:
        async with self._sessions() as session:
            result = await session.execute(select(func.count()).select_from(self.row_cls))
            return result.scalar_one()

    async def count_older_than(self, cutoff: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(self.row_cls)
            .where(self.row_cls.last_synced_at < cutoff)
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    # ── Writes ────────────────────────────────────────────────────────────

    async def upsert(self, entity: M) -> M:
        stored = await self.upsert_many([entity])
        return stored[0]

    async def upsert_many(self, entities: Iterable[M]) -> list[M]:
        """Insert or fully overwrite by id; last_synced_at is set to now."""
        unique: dict[str, M] = {}
        for entity in entities:
            unique[entity.id] = entity
        if not unique:
            return []

        now = utcnow()
        stored: list[M] = []
        async with self._write_lock:
            async with self._sessions() as session:
                for entity in unique.values():
                    values = self._model_to_values(entity)
                    values["last_synced_at"] = now
                    existing = await session.get(self.row_cls, entity.id)
                    if existing is None:
                        session.add(self.row_cls(**values))
                    else:
                        values = self._merge_values(existing, entity, values)
                        for name, value in values.items():
                            if name != "id":
                                setattr(existing, name, value)
                    stored.append(self.model_cls.model_validate(values))
                await session.commit()
        await self.changes.bump()
        logger.debug(f"Cached {len(stored)} {self.family.value}")
        return stored

    async def save_local(self, entity: M) -> M:
        """Overwrite a row without touching last_synced_at (optimistic writes)."""
        async with self._write_lock:
            async with self._sessions() as session:
                values = self._model_to_values(entity)
                existing = await session.get(self.row_cls, entity.id)
                if existing is None:
                    values["last_synced_at"] = entity.last_synced_at or EPOCH
                    session.add(self.row_cls(**values))
                else:
                    values["last_synced_at"] = existing.last_synced_at
                    for name, value in values.items():
                        if name != "id":
                            setattr(existing, name, value)
                await session.commit()
        await self.changes.bump()
        return self.model_cls.model_validate(values)

    async def delete(self, entity_id: str) -> bool:
        async with self._write_lock:
            async with self._sessions() as session:
                result = await session.execute(
                    delete(self.row_cls).where(self.row_cls.id == entity_id)
                )
                await session.commit()
        if result.rowcount:
            await self.changes.bump()
        return bool(result.rowcount)

    async def delete_all(self) -> int:
        async with self._write_lock:
            async with self._sessions() as session:
                result = await session.execute(delete(self.row_cls))
                await session.commit()
        await self.changes.bump()
        return result.rowcount or 0

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete rows whose last_synced_at is strictly before cutoff."""
        async with self._write_lock:
            async with self._sessions() as session:
                result = await session.execute(
                    delete(self.row_cls).where(self.row_cls.last_synced_at < cutoff)
                )
                await session.commit()
        deleted = result.rowcount or 0
        if deleted:
            await self.changes.bump()
        return deleted

    # ── Observation ───────────────────────────────────────────────────────

    async def observe(self, **filters) -> AsyncIterator[list[M]]:
        """Yield the current matching rows, then again after every write.

        Each call is an independent sequence; iterate it again to restart.
        """
        while True:
            version = self.changes.version
            yield await self.query(**filters)
            await self.changes.wait_past(version)


class ReportCache(FamilyCache[Report]):
    family = EntityFamily.REPORTS
    row_cls = ReportRow
    model_cls = Report


class PostCache(FamilyCache[Post]):
    family = EntityFamily.POSTS
    row_cls = PostRow
    model_cls = Post

    async def list_by_group(self, group_id: str) -> list[Post]:
        return await self._select(PostRow.group_id == group_id)

    async def list_by_author(self, author_id: str) -> list[Post]:
        return await self._select(PostRow.author_id == author_id)

    async def query(self, group_id: str | None = None, author_id: str | None = None) -> list[Post]:
        criteria = []
        if group_id is not None:
            criteria.append(PostRow.group_id == group_id)
        if author_id is not None:
            criteria.append(PostRow.author_id == author_id)
        return await self._select(*criteria)


class GroupCache(FamilyCache[Group]):
    family = EntityFamily.GROUPS
    row_cls = GroupRow
    model_cls = Group

    def _merge_values(self, existing, entity: Group, values: dict) -> dict:
        # Listing endpoints don't say whether we're a member; keep what we know
        if "is_member" not in entity.model_fields_set:
            values["is_member"] = existing.is_member
        return values

    async def search(self, term: str) -> list[Group]:
        pattern = f"%{_escape_like(term)}%"
        return await self._select(GroupRow.name.ilike(pattern, escape="\\"))

    async def list_members_of(self) -> list[Group]:
        return await self._select(GroupRow.is_member.is_(True))

    async def query(self, search: str | None = None, member_only: bool = False) -> list[Group]:
        criteria = []
        if search:
            criteria.append(GroupRow.name.ilike(f"%{_escape_like(search)}%", escape="\\"))
        if member_only:
            criteria.append(GroupRow.is_member.is_(True))
        return await self._select(*criteria)

    async def set_membership(self, group_id: str, is_member: bool) -> Optional[Group]:
        """Flip the local membership flag, adjusting member_count by one."""
        group = await self.get(group_id)
        if group is None:
            return None
        if group.is_member == is_member:
            return group
        delta = 1 if is_member else -1
        updated = group.model_copy(update={
            "is_member": is_member,
            "member_count": max(0, group.member_count + delta),
        })
        return await self.save_local(updated)


class UserCache(FamilyCache[User]):
    family = EntityFamily.USERS
    row_cls = UserRow
    model_cls = User

    def _ordering(self):
        return UserRow.last_synced_at.desc()

    async def current(self) -> Optional[User]:
        """The most recently synced user, i.e. the signed-in account."""
        users = await self.list_all()
        return users[0] if users else None


class LocalCache:
    """All family caches over one engine and one write lock."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._sessions = create_session_factory(engine)
        self._write_lock = asyncio.Lock()
        self.reports = ReportCache(self._sessions, self._write_lock)
        self.posts = PostCache(self._sessions, self._write_lock)
        self.groups = GroupCache(self._sessions, self._write_lock)
        self.users = UserCache(self._sessions, self._write_lock)
        self._families = {
            EntityFamily.REPORTS: self.reports,
            EntityFamily.POSTS: self.posts,
            EntityFamily.GROUPS: self.groups,
            EntityFamily.USERS: self.users,
        }

    @classmethod
    def from_url(cls, url: str | None = None) -> "LocalCache":
        return cls(create_cache_engine(url))

    def family(self, family: EntityFamily | str) -> FamilyCache:
        return self._families[EntityFamily(family)]

    @property
    def families(self) -> list[FamilyCache]:
        return list(self._families.values())

    async def create_schema(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()
