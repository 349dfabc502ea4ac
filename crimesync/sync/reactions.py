"""Optimistic reaction toggles (report feedback, post like/dislike).

Every reaction is a three-state machine per (entity, axis): NONE, A or B.
``toggle`` is the only place counter arithmetic happens; the two axes just
map entity fields in and out of a ``Tally``.

A toggle is one logical operation, held under the entity's lock:

    read cached row → toggle → save locally → call API → (reconcile echo)

The local write lands before the API call, so the UI sees it immediately.
When the API call fails the local write stays: the next fetch of that entity
overwrites it with server truth.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from config.settings import settings
from crimesync.db.cache import FamilyCache, LocalCache
from crimesync.errors import ErrorKind, InvalidInput, SyncError
from crimesync.models import EntityFamily, Feedback, Post, Report
from crimesync.remote import RemoteClient, RemoteEmpty, RemoteOk, RemoteOutcome
from crimesync.sync.background import BackgroundTasks
from crimesync.sync.locks import KeyedLock

logger = logging.getLogger(__name__)


class Vote(str, Enum):
    NONE = "none"
    A = "a"
    B = "b"


@dataclass(frozen=True)
class Tally:
    state: Vote
    count_a: int
    count_b: int


def toggle(tally: Tally, action: Vote) -> Tally:
    """Apply one user action to a tally.

    Same state again → back to NONE (−1); from NONE → action (+1); from the
    other side → action (+1) and the old side −1. Counters floor at 0.
    """
    if action not in (Vote.A, Vote.B):
        raise InvalidInput(f"Reaction action must be A or B, not {action!r}")

    if tally.state == action:
        if action == Vote.A:
            return Tally(Vote.NONE, max(0, tally.count_a - 1), tally.count_b)
        return Tally(Vote.NONE, tally.count_a, max(0, tally.count_b - 1))

    count_a, count_b = tally.count_a, tally.count_b
    if action == Vote.A:
        count_a += 1
        if tally.state == Vote.B:
            count_b = max(0, count_b - 1)
    else:
        count_b += 1
        if tally.state == Vote.A:
            count_a = max(0, count_a - 1)
    return Tally(action, count_a, count_b)


# ── Axes ──────────────────────────────────────────────────────────────────────

_FEEDBACK_TO_VOTE = {
    Feedback.NONE: Vote.NONE,
    Feedback.USEFUL: Vote.A,
    Feedback.NOT_USEFUL: Vote.B,
}
_VOTE_TO_FEEDBACK = {vote: feedback for feedback, vote in _FEEDBACK_TO_VOTE.items()}


class ReportFeedbackAxis:
    family = EntityFamily.REPORTS
    echo_fields = ("useful_count", "not_useful_count", "user_feedback")

    @staticmethod
    def tally(report: Report) -> Tally:
        return Tally(
            _FEEDBACK_TO_VOTE[report.user_feedback],
            report.useful_count,
            report.not_useful_count,
        )

    @staticmethod
    def apply(report: Report, tally: Tally) -> Report:
        return report.model_copy(update={
            "user_feedback": _VOTE_TO_FEEDBACK[tally.state],
            "useful_count": tally.count_a,
            "not_useful_count": tally.count_b,
        })


class PostReactionAxis:
    family = EntityFamily.POSTS
    echo_fields = ("like_count", "dislike_count", "is_liked", "is_disliked")

    @staticmethod
    def tally(post: Post) -> Tally:
        if post.is_liked:
            state = Vote.A
        elif post.is_disliked:
            state = Vote.B
        else:
            state = Vote.NONE
        return Tally(state, post.like_count, post.dislike_count)

    @staticmethod
    def apply(post: Post, tally: Tally) -> Post:
        return post.model_copy(update={
            "is_liked": tally.state == Vote.A,
            "is_disliked": tally.state == Vote.B,
            "like_count": tally.count_a,
            "dislike_count": tally.count_b,
        })


Axis = Union[ReportFeedbackAxis, PostReactionAxis]


@dataclass(frozen=True)
class ReactionOutcome:
    """What a toggle left in the cache, plus the error if the API refused it."""
    entity: Optional[Any]
    error: Optional[SyncError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ReactionCoordinator:
    """Serialized optimistic toggles against the local cache + remote."""

    def __init__(
        self,
        remote: RemoteClient,
        cache: LocalCache,
        locks: KeyedLock | None = None,
        tasks: BackgroundTasks | None = None,
        revert_on_failure: bool | None = None,
    ):
        self.remote = remote
        self.cache = cache
        self.locks = locks or KeyedLock()
        self.tasks = tasks or BackgroundTasks()
        if revert_on_failure is None:
            revert_on_failure = settings.REVERT_REACTIONS_ON_FAILURE
        self.revert_on_failure = revert_on_failure

    async def toggle_report_feedback(self, report_id: str, feedback: Feedback | str) -> ReactionOutcome:
        try:
            feedback = Feedback(feedback)
            action = _FEEDBACK_TO_VOTE[feedback]
            if action == Vote.NONE:
                raise InvalidInput("Feedback must be 'useful' or 'not_useful'")
        except ValueError as e:
            return ReactionOutcome(entity=None, error=SyncError(ErrorKind.INVALID, str(e)))

        return await self._run(
            ReportFeedbackAxis, report_id, action,
            lambda: self.remote.submit_feedback(report_id, feedback),
        )

    async def toggle_like(self, post_id: str) -> ReactionOutcome:
        return await self._run(
            PostReactionAxis, post_id, Vote.A, lambda: self.remote.like_post(post_id),
        )

    async def toggle_dislike(self, post_id: str) -> ReactionOutcome:
        return await self._run(
            PostReactionAxis, post_id, Vote.B, lambda: self.remote.dislike_post(post_id),
        )

    async def _run(
        self,
        axis: Axis,
        entity_id: str,
        action: Vote,
        remote_call: Callable[[], Awaitable[RemoteOutcome]],
    ) -> ReactionOutcome:
        # Detached: once the local write has happened the API call must finish
        # even if the caller goes away
        return await self.tasks.run_to_completion(
            self._toggle_locked(axis, entity_id, action, remote_call),
            name=f"reaction:{axis.family.value}:{entity_id}",
        )

    async def _toggle_locked(
        self,
        axis: Axis,
        entity_id: str,
        action: Vote,
        remote_call: Callable[[], Awaitable[RemoteOutcome]],
    ) -> ReactionOutcome:
        store: FamilyCache = self.cache.family(axis.family)
        async with self.locks.hold((axis.family.value, entity_id)):
            current = await store.get(entity_id)
            if current is None:
                return ReactionOutcome(
                    entity=None,
                    error=SyncError(ErrorKind.NOT_FOUND, f"{axis.family.value[:-1].capitalize()} is not cached"),
                )

            optimistic = await store.save_local(axis.apply(current, toggle(axis.tally(current), action)))

            outcome = await remote_call()
            if isinstance(outcome, (RemoteOk, RemoteEmpty)):
                body = outcome.body if isinstance(outcome, RemoteOk) else None
                return ReactionOutcome(entity=await self._reconcile_echo(store, axis, optimistic, body))

            error = outcome.error
            logger.warning(
                f"Reaction on {axis.family.value}/{entity_id} not confirmed: {error}",
                extra={"family": axis.family.value, "entity_id": entity_id, "error_kind": error.kind.value},
            )
            if self.revert_on_failure:
                return ReactionOutcome(entity=await store.save_local(current), error=error)
            return ReactionOutcome(entity=optimistic, error=error)

    async def _reconcile_echo(self, store: FamilyCache, axis: Axis, entity, body: Any):
        """If the ack carries aggregate counts, take them as truth."""
        if not isinstance(body, dict):
            return entity
        echoed = {name: body[name] for name in axis.echo_fields if body.get(name) is not None}
        if not echoed:
            return entity
        try:
            reconciled = type(entity).model_validate({**entity.model_dump(), **echoed})
        except ValidationError as e:
            logger.warning(f"Ignoring malformed reaction echo for {entity.id}: {e}")
            return entity
        if reconciled == entity:
            return entity
        return await store.save_local(reconciled)
