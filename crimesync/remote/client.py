"""Remote API boundary: abstract client + httpx implementation.

Every call returns a tagged outcome instead of raising:

    RemoteOk(body)      2xx with a decoded body
    RemoteEmpty()       2xx with nothing in it (204, empty payload)
    RemoteFailure(err)  non-2xx status or transport error

Timeouts and connection failures are both ``Unreachable``; retry/timeout
policy is the httpx client's, nothing above this layer adds its own.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

import httpx
from pydantic import ValidationError

from config.settings import settings
from crimesync.errors import ErrorKind, SyncError, classify_status
from crimesync.models import CrimeType, Feedback, Group, Pagination, Post, Report, User
from crimesync.remote.wire import (
    group_from_wire,
    pagination_from_wire,
    post_from_wire,
    report_from_wire,
    user_from_wire,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RemoteOk(Generic[T]):
    body: T


@dataclass(frozen=True)
class RemoteEmpty:
    pass


@dataclass(frozen=True)
class RemoteFailure:
    error: SyncError

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @property
    def status(self) -> Optional[int]:
        return self.error.status


RemoteOutcome = Union[RemoteOk[T], RemoteEmpty, RemoteFailure]


@dataclass(frozen=True)
class PostPage:
    posts: list[Post]
    pagination: Pagination


class RemoteClient(ABC):
    """The authoritative API, as consumed by the sync core."""

    # Reports
    @abstractmethod
    async def fetch_nearby_reports(
        self, latitude: float, longitude: float, radius_km: float
    ) -> RemoteOutcome[list[Report]]: ...

    @abstractmethod
    async def fetch_report(self, report_id: str) -> RemoteOutcome[Report]: ...

    @abstractmethod
    async def create_report(
        self,
        crime_type: CrimeType,
        description: str,
        latitude: float,
        longitude: float,
        anonymous: bool = False,
    ) -> RemoteOutcome[Report]: ...

    @abstractmethod
    async def submit_feedback(self, report_id: str, feedback: Feedback) -> RemoteOutcome[Any]: ...

    # Groups
    @abstractmethod
    async def fetch_groups(self, search: str | None = None) -> RemoteOutcome[list[Group]]: ...

    @abstractmethod
    async def fetch_group(self, group_id: str) -> RemoteOutcome[Group]: ...

    @abstractmethod
    async def create_group(
        self, name: str, description: str | None = None
    ) -> RemoteOutcome[Group]: ...

    @abstractmethod
    async def join_group(self, group_id: str) -> RemoteOutcome[Any]: ...

    @abstractmethod
    async def leave_group(self, group_id: str) -> RemoteOutcome[Any]: ...

    # Posts
    @abstractmethod
    async def fetch_group_posts(
        self, group_id: str, page: int = 1, limit: int = 20
    ) -> RemoteOutcome[PostPage]: ...

    @abstractmethod
    async def fetch_user_feed(self, page: int = 1, limit: int = 20) -> RemoteOutcome[PostPage]: ...

    @abstractmethod
    async def fetch_post(self, post_id: str) -> RemoteOutcome[Post]: ...

    @abstractmethod
    async def create_post(
        self, group_id: str, content: str, media_url: str | None = None
    ) -> RemoteOutcome[Post]: ...

    @abstractmethod
    async def delete_post(self, post_id: str) -> RemoteOutcome[Any]: ...

    @abstractmethod
    async def like_post(self, post_id: str) -> RemoteOutcome[Any]: ...

    @abstractmethod
    async def dislike_post(self, post_id: str) -> RemoteOutcome[Any]: ...

    # Users
    @abstractmethod
    async def fetch_profile(self) -> RemoteOutcome[User]: ...

    async def close(self):
        pass


def _decode_list(decode: Callable[[dict], T]) -> Callable[[Any], list[T]]:
    def decoder(payload: Any) -> list[T]:
        return [decode(item) for item in _data(payload) or []]
    return decoder


def _decode_one(decode: Callable[[dict], T]) -> Callable[[Any], T]:
    def decoder(payload: Any) -> T:
        return decode(_data(payload))
    return decoder


def _decode_page(payload: Any) -> PostPage:
    posts = [post_from_wire(item) for item in _data(payload) or []]
    pagination = pagination_from_wire(payload.get("pagination") if isinstance(payload, dict) else None)
    return PostPage(posts=posts, pagination=pagination)


def _data(payload: Any) -> Any:
    """Unwrap the {"success": ..., "data": ...} envelope when present."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def _server_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return ""
    if isinstance(payload, dict):
        return str(payload.get("message") or payload.get("error") or "")
    return ""


class HttpRemoteClient(RemoteClient):
    """RemoteClient over httpx with a bearer token."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        token = token if token is not None else settings.API_TOKEN
        headers = {"Accept": "application/json", "User-Agent": "CrimeSync/1.0"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            headers=headers,
            transport=transport,
        )

    def set_token(self, token: str):
        """Swap the bearer token after the app re-authenticates."""
        self.client.headers["Authorization"] = f"Bearer {token}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        decode: Callable[[Any], Any] | None = None,
    ) -> RemoteOutcome:
        try:
            resp = await self.client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out: {e}")
            return RemoteFailure(SyncError.unreachable(f"Request timed out: {e}"))
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            return RemoteFailure(SyncError.unreachable(f"Connection error: {e}"))
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} unreadable response: {e}")
            return RemoteFailure(SyncError(kind=ErrorKind.UNKNOWN, message=f"Bad response: {e}"))

        if not resp.is_success:
            return RemoteFailure(SyncError.from_status(resp.status_code, _server_message(resp)))

        if resp.status_code == 204 or not resp.content:
            return RemoteEmpty()

        try:
            payload = resp.json()
        except ValueError:
            return RemoteFailure(SyncError(
                kind=ErrorKind.UNKNOWN, message="Malformed response body", status=resp.status_code,
            ))

        if isinstance(payload, dict) and payload.get("success") is False:
            return RemoteFailure(SyncError(
                kind=ErrorKind.UNKNOWN,
                message=str(payload.get("message") or "Request was not successful"),
                status=resp.status_code,
            ))

        if decode is None:
            data = _data(payload)
            return RemoteOk(body=data) if data is not None else RemoteEmpty()

        try:
            return RemoteOk(body=decode(payload))
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"{method} {path}: unexpected response shape: {e}")
            return RemoteFailure(SyncError(
                kind=ErrorKind.UNKNOWN,
                message=f"Unexpected response shape: {e}",
                status=resp.status_code,
            ))

    # ── Reports ───────────────────────────────────────────────────────────

    async def fetch_nearby_reports(self, latitude, longitude, radius_km):
        return await self._request(
            "GET", "/api/reports/nearby",
            params={"latitude": latitude, "longitude": longitude, "radius_km": radius_km},
            decode=_decode_list(report_from_wire),
        )

    async def fetch_report(self, report_id):
        return await self._request(
            "GET", f"/api/reports/{report_id}", decode=_decode_one(report_from_wire),
        )

    async def create_report(self, crime_type, description, latitude, longitude, anonymous=False):
        return await self._request(
            "POST", "/api/reports",
            json={
                "tipo": CrimeType(crime_type).value,
                "descricao": description,
                "latitude": latitude,
                "longitude": longitude,
                "is_anonymous": anonymous,
            },
            decode=_decode_one(report_from_wire),
        )

    async def submit_feedback(self, report_id, feedback):
        return await self._request(
            "POST", f"/api/reports/{report_id}/feedback",
            json={"feedback": Feedback(feedback).value},
        )

    # ── Groups ────────────────────────────────────────────────────────────

    async def fetch_groups(self, search=None):
        params = {"search": search} if search else None
        return await self._request(
            "GET", "/api/groups", params=params, decode=_decode_list(group_from_wire),
        )

    async def fetch_group(self, group_id):
        return await self._request(
            "GET", f"/api/groups/{group_id}", decode=_decode_one(group_from_wire),
        )

    async def create_group(self, name, description=None):
        body = {"nome": name}
        if description is not None:
            body["descricao"] = description
        return await self._request(
            "POST", "/api/groups", json=body,
            decode=_decode_one(lambda raw: group_from_wire(raw, is_member=True)),
        )

    async def join_group(self, group_id):
        return await self._request("POST", f"/api/groups/{group_id}/join")

    async def leave_group(self, group_id):
        return await self._request("POST", f"/api/groups/{group_id}/leave")

    # ── Posts ─────────────────────────────────────────────────────────────

    async def fetch_group_posts(self, group_id, page=1, limit=20):
        return await self._request(
            "GET", f"/api/groups/{group_id}/posts",
            params={"page": page, "limit": limit}, decode=_decode_page,
        )

    async def fetch_user_feed(self, page=1, limit=20):
        return await self._request(
            "GET", "/api/feed", params={"page": page, "limit": limit}, decode=_decode_page,
        )

    async def fetch_post(self, post_id):
        return await self._request(
            "GET", f"/api/posts/{post_id}", decode=_decode_one(post_from_wire),
        )

    async def create_post(self, group_id, content, media_url=None):
        body = {"conteudo": content}
        if media_url:
            body["media_url"] = media_url
        return await self._request(
            "POST", f"/api/groups/{group_id}/posts", json=body,
            decode=_decode_one(post_from_wire),
        )

    async def delete_post(self, post_id):
        return await self._request("DELETE", f"/api/posts/{post_id}")

    async def like_post(self, post_id):
        return await self._request("POST", f"/api/posts/{post_id}/like")

    async def dislike_post(self, post_id):
        return await self._request("POST", f"/api/posts/{post_id}/dislike")

    # ── Users ─────────────────────────────────────────────────────────────

    async def fetch_profile(self):
        def decode(payload):
            if isinstance(payload, dict) and "user" in payload:
                return user_from_wire(payload["user"])
            return user_from_wire(_data(payload))
        return await self._request("GET", "/api/auth/profile", decode=decode)

    async def close(self):
        await self.client.aclose()
