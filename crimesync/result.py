"""Tagged result for read paths: fresh data, stale data + error, or error alone.

Callers branch on the variant class (or ``match``) rather than on nullable
fields, so the cached-data-riding-along-with-an-error case can't be mistaken
for a success.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

from crimesync.errors import SyncError

T = TypeVar("T")


class Staleness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class Fresh(Generic[T]):
    """Remote call succeeded; data was written through to the cache.

    ``meta`` carries side-band info from the response, e.g. pagination.
    """
    data: T
    meta: Any = None

    ok = True
    staleness = Staleness.FRESH

    @property
    def error(self) -> Optional[SyncError]:
        return None


@dataclass(frozen=True)
class Stale(Generic[T]):
    """Remote call failed; data is the best-effort cached copy."""
    data: T
    error: SyncError

    ok = False
    staleness = Staleness.STALE


@dataclass(frozen=True)
class Failed:
    """Remote call failed and nothing usable was cached.

    ``empty`` is what ``data`` reads as: ``[]`` for list reads, ``None`` for
    single-entity reads.
    """
    error: SyncError
    empty: Any = None

    ok = False
    staleness = Staleness.STALE

    @property
    def data(self) -> Any:
        return self.empty


Result = Union[Fresh[T], Stale[T], Failed]


def from_cache(cached: Any, error: SyncError, empty: Any = None) -> Result:
    """Build the failure variant given whatever the cache returned."""
    if cached:
        return Stale(data=cached, error=error)
    return Failed(error=error, empty=empty)
