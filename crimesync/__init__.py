"""CrimeSync: offline-first sync core for crowdsourced incident reports."""
from crimesync.client import CrimeSync  # noqa: F401
from crimesync.result import Failed, Fresh, Result, Stale, Staleness  # noqa: F401

__version__ = "1.0.0"
