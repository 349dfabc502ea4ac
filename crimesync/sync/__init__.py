from crimesync.sync.locks import KeyedLock  # noqa: F401
from crimesync.sync.reactions import ReactionCoordinator, ReactionOutcome  # noqa: F401
from crimesync.sync.reconciler import CacheReconciler, EvictionResult  # noqa: F401
from crimesync.sync.repository import (  # noqa: F401
    GroupRepository,
    PostRepository,
    ReportRepository,
    UserRepository,
)
