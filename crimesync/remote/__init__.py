from crimesync.remote.client import (  # noqa: F401
    HttpRemoteClient,
    PostPage,
    RemoteClient,
    RemoteEmpty,
    RemoteFailure,
    RemoteOk,
    RemoteOutcome,
)
