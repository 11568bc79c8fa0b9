"""ProjectHub Backend — clients for the hosted rows, storage, auth and change feed."""

from projecthub.backend.auth import AuthClient, AuthUser
from projecthub.backend.client import BackendClient, BackendResponse, Filter, Query
from projecthub.backend.realtime import ChangeEvent, ChangeFeed, Channel, RealtimeListener, parse_change
from projecthub.backend.storage import Bucket, StorageClient

__all__ = [
    "BackendClient",
    "BackendResponse",
    "Query",
    "Filter",
    "StorageClient",
    "Bucket",
    "AuthClient",
    "AuthUser",
    "ChangeFeed",
    "Channel",
    "ChangeEvent",
    "RealtimeListener",
    "parse_change",
]
