"""Strava OAuth client, cached activity history and polyline codec."""

from .client import ActivityClient, ClientConfig
from .errors import (
    AuthenticationFailed,
    AuthenticationRequired,
    PolylineDecodeError,
    RefreshFailed,
    RefreshUnavailable,
    StravaAPIError,
    TokenInvalid,
    TransportError,
)
from .models import Activity, OAuthCredential
from .polyline import decode as decode_polyline
from .polyline import encode as encode_polyline
from .storage import JsonFileStore, KeyValueStore, MemoryStore
from .transport import HttpResponse, HttpTransport, RequestsTransport

__all__ = [
    "ActivityClient",
    "ClientConfig",
    "Activity",
    "OAuthCredential",
    "decode_polyline",
    "encode_polyline",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "HttpResponse",
    "HttpTransport",
    "RequestsTransport",
    "StravaAPIError",
    "AuthenticationRequired",
    "TokenInvalid",
    "AuthenticationFailed",
    "RefreshUnavailable",
    "RefreshFailed",
    "TransportError",
    "PolylineDecodeError",
]
