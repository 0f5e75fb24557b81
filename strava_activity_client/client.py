"""Strava OAuth client with a cached, fully paginated activity history.

:class:`ActivityClient` owns a single credential (access token, refresh token
and absolute expiry) persisted in an injected :class:`KeyValueStore`. Every
authenticated call checks expiry first and refreshes once when needed; a 401
or a failed refresh clears the credential so the client never keeps a token it
believes to be invalid. The full activity history is cached in the same store
as one JSON value and served until it is an hour old.
"""

from __future__ import annotations

import json
import logging
import threading
import time
import urllib.parse
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from cachetools import TTLCache

from .config import (
    ACCESS_TOKEN_KEY,
    ACTIVITIES_CACHE_KEY,
    ACTIVITIES_CACHE_TIME_KEY,
    ACTIVITY_CACHE_TTL_SECONDS,
    ACTIVITY_PAGE_SIZE,
    ACTIVITY_STREAM_CACHE_SIZE,
    ACTIVITY_STREAM_CACHE_TTL_SECONDS,
    CLIENT_ID,
    CLIENT_SECRET,
    EXPIRES_AT_KEY,
    REDIRECT_URI,
    REFRESH_TOKEN_KEY,
    SCOPE,
    STRAVA_AUTHORIZE_URL,
    STRAVA_BASE_URL,
    STRAVA_OAUTH_URL,
)
from .errors import (
    AuthenticationFailed,
    AuthenticationRequired,
    RefreshFailed,
    RefreshUnavailable,
    TokenInvalid,
    TransportError,
)
from .models import Activity, ActivityCache, OAuthCredential
from .response_handling import describe_failure
from .storage import KeyValueStore
from .transport import HttpTransport, RequestsTransport

LOGGER = logging.getLogger(__name__)

DEFAULT_STREAM_TYPES: Tuple[str, ...] = ("latlng", "altitude", "time")

__all__ = ["ActivityClient", "ClientConfig", "DEFAULT_STREAM_TYPES"]


def _mask_token(token: str | None, visible: int = 4) -> str:
    """Return ``token`` with all but the trailing ``visible`` chars masked."""

    if not token:
        return ""
    visible = max(0, visible)
    if visible == 0:
        return "*" * len(token)
    hidden_length = max(len(token) - visible, 0)
    if hidden_length == 0:
        return token
    return ("*" * hidden_length) + token[-visible:]


@dataclass(frozen=True)
class ClientConfig:
    client_id: str
    client_secret: str
    redirect_uri: str = REDIRECT_URI
    scope: str = SCOPE
    base_url: str = STRAVA_BASE_URL
    authorize_url: str = STRAVA_AUTHORIZE_URL
    token_url: str = STRAVA_OAUTH_URL
    cache_ttl_seconds: int = ACTIVITY_CACHE_TTL_SECONDS

    @classmethod
    def from_env(cls, *, require_credentials: bool = True) -> "ClientConfig":
        """Build a config from ``STRAVA_CLIENT_ID`` / ``STRAVA_CLIENT_SECRET``.

        Pass ``require_credentials=False`` for store-only work such as logout,
        which never calls the token endpoint.
        """

        if require_credentials and (not CLIENT_ID or not CLIENT_SECRET):
            raise RuntimeError(
                "Client credentials not configured "
                "(STRAVA_CLIENT_ID / STRAVA_CLIENT_SECRET missing)"
            )
        return cls(client_id=CLIENT_ID, client_secret=CLIENT_SECRET)


class ActivityClient:
    """Authenticated access to a single athlete's Strava activities."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        store: KeyValueStore,
        transport: HttpTransport | None = None,
        clock: Callable[[], float] = time.time,
        stream_cache_size: int = ACTIVITY_STREAM_CACHE_SIZE,
        stream_cache_ttl: float = ACTIVITY_STREAM_CACHE_TTL_SECONDS,
    ) -> None:
        self._config = config
        self._store = store
        self._transport = transport or RequestsTransport()
        self._clock = clock
        self._refresh_lock = threading.Lock()
        self._streams_lock = threading.Lock()
        self._streams: TTLCache[Tuple[int, Tuple[str, ...]], Any] = TTLCache(
            maxsize=max(1, stream_cache_size), ttl=stream_cache_ttl, timer=clock
        )
        self._access_token: Optional[str] = store.get(ACCESS_TOKEN_KEY) or None

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------
    def get_authorization_url(self, state: str | None = None) -> str:
        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "response_type": "code",
            "scope": self._config.scope,
            "approval_prompt": "force",
        }
        if state:
            params["state"] = state
        return f"{self._config.authorize_url}?{urllib.parse.urlencode(params)}"

    def exchange_code_for_token(self, code: str) -> OAuthCredential:
        """Trade an authorisation code for tokens and persist them.

        Raises:
            AuthenticationFailed: On transport errors, non-2xx responses or a
                token payload missing required fields. Stored credentials are
                left as they were.
        """
        LOGGER.info("Exchanging authorisation code for tokens...")
        payload = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "code": code,
            "grant_type": "authorization_code",
        }
        try:
            resp = self._transport.post(self._config.token_url, json=payload)
        except TransportError as exc:
            LOGGER.error("Token exchange transport error: %s", exc)
            raise AuthenticationFailed("Failed to authenticate with Strava") from exc
        if not resp.ok:
            LOGGER.error(describe_failure("Token exchange", resp))
            raise AuthenticationFailed(
                f"Failed to authenticate with Strava (status {resp.status_code})"
            )
        try:
            credential = _parse_credential(resp.body)
        except ValueError as exc:
            LOGGER.error("Token exchange returned an unusable payload: %s", exc)
            raise AuthenticationFailed("Failed to authenticate with Strava") from exc
        self._save_credential(credential)
        LOGGER.info(
            "Token exchange succeeded: access_token=%s refresh_token=%s expires_at=%s",
            _mask_token(credential.access_token),
            _mask_token(credential.refresh_token),
            credential.expires_at,
        )
        return credential

    def refresh_token(self) -> OAuthCredential:
        """Exchange the stored refresh token for a new credential.

        Raises:
            RefreshUnavailable: No refresh token is stored (no request made).
            RefreshFailed: Strava rejected the refresh or it could not be sent.
                All credential state is cleared before raising.
        """
        with self._refresh_lock:
            return self._refresh_locked()

    def _refresh_locked(self) -> OAuthCredential:
        refresh_token = self._store.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            raise RefreshUnavailable("No refresh token available")

        LOGGER.info("Refreshing Strava token refresh_token=%s", _mask_token(refresh_token))
        payload = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            resp = self._transport.post(self._config.token_url, json=payload)
            if not resp.ok:
                raise RefreshFailed(describe_failure("Token refresh", resp))
            credential = _parse_credential(resp.body)
        except (TransportError, RefreshFailed, ValueError) as exc:
            LOGGER.error("Token refresh failed: %s", exc)
            self._clear_credentials()
            raise RefreshFailed("Failed to refresh Strava token") from exc

        self._save_credential(credential)
        LOGGER.info(
            "Token refresh succeeded expires_at=%s refresh_token_changed=%s",
            credential.expires_at,
            credential.refresh_token != refresh_token,
        )
        return credential

    def is_token_valid(self) -> bool:
        """Return True when a usable access token is held.

        An expired token triggers one refresh attempt; a failed refresh is
        logged and reported as False.
        """
        expires_at = self._stored_expiry()
        if expires_at is None or not self._access_token:
            return False
        if self._now() < expires_at:
            return True

        with self._refresh_lock:
            # Another caller may have refreshed while we waited for the lock.
            expires_at = self._stored_expiry()
            if expires_at is not None and self._access_token and self._now() < expires_at:
                return True
            try:
                self._refresh_locked()
            except (RefreshUnavailable, RefreshFailed) as exc:
                LOGGER.warning("Access token expired and could not be refreshed: %s", exc)
                return False
        return True

    def is_authenticated(self) -> bool:
        return bool(self._access_token)

    def credential(self) -> Optional[OAuthCredential]:
        """Return the stored credential, or None if any part is missing."""

        refresh_token = self._store.get(REFRESH_TOKEN_KEY)
        expires_at = self._stored_expiry()
        if not self._access_token or not refresh_token or expires_at is None:
            return None
        return OAuthCredential(self._access_token, refresh_token, expires_at)

    def logout(self) -> None:
        self._store.delete(ACTIVITIES_CACHE_KEY)
        self._store.delete(ACTIVITIES_CACHE_TIME_KEY)
        self._clear_credentials()
        with self._streams_lock:
            self._streams.clear()
        LOGGER.info("Logged out; credentials and activity cache cleared")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def authenticated_request(
        self, url: str, params: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """GET ``url`` with the bearer token and return the parsed body.

        Raises:
            AuthenticationRequired: No access token is held.
            TokenInvalid: The token expired and could not be refreshed.
            AuthenticationFailed: Strava answered 401; credentials are cleared.
            TransportError: Network failure or any other non-2xx status.
        """
        if not self._access_token:
            raise AuthenticationRequired("Not authenticated")
        if not self.is_token_valid():
            raise TokenInvalid("Invalid or expired token")

        resp = self._transport.get(
            url,
            headers={"Authorization": f"Bearer {self._access_token}"},
            params=params,
        )
        if resp.status_code == 401:
            LOGGER.warning(describe_failure(f"GET {url}", resp))
            self._clear_credentials()
            raise AuthenticationFailed("Authentication failed")
        if not resp.ok:
            message = describe_failure(f"GET {url}", resp)
            LOGGER.error(message)
            raise TransportError(message, status=resp.status_code, body=resp.body)
        return resp.body

    def get_activities_page(
        self, page: int = 1, per_page: int = 30
    ) -> List[Activity]:
        if not 1 <= per_page <= ACTIVITY_PAGE_SIZE:
            raise ValueError(f"per_page must be between 1 and {ACTIVITY_PAGE_SIZE}")
        url = f"{self._config.base_url}/athlete/activities"
        data = self.authenticated_request(url, {"page": page, "per_page": per_page})
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            LOGGER.warning(
                "Unexpected JSON shape for activities page=%s type=%s",
                page,
                type(data).__name__,
            )
            raise TransportError(
                f"Unexpected activities payload for page {page}", body=data
            )
        return [Activity.from_payload(item) for item in data]

    def fetch_all_activities(self) -> List[Activity]:
        """Walk every activities page and replace the cache with the result."""

        activities: List[Activity] = []
        page = 1
        while True:
            batch = self.get_activities_page(page, ACTIVITY_PAGE_SIZE)
            activities.extend(batch)
            LOGGER.debug("Activities page=%s items=%s", page, len(batch))
            if len(batch) < ACTIVITY_PAGE_SIZE:
                break
            page += 1

        self._write_cache([activity.raw for activity in activities])
        LOGGER.info("Fetched %s activities across %s pages", len(activities), page)
        return activities

    def get_activities(self, force_refresh: bool = False) -> List[Activity]:
        """Return the activity history, from cache when under the TTL."""

        if not force_refresh:
            cached = self._read_cache()
            if cached is not None and cached.is_fresh(
                self._now(), self._config.cache_ttl_seconds
            ):
                LOGGER.debug(
                    "Serving %s activities from cache fetched_at=%s",
                    len(cached.activities),
                    cached.fetched_at,
                )
                return [Activity.from_payload(item) for item in cached.activities]
        return self.fetch_all_activities()

    def get_activity(self, activity_id: int) -> Activity:
        data = self.authenticated_request(
            f"{self._config.base_url}/activities/{activity_id}"
        )
        if not isinstance(data, dict):
            raise TransportError(
                f"Unexpected payload for activity {activity_id}", body=data
            )
        return Activity.from_payload(data)

    def get_activity_streams(
        self, activity_id: int, types: Sequence[str] = DEFAULT_STREAM_TYPES
    ) -> Any:
        """Fetch streams keyed by type, memoised for a short while in memory."""

        key = (activity_id, tuple(types))
        with self._streams_lock:
            cached = self._streams.get(key)
        if cached is not None:
            LOGGER.debug("Stream cache hit activity=%s types=%s", activity_id, key[1])
            return cached

        type_string = ",".join(types)
        url = f"{self._config.base_url}/activities/{activity_id}/streams/{type_string}"
        data = self.authenticated_request(url, {"key_by_type": "true"})
        with self._streams_lock:
            self._streams[key] = data
        return data

    # ------------------------------------------------------------------
    # Store helpers
    # ------------------------------------------------------------------
    def _now(self) -> int:
        return int(self._clock())

    def _stored_expiry(self) -> Optional[int]:
        value = self._store.get(EXPIRES_AT_KEY)
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            LOGGER.debug("Ignoring non-integer token expiry %r", value)
            return None

    def _save_credential(self, credential: OAuthCredential) -> None:
        self._access_token = credential.access_token
        self._store.set(ACCESS_TOKEN_KEY, credential.access_token)
        self._store.set(REFRESH_TOKEN_KEY, credential.refresh_token)
        self._store.set(EXPIRES_AT_KEY, str(credential.expires_at))

    def _clear_credentials(self) -> None:
        self._access_token = None
        self._store.delete(ACCESS_TOKEN_KEY)
        self._store.delete(REFRESH_TOKEN_KEY)
        self._store.delete(EXPIRES_AT_KEY)

    def _read_cache(self) -> Optional[ActivityCache]:
        raw_time = self._store.get(ACTIVITIES_CACHE_TIME_KEY)
        raw_cache = self._store.get(ACTIVITIES_CACHE_KEY)
        if not raw_time or not raw_cache:
            return None
        try:
            fetched_at = int(raw_time)
            activities = json.loads(raw_cache)
        except ValueError as exc:
            LOGGER.debug("Ignoring malformed activity cache: %s", exc)
            return None
        if not isinstance(activities, list) or not all(
            isinstance(item, dict) and "id" in item for item in activities
        ):
            LOGGER.debug("Ignoring activity cache with unexpected shape")
            return None
        if fetched_at > self._now():
            LOGGER.debug("Ignoring activity cache stamped in the future fetched_at=%s", fetched_at)
            return None
        return ActivityCache(activities=activities, fetched_at=fetched_at)

    def _write_cache(self, activities: List[Dict[str, Any]]) -> None:
        self._store.set(ACTIVITIES_CACHE_KEY, json.dumps(activities))
        self._store.set(ACTIVITIES_CACHE_TIME_KEY, str(self._now()))


def _parse_credential(data: Any) -> OAuthCredential:
    """Validate a token endpoint payload; raise ValueError when unusable."""

    if not isinstance(data, dict):
        raise ValueError(f"Unexpected token response shape: {type(data).__name__}")
    missing = [
        key for key in ("access_token", "refresh_token", "expires_at") if not data.get(key)
    ]
    if missing:
        raise ValueError(f"Token response missing keys: {', '.join(missing)}")
    try:
        expires_at = int(data["expires_at"])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid expires_at {data['expires_at']!r}") from exc
    return OAuthCredential(
        access_token=str(data["access_token"]),
        refresh_token=str(data["refresh_token"]),
        expires_at=expires_at,
    )
