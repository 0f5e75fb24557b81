"""HTTP transport used by :class:`~strava_activity_client.client.ActivityClient`.

The client only depends on the :class:`HttpTransport` protocol so tests can
swap in a fake. :class:`RequestsTransport` is the production implementation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Type

import requests
from requests import Session
from requests.adapters import HTTPAdapter

from .config import HTTP_POOL_CONNECTIONS, HTTP_POOL_MAXSIZE, REQUEST_TIMEOUT
from .errors import TransportError

RequestsJSONDecodeError: Type[Exception]
if hasattr(requests.exceptions, "JSONDecodeError"):
    RequestsJSONDecodeError = requests.exceptions.JSONDecodeError
else:  # pragma: no cover - fallback for old requests versions
    RequestsJSONDecodeError = ValueError

LOGGER = logging.getLogger(__name__)

__all__ = [
    "HttpResponse",
    "HttpTransport",
    "RequestsTransport",
    "create_default_session",
]


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    body: Any = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpTransport(Protocol):
    def get(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> HttpResponse: ...

    def post(
        self,
        url: str,
        *,
        json: Optional[Mapping[str, Any]] = None,
    ) -> HttpResponse: ...


def create_default_session() -> Session:
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "Accept-Encoding": "gzip, deflate",
            "Accept": "application/json",
        }
    )
    return session


class RequestsTransport:
    """:class:`HttpTransport` backed by a pooled ``requests.Session``.

    Network failures and timeouts surface as :class:`TransportError` with no
    status. Responses of any status are returned; interpreting them is the
    caller's job.
    """

    def __init__(
        self,
        *,
        session: Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._session = session or create_default_session()
        self._timeout = timeout

    def get(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> HttpResponse:
        LOGGER.debug("GET %s params=%s", url, params)
        return self._send("GET", url, headers=headers, params=params)

    def post(
        self,
        url: str,
        *,
        json: Optional[Mapping[str, Any]] = None,
    ) -> HttpResponse:
        LOGGER.debug("POST %s", url)
        return self._send("POST", url, json=json)

    def close(self) -> None:
        self._session.close()

    def _send(self, method: str, url: str, **kwargs: Any) -> HttpResponse:
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            LOGGER.warning("%s %s transport error: %s", method, url, exc)
            raise TransportError(
                f"{method} {url} failed: {exc.__class__.__name__}"
            ) from exc
        LOGGER.debug("%s %s status=%s", method, url, resp.status_code)
        return HttpResponse(
            status_code=resp.status_code,
            body=_safe_json(resp),
            text=resp.text,
        )


def _safe_json(resp: requests.Response) -> Optional[Any]:
    """Safely parse JSON; return None if parsing fails."""

    if not resp.content:
        return None
    try:
        return resp.json()
    except (ValueError, RequestsJSONDecodeError) as exc:
        LOGGER.debug("Failed to decode JSON from %s: %s", getattr(resp, "url", "?"), exc)
        return None
