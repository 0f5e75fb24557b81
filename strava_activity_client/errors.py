"""Central error types used across the client."""

from __future__ import annotations

from typing import Any, Optional


class StravaAPIError(RuntimeError):
    """Base error for Strava API failures."""


class AuthenticationRequired(StravaAPIError):
    """Raised when an authenticated call is attempted without an access token."""


class TokenInvalid(StravaAPIError):
    """Raised when the access token expired and could not be refreshed."""


class AuthenticationFailed(StravaAPIError):
    """Raised when a code exchange fails or Strava answers 401."""


class RefreshUnavailable(StravaAPIError):
    """Raised when a refresh is requested but no refresh token is stored."""


class RefreshFailed(StravaAPIError):
    """Raised when Strava rejects a refresh; credentials are cleared first."""


class TransportError(StravaAPIError):
    """Network failure or a non-401 HTTP error response.

    ``status`` is ``None`` for failures that never produced a response.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class PolylineDecodeError(ValueError):
    """Raised by strict polyline decoding on truncated or invalid input."""


__all__ = [
    "StravaAPIError",
    "AuthenticationRequired",
    "TokenInvalid",
    "AuthenticationFailed",
    "RefreshUnavailable",
    "RefreshFailed",
    "TransportError",
    "PolylineDecodeError",
]
