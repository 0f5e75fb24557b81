"""Shared HTTP response helpers for Strava API interactions."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .transport import HttpResponse

__all__ = ["extract_error", "describe_failure"]


def extract_error(resp: Optional[HttpResponse]) -> Optional[str]:
    """Return compact string with Strava error info (message + codes) if present."""

    if resp is None:
        return None
    data = resp.body
    if data is None:
        return _extract_error_text(resp)
    if not isinstance(data, dict):
        return None
    parts = _collect_error_parts(data)
    return " | ".join(parts) if parts else None


def describe_failure(context: str, resp: HttpResponse) -> str:
    """Build a log/exception message for a non-success response."""

    detail = extract_error(resp)
    message = f"{context} failed (status {resp.status_code})"
    return f"{message} | {detail}" if detail else message


def _extract_error_text(resp: HttpResponse) -> Optional[str]:
    """Best-effort plain-text extraction when JSON parsing fails."""

    text = resp.text
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    return (trimmed[:297] + "...") if len(trimmed) > 300 else trimmed


def _collect_error_parts(data: Dict[str, Any]) -> List[str]:
    """Build error snippets from the standard Strava error response."""

    parts: List[str] = []
    message = data.get("message")
    if message:
        parts.append(str(message))
    errors = data.get("errors")
    if isinstance(errors, list):
        for err in errors:
            if not isinstance(err, dict):
                continue
            resource = err.get("resource")
            field = err.get("field")
            code = err.get("code")
            spec = "/".join(filter(None, (resource, field)))
            if code and spec:
                parts.append(f"{spec}:{code}")
            elif code:
                parts.append(str(code))
    return parts
