from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .polyline import Coordinate, decode


def _latlng(value: Any) -> Optional[Tuple[float, float]]:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        try:
            return float(value[0]), float(value[1])
        except (TypeError, ValueError):
            return None
    return None


@dataclass(frozen=True)
class OAuthCredential:
    access_token: str
    refresh_token: str
    expires_at: int


@dataclass(frozen=True)
class Activity:
    """Summary activity as returned by ``/athlete/activities``."""

    id: int
    name: str = ""
    type: str = ""
    sport_type: str = ""
    start_date: Optional[str] = None
    start_date_local: Optional[str] = None
    timezone: Optional[str] = None
    distance: float = 0.0
    moving_time: int = 0
    elapsed_time: int = 0
    total_elevation_gain: float = 0.0
    average_speed: Optional[float] = None
    max_speed: Optional[float] = None
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    kudos_count: int = 0
    comment_count: int = 0
    athlete_count: int = 0
    photo_count: int = 0
    achievement_count: int = 0
    start_latlng: Optional[Tuple[float, float]] = None
    end_latlng: Optional[Tuple[float, float]] = None
    summary_polyline: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Activity":
        map_data = data.get("map")
        summary_polyline = ""
        if isinstance(map_data, Mapping):
            summary_polyline = map_data.get("summary_polyline") or ""
        activity_type = data.get("type") or ""
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            type=activity_type,
            sport_type=data.get("sport_type") or activity_type,
            start_date=data.get("start_date"),
            start_date_local=data.get("start_date_local"),
            timezone=data.get("timezone"),
            distance=data.get("distance") or 0.0,
            moving_time=data.get("moving_time") or 0,
            elapsed_time=data.get("elapsed_time") or 0,
            total_elevation_gain=data.get("total_elevation_gain") or 0.0,
            average_speed=data.get("average_speed"),
            max_speed=data.get("max_speed"),
            average_heartrate=data.get("average_heartrate"),
            max_heartrate=data.get("max_heartrate"),
            kudos_count=data.get("kudos_count") or 0,
            comment_count=data.get("comment_count") or 0,
            athlete_count=data.get("athlete_count") or 0,
            photo_count=data.get("photo_count") or 0,
            achievement_count=data.get("achievement_count") or 0,
            start_latlng=_latlng(data.get("start_latlng")),
            end_latlng=_latlng(data.get("end_latlng")),
            summary_polyline=summary_polyline,
            raw=dict(data),
        )

    def coordinates(self, precision: int = 5) -> List[Coordinate]:
        """Decode the summary polyline into ``(lat, lng)`` pairs."""

        return decode(self.summary_polyline, precision)


@dataclass
class ActivityCache:
    activities: List[Dict[str, Any]]
    fetched_at: int

    def is_fresh(self, now: float, ttl_seconds: int) -> bool:
        return now - self.fetched_at < ttl_seconds
