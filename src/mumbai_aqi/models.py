from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

POLLUTANTS: tuple[str, ...] = ("pm25", "pm10", "no2", "o3", "co")

SOURCE_PRIMARY = "primary"
SOURCE_SECONDARY = "secondary"
SOURCE_UNKNOWN = "unknown"

CREATED_BY_SYSTEM = "system"


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Zone:
    """Static reference record for one monitored area."""
    id: int
    name: str
    latitude: float
    longitude: float
    baseline_aqi: int
    proximity_to_sea: Optional[str] = None
    green_space_percentage: Optional[float] = None
    land_use_type: Optional[str] = None
    major_roads: Optional[str] = None
    parks_and_open_spaces: Optional[str] = None
    industrial_areas: Optional[str] = None
    pollution_sources: Optional[str] = None
    population_density: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Zone":
        missing = [k for k in ("id", "name", "latitude", "longitude", "baseline_aqi") if raw.get(k) is None]
        if missing:
            raise ValueError(f"Zone record missing required fields {missing}: {raw!r}")

        return cls(
            id=int(raw["id"]),
            name=str(raw["name"]),
            latitude=float(raw["latitude"]),
            longitude=float(raw["longitude"]),
            baseline_aqi=int(raw["baseline_aqi"]),
            proximity_to_sea=raw.get("proximity_to_sea"),
            green_space_percentage=_optional_float(raw.get("green_space_percentage")),
            land_use_type=raw.get("land_use_type"),
            major_roads=raw.get("major_roads"),
            parks_and_open_spaces=raw.get("parks_and_open_spaces"),
            industrial_areas=raw.get("industrial_areas"),
            pollution_sources=raw.get("pollution_sources"),
            population_density=raw.get("population_density"),
        )


@dataclass
class Measurement:
    zone_id: int
    current_aqi: int
    data_source: str
    last_updated: str
    pm25: Optional[float] = None
    pm10: Optional[float] = None
    no2: Optional[float] = None
    o3: Optional[float] = None
    co: Optional[float] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "current_aqi": self.current_aqi,
            "pm25": self.pm25,
            "pm10": self.pm10,
            "no2": self.no2,
            "o3": self.o3,
            "co": self.co,
            "data_source": self.data_source,
            "last_updated": self.last_updated,
        }


@dataclass
class RecommendationCandidate:
    """A parsed response entry that passed validation."""
    title: str
    description: str
    aqi_reduction: int
    impact_level: str = "Medium Impact"
    timeframe: str = "Medium term"
    cost: str = "Medium"
    stakeholders: Optional[str] = None


@dataclass
class Recommendation:
    id: str
    zone_id: int
    title: str
    description: str
    aqi_reduction: int
    impact_level: str
    timeframe: str
    cost: str
    stakeholders: Optional[str]
    created_at: str
    created_by: str = CREATED_BY_SYSTEM
    updated_at: Optional[str] = None

    @classmethod
    def from_candidate(
        cls,
        candidate: RecommendationCandidate,
        *,
        zone_id: int,
        ordinal: int,
        created_at: str,
    ) -> "Recommendation":
        return cls(
            id=f"rec-{zone_id}-{ordinal}",
            zone_id=zone_id,
            title=candidate.title,
            description=candidate.description,
            aqi_reduction=candidate.aqi_reduction,
            impact_level=candidate.impact_level,
            timeframe=candidate.timeframe,
            cost=candidate.cost,
            stakeholders=candidate.stakeholders,
            created_at=created_at,
            updated_at=created_at,
        )

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ZoneRecommendations:
    zone_id: int
    recommendations: List[Recommendation] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "recommendations": [r.to_record() for r in self.recommendations],
        }


def aqi_envelope(
    records: List[Dict[str, Any]],
    *,
    last_updated: str,
    next_update: str,
    version: str,
) -> Dict[str, Any]:
    return {
        "zones": records,
        "lastUpdated": last_updated,
        "nextUpdate": next_update,
        "version": version,
    }


def recommendations_envelope(
    entries: List[ZoneRecommendations],
    *,
    last_updated: str,
    version: str,
) -> Dict[str, Any]:
    return {
        "zones": [e.to_record() for e in entries],
        "lastUpdated": last_updated,
        "version": version,
    }
