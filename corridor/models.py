# -*- coding: utf-8 -*-
"""
Domain model for the corridor priority & fragility engine.

Everything here is a plain frozen dataclass so scores stay a pure function of
their inputs. Mutation happens by building a new instance (``dataclasses.replace``).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional, Tuple


class FocusArea(str, Enum):
    INFRASTRUCTURE = "infrastructure"
    TIMETABLE = "timetable"
    POPULATION = "population"
    BALANCED = "balanced"


class SteplessAccess(str, Enum):
    YES = "yes"
    PARTIAL = "partial"
    NO = "no"


@dataclass(frozen=True)
class WeightProfile:
    infrastructure_weight: float
    timetable_weight: float
    population_risk_weight: float
    focus_area: FocusArea = FocusArea.BALANCED

    @property
    def total(self) -> float:
        return self.infrastructure_weight + self.timetable_weight + self.population_risk_weight

    def weight_for(self, focus: FocusArea) -> Optional[float]:
        """Weight matching a focus area (None for balanced)."""
        return {
            FocusArea.INFRASTRUCTURE: self.infrastructure_weight,
            FocusArea.TIMETABLE: self.timetable_weight,
            FocusArea.POPULATION: self.population_risk_weight,
        }.get(focus)

    def to_dict(self) -> dict:
        return {
            "infrastructure_weight": self.infrastructure_weight,
            "timetable_weight": self.timetable_weight,
            "population_risk_weight": self.population_risk_weight,
            "focus_area": FocusArea(self.focus_area).value,
        }


class WeightTriple(NamedTuple):
    infrastructure: float
    timetable: float
    population_risk: float


@dataclass(frozen=True)
class StationFacilities:
    has_wifi: bool = False
    has_travel_center: bool = False
    has_db_lounge: bool = False
    has_local_public_transport: bool = False
    has_parking: bool = False
    has_mobility_service: bool = False
    stepless_access: SteplessAccess = SteplessAccess.NO

    @classmethod
    def from_mapping(cls, raw: Optional[dict]) -> "StationFacilities":
        """Build from the camelCase JSON blobs the station table stores."""
        raw = raw or {}
        access = raw.get("steplessAccess", raw.get("stepless_access", "no"))
        try:
            stepless = SteplessAccess(str(access).lower())
        except ValueError:
            stepless = SteplessAccess.NO
        return cls(
            has_wifi=bool(raw.get("hasWiFi", raw.get("has_wifi", False))),
            has_travel_center=bool(raw.get("hasTravelCenter", raw.get("has_travel_center", False))),
            has_db_lounge=bool(raw.get("hasDBLounge", raw.get("has_db_lounge", False))),
            has_local_public_transport=bool(
                raw.get("hasLocalPublicTransport", raw.get("has_local_public_transport", False))
            ),
            has_parking=bool(raw.get("hasParking", raw.get("has_parking", False))),
            has_mobility_service=bool(raw.get("hasMobilityService", raw.get("has_mobility_service", False))),
            stepless_access=stepless,
        )


@dataclass(frozen=True)
class StationRecord:
    id: int
    name: str
    position: Tuple[float, float]  # (lon, lat)
    distance_from_origin: float
    category: int
    platform_count: int
    facilities: StationFacilities = field(default_factory=StationFacilities)
    is_strategic_hub: bool = False


@dataclass(frozen=True)
class ScoreMetrics:
    traffic_volume: int
    capacity_constraints: int
    strategic_importance: int
    facility_deficits: int
    composite_score: int

    def to_dict(self) -> dict:
        return {
            "traffic_volume": self.traffic_volume,
            "capacity_constraints": self.capacity_constraints,
            "strategic_importance": self.strategic_importance,
            "facility_deficits": self.facility_deficits,
            "composite_score": self.composite_score,
        }


@dataclass(frozen=True)
class ConnectionRecord:
    from_station_id: int
    to_station_id: int
    arrival_time: str    # "HH:MM"
    departure_time: str  # "HH:MM"
    train_class: str
    buffer_minutes: float


@dataclass(frozen=True)
class DownstreamConnection:
    departure_time: str
    train_class: str


@dataclass(frozen=True)
class FragilityRecord:
    from_station_id: int
    to_station_id: int
    buffer_minutes: float
    fragility_score: int
    cascade_risk: int
    alternative_route_count: int
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "from_station_id": self.from_station_id,
            "to_station_id": self.to_station_id,
            "buffer_minutes": self.buffer_minutes,
            "fragility_score": self.fragility_score,
            "cascade_risk": self.cascade_risk,
            "alternative_route_count": self.alternative_route_count,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class Municipality:
    id: str  # official municipality key
    name: str
    population: int
    area_km2: float
    station_ids: Tuple[int, ...] = ()

    @property
    def density(self) -> float:
        """Inhabitants per km²; 0 when the area is unknown."""
        return self.population / self.area_km2 if self.area_km2 > 0 else 0.0


@dataclass(frozen=True)
class PopulationRiskRecord:
    municipality_id: str
    municipality_name: str
    corridor_segment: str  # "km_<from>-<to>"
    population: int
    daily_traffic_volume: int
    disruption_impact_score: int
    risk_level: str  # low / medium / high
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "municipality_id": self.municipality_id,
            "municipality_name": self.municipality_name,
            "corridor_segment": self.corridor_segment,
            "population": self.population,
            "daily_traffic_volume": self.daily_traffic_volume,
            "disruption_impact_score": self.disruption_impact_score,
            "risk_level": self.risk_level,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class RecalculationEvent:
    user_id: str
    profile_name: str
    profile: WeightProfile
    station_ids: Optional[Tuple[int, ...]] = None  # None = whole corridor


@dataclass(frozen=True)
class PriorityChange:
    station_id: int
    name: str
    old_priority: int
    new_priority: int

    @property
    def change(self) -> int:
        return self.new_priority - self.old_priority


@dataclass(frozen=True)
class ActiveProfile:
    profile_name: str
    profile: WeightProfile
    is_preset: bool
    last_updated: str


@dataclass(frozen=True)
class StoredProfile:
    user_id: str
    profile_name: str
    profile: WeightProfile
    created_at: str
