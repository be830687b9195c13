from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional

from corridor.models import (
    ActiveProfile,
    FocusArea,
    FragilityRecord,
    PopulationRiskRecord,
    PriorityChange,
    ScoreMetrics,
    StationRecord,
    WeightProfile,
)


VALID_FOCUS = Literal["infrastructure", "timetable", "population", "balanced"]


# ----- profiles ----------------------------------------------------------------

class WeightProfileModel(BaseModel):
    # range checks happen in the profile validator so every violation is reported at once
    infrastructure_weight: float
    timetable_weight: float
    population_risk_weight: float
    focus_area: VALID_FOCUS = "balanced"

    def to_domain(self) -> WeightProfile:
        return WeightProfile(
            infrastructure_weight=self.infrastructure_weight,
            timetable_weight=self.timetable_weight,
            population_risk_weight=self.population_risk_weight,
            focus_area=FocusArea(self.focus_area),
        )

    @classmethod
    def from_domain(cls, profile: WeightProfile) -> "WeightProfileModel":
        return cls(**profile.to_dict())


class ProfileResponse(BaseModel):
    profile_name: str
    is_preset: bool
    profile: WeightProfileModel
    created_at: Optional[str] = None


class PresetItem(BaseModel):
    profile_name: str
    description: str
    profile: WeightProfileModel


class ActiveProfileResponse(BaseModel):
    profile_name: str
    is_preset: bool
    profile: WeightProfileModel
    last_updated: str = ""

    @classmethod
    def from_domain(cls, active: ActiveProfile) -> "ActiveProfileResponse":
        return cls(
            profile_name=active.profile_name,
            is_preset=active.is_preset,
            profile=WeightProfileModel.from_domain(active.profile),
            last_updated=active.last_updated,
        )


class SetActiveRequest(BaseModel):
    user_id: str = Field(default="default", max_length=64)
    profile_name: str = Field(max_length=64)


class FocusProfileRequest(BaseModel):
    user_id: str = Field(default="default", max_length=64)
    profile_name: str = Field(max_length=64)
    focus_area: VALID_FOCUS
    custom_weights: Optional[Dict[str, float]] = None  # missing keys count as 0


class ValidateProfileRequest(BaseModel):
    user_id: str = Field(default="default", max_length=64)
    profile_name: str = Field(max_length=64)
    profile: WeightProfileModel
    preview: bool = False


class ValidationResultResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    focus_area_impact: Dict[str, int]


class PriorityChangeItem(BaseModel):
    station_id: int
    name: str
    old_priority: int
    new_priority: int
    change: int

    @classmethod
    def from_domain(cls, change: PriorityChange) -> "PriorityChangeItem":
        return cls(
            station_id=change.station_id,
            name=change.name,
            old_priority=change.old_priority,
            new_priority=change.new_priority,
            change=change.change,
        )


class ProfileUpdateResponse(BaseModel):
    profile_name: str
    success: bool
    recalculated_stations: int
    significant_changes: List[PriorityChangeItem]
    failed_subscribers: List[str] = []


class ProfileStatsResponse(BaseModel):
    total_profiles: int
    most_used_focus_area: str
    average_infrastructure_weight: float
    average_timetable_weight: float
    average_population_risk_weight: float


class RecentProfileItem(BaseModel):
    profile_name: str
    focus_area: str
    created_at: str
    is_active: bool


class ManagementSummaryResponse(BaseModel):
    active_profile: ActiveProfileResponse
    total_profiles: int
    recent_profiles: List[RecentProfileItem]
    presets: List[PresetItem]


class ImpactPreviewItem(BaseModel):
    station_id: int
    name: str
    current_priority: int
    projected_priority: int
    change: int
    change_direction: Literal["increase", "decrease", "minimal"]


class FocusPreviewResponse(BaseModel):
    old_profile: WeightProfileModel
    new_profile: WeightProfileModel
    impact_preview: List[ImpactPreviewItem]


# ----- stations ------------------------------------------------------------------

class StationItem(BaseModel):
    id: int
    name: str
    lon: float
    lat: float
    distance_from_origin: float
    category: int
    platform_count: int
    is_strategic_hub: bool
    facilities: Dict[str, Any]

    @classmethod
    def from_domain(cls, station: StationRecord) -> "StationItem":
        f = station.facilities
        return cls(
            id=station.id,
            name=station.name,
            lon=station.position[0],
            lat=station.position[1],
            distance_from_origin=station.distance_from_origin,
            category=station.category,
            platform_count=station.platform_count,
            is_strategic_hub=station.is_strategic_hub,
            facilities={
                "has_wifi": f.has_wifi,
                "has_travel_center": f.has_travel_center,
                "has_db_lounge": f.has_db_lounge,
                "has_local_public_transport": f.has_local_public_transport,
                "has_parking": f.has_parking,
                "has_mobility_service": f.has_mobility_service,
                "stepless_access": f.stepless_access.value,
            },
        )


class ScoreMetricsModel(BaseModel):
    traffic_volume: int = Field(ge=0, le=100)
    capacity_constraints: int = Field(ge=0, le=100)
    strategic_importance: int = Field(ge=0, le=100)
    facility_deficits: int = Field(ge=0, le=100)
    composite_score: int = Field(ge=0, le=100)

    @classmethod
    def from_domain(cls, metrics: ScoreMetrics) -> "ScoreMetricsModel":
        return cls(**metrics.to_dict())


class StationPriorityItem(BaseModel):
    rank: int
    station_id: int
    name: str
    category: int
    distance_from_origin: float
    composite_score: int
    traffic_volume: int
    capacity_constraints: int
    strategic_importance: int
    facility_deficits: int
    priority_level: Literal["high", "medium", "low"]
    urgency_level: Literal["critical", "high", "elevated", "moderate"]


class StationDetailResponse(BaseModel):
    station: StationItem
    analysis_date: str
    metrics: Optional[ScoreMetricsModel] = None
    priority_level: Optional[str] = None
    recommendations: List[str] = []


class RecalculateRequest(BaseModel):
    user_id: str = Field(default="default", max_length=64)
    profile_name: Optional[str] = Field(default=None, max_length=64)  # None = active profile
    station_ids: Optional[List[int]] = None  # None = whole corridor


class RecalculateResponse(BaseModel):
    profile_name: str
    analysis_date: str
    stations_scored: int
    updated_priorities: List[PriorityChangeItem] = []
    failed_subscribers: List[str] = []


# ----- connections ---------------------------------------------------------------

class ConnectionItem(BaseModel):
    from_station_id: int
    to_station_id: int
    arrival_time: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    departure_time: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    train_class: str = Field(max_length=20)
    buffer_minutes: float = Field(ge=0)


class AnalyzeRequest(BaseModel):
    connections: Optional[List[ConnectionItem]] = None  # None = corridor default


class FragilityItem(BaseModel):
    from_station_id: int
    to_station_id: int
    buffer_minutes: float
    fragility_score: int = Field(ge=0, le=100)
    cascade_risk: int = Field(ge=0, le=100)
    alternative_route_count: int = Field(ge=1, le=5)
    recommendations: List[str]

    @classmethod
    def from_domain(cls, record: FragilityRecord) -> "FragilityItem":
        return cls(**record.to_dict())


class VulnerabilityItem(BaseModel):
    vulnerability_rank: int
    impact_score: float
    priority_level: Literal["Critical", "High", "Medium", "Low"]
    from_name: str
    to_name: str
    connection: FragilityItem


# ----- population risk zones -------------------------------------------------------

ZONE_LEVEL = Literal["critical", "high", "elevated", "moderate", "low"]


class PopulationRiskItem(BaseModel):
    municipality_id: str
    municipality_name: str
    corridor_segment: str
    population: int = Field(ge=0)
    daily_traffic_volume: int = Field(ge=0)
    disruption_impact_score: int = Field(ge=0, le=100)
    risk_level: Literal["high", "medium", "low"]
    recommendations: List[str]

    @classmethod
    def from_domain(cls, record: PopulationRiskRecord) -> "PopulationRiskItem":
        return cls(**record.to_dict())


class HighestRiskZoneItem(BaseModel):
    zone: PopulationRiskItem
    key_risk_factors: List[str]
    mitigation_actions: List[str]


class RiskZoneItem(BaseModel):
    zone_id: str
    zone_name: str
    zone_level: ZONE_LEVEL
    priority: int = Field(ge=1, le=5)
    disruption_impact_score: int
    affected_population: int
    daily_passengers: int
    corridor_segment: str
    key_risk_factors: List[str]
    mitigation_strategies: List[str]

    @classmethod
    def from_zone(cls, zone: dict) -> "RiskZoneItem":
        record = zone["record"]
        return cls(
            zone_id=zone["zone_id"],
            zone_name=zone["zone_name"],
            zone_level=zone["zone_level"],
            priority=zone["priority"],
            disruption_impact_score=record.disruption_impact_score,
            affected_population=record.population,
            daily_passengers=record.daily_traffic_volume,
            corridor_segment=record.corridor_segment,
            key_risk_factors=zone["key_risk_factors"],
            mitigation_strategies=zone["mitigation_strategies"],
        )


class CriticalZoneItem(BaseModel):
    zone: str
    impact_score: int
    affected_population: int
    daily_passengers: int
    risk_factors: List[str]


class CorridorHealthMetrics(BaseModel):
    total_population_at_risk: int
    average_risk_score: float
    high_risk_zone_count: int
    corridor_vulnerability_index: float = Field(ge=0, le=100)


class PriorityActionItem(BaseModel):
    action: str
    target_zones: List[str]
    expected_impact: str
    urgency: Literal["immediate", "short_term", "long_term"]


class HighImpactZonesResponse(BaseModel):
    critical_zones: List[CriticalZoneItem]
    corridor_health_metrics: CorridorHealthMetrics
    priority_actions: List[PriorityActionItem]


class CorridorRiskProfileResponse(BaseModel):
    total_zones: int
    critical_zones: int
    high_risk_zones: int
    total_population_at_risk: int
    corridor_vulnerability_index: float = Field(ge=0, le=100)
    risk_distribution: Dict[str, int]
