# -*- coding: utf-8 -*-
"""
Population risk: how many people a service disruption in a municipality along
the corridor would hit.

    impact = min(100, round(population·0.4 + traffic·0.3 + strategic·0.2 + access·0.1))

population  density step (20..100) plus a size bonus of min(20, 5·log10(inhabitants))
traffic     step function of the estimated daily passengers of the served stations
strategic   mean station importance (hub, category, mid-corridor position)
access      100 = no alternatives; big cities have many, small towns few

Municipalities are also grouped into five zone levels (critical .. low), each
with a priority and a set of mitigation strategies.
"""
import asyncio
import logging
import math
from dataclasses import replace
from datetime import date
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from corridor.collaborators import DEFAULT_CORRIDOR_MUNICIPALITIES, StationRegistry
from corridor.models import Municipality, PopulationRiskRecord, StationRecord
from corridor.repository import ProfileRepository
from corridor.utils import round_half_up

logger = logging.getLogger(__name__)

ZONE_LEVELS = ("critical", "high", "elevated", "moderate", "low")


def _round2(value: float) -> float:
    return round_half_up(value * 100) / 100


class PopulationRiskAnalyzer:
    RISK_WEIGHTS = {
        "population_density": 0.4,
        "traffic_volume": 0.3,
        "strategic_importance": 0.2,
        "alternative_access": 0.1,
    }

    # (inhabitants per km², score); below the last floor scores 20
    DENSITY_STEPS = ((1000, 100), (500, 80), (200, 60), (100, 40))
    DENSITY_FLOOR_SCORE = 20
    POPULATION_BONUS_CAP = 20

    # estimated passengers per day
    MAJOR_HUB = 50000
    REGIONAL_HUB = 15000
    MEDIUM_STATION = 5000
    SMALL_STATION = 1500

    MID_CORRIDOR_KM = (50, 250)
    METROPOLITAN = ("berlin", "hamburg")
    TOWN_MARKERS = ("stadt", "city")

    # (min score, zone level, priority)
    ZONE_STEPS = ((80, "critical", 1), (60, "high", 2), (40, "elevated", 3), (20, "moderate", 4), (0, "low", 5))
    MITIGATION_STRATEGIES = {
        "critical": (
            "Immediate deployment of emergency response teams",
            "Real-time passenger information systems",
            "Alternative transportation coordination",
            "Enhanced delay management protocols",
        ),
        "high": (
            "Proactive communication systems",
            "Backup service arrangements",
            "Staff reinforcement during disruptions",
            "Passenger flow management",
        ),
        "elevated": (
            "Improved timetable resilience",
            "Better connection coordination",
            "Enhanced monitoring systems",
        ),
        "moderate": (
            "Regular service monitoring",
            "Preventive maintenance scheduling",
        ),
        "low": (
            "Standard operating procedures",
            "Routine performance monitoring",
        ),
    }

    CRITICAL_ZONE_SCORE = 60
    IMMEDIATE_ACTION_SCORE = 80
    HIGH_TRAFFIC_PASSENGERS = 20000
    LARGE_POPULATION = 100000
    VERY_LARGE_POPULATION = 500000

    def __init__(
        self,
        registry: StationRegistry,
        repository: Optional[ProfileRepository] = None,
        municipalities: Optional[Iterable[Municipality]] = None,
    ):
        self.registry = registry
        self.repository = repository
        self.municipalities = list(
            DEFAULT_CORRIDOR_MUNICIPALITIES if municipalities is None else municipalities
        )

    # ----- components ----------------------------------------------------------

    def population_score(self, density: float, population: int) -> float:
        density_score = self.DENSITY_FLOOR_SCORE
        for floor, score in self.DENSITY_STEPS:
            if density >= floor:
                density_score = score
                break
        bonus = min(self.POPULATION_BONUS_CAP, math.log10(population) * 5) if population > 0 else 0
        return min(100, density_score + bonus)

    def traffic_score(self, daily_volume: int) -> int:
        if daily_volume >= self.MAJOR_HUB:
            return 100
        if daily_volume >= self.REGIONAL_HUB:
            return 80
        if daily_volume >= self.MEDIUM_STATION:
            return 60
        if daily_volume >= self.SMALL_STATION:
            return 40
        return 20

    def strategic_score(self, stations: Sequence[StationRecord]) -> float:
        if not stations:
            return 0
        lo, hi = self.MID_CORRIDOR_KM
        total = 0
        for station in stations:
            if station.is_strategic_hub:
                total += 40
            total += max(0, (8 - station.category) * 10)
            if lo < station.distance_from_origin < hi:
                total += 10
        return min(100, total / len(stations))

    def alternative_access_score(self, municipality_name: str) -> int:
        """Higher = fewer ways around a closed line."""
        name = municipality_name.lower()
        if any(city in name for city in self.METROPOLITAN):
            return 20
        if any(marker in name for marker in self.TOWN_MARKERS):
            return 40
        return 70

    def estimate_traffic_volume(self, stations: Sequence[StationRecord]) -> int:
        total = 0
        for station in stations:
            if station.is_strategic_hub:
                total += self.MAJOR_HUB
            elif station.category <= 2:
                total += self.REGIONAL_HUB
            elif station.category <= 4:
                total += self.MEDIUM_STATION
            else:
                total += self.SMALL_STATION
        return total

    @staticmethod
    def risk_level(impact_score: int) -> str:
        if impact_score >= 70:
            return "high"
        if impact_score >= 40:
            return "medium"
        return "low"

    @staticmethod
    def corridor_segment(stations: Sequence[StationRecord]) -> str:
        if not stations:
            return "unknown"
        distances = [s.distance_from_origin for s in stations]
        return f"km_{math.floor(min(distances))}-{math.ceil(max(distances))}"

    def recommendations(self, record: PopulationRiskRecord) -> List[str]:
        recs = []
        if record.risk_level == "high":
            recs.append("Priority area for service reliability improvements")
            recs.append("Implement enhanced delay management protocols")
            recs.append("Consider backup transportation arrangements during disruptions")
        if record.daily_traffic_volume > self.REGIONAL_HUB:
            recs.append("High passenger volume requires robust contingency planning")
        if record.disruption_impact_score >= 80:
            recs.append("Critical corridor segment requiring immediate attention")
            recs.append("Develop specific emergency response procedures")
        if record.population > self.LARGE_POPULATION:
            recs.append("Large population base - coordinate with local authorities for disruption management")
        return recs

    def key_risk_factors(self, record: PopulationRiskRecord) -> List[str]:
        factors = []
        if record.population > self.VERY_LARGE_POPULATION:
            factors.append("Very high population density")
        elif record.population > self.LARGE_POPULATION:
            factors.append("High population concentration")

        if record.daily_traffic_volume > self.MAJOR_HUB:
            factors.append("Major transportation hub")
        elif record.daily_traffic_volume > self.REGIONAL_HUB:
            factors.append("High passenger traffic volume")

        if record.risk_level == "high":
            factors.append("Limited alternative transportation options")
        if record.disruption_impact_score >= 80:
            factors.append("Critical corridor position")
        return factors

    def zone_level(self, impact_score: int):
        """(zone level, priority) of a score; priority 1 is the most urgent."""
        for floor, level, priority in self.ZONE_STEPS:
            if impact_score >= floor:
                return level, priority
        return self.ZONE_STEPS[-1][1:]

    # ----- analysis ----------------------------------------------------------------

    def analyze_municipality(self, municipality: Municipality) -> PopulationRiskRecord:
        stations = [
            s for s in (self.registry.get_station(i) for i in municipality.station_ids) if s is not None
        ]
        if len(stations) < len(municipality.station_ids):
            logger.warning(
                "%s: %d of %d stations are not on the corridor",
                municipality.name, len(municipality.station_ids) - len(stations),
                len(municipality.station_ids),
            )

        volume = self.estimate_traffic_volume(stations)
        w = self.RISK_WEIGHTS
        impact = min(100, round_half_up(
            self.population_score(municipality.density, municipality.population) * w["population_density"]
            + self.traffic_score(volume) * w["traffic_volume"]
            + self.strategic_score(stations) * w["strategic_importance"]
            + self.alternative_access_score(municipality.name) * w["alternative_access"]
        ))
        record = PopulationRiskRecord(
            municipality_id=municipality.id,
            municipality_name=municipality.name,
            corridor_segment=self.corridor_segment(stations),
            population=municipality.population,
            daily_traffic_volume=volume,
            disruption_impact_score=impact,
            risk_level=self.risk_level(impact),
        )
        return replace(record, recommendations=tuple(self.recommendations(record)))

    async def analyze_corridor(self, analysis_date: Optional[date] = None) -> List[PopulationRiskRecord]:
        """Analyse every municipality and persist the records of ``analysis_date``."""
        analysis_date = analysis_date or date.today()
        records = []
        for municipality in self.municipalities:
            try:
                records.append(self.analyze_municipality(municipality))
            except Exception:
                logger.exception("Population risk analysis failed for %s (%s)", municipality.id, municipality.name)

        if self.repository is not None:
            await asyncio.to_thread(self.repository.upsert_many_population_risk, records, analysis_date)
        logger.info(
            "Population risk analysis for %s: %d/%d municipalities, %d high",
            analysis_date.isoformat(), len(records), len(self.municipalities),
            sum(1 for r in records if r.risk_level == "high"),
        )
        return records

    # ----- persisted views -------------------------------------------------------------

    def risk_history(self, start: date, end: Optional[date] = None) -> List[PopulationRiskRecord]:
        return self.repository.list_population_risk(start, end)

    def highest_risk_zones(self, limit: Optional[int] = 10, analysis_date: Optional[date] = None) -> List[dict]:
        records = self.repository.list_population_risk(analysis_date or date.today())[:limit]
        return [
            {
                "record": record,
                "key_risk_factors": self.key_risk_factors(record),
                "mitigation_actions": list(record.recommendations),
            }
            for record in records
        ]

    def risk_zones(
        self,
        analysis_date: Optional[date] = None,
        zone_level: Optional[str] = None,
        min_score: int = 0,
    ) -> List[dict]:
        """Stored records as zones, most urgent first, optionally filtered."""
        zones = []
        for record in self.repository.list_population_risk(analysis_date or date.today()):
            level, priority = self.zone_level(record.disruption_impact_score)
            if zone_level is not None and level != zone_level:
                continue
            if record.disruption_impact_score < min_score:
                continue
            zones.append({
                "zone_id": record.municipality_id,
                "zone_name": f"{record.municipality_name} ({record.corridor_segment})",
                "zone_level": level,
                "priority": priority,
                "record": record,
                "key_risk_factors": self.key_risk_factors(record),
                "mitigation_strategies": list(self.MITIGATION_STRATEGIES[level]),
            })
        return zones

    def _priority_actions(self, critical_zones: List[dict]) -> List[dict]:
        actions = []
        immediate = [z["zone"] for z in critical_zones if z["impact_score"] >= self.IMMEDIATE_ACTION_SCORE]
        if immediate:
            actions.append({
                "action": "Implement enhanced real-time passenger information systems",
                "target_zones": immediate,
                "expected_impact": "Reduce passenger confusion and improve disruption management",
                "urgency": "immediate",
            })
        busy = [z["zone"] for z in critical_zones if z["daily_passengers"] > self.HIGH_TRAFFIC_PASSENGERS]
        if busy:
            actions.append({
                "action": "Develop alternative transportation partnerships (bus, taxi)",
                "target_zones": busy,
                "expected_impact": "Provide backup options during service disruptions",
                "urgency": "short_term",
            })
        populous = [z["zone"] for z in critical_zones if z["affected_population"] > self.LARGE_POPULATION]
        if populous:
            actions.append({
                "action": "Infrastructure resilience improvements",
                "target_zones": populous,
                "expected_impact": "Fundamental improvement in service reliability",
                "urgency": "long_term",
            })
        return actions

    def high_impact_zones(self, analysis_date: Optional[date] = None) -> dict:
        """
        Zones where a disruption hurts most (impact >= 60), corridor health
        figures over all stored zones and the actions they call for.
        """
        records = self.repository.list_population_risk(analysis_date or date.today())
        critical = [
            {
                "zone": f"{r.municipality_name} ({r.corridor_segment})",
                "impact_score": r.disruption_impact_score,
                "affected_population": r.population,
                "daily_passengers": r.daily_traffic_volume,
                "risk_factors": self.key_risk_factors(r),
            }
            for r in records
            if r.disruption_impact_score >= self.CRITICAL_ZONE_SCORE
        ]
        critical.sort(key=lambda z: z["impact_score"], reverse=True)

        average = sum(r.disruption_impact_score for r in records) / len(records) if records else 0.0
        high_count = sum(1 for r in records if r.risk_level == "high")
        return {
            "critical_zones": critical,
            "corridor_health_metrics": {
                "total_population_at_risk": sum(r.population for r in records),
                "average_risk_score": _round2(average),
                "high_risk_zone_count": high_count,
                "corridor_vulnerability_index": _round2(min(100, average + high_count * 10)) if records else 0.0,
            },
            "priority_actions": self._priority_actions(critical),
        }

    def corridor_risk_profile(self, analysis_date: Optional[date] = None) -> dict:
        """Zone level distribution and the corridor vulnerability index (0-100)."""
        records = self.repository.list_population_risk(analysis_date or date.today())
        if not records:
            return {
                "total_zones": 0,
                "critical_zones": 0,
                "high_risk_zones": 0,
                "total_population_at_risk": 0,
                "corridor_vulnerability_index": 0.0,
                "risk_distribution": {level: 0 for level in ZONE_LEVELS},
            }

        df = pd.DataFrame([
            {
                "zone_level": self.zone_level(r.disruption_impact_score)[0],
                "score": r.disruption_impact_score,
                "population": r.population,
            }
            for r in records
        ])
        counts = df["zone_level"].value_counts()
        distribution = {level: int(counts.get(level, 0)) for level in ZONE_LEVELS}
        total = len(df)
        index = (
            float(df["score"].mean())
            + distribution["critical"] / total * 30
            + distribution["high"] / total * 20
        )
        return {
            "total_zones": total,
            "critical_zones": distribution["critical"],
            "high_risk_zones": distribution["high"],
            "total_population_at_risk": int(df["population"].sum()),
            "corridor_vulnerability_index": _round2(min(100.0, index)),
            "risk_distribution": distribution,
        }
