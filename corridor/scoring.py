# -*- coding: utf-8 -*-
"""
Station upgrade priority scoring.

Four sub-metrics per station, each an integer 0-100:

    traffic_volume        daily scheduled stops, linear between 10 and 500
    capacity_constraints  round(platform_score·0.6 + facility_score·0.4)
    strategic_importance  round(category·0.4 + position·0.3 + hub·0.3)
    facility_deficits     category-dependent checklist, capped at 100

and one composite under a weight profile (I, T, P after focus override):

    composite = traffic·I·0.3 + capacity·I·0.7 + strategic·T + deficits·P

clamped to [0, 100]. Only traffic volume needs an external source; if that
source fails the neutral value 50 is used.
"""
import asyncio
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from corridor.collaborators import TrafficDataSource
from corridor.models import ScoreMetrics, StationRecord, SteplessAccess, WeightProfile
from corridor.profiles import resolve_effective_weights
from corridor.repository import ProfileRepository
from corridor.utils import clamp_int, round_half_up

logger = logging.getLogger(__name__)


def priority_level(score: int) -> str:
    if score >= 75:
        return "high"
    if score >= 50:
        return "medium"
    return "low"


def urgency_level(score: int) -> str:
    if score >= 90:
        return "critical"
    if score >= 80:
        return "high"
    if score >= 75:
        return "elevated"
    return "moderate"


class StationScoringEngine:
    """
    Score corridor stations and persist the per-day metrics.

    ``throttle_seconds`` is slept between two stations of a batch so the
    traffic source (a rate limited timetable API in production) is not
    hammered.
    """

    TRAFFIC_FALLBACK = 50
    MIN_DAILY_STOPS = 10
    MAX_DAILY_STOPS = 500

    CORRIDOR_LENGTH_KM = 289
    ENDPOINT_BAND_KM = 50
    MID_CORRIDOR_BAND_KM = (140, 150)

    EXPECTED_PLATFORMS = {1: 12, 2: 8, 3: 6, 4: 4, 5: 2, 6: 2, 7: 1}
    DEFAULT_EXPECTED_PLATFORMS = 2

    CATEGORY_SCORES = {1: 100, 2: 80, 3: 60, 4: 40, 5: 20, 6: 10, 7: 5}
    HUB_BONUS = 100  # weighted by 0.3 → 30 points

    def __init__(
        self,
        traffic_source: TrafficDataSource,
        repository: Optional[ProfileRepository] = None,
        throttle_seconds: float = 0.5,
    ):
        self.traffic_source = traffic_source
        self.repository = repository
        self.throttle_seconds = throttle_seconds

    # ----- traffic -----------------------------------------------------------

    async def traffic_volume(self, station_id: int, day: Optional[date] = None) -> int:
        day = day or date.today()
        try:
            stops = await self.traffic_source.get_daily_stop_count(station_id, day)
        except Exception as e:
            logger.warning(
                "Traffic data unavailable for station %s (%s), using %d",
                station_id, e, self.TRAFFIC_FALLBACK,
            )
            return self.TRAFFIC_FALLBACK
        normalized = np.interp(
            stops, [self.MIN_DAILY_STOPS, self.MAX_DAILY_STOPS], [0.0, 100.0]
        )
        return clamp_int(float(normalized), 0, 100)

    # ----- capacity / facilities ----------------------------------------------

    def expected_platforms(self, category: int) -> int:
        return self.EXPECTED_PLATFORMS.get(category, self.DEFAULT_EXPECTED_PLATFORMS)

    def platform_score(self, station: StationRecord) -> int:
        ratio = station.platform_count / self.expected_platforms(station.category)
        if ratio >= 1.0:
            return 0
        if ratio >= 0.8:
            return 25
        if ratio >= 0.6:
            return 50
        if ratio >= 0.4:
            return 75
        return 100

    @staticmethod
    def facility_deficits(station: StationRecord) -> int:
        f = station.facilities
        category = station.category
        score = 0

        if category <= 2:
            if not f.has_wifi:
                score += 15
            if not f.has_travel_center:
                score += 20
            if not f.has_db_lounge:
                score += 10
            if not f.has_local_public_transport:
                score += 15
            if not f.has_parking:
                score += 10
            if f.stepless_access != SteplessAccess.YES:
                score += 20
            if not f.has_mobility_service:
                score += 10
        elif category <= 4:
            if not f.has_wifi:
                score += 20
            if not f.has_local_public_transport:
                score += 25
            if not f.has_parking:
                score += 15
            if f.stepless_access == SteplessAccess.NO:
                score += 30
            if not f.has_mobility_service:
                score += 10
        else:
            if f.stepless_access == SteplessAccess.NO:
                score += 40
            if not f.has_parking:
                score += 30
            if not f.has_local_public_transport:
                score += 30

        return min(100, score)

    def capacity_constraints(self, station: StationRecord) -> int:
        return round_half_up(
            self.platform_score(station) * 0.6 + self.facility_deficits(station) * 0.4
        )

    # ----- strategic importance ------------------------------------------------

    def category_score(self, category: int) -> int:
        return self.CATEGORY_SCORES.get(category, 0)

    def position_score(self, distance_from_origin: float) -> int:
        d = distance_from_origin
        if d == 0 or d >= self.CORRIDOR_LENGTH_KM:
            return 100
        if d <= self.ENDPOINT_BAND_KM or d >= self.CORRIDOR_LENGTH_KM - self.ENDPOINT_BAND_KM:
            return 80
        lo, hi = self.MID_CORRIDOR_BAND_KM
        if lo <= d <= hi:
            return 70
        return 50

    def strategic_importance(self, station: StationRecord) -> int:
        hub = self.HUB_BONUS if station.is_strategic_hub else 0
        return round_half_up(
            self.category_score(station.category) * 0.4
            + self.position_score(station.distance_from_origin) * 0.3
            + hub * 0.3
        )

    # ----- composite -----------------------------------------------------------

    @staticmethod
    def composite_score(
        traffic_volume: int,
        capacity_constraints: int,
        strategic_importance: int,
        facility_deficits: int,
        profile: WeightProfile,
    ) -> int:
        weights = resolve_effective_weights(profile)
        score = (
            traffic_volume * weights.infrastructure * 0.3
            + capacity_constraints * weights.infrastructure * 0.7
            + strategic_importance * weights.timetable
            + facility_deficits * weights.population_risk
        )
        return clamp_int(score, 0, 100)

    async def compute_metrics(
        self, station: StationRecord, profile: WeightProfile, day: Optional[date] = None
    ) -> ScoreMetrics:
        """Score one station without persisting anything."""
        traffic = await self.traffic_volume(station.id, day)
        capacity = self.capacity_constraints(station)
        strategic = self.strategic_importance(station)
        deficits = self.facility_deficits(station)
        return ScoreMetrics(
            traffic_volume=traffic,
            capacity_constraints=capacity,
            strategic_importance=strategic,
            facility_deficits=deficits,
            composite_score=self.composite_score(traffic, capacity, strategic, deficits, profile),
        )

    # ----- persisted scoring -----------------------------------------------------

    async def score_station(
        self,
        station: StationRecord,
        profile: WeightProfile,
        analysis_date: Optional[date] = None,
    ) -> ScoreMetrics:
        analysis_date = analysis_date or date.today()
        metrics = await self.compute_metrics(station, profile, analysis_date)
        if self.repository is not None:
            await asyncio.to_thread(self.repository.upsert_score_metrics, station.id, analysis_date, metrics)
        return metrics

    async def score_stations(
        self,
        stations: Sequence[StationRecord],
        profile: WeightProfile,
        analysis_date: Optional[date] = None,
    ) -> Dict[int, ScoreMetrics]:
        """
        Score stations one after another. A station that fails is logged and
        left out of the result; the batch carries on.
        """
        analysis_date = analysis_date or date.today()
        results: Dict[int, ScoreMetrics] = {}
        for i, station in enumerate(stations):
            if i and self.throttle_seconds > 0:
                await asyncio.sleep(self.throttle_seconds)
            try:
                results[station.id] = await self.score_station(station, profile, analysis_date)
            except Exception:
                logger.exception("Scoring failed for station %s (%s)", station.id, station.name)

        logger.info(
            "Scored %d/%d stations for %s", len(results), len(stations), analysis_date.isoformat()
        )
        return results

    # ----- ranking ---------------------------------------------------------------

    def ranking_frame(
        self, stations: Iterable[StationRecord], analysis_date: Optional[date] = None
    ) -> pd.DataFrame:
        """
        Persisted metrics of ``analysis_date`` joined with station data,
        highest composite first. Columns: station_id, name, category,
        distance_from_origin, <metrics>, priority_level, urgency_level, rank.
        """
        analysis_date = analysis_date or date.today()
        metrics = self.repository.get_score_metrics(analysis_date) if self.repository else {}
        rows = [
            {
                "station_id": s.id,
                "name": s.name,
                "category": s.category,
                "distance_from_origin": s.distance_from_origin,
                **metrics[s.id].to_dict(),
            }
            for s in stations
            if s.id in metrics
        ]
        columns = [
            "station_id", "name", "category", "distance_from_origin",
            "traffic_volume", "capacity_constraints", "strategic_importance",
            "facility_deficits", "composite_score",
        ]
        df = pd.DataFrame(rows, columns=columns)
        df = df.sort_values(
            ["composite_score", "distance_from_origin"], ascending=[False, True]
        ).reset_index(drop=True)
        df["priority_level"] = df["composite_score"].map(priority_level)
        df["urgency_level"] = df["composite_score"].map(urgency_level)
        df["rank"] = range(1, len(df) + 1)
        return df

    def ranked_stations(
        self,
        stations: Iterable[StationRecord],
        analysis_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        df = self.ranking_frame(stations, analysis_date)
        if limit is not None:
            df = df.head(limit)
        return df.to_dict(orient="records")

    def critical_stations(
        self,
        stations: Iterable[StationRecord],
        analysis_date: Optional[date] = None,
        threshold: int = 75,
    ) -> List[dict]:
        df = self.ranking_frame(stations, analysis_date)
        return df[df["composite_score"] >= threshold].to_dict(orient="records")

    # ----- recommendations ---------------------------------------------------------

    def station_recommendations(self, station: StationRecord, metrics: ScoreMetrics) -> List[str]:
        recommendations: List[str] = []

        if metrics.capacity_constraints >= 75:
            recommendations += self._infrastructure_recommendations(station, "high")
        elif metrics.capacity_constraints >= 50:
            recommendations += self._infrastructure_recommendations(station, "medium")
        elif metrics.capacity_constraints >= 25:
            recommendations += self._infrastructure_recommendations(station, "low")

        if metrics.facility_deficits >= 60:
            recommendations += self._facility_recommendations(station, "high")
        elif metrics.facility_deficits >= 30:
            recommendations += self._facility_recommendations(station, "medium")

        if metrics.strategic_importance >= 80 and metrics.traffic_volume >= 70:
            recommendations += self._strategic_recommendations(station)

        if not recommendations:
            recommendations.append("Monitor station performance and reassess in 6 months")
        return recommendations

    def _infrastructure_recommendations(self, station, level):
        expected = self.expected_platforms(station.category)
        short = expected - station.platform_count
        if level == "high":
            recs = []
            if short > 0:
                recs.append(f"Urgent: Add {short} additional platforms to meet capacity demands")
            recs.append("Implement platform extension project within 12 months")
            recs.append("Conduct detailed capacity analysis and passenger flow study")
            return recs
        if level == "medium":
            recs = ["Plan platform capacity improvements within 18-24 months"]
            if short > 0:
                recs.append("Consider platform lengthening for longer trains")
            return recs
        return ["Monitor platform utilization and plan future capacity increases"]

    @staticmethod
    def _facility_recommendations(station, level):
        f = station.facilities
        recs = []
        if level == "high":
            if f.stepless_access == SteplessAccess.NO:
                recs.append("Priority: Install elevators/ramps for barrier-free access (legal requirement)")
            if not f.has_wifi and station.category <= 3:
                recs.append("Install free WiFi infrastructure for passenger convenience")
            if not f.has_travel_center and station.category <= 2:
                recs.append("Establish or upgrade travel center for improved customer service")

        if not f.has_local_public_transport:
            recs.append("Coordinate with local authorities to improve public transport connections")
        if not f.has_parking and station.category <= 4:
            recs.append("Develop Park & Ride facilities to increase accessibility")
        if f.stepless_access == SteplessAccess.PARTIAL:
            recs.append("Complete barrier-free access improvements throughout the station")
        return recs

    def _strategic_recommendations(self, station):
        recs = []
        if station.is_strategic_hub:
            recs.append("Prioritize as strategic corridor hub - allocate premium upgrade budget")
            recs.append("Implement digital passenger information systems")
            recs.append("Consider premium facility upgrades (DB Lounge, enhanced waiting areas)")

        d = station.distance_from_origin
        lo, hi = self.MID_CORRIDOR_BAND_KM
        if d == 0 or d >= self.CORRIDOR_LENGTH_KM:
            recs.append("Endpoint station: Focus on capacity and passenger flow optimization")
        elif lo <= d <= hi:
            recs.append("Mid-corridor position: Optimize for connection reliability and transfer efficiency")
        return recs
