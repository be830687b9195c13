# -*- coding: utf-8 -*-
"""
Connection fragility: how likely a scheduled transfer is to break and how far
a break would spread.

    fragility = min(100, round((buffer·0.4 + cascade·0.4 + (100 - alt·10)·0.2) · w))

buffer   step function of the planned transfer buffer (minutes)
cascade  mean risk of onward departures from the destination, 20..100
alt      heuristic alternative-route count, 1..5
w        importance of the train class (intercity 1.0, regional 0.7, other 0.4)
"""
import asyncio
import logging
from datetime import date
from typing import Dict, List, Optional, Sequence

from corridor.collaborators import (
    ConnectionSource,
    DownstreamConnectionSource,
    StationRegistry,
    StaticConnectionSource,
    consecutive_connections,
)
from corridor.models import ConnectionRecord, FragilityRecord
from corridor.repository import ProfileRepository
from corridor.utils import minutes_between, round_half_up

logger = logging.getLogger(__name__)


class ConnectionFragilityAnalyzer:
    # (upper bound in minutes, score); anything above the last bound scores 20
    BUFFER_STEPS = ((5, 100), (10, 80), (15, 60), (20, 40))
    BUFFER_FLOOR_SCORE = 20
    RECOMMENDED_BUFFER = 15
    COMFORTABLE_BUFFER = 20

    CASCADE_NO_DOWNSTREAM = 20
    CASCADE_FALLBACK = 50

    MAX_ALTERNATIVE_ROUTES = 5
    LONG_SEGMENT_KM = 100

    INTERCITY_WEIGHT = 1.0
    REGIONAL_WEIGHT = 0.7
    LOCAL_WEIGHT = 0.4

    # vulnerability ranking
    IMPACT_WEIGHTS = {"fragility": 0.4, "cascade": 0.3, "passenger_volume": 0.2, "strategic": 0.1}
    IMPACT_LEVELS = ((80, "Critical"), (60, "High"), (40, "Medium"), (0, "Low"))

    def __init__(
        self,
        registry: StationRegistry,
        downstream_source: DownstreamConnectionSource,
        repository: Optional[ProfileRepository] = None,
        connection_source: Optional[ConnectionSource] = None,
    ):
        self.registry = registry
        self.downstream_source = downstream_source
        self.repository = repository
        self.connection_source = connection_source or StaticConnectionSource(
            consecutive_connections(registry.list_stations())
        )

    # ----- components ----------------------------------------------------------

    def buffer_fragility(self, buffer_minutes: float) -> int:
        for bound, score in self.BUFFER_STEPS:
            if buffer_minutes < bound:
                return score
        return self.BUFFER_FLOOR_SCORE

    async def cascade_risk(self, connection: ConnectionRecord) -> int:
        try:
            downstream = await self.downstream_source.get_downstream_connections(
                connection.to_station_id, connection.arrival_time
            )
            if not downstream:
                return self.CASCADE_NO_DOWNSTREAM

            total = 0
            for onward in downstream:
                gap = minutes_between(connection.arrival_time, onward.departure_time)
                if gap < 30:
                    total += 80
                elif gap < 60:
                    total += 60
                else:
                    total += 20
            return min(100, round_half_up(total / len(downstream)))
        except Exception as e:
            logger.warning(
                "Cascade risk unavailable for %s->%s (%s), using %d",
                connection.from_station_id, connection.to_station_id, e, self.CASCADE_FALLBACK,
            )
            return self.CASCADE_FALLBACK

    def alternative_routes(self, from_station_id: int, to_station_id: int) -> int:
        try:
            origin = self.registry.get_station(from_station_id)
            destination = self.registry.get_station(to_station_id)
            if origin is None or destination is None:
                return 1

            count = 1
            if origin.category <= 2 and destination.category <= 2:
                count += 2
            elif origin.category <= 4 or destination.category <= 4:
                count += 1

            if abs(origin.distance_from_origin - destination.distance_from_origin) > self.LONG_SEGMENT_KM:
                count += 1
            return min(self.MAX_ALTERNATIVE_ROUTES, count)
        except Exception as e:
            logger.warning(
                "Station lookup failed for %s->%s (%s), assuming a single route",
                from_station_id, to_station_id, e,
            )
            return 1

    def importance_weight(self, train_class: str) -> float:
        kind = (train_class or "").lower()
        if "ice" in kind or "ic" in kind:
            return self.INTERCITY_WEIGHT
        if "re" in kind or "rb" in kind:
            return self.REGIONAL_WEIGHT
        return self.LOCAL_WEIGHT

    def recommendations(self, buffer_score, cascade_risk, alternative_routes, fragility_score) -> List[str]:
        recs = []
        if buffer_score >= 80:
            recs.append(f"Increase buffer time to at least {self.RECOMMENDED_BUFFER} minutes")
        elif buffer_score >= 60:
            recs.append(
                f"Consider increasing buffer time to {self.COMFORTABLE_BUFFER} minutes for better reliability"
            )

        if cascade_risk >= 70:
            recs.append("Implement delay management protocols for downstream connections")
            recs.append("Consider staggering departure times of connecting services")

        if alternative_routes <= 1:
            recs.append("Develop alternative routing options for service disruptions")

        if fragility_score >= 80:
            recs.append("Priority connection requiring immediate timetable optimization")
        elif fragility_score >= 60:
            recs.append("Monitor connection performance and consider schedule adjustments")
        return recs

    # ----- analysis ----------------------------------------------------------------

    async def analyze_connection(self, connection: ConnectionRecord) -> FragilityRecord:
        buffer_score = self.buffer_fragility(connection.buffer_minutes)
        cascade = await self.cascade_risk(connection)
        alternatives = self.alternative_routes(connection.from_station_id, connection.to_station_id)
        weight = self.importance_weight(connection.train_class)

        fragility = min(100, round_half_up(
            (buffer_score * 0.4 + cascade * 0.4 + (100 - alternatives * 10) * 0.2) * weight
        ))
        return FragilityRecord(
            from_station_id=connection.from_station_id,
            to_station_id=connection.to_station_id,
            buffer_minutes=connection.buffer_minutes,
            fragility_score=fragility,
            cascade_risk=cascade,
            alternative_route_count=alternatives,
            recommendations=tuple(self.recommendations(buffer_score, cascade, alternatives, fragility)),
        )

    async def analyze_corridor(
        self,
        connections: Optional[Sequence[ConnectionRecord]] = None,
        analysis_date: Optional[date] = None,
    ) -> List[FragilityRecord]:
        """Analyse ``connections`` (default: the connection source) and persist every record."""
        analysis_date = analysis_date or date.today()
        if connections is None:
            connections = await self.connection_source.list_connections()

        records = []
        for connection in connections:
            try:
                records.append(await self.analyze_connection(connection))
            except Exception:
                logger.exception(
                    "Fragility analysis failed for %s->%s",
                    connection.from_station_id, connection.to_station_id,
                )

        if self.repository is not None:
            await asyncio.to_thread(self.repository.upsert_many_fragility, records, analysis_date)
        logger.info(
            "Fragility analysis for %s: %d/%d connections",
            analysis_date.isoformat(), len(records), len(connections),
        )
        return records

    # ----- persisted views -------------------------------------------------------------

    def fragility_history(self, start: date, end: Optional[date] = None) -> List[FragilityRecord]:
        return self.repository.list_fragility(start, end)

    def most_fragile(self, limit: Optional[int] = 10, analysis_date: Optional[date] = None) -> List[FragilityRecord]:
        analysis_date = analysis_date or date.today()
        return self.repository.list_fragility(analysis_date)[:limit]

    def _passenger_volume_impact(self, record: FragilityRecord) -> float:
        origin = self.registry.get_station(record.from_station_id)
        destination = self.registry.get_station(record.to_station_id)
        if origin is None or destination is None:
            return 50
        avg_category = (origin.category + destination.category) / 2
        hub_bonus = 20 if (origin.is_strategic_hub or destination.is_strategic_hub) else 0
        return min(100, max(0, 100 - (avg_category - 1) * 15) + hub_bonus)

    def _strategic_impact(self, record: FragilityRecord) -> float:
        origin = self.registry.get_station(record.from_station_id)
        destination = self.registry.get_station(record.to_station_id)
        if origin is None or destination is None:
            return 50
        avg_distance = (origin.distance_from_origin + destination.distance_from_origin) / 2
        if 50 < avg_distance < 200:
            distance_score = 80
        elif avg_distance <= 50 or avg_distance >= 250:
            distance_score = 90
        else:
            distance_score = 50
        return min(100, distance_score + max(0, (5 - record.alternative_route_count) * 10))

    def impact_score(self, record: FragilityRecord) -> float:
        w = self.IMPACT_WEIGHTS
        return min(100.0, (
            record.fragility_score * w["fragility"]
            + record.cascade_risk * w["cascade"]
            + self._passenger_volume_impact(record) * w["passenger_volume"]
            + self._strategic_impact(record) * w["strategic"]
        ))

    def impact_level(self, impact_score: float) -> str:
        for floor, label in self.IMPACT_LEVELS:
            if impact_score >= floor:
                return label
        return self.IMPACT_LEVELS[-1][1]

    def station_names(self, record: FragilityRecord) -> Dict[str, str]:
        def name_of(station_id):
            station = self.registry.get_station(station_id)
            return station.name if station else f"Station {station_id}"

        return {"from": name_of(record.from_station_id), "to": name_of(record.to_station_id)}

    def rank_by_vulnerability(self, analysis_date: Optional[date] = None) -> List[dict]:
        """Persisted records of ``analysis_date`` ordered by impact score, rank 1 = most vulnerable."""
        records = self.most_fragile(limit=None, analysis_date=analysis_date)
        ranked = []
        for record in records:
            impact = self.impact_score(record)
            ranked.append({
                "connection": record,
                "impact_score": round(impact, 1),
                "priority_level": self.impact_level(impact),
                "station_names": self.station_names(record),
            })
        ranked.sort(key=lambda item: item["impact_score"], reverse=True)
        for i, item in enumerate(ranked, start=1):
            item["vulnerability_rank"] = i
        return ranked
