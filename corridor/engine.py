# -*- coding: utf-8 -*-
"""
CorridorEngine: wires the profile store, station scoring, connection
fragility and population risk analysis together.

Station priorities are a recalculation subscriber: any profile save or
activation rescores every corridor station under the new profile before the
write returns.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from corridor.collaborators import (
    ConnectionSource,
    DownstreamConnectionSource,
    StationRegistry,
    TrafficDataSource,
)
from corridor.errors import NotFoundError, ValidationError
from corridor.fragility import ConnectionFragilityAnalyzer
from corridor.models import (
    FocusArea,
    Municipality,
    PriorityChange,
    RecalculationEvent,
    ScoreMetrics,
    WeightProfile,
)
from corridor.population import PopulationRiskAnalyzer
from corridor.profiles import DEFAULT_PROFILE_NAME, PRESETS, WeightProfileStore
from corridor.recalc import RecalculationCoordinator, RecalculationReport, significant_changes
from corridor.repository import ProfileRepository
from corridor.scoring import StationScoringEngine

logger = logging.getLogger(__name__)

PREVIEW_STATION_LIMIT = 15
MINIMAL_CHANGE = 2


@dataclass
class ProfileUpdateResult:
    recalculated_stations: int
    significant_changes: List[PriorityChange] = field(default_factory=list)
    report: Optional[RecalculationReport] = None

    @property
    def success(self) -> bool:
        return self.report is not None and not self.report.failed


@dataclass
class ProfileApplyResult:
    """Outcome of re-applying a stored profile; only moves beyond ±1 are listed."""
    recalculated_stations: int
    updated_priorities: List[PriorityChange] = field(default_factory=list)
    report: Optional[RecalculationReport] = None


class CorridorEngine:
    def __init__(
        self,
        registry: StationRegistry,
        repository: ProfileRepository,
        traffic_source: TrafficDataSource,
        downstream_source: DownstreamConnectionSource,
        connection_source: Optional[ConnectionSource] = None,
        throttle_seconds: float = 0.5,
        municipalities: Optional[Iterable[Municipality]] = None,
    ):
        self.registry = registry
        self.repository = repository
        self.coordinator = RecalculationCoordinator()
        self.profiles = WeightProfileStore(repository, self.coordinator)
        self.scoring = StationScoringEngine(traffic_source, repository, throttle_seconds)
        self.fragility = ConnectionFragilityAnalyzer(
            registry, downstream_source, repository, connection_source
        )
        self.population = PopulationRiskAnalyzer(registry, repository, municipalities)
        self.profiles.register_recalculation_subscriber(
            self.recalculate_station_priorities, name="station_priorities"
        )

    async def recalculate_station_priorities(self, event: RecalculationEvent) -> Dict[int, ScoreMetrics]:
        stations = self.registry.list_stations()
        if event.station_ids is not None:
            wanted = set(event.station_ids)
            stations = [s for s in stations if s.id in wanted]
        if not stations:
            logger.warning("No corridor stations to recalculate")
            return {}
        results = await self.scoring.score_stations(stations, event.profile)
        if results:
            avg = sum(m.composite_score for m in results.values()) / len(results)
            logger.info(
                "Priority recalculation %s/%s: %d stations, avg %.0f, %d high",
                event.user_id, event.profile_name, len(results), avg,
                sum(1 for m in results.values() if m.composite_score >= 75),
            )
        return results

    def current_priorities(self, analysis_date: Optional[date] = None) -> Dict[int, int]:
        """Composite score per corridor station; unscored stations count as 0."""
        metrics = self.repository.get_score_metrics(analysis_date or date.today())
        return {
            s.id: metrics[s.id].composite_score if s.id in metrics else 0
            for s in self.registry.list_stations()
        }

    def station_names(self) -> Dict[int, str]:
        return {s.id: s.name for s in self.registry.list_stations()}

    async def update_profile(
        self, user_id: str, profile_name: str, profile: WeightProfile
    ) -> ProfileUpdateResult:
        """Save ``profile`` and report which station priorities moved noticeably."""
        before = await asyncio.to_thread(self.current_priorities)
        report = await self.profiles.save(user_id, profile_name, profile)
        after = await asyncio.to_thread(self.current_priorities)
        return ProfileUpdateResult(
            recalculated_stations=len(after),
            significant_changes=significant_changes(before, after, self.station_names()),
            report=report,
        )

    async def apply_profile_to_stations(
        self,
        user_id: str,
        profile_name: str,
        station_ids: Optional[Sequence[int]] = None,
    ) -> ProfileApplyResult:
        """
        Re-run the recalculation subscribers for a stored profile of ``user_id``.

        With ``station_ids`` only those stations are rescored (unknown ids are
        ignored). The profile itself is not modified and does not become active.
        """
        profile = await asyncio.to_thread(self.profiles.get, user_id, profile_name)
        if profile is None:
            raise NotFoundError(f"Profile {profile_name!r} not found for user {user_id}")

        targets = self.registry.list_stations()
        if station_ids:
            wanted = set(station_ids)
            targets = [s for s in targets if s.id in wanted]
            if not targets:
                raise NotFoundError(f"None of the stations {sorted(wanted)} is on the corridor")
        target_ids = tuple(s.id for s in targets)

        logger.info("Applying profile %s of user %s to %d stations", profile_name, user_id, len(targets))
        before = await asyncio.to_thread(self.current_priorities)
        report = await self.coordinator.dispatch(RecalculationEvent(
            user_id=user_id,
            profile_name=profile_name,
            profile=profile,
            station_ids=target_ids if station_ids else None,
        ))
        after = await asyncio.to_thread(self.current_priorities)

        names = {s.id: s.name for s in targets}
        return ProfileApplyResult(
            recalculated_stations=len(targets),
            updated_priorities=significant_changes(
                {i: before[i] for i in target_ids},
                {i: after[i] for i in target_ids},
                names,
                threshold=MINIMAL_CHANGE,
            ),
            report=report,
        )

    async def preview_profile(
        self, profile: WeightProfile, limit: int = PREVIEW_STATION_LIMIT
    ) -> List[dict]:
        """
        Projected composite score per station under ``profile``, nothing is
        persisted. Largest movement first.
        """
        current = await asyncio.to_thread(self.current_priorities)
        preview = []
        for station in self.registry.list_stations()[:limit]:
            projected = await self.scoring.compute_metrics(station, profile)
            change = projected.composite_score - current.get(station.id, 0)
            if abs(change) < MINIMAL_CHANGE:
                direction = "minimal"
            else:
                direction = "increase" if change > 0 else "decrease"
            preview.append({
                "station_id": station.id,
                "name": station.name,
                "current_priority": current.get(station.id, 0),
                "projected_priority": projected.composite_score,
                "change": change,
                "change_direction": direction,
            })
        preview.sort(key=lambda p: abs(p["change"]), reverse=True)
        return preview

    async def preview_focus_change(self, user_id: str, focus_area) -> dict:
        """What switching ``user_id`` to the preset of ``focus_area`` would do."""
        try:
            focus = FocusArea(focus_area)
        except ValueError:
            raise ValidationError([f"Unknown focus area: {focus_area!r}"]) from None
        active = await self.profiles.get_active_profile(user_id)
        template = PRESETS.get(f"{focus.value}_focus", PRESETS[DEFAULT_PROFILE_NAME])
        return {
            "old_profile": active.profile,
            "new_profile": template,
            "impact_preview": await self.preview_profile(template),
        }
