# -*- coding: utf-8 -*-
import asyncio
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.cache import ranking_cache
from api.dependencies import registry, verify_api_key
from api.schemas import (
    PriorityChangeItem,
    RecalculateRequest,
    RecalculateResponse,
    ScoreMetricsModel,
    StationDetailResponse,
    StationItem,
    StationPriorityItem,
)
from corridor.scoring import priority_level

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_date(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date (expected YYYY-MM-DD): {value}")


@router.get(
    "/stations",
    response_model=List[StationItem],
    summary="Corridor stations",
    description="All corridor stations ordered by distance from the origin endpoint.",
    response_description="Station master data with facilities",
)
async def list_stations():
    engine = registry.get_engine()
    return [StationItem.from_domain(s) for s in engine.registry.list_stations()]


@router.get(
    "/stations/priorities",
    response_model=List[StationPriorityItem],
    summary="Station upgrade priority ranking",
    description="Persisted composite scores of the analysis date, highest first. "
    "Cached for 5 minutes; any profile change clears the cache.",
    response_description="Ranked stations with sub-metrics and priority level",
)
async def station_priorities(
    limit: Optional[int] = Query(None, ge=1, le=500),
    analysis_date: Optional[str] = Query(None, description="YYYY-MM-DD, default today"),
):
    day = _parse_date(analysis_date)
    cached = ranking_cache.get("priorities", day.isoformat(), limit)
    if cached is not None:
        return cached

    engine = registry.get_engine()
    rows = await asyncio.to_thread(
        engine.scoring.ranked_stations, engine.registry.list_stations(), day, limit
    )
    response = [StationPriorityItem(**row) for row in rows]
    ranking_cache.set("priorities", day.isoformat(), limit, value=response)
    return response


@router.get(
    "/stations/critical",
    response_model=List[StationPriorityItem],
    summary="Critical stations",
    description="Stations whose composite score is at or above the threshold.",
)
async def critical_stations(
    threshold: int = Query(75, ge=0, le=100),
    analysis_date: Optional[str] = Query(None),
):
    day = _parse_date(analysis_date)
    engine = registry.get_engine()
    rows = await asyncio.to_thread(
        engine.scoring.critical_stations, engine.registry.list_stations(), day, threshold
    )
    return [StationPriorityItem(**row) for row in rows]


@router.post(
    "/stations/recalculate",
    response_model=RecalculateResponse,
    summary="Re-apply a profile to the stations",
    description="Runs every recalculation subscriber for one of the user's profiles "
    "(default: the active profile), optionally limited to the given stations. "
    "Only priorities that moved by more than one point are listed.",
)
async def recalculate(req: RecalculateRequest, _: None = Depends(verify_api_key)):
    engine = registry.get_engine()
    profile_name = req.profile_name
    if profile_name is None:
        profile_name = (await engine.profiles.get_active_profile(req.user_id)).profile_name
    result = await engine.apply_profile_to_stations(req.user_id, profile_name, req.station_ids)
    logger.info("Manual recalculation for %s with %s", req.user_id, profile_name)
    return RecalculateResponse(
        profile_name=profile_name,
        analysis_date=date.today().isoformat(),
        stations_scored=result.recalculated_stations,
        updated_priorities=[PriorityChangeItem.from_domain(c) for c in result.updated_priorities],
        failed_subscribers=[o.name for o in result.report.failed],
    )


@router.get(
    "/stations/{station_id}",
    response_model=StationDetailResponse,
    summary="Station detail",
    description="Station data, stored metrics of the analysis date and upgrade recommendations.",
)
async def station_detail(station_id: int, analysis_date: Optional[str] = Query(None)):
    engine = registry.get_engine()
    station = engine.registry.get_station(station_id)
    if station is None:
        raise HTTPException(status_code=404, detail=f"Station not found: {station_id}")

    day = _parse_date(analysis_date)
    all_metrics = await asyncio.to_thread(engine.repository.get_score_metrics, day)
    metrics = all_metrics.get(station_id)
    if metrics is None:
        return StationDetailResponse(
            station=StationItem.from_domain(station),
            analysis_date=day.isoformat(),
        )
    return StationDetailResponse(
        station=StationItem.from_domain(station),
        analysis_date=day.isoformat(),
        metrics=ScoreMetricsModel.from_domain(metrics),
        priority_level=priority_level(metrics.composite_score),
        recommendations=engine.scoring.station_recommendations(station, metrics),
    )
