# -*- coding: utf-8 -*-
import asyncio
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import registry, verify_api_key
from api.schemas import (
    ZONE_LEVEL,
    CorridorRiskProfileResponse,
    HighestRiskZoneItem,
    HighImpactZonesResponse,
    PopulationRiskItem,
    RiskZoneItem,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_date(value: Optional[str], default: Optional[date] = None) -> Optional[date]:
    if not value:
        return default
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date (expected YYYY-MM-DD): {value}")


@router.post(
    "/risk-zones/analyze",
    response_model=List[PopulationRiskItem],
    summary="Run population risk analysis",
    description="Scores every corridor municipality for disruption impact and stores "
    "the records for today.",
    response_description="One record per municipality in corridor order",
)
async def analyze(_: None = Depends(verify_api_key)):
    engine = registry.get_engine()
    records = await engine.population.analyze_corridor()
    return [PopulationRiskItem.from_domain(r) for r in records]


@router.get(
    "/risk-zones",
    response_model=List[RiskZoneItem],
    summary="Risk zones",
    description="Stored municipalities of the analysis date as risk zones, most urgent "
    "first. Filter by zone level and/or a minimum impact score.",
)
async def list_risk_zones(
    zone_level: Optional[ZONE_LEVEL] = Query(None),
    min_score: int = Query(0, ge=0, le=100),
    analysis_date: Optional[str] = Query(None, description="YYYY-MM-DD, default today"),
):
    day = _parse_date(analysis_date, date.today())
    engine = registry.get_engine()
    zones = await asyncio.to_thread(engine.population.risk_zones, day, zone_level, min_score)
    return [RiskZoneItem.from_zone(z) for z in zones]


@router.get(
    "/risk-zones/history",
    response_model=List[PopulationRiskItem],
    summary="Population risk history",
    description="Stored records between start and end (inclusive), highest impact first.",
)
async def risk_history(
    start: Optional[str] = Query(None, description="YYYY-MM-DD, default today"),
    end: Optional[str] = Query(None, description="YYYY-MM-DD, default = start"),
):
    start_day = _parse_date(start, date.today())
    end_day = _parse_date(end, start_day)
    if end_day < start_day:
        raise HTTPException(status_code=400, detail="end must not be before start")
    engine = registry.get_engine()
    records = await asyncio.to_thread(engine.population.risk_history, start_day, end_day)
    return [PopulationRiskItem.from_domain(r) for r in records]


@router.get(
    "/risk-zones/highest",
    response_model=List[HighestRiskZoneItem],
    summary="Highest risk zones",
    description="Today's municipalities with the highest disruption impact, with the "
    "factors behind the score and the stored mitigation actions.",
)
async def highest_risk_zones(limit: int = Query(10, ge=1, le=100)):
    engine = registry.get_engine()
    zones = await asyncio.to_thread(engine.population.highest_risk_zones, limit)
    return [
        HighestRiskZoneItem(
            zone=PopulationRiskItem.from_domain(z["record"]),
            key_risk_factors=z["key_risk_factors"],
            mitigation_actions=z["mitigation_actions"],
        )
        for z in zones
    ]


@router.get(
    "/risk-zones/high-impact",
    response_model=HighImpactZonesResponse,
    summary="High impact zones",
    description="Zones with impact score 60 or more, corridor health metrics and the "
    "priority actions they call for.",
)
async def high_impact_zones(analysis_date: Optional[str] = Query(None)):
    day = _parse_date(analysis_date, date.today())
    engine = registry.get_engine()
    return await asyncio.to_thread(engine.population.high_impact_zones, day)


@router.get(
    "/risk-zones/corridor/profile",
    response_model=CorridorRiskProfileResponse,
    summary="Corridor risk profile",
    description="Zone level distribution and the corridor vulnerability index.",
)
async def corridor_risk_profile(analysis_date: Optional[str] = Query(None)):
    day = _parse_date(analysis_date, date.today())
    engine = registry.get_engine()
    return await asyncio.to_thread(engine.population.corridor_risk_profile, day)


@router.get(
    "/risk-zones/{zone_id}",
    response_model=RiskZoneItem,
    summary="Risk zone detail",
)
async def risk_zone_detail(zone_id: str, analysis_date: Optional[str] = Query(None)):
    day = _parse_date(analysis_date, date.today())
    engine = registry.get_engine()
    zones = await asyncio.to_thread(engine.population.risk_zones, day)
    for zone in zones:
        if zone["zone_id"] == zone_id:
            return RiskZoneItem.from_zone(zone)
    logger.info("Risk zone %s not analysed for %s", zone_id, day.isoformat())
    raise HTTPException(status_code=404, detail=f"Risk zone not found: {zone_id}")
