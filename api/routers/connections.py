# -*- coding: utf-8 -*-
import asyncio
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import registry, verify_api_key
from api.schemas import AnalyzeRequest, FragilityItem, VulnerabilityItem
from corridor.models import ConnectionRecord

router = APIRouter()


def _parse_date(value: Optional[str], default: Optional[date] = None) -> Optional[date]:
    if not value:
        return default
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date (expected YYYY-MM-DD): {value}")


@router.post(
    "/connections/analyze",
    response_model=List[FragilityItem],
    summary="Run fragility analysis",
    description="Analyses the given transfers, or the corridor's default transfers when "
    "none are given, and stores one record per connection for today.",
    response_description="Fragility records in input order",
)
async def analyze(req: Optional[AnalyzeRequest] = None, _: None = Depends(verify_api_key)):
    engine = registry.get_engine()
    connections = None
    if req is not None and req.connections is not None:
        connections = [ConnectionRecord(**c.model_dump()) for c in req.connections]
    records = await engine.fragility.analyze_corridor(connections)
    return [FragilityItem.from_domain(r) for r in records]


@router.get(
    "/connections/fragility",
    response_model=List[FragilityItem],
    summary="Fragility history",
    description="Stored records between start and end (inclusive), most fragile first.",
)
async def fragility_history(
    start: Optional[str] = Query(None, description="YYYY-MM-DD, default today"),
    end: Optional[str] = Query(None, description="YYYY-MM-DD, default = start"),
):
    start_day = _parse_date(start, date.today())
    end_day = _parse_date(end, start_day)
    if end_day < start_day:
        raise HTTPException(status_code=400, detail="end must not be before start")
    engine = registry.get_engine()
    records = await asyncio.to_thread(engine.fragility.fragility_history, start_day, end_day)
    return [FragilityItem.from_domain(r) for r in records]


@router.get(
    "/connections/most-fragile",
    response_model=List[FragilityItem],
    summary="Most fragile connections",
)
async def most_fragile(limit: int = Query(10, ge=1, le=100)):
    engine = registry.get_engine()
    records = await asyncio.to_thread(engine.fragility.most_fragile, limit)
    return [FragilityItem.from_domain(r) for r in records]


@router.get(
    "/connections/vulnerability",
    response_model=List[VulnerabilityItem],
    summary="Vulnerability ranking",
    description="Today's records ranked by impact score (fragility, cascade risk, "
    "passenger volume and strategic position).",
)
async def vulnerability_ranking(limit: int = Query(10, ge=1, le=100)):
    engine = registry.get_engine()
    ranked = await asyncio.to_thread(engine.fragility.rank_by_vulnerability)
    return [
        VulnerabilityItem(
            vulnerability_rank=item["vulnerability_rank"],
            impact_score=item["impact_score"],
            priority_level=item["priority_level"],
            from_name=item["station_names"]["from"],
            to_name=item["station_names"]["to"],
            connection=FragilityItem.from_domain(item["connection"]),
        )
        for item in ranked[:limit]
    ]
