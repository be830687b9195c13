"""
CorridorEngine singleton.
Built once at startup from EngineSettings and reused by every request.
"""
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Optional

from fastapi import Header, HTTPException

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from corridor.collaborators import (
    CachedTrafficSource,
    InMemoryStationRegistry,
    StaticDownstreamSource,
    StaticTrafficSource,
    load_municipalities,
    load_station_registry,
)
from corridor.config import EngineSettings
from corridor.engine import CorridorEngine
from corridor.repository import SqliteRepository

from api.cache import invalidate_ranking_cache

logger = logging.getLogger(__name__)


class EngineRegistry:
    def __init__(self):
        self.engine: CorridorEngine | None = None
        self.settings: EngineSettings | None = None
        self.engine_lock = threading.RLock()  # guards load/reload

    def load(self, settings: Optional[EngineSettings] = None):
        settings = settings or EngineSettings.from_env()
        if settings.stations_csv:
            stations = load_station_registry(settings.stations_csv)
        else:
            stations = InMemoryStationRegistry()
        municipalities = None
        if settings.municipalities_csv:
            municipalities = load_municipalities(settings.municipalities_csv)

        engine = CorridorEngine(
            registry=stations,
            repository=SqliteRepository(settings.db_path),
            traffic_source=CachedTrafficSource(
                StaticTrafficSource(), settings.traffic_cache_ttl_seconds
            ),
            downstream_source=StaticDownstreamSource(),
            throttle_seconds=settings.scoring_throttle_seconds,
            municipalities=municipalities,
        )
        engine.profiles.register_recalculation_subscriber(
            invalidate_ranking_cache, name="ranking_cache"
        )

        with self.engine_lock:
            self.engine = engine
            self.settings = settings
        logger.info(
            "Corridor engine loaded: %d stations, db=%s",
            len(stations.list_stations()), settings.db_path,
        )

    def get_engine(self) -> CorridorEngine:
        if self.engine is None:
            raise RuntimeError("Engine not loaded")
        return self.engine


registry = EngineRegistry()


def verify_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """API key check (only when CORRIDOR_API_KEY is set)"""
    api_key = os.getenv("CORRIDOR_API_KEY")
    if api_key:
        if not x_api_key or x_api_key != api_key:
            raise HTTPException(status_code=403, detail="Invalid API key")
