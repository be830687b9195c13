"""
pytest configuration
"""
import sys
from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from corridor.collaborators import (
    DEFAULT_CORRIDOR_STATIONS,
    InMemoryStationRegistry,
    StaticDownstreamSource,
    StaticTrafficSource,
)
from corridor.engine import CorridorEngine
from corridor.models import StationFacilities, StationRecord, SteplessAccess
from corridor.repository import SqliteRepository


@pytest.fixture
def repository(tmp_path):
    """Fresh SQLite repository per test"""
    return SqliteRepository(tmp_path / "corridor.db")


@pytest.fixture
def station_registry():
    return InMemoryStationRegistry(DEFAULT_CORRIDOR_STATIONS)


@pytest.fixture
def stations_by_name():
    return {s.name: s for s in DEFAULT_CORRIDOR_STATIONS}


@pytest.fixture
def make_station():
    """Factory for ad-hoc stations; keyword overrides on a bare category-3 station."""
    base = StationRecord(
        id=9000001,
        name="Teststadt",
        position=(11.0, 53.0),
        distance_from_origin=100,
        category=3,
        platform_count=6,
        facilities=StationFacilities(stepless_access=SteplessAccess.YES),
        is_strategic_hub=False,
    )

    def _make(**overrides):
        return replace(base, **overrides)

    return _make


@pytest.fixture
def engine(repository, station_registry):
    """CorridorEngine on the bundled corridor, no throttling"""
    return CorridorEngine(
        registry=station_registry,
        repository=repository,
        traffic_source=StaticTrafficSource(),
        downstream_source=StaticDownstreamSource(),
        throttle_seconds=0,
    )


@pytest.fixture
def test_client(tmp_path, monkeypatch):
    """FastAPI test client backed by a temporary database"""
    monkeypatch.setenv("CORRIDOR_DB_PATH", str(tmp_path / "api.db"))
    monkeypatch.setenv("SCORING_THROTTLE_SECONDS", "0")
    monkeypatch.delenv("CORRIDOR_API_KEY", raising=False)
    monkeypatch.delenv("CORRIDOR_STATIONS_CSV", raising=False)
    monkeypatch.delenv("CORRIDOR_MUNICIPALITIES_CSV", raising=False)

    from api.app import app
    from api.cache import ranking_cache

    ranking_cache.invalidate()
    with TestClient(app) as client:
        yield client
