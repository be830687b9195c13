# -*- coding: utf-8 -*-
"""
External collaborators the engine reads from.

Each collaborator is a small Protocol plus a bundled implementation that is
good enough for local runs and tests:

- StationRegistry            : corridor stations ordered by distance from origin
- TrafficDataSource          : daily scheduled stop count per station
- DownstreamConnectionSource : departures leaving a station after a given time
- ConnectionSource           : scheduled transfers to analyse for fragility

Municipality data (population, area, served stations) is bundled as a
plain tuple and can be replaced from CSV.

Failures inside a source raise CollaboratorUnavailable; callers decide the
neutral fallback value.
"""
import json
import logging
import time
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

import pandas as pd

from corridor.errors import CollaboratorUnavailable
from corridor.models import (
    ConnectionRecord,
    DownstreamConnection,
    Municipality,
    StationFacilities,
    StationRecord,
    SteplessAccess,
)
from corridor.utils import parse_hhmm

logger = logging.getLogger(__name__)


class StationRegistry(Protocol):
    def list_stations(self) -> List[StationRecord]: ...
    def get_station(self, station_id: int) -> Optional[StationRecord]: ...


class TrafficDataSource(Protocol):
    async def get_daily_stop_count(self, station_id: int, day: date) -> int: ...


class DownstreamConnectionSource(Protocol):
    async def get_downstream_connections(
        self, station_id: int, after_time: str
    ) -> List[DownstreamConnection]: ...


class ConnectionSource(Protocol):
    async def list_connections(self) -> List[ConnectionRecord]: ...


# ---------------------------------------------------------------------------
# Station registry
# ---------------------------------------------------------------------------

_FULL = StationFacilities(
    has_wifi=True,
    has_travel_center=True,
    has_db_lounge=True,
    has_local_public_transport=True,
    has_parking=True,
    has_mobility_service=True,
    stepless_access=SteplessAccess.YES,
)

# Berlin -> Hamburg corridor, distances in km from Berlin Hbf
DEFAULT_CORRIDOR_STATIONS: Tuple[StationRecord, ...] = (
    StationRecord(8011160, "Berlin Hbf", (13.369545, 52.525589), 0, 1, 14, _FULL, True),
    StationRecord(
        8010404, "Berlin-Spandau", (13.197540, 52.534722), 15, 2, 6,
        StationFacilities(True, True, False, True, True, True, SteplessAccess.YES),
        False,
    ),
    StationRecord(
        8010382, "Wittenberge", (11.751389, 53.000278), 126, 3, 4,
        StationFacilities(False, True, False, True, True, False, SteplessAccess.PARTIAL),
        True,
    ),
    StationRecord(
        8010215, "Ludwigslust", (11.503611, 53.333611), 163, 3, 3,
        StationFacilities(False, False, False, True, True, False, SteplessAccess.PARTIAL),
        False,
    ),
    StationRecord(
        8000152, "Hagenow Land", (11.187500, 53.425000), 180, 4, 2,
        StationFacilities(False, False, False, False, True, False, SteplessAccess.PARTIAL),
        False,
    ),
    StationRecord(
        8000059, "Büchen", (10.615833, 53.475556), 240, 4, 3,
        StationFacilities(False, False, False, True, True, False, SteplessAccess.NO),
        False,
    ),
    StationRecord(8002548, "Hamburg Hbf", (10.006389, 53.552778), 289, 1, 12, _FULL, True),
)


class InMemoryStationRegistry:
    """Read-only station registry kept sorted by distance from origin."""

    def __init__(self, stations: Iterable[StationRecord] = DEFAULT_CORRIDOR_STATIONS):
        self._stations = sorted(stations, key=lambda s: s.distance_from_origin)
        self._by_id = {s.id: s for s in self._stations}

    def list_stations(self):
        return list(self._stations)

    def get_station(self, station_id):
        return self._by_id.get(station_id)


_REQUIRED_COLUMNS = {
    "id", "name", "lon", "lat", "distance_from_origin", "category", "platform_count",
}


def load_station_registry(csv_path) -> InMemoryStationRegistry:
    """
    Load stations from CSV.

    The ``facilities`` column holds the JSON blob exported from the station
    table (camelCase keys); ``is_strategic_hub`` accepts true/false/1/0.
    """
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Station CSV not found: {csv_path}")

    df = pd.read_csv(csv_path, encoding="utf-8-sig")
    missing = _REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Station CSV is missing columns: {sorted(missing)}")

    stations = []
    for _, row in df.iterrows():
        facilities_raw = row.get("facilities")
        facilities = {}
        if isinstance(facilities_raw, str) and facilities_raw.strip():
            facilities = json.loads(facilities_raw)
        hub = str(row.get("is_strategic_hub", "false")).strip().lower() in ("true", "1", "yes")
        stations.append(StationRecord(
            id=int(row["id"]),
            name=str(row["name"]).strip(),
            position=(float(row["lon"]), float(row["lat"])),
            distance_from_origin=float(row["distance_from_origin"]),
            category=int(row["category"]),
            platform_count=int(row["platform_count"]),
            facilities=StationFacilities.from_mapping(facilities),
            is_strategic_hub=hub,
        ))

    logger.info("Station registry: %d stations loaded from %s", len(stations), csv_path)
    return InMemoryStationRegistry(stations)


# ---------------------------------------------------------------------------
# Traffic data
# ---------------------------------------------------------------------------

# Scheduled stops per weekday, timetable snapshot of the corridor stations
DEFAULT_DAILY_STOP_COUNTS: Mapping[int, int] = {
    8011160: 620,
    8010404: 340,
    8010382: 118,
    8010215: 96,
    8000152: 64,
    8000059: 88,
    8002548: 710,
}


class StaticTrafficSource:
    """Stop counts from a fixed mapping. Unknown stations are 'unavailable'."""

    def __init__(self, counts: Optional[Mapping[int, int]] = None):
        self._counts = dict(DEFAULT_DAILY_STOP_COUNTS if counts is None else counts)

    async def get_daily_stop_count(self, station_id, day):
        if station_id not in self._counts:
            raise CollaboratorUnavailable(f"No traffic data for station {station_id}")
        return int(self._counts[station_id])


class CachedTrafficSource:
    """TTL cache in front of a (slow, rate limited) traffic source."""

    def __init__(self, source: TrafficDataSource, cache_ttl_seconds=14400):
        self.source = source
        self.cache_ttl_seconds = cache_ttl_seconds
        self._cache: Dict[Tuple[int, str], Tuple[float, int]] = {}

    async def get_daily_stop_count(self, station_id, day):
        cache_key = (station_id, day.isoformat())
        cached = self._cache.get(cache_key)
        now_ts = time.time()
        if cached and now_ts - cached[0] < self.cache_ttl_seconds:
            return cached[1]

        count = await self.source.get_daily_stop_count(station_id, day)
        self._cleanup_expired(now_ts)
        self._cache[cache_key] = (now_ts, count)
        return count

    def _cleanup_expired(self, now_ts):
        expired = [k for k, (ts, _) in self._cache.items() if now_ts - ts >= self.cache_ttl_seconds]
        for key in expired:
            del self._cache[key]

    def __len__(self):
        return len(self._cache)


# ---------------------------------------------------------------------------
# Downstream connections / scheduled transfers
# ---------------------------------------------------------------------------

# Typical onward departures at a corridor hub
DEFAULT_DOWNSTREAM: Tuple[DownstreamConnection, ...] = (
    DownstreamConnection("11:00", "ICE"),
    DownstreamConnection("11:30", "RE"),
)


class StaticDownstreamSource:
    """
    Onward departures per station. Stations without an entry use ``default``.
    Only departures strictly after ``after_time`` are returned.
    """

    def __init__(
        self,
        departures: Optional[Mapping[int, Sequence[DownstreamConnection]]] = None,
        default: Sequence[DownstreamConnection] = DEFAULT_DOWNSTREAM,
    ):
        self._departures = {k: list(v) for k, v in (departures or {}).items()}
        self._default = list(default)

    async def get_downstream_connections(self, station_id, after_time):
        after = parse_hhmm(after_time)
        candidates = self._departures.get(station_id, self._default)
        return [d for d in candidates if parse_hhmm(d.departure_time) > after]


# (arrival, departure, train class, buffer minutes)
DEFAULT_TRANSFER_TEMPLATES: Tuple[Tuple[str, str, str, float], ...] = (
    ("10:30", "10:35", "ICE", 5),
    ("14:15", "14:22", "RE", 7),
)


def consecutive_connections(
    stations: Sequence[StationRecord],
    templates: Sequence[Tuple[str, str, str, float]] = DEFAULT_TRANSFER_TEMPLATES,
) -> List[ConnectionRecord]:
    """One connection per template between each pair of neighbouring stations."""
    connections = []
    for from_station, to_station in zip(stations, stations[1:]):
        for arrival, departure, train_class, buffer_minutes in templates:
            connections.append(ConnectionRecord(
                from_station_id=from_station.id,
                to_station_id=to_station.id,
                arrival_time=arrival,
                departure_time=departure,
                train_class=train_class,
                buffer_minutes=buffer_minutes,
            ))
    return connections


class StaticConnectionSource:
    def __init__(self, connections: Iterable[ConnectionRecord]):
        self._connections = list(connections)

    async def list_connections(self):
        return list(self._connections)


# ---------------------------------------------------------------------------
# Municipalities along the corridor
# ---------------------------------------------------------------------------

# Population / area from the municipal statistics, stations by registry id
DEFAULT_CORRIDOR_MUNICIPALITIES: Tuple[Municipality, ...] = (
    Municipality("11000000", "Berlin", 3669491, 891.7, (8011160, 8010404)),
    Municipality("12070424", "Wittenberge", 16882, 45.2, (8010382,)),
    Municipality("13076091", "Ludwigslust", 12400, 78.6, (8010215,)),
    Municipality("13076057", "Hagenow", 11500, 68.4, (8000152,)),
    Municipality("01053020", "Büchen", 6300, 15.6, (8000059,)),
    Municipality("02000000", "Hamburg", 1899160, 755.2, (8002548,)),
)

_MUNICIPALITY_COLUMNS = {"id", "name", "population", "area_km2", "station_ids"}


def load_municipalities(csv_path) -> List[Municipality]:
    """
    Load municipalities from CSV. ``station_ids`` is a space separated list of
    station ids; ``id`` is read as text so leading zeros survive.
    """
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Municipality CSV not found: {csv_path}")

    df = pd.read_csv(csv_path, encoding="utf-8-sig", dtype={"id": str, "station_ids": str})
    missing = _MUNICIPALITY_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Municipality CSV is missing columns: {sorted(missing)}")

    municipalities = []
    for _, row in df.iterrows():
        raw_ids = row["station_ids"] if isinstance(row["station_ids"], str) else ""
        municipalities.append(Municipality(
            id=row["id"].strip(),
            name=str(row["name"]).strip(),
            population=int(row["population"]),
            area_km2=float(row["area_km2"]),
            station_ids=tuple(int(s) for s in raw_ids.split()),
        ))

    logger.info("Municipalities: %d loaded from %s", len(municipalities), csv_path)
    return municipalities
