# -*- coding: utf-8 -*-
"""
SQLite persistence for weight profiles, active-profile pointers, station score
metrics, connection fragility and population risk records.

Every write is an upsert keyed by the record's natural key, so re-running an
analysis for the same day overwrites instead of duplicating.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

from corridor.errors import PersistenceError
from corridor.models import (
    FocusArea,
    FragilityRecord,
    PopulationRiskRecord,
    ScoreMetrics,
    StoredProfile,
    WeightProfile,
)

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS weight_profiles (
        user_id TEXT NOT NULL,
        profile_name TEXT NOT NULL,
        infrastructure_weight REAL NOT NULL,
        timetable_weight REAL NOT NULL,
        population_risk_weight REAL NOT NULL,
        focus_area TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (user_id, profile_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS active_profiles (
        user_id TEXT PRIMARY KEY,
        profile_name TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS station_scores (
        station_id INTEGER NOT NULL,
        analysis_date TEXT NOT NULL,
        traffic_volume INTEGER NOT NULL,
        capacity_constraints INTEGER NOT NULL,
        strategic_importance INTEGER NOT NULL,
        facility_deficits INTEGER NOT NULL,
        composite_score INTEGER NOT NULL,
        PRIMARY KEY (station_id, analysis_date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS connection_fragility (
        from_station_id INTEGER NOT NULL,
        to_station_id INTEGER NOT NULL,
        analysis_date TEXT NOT NULL,
        buffer_minutes REAL NOT NULL,
        fragility_score INTEGER NOT NULL,
        cascade_risk INTEGER NOT NULL,
        alternative_route_count INTEGER NOT NULL,
        recommendations TEXT NOT NULL,
        PRIMARY KEY (from_station_id, to_station_id, analysis_date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS population_risk (
        municipality_id TEXT NOT NULL,
        analysis_date TEXT NOT NULL,
        municipality_name TEXT NOT NULL,
        corridor_segment TEXT NOT NULL,
        population INTEGER NOT NULL,
        daily_traffic_volume INTEGER NOT NULL,
        disruption_impact_score INTEGER NOT NULL,
        risk_level TEXT NOT NULL,
        recommendations TEXT NOT NULL,
        PRIMARY KEY (municipality_id, analysis_date)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_scores_date ON station_scores(analysis_date)",
    "CREATE INDEX IF NOT EXISTS idx_fragility_date ON connection_fragility(analysis_date)",
    "CREATE INDEX IF NOT EXISTS idx_population_risk_date ON population_risk(analysis_date)",
)


class ProfileRepository(Protocol):
    """What the engine needs from a persistence backend."""

    def upsert_profile(self, user_id: str, profile_name: str, profile: WeightProfile) -> None: ...
    def get_profile(self, user_id: str, profile_name: str) -> Optional[WeightProfile]: ...
    def list_profiles(self, user_id: str) -> List[StoredProfile]: ...
    def delete_profile(self, user_id: str, profile_name: str) -> bool: ...
    def set_active_profile(self, user_id: str, profile_name: str) -> None: ...
    def get_active_profile(self, user_id: str) -> Optional[Tuple[str, str]]: ...
    def upsert_score_metrics(self, station_id: int, analysis_date: date, metrics: ScoreMetrics) -> None: ...
    def get_score_metrics(self, analysis_date: date) -> Dict[int, ScoreMetrics]: ...
    def upsert_fragility(self, record: FragilityRecord, analysis_date: date) -> None: ...
    def list_fragility(self, start: date, end: Optional[date] = None) -> List[FragilityRecord]: ...
    def upsert_many_population_risk(self, records: Iterable[PopulationRiskRecord], analysis_date: date) -> None: ...
    def list_population_risk(self, start: date, end: Optional[date] = None) -> List[PopulationRiskRecord]: ...


def _row_to_profile(row: sqlite3.Row) -> WeightProfile:
    return WeightProfile(
        infrastructure_weight=float(row["infrastructure_weight"]),
        timetable_weight=float(row["timetable_weight"]),
        population_risk_weight=float(row["population_risk_weight"]),
        focus_area=FocusArea(row["focus_area"]),
    )


def _row_to_metrics(row: sqlite3.Row) -> ScoreMetrics:
    return ScoreMetrics(
        traffic_volume=row["traffic_volume"],
        capacity_constraints=row["capacity_constraints"],
        strategic_importance=row["strategic_importance"],
        facility_deficits=row["facility_deficits"],
        composite_score=row["composite_score"],
    )


def _row_to_fragility(row: sqlite3.Row) -> FragilityRecord:
    return FragilityRecord(
        from_station_id=row["from_station_id"],
        to_station_id=row["to_station_id"],
        buffer_minutes=row["buffer_minutes"],
        fragility_score=row["fragility_score"],
        cascade_risk=row["cascade_risk"],
        alternative_route_count=row["alternative_route_count"],
        recommendations=tuple(json.loads(row["recommendations"] or "[]")),
    )


def _row_to_population_risk(row: sqlite3.Row) -> PopulationRiskRecord:
    return PopulationRiskRecord(
        municipality_id=row["municipality_id"],
        municipality_name=row["municipality_name"],
        corridor_segment=row["corridor_segment"],
        population=row["population"],
        daily_traffic_volume=row["daily_traffic_volume"],
        disruption_impact_score=row["disruption_impact_score"],
        risk_level=row["risk_level"],
        recommendations=tuple(json.loads(row["recommendations"] or "[]")),
    )


class SqliteRepository:
    """File-backed repository. One short-lived connection per operation."""

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        self._initialized = False

    def _init_db(self):
        """Create tables and indexes once."""
        if self._initialized:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        try:
            for statement in _SCHEMA:
                conn.execute(statement)
            conn.commit()
        finally:
            conn.close()
        self._initialized = True

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            self._init_db()
            conn = sqlite3.connect(str(self.db_path))
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("Repository operation failed: %s", e)
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    # ----- weight profiles ---------------------------------------------------

    def upsert_profile(self, user_id, profile_name, profile):
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO weight_profiles
                    (user_id, profile_name, infrastructure_weight, timetable_weight,
                     population_risk_weight, focus_area, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, profile_name) DO UPDATE SET
                    infrastructure_weight = excluded.infrastructure_weight,
                    timetable_weight = excluded.timetable_weight,
                    population_risk_weight = excluded.population_risk_weight,
                    focus_area = excluded.focus_area
                """,
                (
                    user_id,
                    profile_name,
                    profile.infrastructure_weight,
                    profile.timetable_weight,
                    profile.population_risk_weight,
                    FocusArea(profile.focus_area).value,
                    datetime.now().isoformat(),
                ),
            )

    def get_profile(self, user_id, profile_name):
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT infrastructure_weight, timetable_weight, population_risk_weight, focus_area
                FROM weight_profiles
                WHERE user_id = ? AND profile_name = ?
                """,
                (user_id, profile_name),
            ).fetchone()
        return _row_to_profile(row) if row else None

    def list_profiles(self, user_id):
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT user_id, profile_name, infrastructure_weight, timetable_weight,
                       population_risk_weight, focus_area, created_at
                FROM weight_profiles
                WHERE user_id = ?
                ORDER BY created_at DESC
                """,
                (user_id,),
            ).fetchall()
        return [
            StoredProfile(
                user_id=r["user_id"],
                profile_name=r["profile_name"],
                profile=_row_to_profile(r),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def delete_profile(self, user_id, profile_name):
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM weight_profiles WHERE user_id = ? AND profile_name = ?",
                (user_id, profile_name),
            )
            return cursor.rowcount > 0

    # ----- active profile pointer -------------------------------------------

    def set_active_profile(self, user_id, profile_name):
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO active_profiles (user_id, profile_name, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT (user_id) DO UPDATE SET
                    profile_name = excluded.profile_name,
                    updated_at = excluded.updated_at
                """,
                (user_id, profile_name, datetime.now().isoformat()),
            )

    def get_active_profile(self, user_id):
        """Return (profile_name, updated_at) or None."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT profile_name, updated_at FROM active_profiles WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return (row["profile_name"], row["updated_at"]) if row else None

    # ----- station scores ----------------------------------------------------

    def upsert_score_metrics(self, station_id, analysis_date, metrics):
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO station_scores
                    (station_id, analysis_date, traffic_volume, capacity_constraints,
                     strategic_importance, facility_deficits, composite_score)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (station_id, analysis_date) DO UPDATE SET
                    traffic_volume = excluded.traffic_volume,
                    capacity_constraints = excluded.capacity_constraints,
                    strategic_importance = excluded.strategic_importance,
                    facility_deficits = excluded.facility_deficits,
                    composite_score = excluded.composite_score
                """,
                (
                    station_id,
                    analysis_date.isoformat(),
                    metrics.traffic_volume,
                    metrics.capacity_constraints,
                    metrics.strategic_importance,
                    metrics.facility_deficits,
                    metrics.composite_score,
                ),
            )

    def get_score_metrics(self, analysis_date):
        """All metrics of one analysis date, keyed by station id."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT station_id, traffic_volume, capacity_constraints,
                       strategic_importance, facility_deficits, composite_score
                FROM station_scores
                WHERE analysis_date = ?
                """,
                (analysis_date.isoformat(),),
            ).fetchall()
        return {r["station_id"]: _row_to_metrics(r) for r in rows}

    # ----- connection fragility ---------------------------------------------

    def upsert_fragility(self, record, analysis_date):
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO connection_fragility
                    (from_station_id, to_station_id, analysis_date, buffer_minutes,
                     fragility_score, cascade_risk, alternative_route_count, recommendations)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (from_station_id, to_station_id, analysis_date) DO UPDATE SET
                    buffer_minutes = excluded.buffer_minutes,
                    fragility_score = excluded.fragility_score,
                    cascade_risk = excluded.cascade_risk,
                    alternative_route_count = excluded.alternative_route_count,
                    recommendations = excluded.recommendations
                """,
                (
                    record.from_station_id,
                    record.to_station_id,
                    analysis_date.isoformat(),
                    record.buffer_minutes,
                    record.fragility_score,
                    record.cascade_risk,
                    record.alternative_route_count,
                    json.dumps(list(record.recommendations)),
                ),
            )

    def list_fragility(self, start, end=None):
        """Records with ``start <= analysis_date <= end``, most fragile first."""
        end = end or start
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT from_station_id, to_station_id, buffer_minutes, fragility_score,
                       cascade_risk, alternative_route_count, recommendations
                FROM connection_fragility
                WHERE analysis_date BETWEEN ? AND ?
                ORDER BY fragility_score DESC
                """,
                (start.isoformat(), end.isoformat()),
            ).fetchall()
        return [_row_to_fragility(r) for r in rows]

    def upsert_many_fragility(self, records: Iterable[FragilityRecord], analysis_date):
        for record in records:
            self.upsert_fragility(record, analysis_date)

    # ----- population risk ---------------------------------------------------

    def upsert_many_population_risk(self, records: Iterable[PopulationRiskRecord], analysis_date):
        with self._connection() as conn:
            conn.executemany(
                """
                INSERT INTO population_risk
                    (municipality_id, analysis_date, municipality_name, corridor_segment,
                     population, daily_traffic_volume, disruption_impact_score, risk_level,
                     recommendations)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (municipality_id, analysis_date) DO UPDATE SET
                    municipality_name = excluded.municipality_name,
                    corridor_segment = excluded.corridor_segment,
                    population = excluded.population,
                    daily_traffic_volume = excluded.daily_traffic_volume,
                    disruption_impact_score = excluded.disruption_impact_score,
                    risk_level = excluded.risk_level,
                    recommendations = excluded.recommendations
                """,
                [
                    (
                        r.municipality_id,
                        analysis_date.isoformat(),
                        r.municipality_name,
                        r.corridor_segment,
                        r.population,
                        r.daily_traffic_volume,
                        r.disruption_impact_score,
                        r.risk_level,
                        json.dumps(list(r.recommendations)),
                    )
                    for r in records
                ],
            )

    def list_population_risk(self, start, end=None):
        """Records with ``start <= analysis_date <= end``, highest impact first."""
        end = end or start
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT municipality_id, municipality_name, corridor_segment, population,
                       daily_traffic_volume, disruption_impact_score, risk_level, recommendations
                FROM population_risk
                WHERE analysis_date BETWEEN ? AND ?
                ORDER BY disruption_impact_score DESC, municipality_id
                """,
                (start.isoformat(), end.isoformat()),
            ).fetchall()
        return [_row_to_population_risk(r) for r in rows]
