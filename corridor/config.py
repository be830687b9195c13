# -*- coding: utf-8 -*-
"""Environment-driven engine settings."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class EngineSettings:
    db_path: Path = PROJECT_ROOT / "data" / "corridor.db"
    stations_csv: Optional[Path] = None
    municipalities_csv: Optional[Path] = None
    scoring_throttle_seconds: float = 0.5   # upstream timetable API is rate limited
    traffic_cache_ttl_seconds: int = 14400  # 4h, matches the timetable cache

    @classmethod
    def from_env(cls) -> "EngineSettings":
        csv_path = os.getenv("CORRIDOR_STATIONS_CSV")
        municipalities_path = os.getenv("CORRIDOR_MUNICIPALITIES_CSV")
        return cls(
            db_path=Path(os.getenv("CORRIDOR_DB_PATH", str(cls.db_path))),
            stations_csv=Path(csv_path) if csv_path else None,
            municipalities_csv=Path(municipalities_path) if municipalities_path else None,
            scoring_throttle_seconds=float(os.getenv("SCORING_THROTTLE_SECONDS", "0.5")),
            traffic_cache_ttl_seconds=int(os.getenv("TRAFFIC_CACHE_TTL", "14400")),
        )
