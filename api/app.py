# -*- coding: utf-8 -*-
"""
Corridor priority & fragility FastAPI application
"""
import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from api.cache import ranking_cache
from api.dependencies import registry
from api.routers import connections, profiles, risk_zones, stations
from corridor.errors import (
    ImmutableProfileError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    registry.load()
    yield


app = FastAPI(title="Corridor Priority Engine", version=VERSION, lifespan=lifespan)


allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:8000,http://127.0.0.1:8000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=500)

app.include_router(profiles.router, prefix="/api", tags=["profiles"])
app.include_router(stations.router, prefix="/api", tags=["stations"])
app.include_router(connections.router, prefix="/api", tags=["connections"])
app.include_router(risk_zones.router, prefix="/api", tags=["risk-zones"])


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})


@app.exception_handler(ImmutableProfileError)
async def immutable_profile_handler(request: Request, exc: ImmutableProfileError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Database operation failed"})


@app.get(
    "/health",
    summary="Service health",
    description="Whether the engine is loaded, how many stations it knows and which "
    "recalculation subscribers are registered.",
    response_description="status (healthy/degraded/unavailable), version, stations, subscribers",
)
async def health():
    try:
        engine = registry.get_engine()
    except RuntimeError:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "detail": "Engine not loaded"},
        )
    station_count = len(engine.registry.list_stations())
    return {
        "status": "healthy" if station_count > 0 else "degraded",
        "version": VERSION,
        "stations": station_count,
        "subscribers": list(engine.coordinator.subscriber_names),
    }


@app.post(
    "/api/reload",
    summary="Reload engine",
    description="Rebuilds the engine from the current environment (station CSV, database "
    "path, throttle). The ranking cache is cleared as well.",
    response_description="status and station count",
)
async def reload_engine():
    try:
        with registry.engine_lock:
            registry.load()
            ranking_cache.invalidate()
        engine = registry.get_engine()
        return {
            "status": "ok",
            "stations": len(engine.registry.list_stations()),
        }
    except Exception as e:
        logging.exception("Engine reload failed")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "detail": f"Engine reload failed: {str(e)}"},
        )
