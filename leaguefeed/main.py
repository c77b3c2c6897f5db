from __future__ import annotations

import datetime as dt
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

try:
    from leaguefeed.services.config import LEAGUES
    from leaguefeed.services.errors import (
        ConfigurationError,
        DataUnavailable,
        UpstreamUnavailable,
    )
    from leaguefeed.services.league_service import LeagueFeedService
except ModuleNotFoundError:
    from services.config import LEAGUES
    from services.errors import ConfigurationError, DataUnavailable, UpstreamUnavailable
    from services.league_service import LeagueFeedService


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    values = [item.strip() for item in raw.split(",") if item.strip()]
    return values or [default]


def _now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def _require_league(season_id: int) -> None:
    if season_id not in LEAGUES:
        valid = ", ".join(f"{league_id} ({league.name})" for league_id, league in LEAGUES.items())
        raise HTTPException(
            status_code=400,
            detail=f"Invalid seasonId {season_id}. Must be one of: {valid}",
        )


class SyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    season_id: int = Field(alias="seasonId")
    season: str | None = None


class TeamStandingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team: str
    rank: int | None = None
    badge: str | None = None
    played: int = 0
    win: int = 0
    draw: int = 0
    loss: int = 0
    goals_for: int = Field(default=0, alias="goalsFor")
    goals_against: int = Field(default=0, alias="goalsAgainst")
    goal_difference: int = Field(default=0, alias="goalDifference")
    points: int = 0


class LeagueTableResponse(BaseModel):
    success: bool = True
    placeholder: bool = False
    stale: bool = False
    table: list[TeamStandingResponse]


class GroupedStandingsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    stale: bool = False
    top_group_table: list[TeamStandingResponse] = Field(alias="topGroupTable")
    bottom_group_table: list[TeamStandingResponse] = Field(alias="bottomGroupTable")


def create_app(service: LeagueFeedService | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.service = service or LeagueFeedService.create()
        try:
            yield
        finally:
            app.state.service.close()

    app = FastAPI(
        title="League Feed API",
        version="1.0.0",
        description="Fixtures, league tables and playoff standings backed by a rate-limited sports API.",
        lifespan=lifespan,
    )

    cors_origins = _parse_csv_env("CORS_ORIGINS", "http://localhost:3000")
    allow_credentials = "*" not in cors_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(DataUnavailable)
    async def data_unavailable_handler(request: Request, exc: DataUnavailable) -> JSONResponse:  # noqa: ARG001
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Data temporarily unavailable", "message": str(exc)},
        )

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_handler(request: Request, exc: UpstreamUnavailable) -> JSONResponse:  # noqa: ARG001
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Upstream unavailable", "message": str(exc)},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError) -> JSONResponse:  # noqa: ARG001
        return JSONResponse(
            status_code=422,
            content={"success": False, "error": "Configuration error", "message": str(exc)},
        )

    def _service(request: Request) -> LeagueFeedService:
        return request.app.state.service

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    def readyz(request: Request) -> dict[str, Any]:
        svc = _service(request)
        return {
            "status": "ready",
            "store_backend": svc.store.backend,
            "cache_size": len(svc.cache),
            "cache_max_size": svc.cache.max_size,
            "sync_mode": svc.settings.sync_mode,
            "default_season": svc.settings.default_season,
            "leagues": sorted(LEAGUES),
        }

    @app.get("/api/fixtures")
    def get_fixtures(
        request: Request,
        season_id: int = Query(alias="seasonId"),
        season: str | None = Query(default=None),
        force: bool = Query(default=False),
        response_format: Literal["processed", "raw", "regular", "playoff"] = Query(
            default="processed", alias="format"
        ),
    ) -> dict[str, Any]:
        _require_league(season_id)
        svc = _service(request)
        season = season or svc.settings.default_season

        fixture_set = svc.fetch_fixtures(season_id, season, force_refresh=force)
        payload = fixture_set.to_dict()
        if response_format == "raw":
            data: Any = payload["allFixtures"]
        elif response_format == "regular":
            data = payload["regularFixtures"]
        elif response_format == "playoff":
            data = payload["playoffFixtures"]
        else:
            data = payload

        return {
            "success": True,
            "data": data,
            "meta": {
                "seasonId": season_id,
                "season": season,
                "requestedFormat": response_format,
                "source": fixture_set.source,
                "stale": fixture_set.stale,
                "timestamp": _now_iso(),
                **payload["metadata"],
            },
        }

    @app.get("/api/fixtures/smart")
    def get_smart_fixtures(
        request: Request,
        season_id: int = Query(alias="seasonId"),
        season: str | None = Query(default=None),
    ) -> dict[str, Any]:
        _require_league(season_id)
        svc = _service(request)
        fixture_set = svc.fetch_fixtures(season_id, season or svc.settings.default_season)
        return {
            "success": True,
            "source": fixture_set.source,
            "stale": fixture_set.stale,
            "data": [fixture.to_dict() for fixture in fixture_set.fixtures.all_fixtures],
        }

    @app.get("/api/fixtures/cache/stats")
    def cache_stats(request: Request) -> dict[str, Any]:
        return {
            "success": True,
            "data": _service(request).get_cache_stats(),
            "meta": {"timestamp": _now_iso()},
        }

    @app.delete("/api/fixtures/cache")
    def clear_cache(
        request: Request,
        pattern: str | None = Query(default=None),
        season_id: int | None = Query(default=None, alias="seasonId"),
        season: str | None = Query(default=None),
    ) -> dict[str, Any]:
        svc = _service(request)
        if season_id is not None:
            season = season or svc.settings.default_season
            removed = svc.invalidate(season_id, season)
            message = f"Cache cleared for seasonId {season_id} ({season})"
        elif pattern:
            removed = svc.invalidate_pattern(pattern)
            message = f"Cache cleared for pattern: {pattern}"
        else:
            removed = svc.invalidate_all()
            message = "All fixture cache cleared"
        return {
            "success": True,
            "message": message,
            "removed": removed,
            "meta": {"timestamp": _now_iso()},
        }

    @app.get("/api/fixtures/debug/{season_id}")
    def debug_fixtures(
        request: Request,
        season_id: int,
        season: str | None = Query(default=None),
        round_number: int | None = Query(default=None, alias="round"),
    ) -> dict[str, Any]:
        svc = _service(request)
        season = season or svc.settings.default_season
        fixtures = svc.cached_fixtures(season_id, season)
        if fixtures is None:
            raise HTTPException(
                status_code=404,
                detail=(
                    "No cached data found. Please fetch fixtures first: "
                    f"GET /api/fixtures?seasonId={season_id}&season={season}"
                ),
            )

        def sample(items: list) -> list[dict[str, Any]]:
            return [
                {
                    "round": fixture.round,
                    "date": fixture.date,
                    "teams": f"{fixture.home_team} vs {fixture.away_team}",
                    "classification": fixture.classification,
                }
                for fixture in items[:5]
            ]

        debug: dict[str, Any] = {
            "seasonId": season_id,
            "season": season,
            "totalFixtures": len(fixtures.all_fixtures),
            "regularSeasonEndDate": fixtures.metadata.regular_season_end_date,
            "metadata": fixtures.metadata.to_dict(),
            "sampleRegularSeasonFixtures": sample(fixtures.regular_fixtures),
            "samplePlayoffFixtures": sample(fixtures.playoff_fixtures),
        }

        if round_number is not None:
            in_round = [f for f in fixtures.all_fixtures if f.round == round_number]
            end_date = fixtures.metadata.regular_season_end_date
            debug["specificRound"] = {
                "round": round_number,
                "totalGames": len(in_round),
                "regular": sum(1 for f in in_round if f.classification == "regular"),
                "playoff": sum(1 for f in in_round if f.classification == "playoff"),
                "fixtures": [
                    {
                        "date": f.date,
                        "teams": f"{f.home_team} vs {f.away_team}",
                        "classification": f.classification,
                        "beforeCutoff": bool(end_date) and f.date <= end_date,
                    }
                    for f in in_round
                ],
            }

        return {"success": True, "debug": debug, "meta": {"timestamp": _now_iso(), "cached": True}}

    @app.get("/api/fixtures/round")
    def get_round(
        request: Request,
        season_id: int = Query(alias="seasonId"),
        round_number: int = Query(alias="round", ge=1, le=60),
        season: str | None = Query(default=None),
    ) -> dict[str, Any]:
        svc = _service(request)
        events = svc.fetch_round(season_id, round_number, season or svc.settings.default_season)
        return {
            "success": True,
            "events": events,
            "meta": {"seasonId": season_id, "round": round_number, "timestamp": _now_iso()},
        }

    @app.post("/api/fixtures/sync")
    def sync_fixtures(request: Request, body: SyncRequest) -> dict[str, Any]:
        _require_league(body.season_id)
        svc = _service(request)
        result = svc.sync_season(body.season_id, body.season or svc.settings.default_season)
        return {"success": True, "message": "Fixtures synced successfully", "result": result}

    @app.get("/api/league/table", response_model=LeagueTableResponse)
    def league_table(
        request: Request,
        season_id: int = Query(alias="seasonId"),
        season: str | None = Query(default=None),
    ) -> LeagueTableResponse:
        svc = _service(request)
        table = svc.get_league_table(season_id, season or svc.settings.default_season)
        return LeagueTableResponse(
            placeholder=table.placeholder,
            stale=table.stale,
            table=[TeamStandingResponse(**row.to_dict()) for row in table.rows],
        )

    @app.get("/api/league/detect")
    def detect_league(
        request: Request,
        team_name: str = Query(alias="teamName", min_length=1, max_length=100),
    ) -> dict[str, Any]:
        league_id = _service(request).detect_league(team_name)
        if league_id is None:
            raise HTTPException(status_code=404, detail="Team not found in any league")
        return {"success": True, "leagueId": league_id}

    @app.get("/api/league/standings/grouped", response_model=GroupedStandingsResponse)
    def grouped_standings(
        request: Request,
        season_id: int = Query(alias="seasonId"),
        season: str | None = Query(default=None),
    ) -> GroupedStandingsResponse:
        _require_league(season_id)
        svc = _service(request)
        grouped, stale = svc.grouped_standings(season_id, season or svc.settings.default_season)
        return GroupedStandingsResponse(
            stale=stale,
            topGroupTable=[TeamStandingResponse(**row.to_dict()) for row in grouped.top_group_table],
            bottomGroupTable=[
                TeamStandingResponse(**row.to_dict()) for row in grouped.bottom_group_table
            ],
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("leaguefeed.main:app", host="0.0.0.0", port=8000, reload=True)
