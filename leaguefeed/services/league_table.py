from __future__ import annotations

import datetime as dt
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

try:
    from leaguefeed.services.cache_store import TTLCache
    from leaguefeed.services.config import LEAGUES, Settings
    from leaguefeed.services.errors import DataUnavailable
    from leaguefeed.services.models import TeamStanding
    from leaguefeed.services.sportsdb import SportsDBClient, parse_event_kickoff
except ModuleNotFoundError:
    from services.cache_store import TTLCache
    from services.config import LEAGUES, Settings
    from services.errors import DataUnavailable
    from services.models import TeamStanding
    from services.sportsdb import SportsDBClient, parse_event_kickoff


def table_cache_key(season_id: int, season: str) -> str:
    return f"table_{int(season_id)}_{season}"


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


@dataclass
class LeagueTable:
    rows: list[TeamStanding]
    placeholder: bool = False
    stale: bool = False


class LeagueTableService:
    def __init__(
        self,
        client: SportsDBClient,
        cache: TTLCache,
        settings: Settings,
        now: Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        self.client = client
        self.cache = cache
        self.settings = settings
        self._now = now

    def get_league_table(self, season_id: int, season: str) -> LeagueTable:
        outcome = self.cache.get_or_load(
            table_cache_key(season_id, season),
            lambda: self._load_table(season_id, season),
            ttl=self.settings.table_ttl_seconds,
        )
        table: LeagueTable = outcome.value
        if outcome.stale:
            return LeagueTable(rows=table.rows, placeholder=table.placeholder, stale=True)
        return table

    def _load_table(self, season_id: int, season: str) -> LeagueTable:
        round_events = self.client.events_by_round(season_id, 1, season)
        kickoffs = sorted(
            kickoff
            for kickoff in (
                parse_event_kickoff(event.get("dateEvent"), event.get("strTime"))
                for event in round_events
            )
            if kickoff is not None
        )
        if not kickoffs:
            raise DataUnavailable(f"No match data for round 1 of {season_id}/{season}")

        if self._now() < kickoffs[0]:
            logger.info(f"Season {season} of {season_id} has not started; using placeholder table")
            return LeagueTable(rows=self._placeholder_rows(round_events), placeholder=True)

        rows = self.client.standings_table(season_id, season)
        if not rows:
            raise DataUnavailable(f"No table data found for {season_id}/{season}")
        return LeagueTable(rows=rows)

    @staticmethod
    def _placeholder_rows(round_events: list[dict]) -> list[TeamStanding]:
        teams: list[str] = []
        for event in round_events:
            for field_name in ("strHomeTeam", "strAwayTeam"):
                team = str(event.get(field_name) or "").strip()
                if team and team not in teams:
                    teams.append(team)
        return [TeamStanding(team=team) for team in teams]

    def detect_league(self, team_name: str, season: str | None = None) -> int | None:
        team = team_name.strip()
        if not team:
            return None

        season = season or self.settings.default_season
        cache_key = f"team_league_{season}_{team.lower()}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return int(cached)

        for season_id in LEAGUES:
            events = self.client.events_by_round(season_id, 1, season)
            found = any(
                event.get("strHomeTeam") == team or event.get("strAwayTeam") == team
                for event in events
            )
            if found:
                self.cache.set(cache_key, season_id, ttl=self.settings.table_ttl_seconds)
                return season_id

        logger.info(f"Team {team!r} not found in any configured league for {season}")
        return None
