from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import requests
from loguru import logger

try:
    from leaguefeed.services.cache_store import TTLCache
    from leaguefeed.services.config import Settings, get_league_config
    from leaguefeed.services.fetcher import RateLimitedFetcher, RetryPolicy
    from leaguefeed.services.fixture_query import FixtureQueryService
    from leaguefeed.services.fixture_store import FixtureStore
    from leaguefeed.services.fixture_sync import FixtureSynchronizer, fixtures_cache_key
    from leaguefeed.services.league_table import LeagueTable, LeagueTableService, table_cache_key
    from leaguefeed.services.models import Fixture, FixtureSet, GroupedStandings, TeamStanding
    from leaguefeed.services.rate_limit import RateLimiter
    from leaguefeed.services.sportsdb import SportsDBClient
    from leaguefeed.services.standings import compute_grouped_standings
except ModuleNotFoundError:
    from services.cache_store import TTLCache
    from services.config import Settings, get_league_config
    from services.fetcher import RateLimitedFetcher, RetryPolicy
    from services.fixture_query import FixtureQueryService
    from services.fixture_store import FixtureStore
    from services.fixture_sync import FixtureSynchronizer, fixtures_cache_key
    from services.league_table import LeagueTable, LeagueTableService, table_cache_key
    from services.models import Fixture, FixtureSet, GroupedStandings, TeamStanding
    from services.rate_limit import RateLimiter
    from services.sportsdb import SportsDBClient
    from services.standings import compute_grouped_standings


class LeagueFeedService:
    """Entry point used by the HTTP layer and the sync job.

    Build one with ``create`` at process start and ``close`` it on shutdown;
    every collaborator shares the same cache, rate limiter and store.
    """

    def __init__(
        self,
        settings: Settings,
        cache: TTLCache,
        store: FixtureStore,
        client: SportsDBClient,
        rate_limiter: RateLimiter,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.store = store
        self.client = client
        self.rate_limiter = rate_limiter
        self.synchronizer = FixtureSynchronizer(client, cache, store, settings)
        self.query = FixtureQueryService(cache, store, self.synchronizer, settings)
        self.tables = LeagueTableService(client, cache, settings)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        session: requests.Session | None = None,
    ) -> LeagueFeedService:
        settings = settings or Settings.from_env()
        cache = TTLCache(
            max_size=settings.cache_max_size,
            default_ttl=settings.cache_default_ttl_seconds,
            cleanup_interval=settings.cache_cleanup_interval_seconds,
        ).start()
        rate_limiter = RateLimiter(settings.rate_limits)
        fetcher = RateLimitedFetcher(
            rate_limiter,
            retry_policy=RetryPolicy(max_retries=settings.max_retries),
            timeout_seconds=settings.request_timeout_seconds,
            session=session,
        )
        client = SportsDBClient(fetcher, base_url=settings.api_base_url, api_key=settings.api_key)
        store = FixtureStore(settings.fixtures_store_path, settings.cache_database_url)
        if store.use_postgres:
            logger.info("Using Postgres fixture store backend.")
        return cls(settings, cache, store, client, rate_limiter)

    def close(self) -> None:
        self.cache.close()
        self.client.close()

    def __enter__(self) -> LeagueFeedService:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # fixtures

    def fetch_fixtures(
        self, season_id: int, season: str, force_refresh: bool = False
    ) -> FixtureSet:
        return self.query.get_fixtures(season_id, season, force_refresh=force_refresh)

    def sync_season(self, season_id: int, season: str) -> dict[str, Any]:
        result = self.synchronizer.sync_season(season_id, season, force_refresh=True)
        return {"success": True, "savedCount": result.metadata.total_fixtures}

    def fetch_round(self, season_id: int, round_number: int, season: str) -> list[dict[str, Any]]:
        return self.client.events_by_round(season_id, round_number, season)

    def cached_fixtures(self, season_id: int, season: str) -> Any:
        entry = self.cache.peek(fixtures_cache_key(season_id, season))
        return entry.data if entry is not None else None

    # standings

    def compute_grouped_standings(
        self,
        regular_standings: Iterable[TeamStanding],
        subsequent_matches: Iterable[Fixture],
        top_group_size: int,
    ) -> GroupedStandings:
        return compute_grouped_standings(regular_standings, subsequent_matches, top_group_size)

    def get_league_table(self, season_id: int, season: str) -> LeagueTable:
        return self.tables.get_league_table(season_id, season)

    def detect_league(self, team_name: str, season: str | None = None) -> int | None:
        return self.tables.detect_league(team_name, season)

    def grouped_standings(self, season_id: int, season: str) -> tuple[GroupedStandings, bool]:
        """Group the current table using the season's playoff results; flags stale inputs."""
        league = get_league_config(season_id)
        fixture_set = self.fetch_fixtures(league.season_id, season)
        table = self.get_league_table(league.season_id, season)
        grouped = compute_grouped_standings(
            table.rows,
            fixture_set.fixtures.playoff_fixtures,
            league.top_group_size,
        )
        return grouped, fixture_set.stale or table.stale

    # cache administration

    def get_cache_stats(self) -> dict[str, Any]:
        stats = self.cache.stats()
        stats["keys"] = self.cache.keys()
        stats["in_flight"] = self.cache.in_flight()
        stats["rate_limits"] = self.rate_limiter.snapshot()
        return stats

    def invalidate(self, season_id: int, season: str) -> int:
        removed = 0
        for key in (fixtures_cache_key(season_id, season), table_cache_key(season_id, season)):
            if self.cache.invalidate(key):
                removed += 1
        return removed

    def invalidate_pattern(self, pattern: str) -> int:
        return self.cache.invalidate_pattern(pattern)

    def invalidate_all(self) -> int:
        return self.cache.clear()
