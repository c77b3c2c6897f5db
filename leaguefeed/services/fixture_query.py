from __future__ import annotations

import datetime as dt
from collections.abc import Callable

from loguru import logger

try:
    from leaguefeed.services.cache_store import TTLCache
    from leaguefeed.services.config import Settings, get_league_config
    from leaguefeed.services.errors import DataUnavailable, UpstreamUnavailable
    from leaguefeed.services.fixture_store import FixtureStore
    from leaguefeed.services.fixture_sync import FixtureSynchronizer, fixtures_cache_key
    from leaguefeed.services.models import (
        PLAYOFF,
        REGULAR,
        Fixture,
        FixtureSet,
        SeasonFixtures,
        SyncMetadata,
    )
except ModuleNotFoundError:
    from services.cache_store import TTLCache
    from services.config import Settings, get_league_config
    from services.errors import DataUnavailable, UpstreamUnavailable
    from services.fixture_store import FixtureStore
    from services.fixture_sync import FixtureSynchronizer, fixtures_cache_key
    from services.models import (
        PLAYOFF,
        REGULAR,
        Fixture,
        FixtureSet,
        SeasonFixtures,
        SyncMetadata,
    )


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class FixtureQueryService:
    """Serves season fixtures from cache, store or a fresh sync, degrading to stale data."""

    def __init__(
        self,
        cache: TTLCache,
        store: FixtureStore,
        synchronizer: FixtureSynchronizer,
        settings: Settings,
        now: Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        self.cache = cache
        self.store = store
        self.synchronizer = synchronizer
        self.settings = settings
        self._now = now

    def _from_store(self, season_id: int, season: str) -> tuple[SeasonFixtures | None, bool]:
        fixtures, metadata = self.store.load_season(season_id, season)
        if not fixtures:
            return None, False

        def sort_key(fixture: Fixture) -> tuple[str, int]:
            return fixture.date, fixture.round

        regular = sorted((f for f in fixtures if f.classification == REGULAR), key=sort_key)
        playoff = sorted((f for f in fixtures if f.classification == PLAYOFF), key=sort_key)
        if metadata is None:
            metadata = SyncMetadata(
                season_id=season_id,
                season=season,
                regular_season_end_date=None,
                total_fixtures=len(fixtures),
                last_synced_at="",
                regular_season_fixtures=len(regular),
                playoff_fixtures=len(playoff),
            )

        synced_at = metadata.last_synced
        fresh = (
            synced_at is not None
            and (self._now() - synced_at).total_seconds() <= self.settings.store_fresh_seconds
        )
        return SeasonFixtures(regular, playoff, metadata), fresh

    def get_fixtures(
        self,
        season_id: int,
        season: str,
        force_refresh: bool = False,
    ) -> FixtureSet:
        league = get_league_config(season_id)
        cache_key = fixtures_cache_key(league.season_id, season)

        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return FixtureSet(fixtures=cached, source="cache")

            stored, fresh = self._from_store(league.season_id, season)
            if stored is not None and fresh:
                return FixtureSet(fixtures=stored, source="store")

        try:
            fixtures = self.synchronizer.sync_season(
                league.season_id, season, force_refresh=force_refresh
            )
        except UpstreamUnavailable as exc:
            logger.warning(
                f"Fixture sync failed for {league.season_id}/{season}, trying stale data: {exc}"
            )
            previous = self.cache.peek(cache_key)
            if previous is not None:
                return FixtureSet(fixtures=previous.data, source="stale-cache", stale=True)

            stored, _ = self._from_store(league.season_id, season)
            if stored is not None:
                return FixtureSet(fixtures=stored, source="stale-store", stale=True)

            raise DataUnavailable(
                f"Fixtures for {league.season_id}/{season} are temporarily unavailable"
            ) from exc

        return FixtureSet(fixtures=fixtures, source="sync")
