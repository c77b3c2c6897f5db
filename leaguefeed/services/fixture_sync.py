from __future__ import annotations

import datetime as dt
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

try:
    from leaguefeed.services.cache_store import TTLCache
    from leaguefeed.services.config import LeagueConfig, Settings, get_league_config
    from leaguefeed.services.errors import ConfigurationError, UpstreamUnavailable
    from leaguefeed.services.fixture_store import FixtureStore
    from leaguefeed.services.models import (
        PLAYOFF,
        REGULAR,
        Fixture,
        SeasonFixtures,
        SyncMetadata,
        optional_int,
    )
    from leaguefeed.services.sportsdb import (
        SportsDBClient,
        format_local_time,
        parse_event_date,
    )
except ModuleNotFoundError:
    from services.cache_store import TTLCache
    from services.config import LeagueConfig, Settings, get_league_config
    from services.errors import ConfigurationError, UpstreamUnavailable
    from services.fixture_store import FixtureStore
    from services.models import (
        PLAYOFF,
        REGULAR,
        Fixture,
        SeasonFixtures,
        SyncMetadata,
        optional_int,
    )
    from services.sportsdb import SportsDBClient, format_local_time, parse_event_date


def fixtures_cache_key(season_id: int, season: str) -> str:
    return f"fixtures_{int(season_id)}_{season}"


@dataclass
class RoundResult:
    round: int
    events: list[dict[str, Any]] = field(default_factory=list)
    success: bool = True
    error: str | None = None


@dataclass
class _RoundBatch:
    results: list[RoundResult]
    timed_out: bool = False


def classify_fixture(match_date: dt.date, regular_season_end_date: dt.date) -> str:
    return REGULAR if match_date <= regular_season_end_date else PLAYOFF


class FixtureSynchronizer:
    def __init__(
        self,
        client: SportsDBClient,
        cache: TTLCache,
        store: FixtureStore,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.cache = cache
        self.store = store
        self.settings = settings
        self._clock = clock

    def sync_season(
        self,
        season_id: int,
        season: str,
        force_refresh: bool = False,
        mode: str | None = None,
        deadline_seconds: float | None = None,
    ) -> SeasonFixtures:
        """Fetch, classify and cache every fixture of a season.

        Concurrent callers for the same season share one sync. Once the
        deadline passes no new attempt or retry starts; unfetched rounds count
        as failed and a final-round lookup cut short raises
        ``UpstreamUnavailable``. The overrun is bounded by one request timeout
        plus the backoff sleep in progress.
        """
        league = get_league_config(season_id)
        sync_mode = mode or self.settings.sync_mode
        deadline = (
            self.settings.sync_deadline_seconds if deadline_seconds is None else deadline_seconds
        )

        outcome = self.cache.get_or_load(
            fixtures_cache_key(league.season_id, season),
            lambda: self._run_sync(league, season, sync_mode, deadline),
            ttl=self.settings.fixtures_ttl_seconds,
            force_refresh=force_refresh,
            allow_stale=False,
        )
        return outcome.value

    def regular_season_end_date(
        self, league: LeagueConfig, season: str, cancel: threading.Event | None = None
    ) -> dt.date:
        events = self.client.events_by_round(
            league.season_id, league.final_regular_round, season, cancel=cancel
        )
        dates = [
            parsed
            for parsed in (parse_event_date(event.get("dateEvent")) for event in events)
            if parsed is not None
        ]
        if not dates:
            raise ConfigurationError(
                f"Final regular round {league.final_regular_round} of league "
                f"{league.season_id} ({season}) returned no dated events"
            )
        return max(dates)

    def _fetch_round(
        self,
        season_id: int,
        round_number: int,
        season: str,
        cancel: threading.Event | None = None,
    ) -> RoundResult:
        try:
            events = self.client.events_by_round(season_id, round_number, season, cancel=cancel)
        except UpstreamUnavailable as exc:
            logger.warning(f"Round {round_number} of {season_id}/{season} failed: {exc}")
            return RoundResult(round=round_number, success=False, error=str(exc))
        return RoundResult(round=round_number, events=events)

    def _fetch_sequential(
        self, league: LeagueConfig, season: str, deadline_at: float, cancel: threading.Event
    ) -> _RoundBatch:
        results: list[RoundResult] = []
        empty_streak = 0

        for round_number in range(1, self.settings.round_ceiling + 1):
            if self._clock() >= deadline_at:
                logger.warning(
                    f"Sync deadline reached for {league.season_id}/{season} before round {round_number}"
                )
                return _RoundBatch(results, timed_out=True)

            result = self._fetch_round(league.season_id, round_number, season, cancel)
            results.append(result)

            empty_streak = 0 if result.events else empty_streak + 1
            if empty_streak >= self.settings.empty_round_limit:
                logger.info(
                    f"Stopping at round {round_number} after {empty_streak} empty rounds"
                )
                break

        return _RoundBatch(results)

    def _fetch_exhaustive(
        self, league: LeagueConfig, season: str, deadline_at: float, cancel: threading.Event
    ) -> _RoundBatch:
        last_round = min(league.total_rounds, self.settings.round_ceiling)
        executor = ThreadPoolExecutor(
            max_workers=self.settings.sync_workers, thread_name_prefix="round-fetch"
        )
        try:
            futures = {
                executor.submit(
                    self._fetch_round, league.season_id, round_number, season, cancel
                ): round_number
                for round_number in range(1, last_round + 1)
            }
            remaining = max(0.0, deadline_at - self._clock())
            done, not_done = wait(futures, timeout=remaining)
        finally:
            # Rounds still running stop retrying; queued rounds never start.
            cancel.set()
            executor.shutdown(wait=False, cancel_futures=True)

        results = [future.result() for future in done]
        if not_done:
            pending = sorted(futures[future] for future in not_done)
            logger.warning(
                f"Sync deadline reached for {league.season_id}/{season}; "
                f"treating rounds {pending} as empty"
            )
            results.extend(
                RoundResult(round=round_number, success=False, error="deadline exceeded")
                for round_number in pending
            )
        results.sort(key=lambda result: result.round)
        return _RoundBatch(results, timed_out=bool(not_done))

    def _build_fixture(
        self,
        league: LeagueConfig,
        season: str,
        fetched_round: int,
        event: dict[str, Any],
        regular_season_end_date: dt.date,
    ) -> Fixture | None:
        match_date = parse_event_date(event.get("dateEvent"))
        home_team = str(event.get("strHomeTeam") or "").strip()
        away_team = str(event.get("strAwayTeam") or "").strip()
        if match_date is None or not home_team or not away_team:
            logger.warning(
                f"Skipping malformed event {event.get('idEvent')} in round {fetched_round}"
            )
            return None

        return Fixture(
            id=str(event.get("idEvent") or ""),
            season_id=league.season_id,
            season=season,
            round=optional_int(event.get("intRound")) or fetched_round,
            date=match_date.isoformat(),
            time=format_local_time(
                event.get("dateEvent"), event.get("strTime"), self.settings.local_timezone
            ),
            venue=str(event.get("strVenue") or ""),
            home_team=home_team,
            away_team=away_team,
            home_score=optional_int(event.get("intHomeScore")),
            away_score=optional_int(event.get("intAwayScore")),
            classification=classify_fixture(match_date, regular_season_end_date),
        )

    def _run_sync(
        self, league: LeagueConfig, season: str, mode: str, deadline_seconds: float
    ) -> SeasonFixtures:
        started = self._clock()
        deadline_at = started + deadline_seconds
        logger.info(f"Syncing fixtures for {league.name} ({league.season_id}) season {season}")

        # The timer stops retries once the deadline passes, including the
        # final-round lookup. An attempt already on the wire still runs to its
        # request timeout.
        cancel = threading.Event()
        timer = threading.Timer(deadline_seconds, cancel.set)
        timer.daemon = True
        timer.start()
        try:
            end_date = self.regular_season_end_date(league, season, cancel)
            if mode == "sequential":
                batch = self._fetch_sequential(league, season, deadline_at, cancel)
            else:
                batch = self._fetch_exhaustive(league, season, deadline_at, cancel)
        finally:
            timer.cancel()

        by_key: dict[tuple[int, str, int, str, str], Fixture] = {}
        for result in batch.results:
            for event in result.events:
                fixture = self._build_fixture(league, season, result.round, event, end_date)
                if fixture is not None:
                    by_key[fixture.natural_key] = fixture

        def sort_key(fixture: Fixture) -> tuple[str, int]:
            return fixture.date, fixture.round

        regular = sorted(
            (fixture for fixture in by_key.values() if fixture.classification == REGULAR),
            key=sort_key,
        )
        playoff = sorted(
            (fixture for fixture in by_key.values() if fixture.classification == PLAYOFF),
            key=sort_key,
        )

        successful = sum(1 for result in batch.results if result.success)
        metadata = SyncMetadata(
            season_id=league.season_id,
            season=season,
            regular_season_end_date=end_date.isoformat(),
            total_fixtures=len(regular) + len(playoff),
            last_synced_at=dt.datetime.now(dt.UTC).isoformat(),
            regular_season_fixtures=len(regular),
            playoff_fixtures=len(playoff),
            fetch_time_ms=int((self._clock() - started) * 1000),
            successful_rounds=successful,
            failed_rounds=len(batch.results) - successful,
            total_rounds_attempted=len(batch.results),
            timed_out=batch.timed_out,
        )
        result = SeasonFixtures(
            regular_fixtures=regular,
            playoff_fixtures=playoff,
            metadata=metadata,
        )

        self.store.upsert_season(league.season_id, season, result.all_fixtures, metadata)
        logger.info(
            f"Synced {metadata.total_fixtures} fixtures for {league.season_id}/{season} "
            f"({len(regular)} regular, {len(playoff)} playoff, "
            f"{metadata.failed_rounds} failed rounds, {metadata.fetch_time_ms}ms)"
        )
        return result
