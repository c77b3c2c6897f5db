from __future__ import annotations

import datetime as dt

import pytest

from leaguefeed.services.cache_store import TTLCache
from leaguefeed.services.config import Settings
from leaguefeed.services.errors import DataUnavailable, UpstreamUnavailable
from leaguefeed.services.league_table import LeagueTableService, table_cache_key
from leaguefeed.services.models import TeamStanding

SEASON = "2025-2026"


def _round_one(date: str = "2025-08-23") -> list[dict]:
    return [
        {"dateEvent": date, "strTime": "17:00:00", "strHomeTeam": "Maccabi Haifa", "strAwayTeam": "Ashdod"},
        {"dateEvent": date, "strTime": "19:30:00", "strHomeTeam": "Beitar Jerusalem", "strAwayTeam": "Bnei Sakhnin"},
    ]


class FakeClient:
    def __init__(
        self,
        rounds: dict[int, list[dict]] | None = None,
        table: list[TeamStanding] | None = None,
        table_error: Exception | None = None,
    ) -> None:
        self.rounds = rounds if rounds is not None else {4644: _round_one()}
        self.table = table
        self.table_error = table_error
        self.round_calls: list[tuple[int, int]] = []
        self.table_calls = 0

    def events_by_round(self, season_id: int, round_number: int, season: str) -> list[dict]:
        self.round_calls.append((season_id, round_number))
        return self.rounds.get(season_id, [])

    def standings_table(self, season_id: int, season: str) -> list[TeamStanding] | None:
        self.table_calls += 1
        if self.table_error is not None:
            raise self.table_error
        return self.table

    def close(self) -> None:
        pass


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _service(client: FakeClient, now: dt.datetime, cache: TTLCache | None = None) -> LeagueTableService:
    return LeagueTableService(
        client,  # type: ignore[arg-type]
        cache if cache is not None else TTLCache(max_size=10, default_ttl=60),
        Settings(),
        now=lambda: now,
    )


def _table() -> list[TeamStanding]:
    return [
        TeamStanding(team="Maccabi Haifa", played=1, win=1, goals_for=2, points=3, rank=1),
        TeamStanding(team="Ashdod", played=1, loss=1, goals_against=2, rank=2),
    ]


def test_placeholder_table_before_first_kickoff() -> None:
    client = FakeClient(table=_table())
    service = _service(client, now=dt.datetime(2025, 8, 23, 16, 59, tzinfo=dt.UTC))

    table = service.get_league_table(4644, SEASON)

    assert table.placeholder is True
    assert [row.team for row in table.rows] == [
        "Maccabi Haifa",
        "Ashdod",
        "Beitar Jerusalem",
        "Bnei Sakhnin",
    ]
    assert all(row.played == 0 and row.points == 0 for row in table.rows)
    assert client.table_calls == 0


def test_live_table_is_loaded_and_cached() -> None:
    client = FakeClient(table=_table())
    service = _service(client, now=dt.datetime(2025, 9, 1, tzinfo=dt.UTC))

    first = service.get_league_table(4644, SEASON)
    second = service.get_league_table(4644, SEASON)

    assert first.placeholder is False
    assert [row.team for row in first.rows] == ["Maccabi Haifa", "Ashdod"]
    assert second is first
    assert client.table_calls == 1
    assert service.cache.peek(table_cache_key(4644, SEASON)) is not None


def test_missing_upstream_table_is_data_unavailable() -> None:
    client = FakeClient(table=None)
    service = _service(client, now=dt.datetime(2025, 9, 1, tzinfo=dt.UTC))

    with pytest.raises(DataUnavailable):
        service.get_league_table(4644, SEASON)


def test_season_without_round_one_is_data_unavailable() -> None:
    client = FakeClient(rounds={}, table=_table())
    service = _service(client, now=dt.datetime(2025, 9, 1, tzinfo=dt.UTC))

    with pytest.raises(DataUnavailable):
        service.get_league_table(4644, SEASON)


def test_expired_table_is_served_stale_when_refresh_fails() -> None:
    clock = FakeClock()
    cache = TTLCache(max_size=10, default_ttl=60, clock=clock)
    client = FakeClient(table=_table())
    service = _service(client, now=dt.datetime(2025, 9, 1, tzinfo=dt.UTC), cache=cache)
    service.get_league_table(4644, SEASON)

    clock.now += service.settings.table_ttl_seconds + 1
    client.table_error = UpstreamUnavailable("https://example.test/lookuptable.php")
    table = service.get_league_table(4644, SEASON)

    assert table.stale is True
    assert [row.team for row in table.rows] == ["Maccabi Haifa", "Ashdod"]


def test_detect_league_scans_configured_leagues_and_caches_hits() -> None:
    client = FakeClient(
        rounds={
            4644: _round_one(),
            4966: [{"dateEvent": "2025-08-22", "strHomeTeam": "Hapoel Petah Tikva", "strAwayTeam": "Kafr Qasim"}],
        }
    )
    service = _service(client, now=dt.datetime(2025, 9, 1, tzinfo=dt.UTC))

    assert service.detect_league("Kafr Qasim") == 4966
    assert client.round_calls == [(4644, 1), (4966, 1)]

    assert service.detect_league("  Kafr Qasim ") == 4966
    assert len(client.round_calls) == 2

    assert service.detect_league("Maccabi Haifa") == 4644


def test_detect_league_unknown_team_is_none() -> None:
    client = FakeClient()
    service = _service(client, now=dt.datetime(2025, 9, 1, tzinfo=dt.UTC))

    assert service.detect_league("Real Madrid") is None
    assert service.detect_league("   ") is None
