from __future__ import annotations

import json
from pathlib import Path

from leaguefeed.services.fixture_store import FixtureStore
from leaguefeed.services.models import PLAYOFF, REGULAR, Fixture, SyncMetadata

SEASON = "2025-2026"


def _fixture(round_number: int, home: str, away: str, **overrides) -> Fixture:  # noqa: ANN003
    values = {
        "id": f"{round_number}-{home}-{away}",
        "season_id": 4644,
        "season": SEASON,
        "round": round_number,
        "date": "2025-09-13",
        "time": "20:30",
        "venue": "Sammy Ofer",
        "home_team": home,
        "away_team": away,
        "classification": REGULAR,
    }
    values.update(overrides)
    return Fixture(**values)


def _metadata(total: int) -> SyncMetadata:
    return SyncMetadata(
        season_id=4644,
        season=SEASON,
        regular_season_end_date="2026-03-01",
        total_fixtures=total,
        last_synced_at="2026-03-02T04:30:00+00:00",
    )


def test_empty_store_loads_nothing(tmp_path: Path) -> None:
    store = FixtureStore(str(tmp_path / "missing" / "store.json"))
    assert store.backend == "file"
    assert store.load_season(4644, SEASON) == ([], None)


def test_upsert_twice_updates_without_duplicating(tmp_path: Path) -> None:
    store = FixtureStore(str(tmp_path / "data" / "store.json"))
    first = [_fixture(3, "Maccabi Haifa", "Hapoel Haifa"), _fixture(3, "Ashdod", "Beitar Jerusalem")]

    assert store.upsert_season(4644, SEASON, first, _metadata(2)) == 2

    rescheduled = _fixture(
        3,
        "Maccabi Haifa",
        "Hapoel Haifa",
        date="2025-09-14",
        home_score=1,
        away_score=0,
    )
    late_addition = _fixture(30, "Maccabi Haifa", "Maccabi Tel Aviv", classification=PLAYOFF)
    assert store.upsert_season(4644, SEASON, [rescheduled, late_addition], _metadata(3)) == 3

    fixtures, metadata = store.load_season(4644, SEASON)
    assert len(fixtures) == 3
    by_key = {f.natural_key: f for f in fixtures}
    moved = by_key[(4644, SEASON, 3, "Maccabi Haifa", "Hapoel Haifa")]
    assert moved.date == "2025-09-14"
    assert (moved.home_score, moved.away_score) == (1, 0)
    assert metadata is not None
    assert metadata.total_fixtures == 3
    assert metadata.last_synced is not None


def test_seasons_are_stored_separately(tmp_path: Path) -> None:
    store = FixtureStore(str(tmp_path / "store.json"))
    store.upsert_season(4644, SEASON, [_fixture(1, "A", "B")], _metadata(1))
    other = _fixture(1, "A", "B", season_id=4966)
    store.upsert_season(4966, SEASON, [other], _metadata(1))

    assert len(store.load_season(4644, SEASON)[0]) == 1
    assert len(store.load_season(4966, SEASON)[0]) == 1
    assert store.load_season(4644, "2024-2025") == ([], None)


def test_malformed_file_is_treated_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")
    store = FixtureStore(str(path))

    assert store.load_season(4644, SEASON) == ([], None)
    assert store.upsert_season(4644, SEASON, [_fixture(1, "A", "B")], _metadata(1)) == 1
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert "4644:2025-2026" in payload


def test_malformed_records_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text(
        json.dumps(
            {
                "4644:2025-2026": {
                    "fixtures": {
                        "good": _fixture(1, "A", "B").to_dict(),
                        "bad": {"homeTeam": "A"},
                    },
                    "metadata": "garbage",
                }
            }
        ),
        encoding="utf-8",
    )

    fixtures, metadata = FixtureStore(str(path)).load_season(4644, SEASON)
    assert [f.home_team for f in fixtures] == ["A"]
    assert metadata is None
