from __future__ import annotations

import datetime as dt
import threading

from leaguefeed.services.sportsdb import (
    FIXTURES_RESOURCE,
    TABLE_RESOURCE,
    SportsDBClient,
    format_local_time,
    parse_event_date,
    parse_event_kickoff,
    parse_table_row,
)


class FakeFetcher:
    def __init__(self, payload: object) -> None:
        self.payload = payload
        self.calls: list[tuple[str, str, dict | None]] = []
        self.cancels: list = []
        self.closed = False

    def fetch_json(self, url, resource_class, max_retries=None, params=None, cancel=None):  # noqa: ANN001, ANN201
        self.calls.append((url, resource_class, params))
        self.cancels.append(cancel)
        return self.payload

    def close(self) -> None:
        self.closed = True


def test_parse_event_date_handles_blank_and_invalid_values() -> None:
    assert parse_event_date("2025-08-23") == dt.date(2025, 8, 23)
    assert parse_event_date("2025-08-23T17:00:00") == dt.date(2025, 8, 23)
    assert parse_event_date("") is None
    assert parse_event_date(None) is None
    assert parse_event_date("not-a-date") is None


def test_parse_event_kickoff_is_utc() -> None:
    kickoff = parse_event_kickoff("2025-08-23", "17:30:00+00:00")
    assert kickoff == dt.datetime(2025, 8, 23, 17, 30, tzinfo=dt.UTC)
    assert parse_event_kickoff("2025-08-23", "") == dt.datetime(2025, 8, 23, tzinfo=dt.UTC)


def test_format_local_time_converts_to_league_timezone() -> None:
    # Israel is UTC+3 in summer and UTC+2 in winter.
    assert format_local_time("2025-08-23", "17:00:00", "Asia/Jerusalem") == "20:00"
    assert format_local_time("2026-01-10", "17:00:00", "Asia/Jerusalem") == "19:00"


def test_format_local_time_missing_parts_give_empty_string() -> None:
    assert format_local_time("2025-08-23", "", "Asia/Jerusalem") == ""
    assert format_local_time("", "17:00:00", "Asia/Jerusalem") == ""
    assert format_local_time(None, None, "Asia/Jerusalem") == ""


def test_format_local_time_unknown_zone_keeps_utc() -> None:
    assert format_local_time("2025-08-23", "17:00:00", "Mars/Olympus_Mons") == "17:00"


def test_parse_table_row_coerces_numbers() -> None:
    row = parse_table_row(
        {
            "strTeam": " Maccabi Haifa ",
            "intRank": "1",
            "strBadge": "https://example.test/badge.png",
            "intPlayed": "26",
            "intWin": "18",
            "intDraw": "5",
            "intLoss": "3",
            "intGoalsFor": "55",
            "intGoalsAgainst": "20",
            "intPoints": "59",
        }
    )
    assert row.team == "Maccabi Haifa"
    assert row.rank == 1
    assert row.played == 26
    assert row.goal_difference == 35
    assert row.points == 59
    assert row.is_consistent()

    empty = parse_table_row({"strTeam": "Bnei Sakhnin", "intPlayed": None, "intPoints": ""})
    assert empty.played == 0
    assert empty.points == 0
    assert empty.badge is None


def test_events_by_round_builds_request_and_filters_payload() -> None:
    fetcher = FakeFetcher({"events": [{"idEvent": "1"}, "junk", {"idEvent": "2"}]})
    client = SportsDBClient(fetcher, base_url="https://example.test/api/v1/json/", api_key="123")  # type: ignore[arg-type]

    events = client.events_by_round(4644, 3, "2025-2026")

    assert events == [{"idEvent": "1"}, {"idEvent": "2"}]
    assert fetcher.calls == [
        (
            "https://example.test/api/v1/json/123/eventsround.php",
            FIXTURES_RESOURCE,
            {"id": 4644, "r": 3, "s": "2025-2026"},
        )
    ]


def test_events_by_round_null_events_is_empty() -> None:
    client = SportsDBClient(FakeFetcher({"events": None}))  # type: ignore[arg-type]
    assert client.events_by_round(4644, 40, "2025-2026") == []

    client = SportsDBClient(FakeFetcher(["unexpected"]))  # type: ignore[arg-type]
    assert client.events_by_round(4644, 1, "2025-2026") == []


def test_events_by_round_forwards_the_cancel_event() -> None:
    fetcher = FakeFetcher({"events": []})
    client = SportsDBClient(fetcher)  # type: ignore[arg-type]
    cancel = threading.Event()

    client.events_by_round(4644, 5, "2025-2026", cancel=cancel)
    client.events_by_round(4644, 6, "2025-2026")

    assert fetcher.cancels == [cancel, None]


def test_standings_table_parses_rows_and_drops_nameless_teams() -> None:
    fetcher = FakeFetcher(
        {
            "table": [
                {"strTeam": "Hapoel Beer Sheva", "intPlayed": "1", "intWin": "1", "intPoints": "3"},
                {"strTeam": "", "intPlayed": "1"},
            ]
        }
    )
    client = SportsDBClient(fetcher)  # type: ignore[arg-type]

    table = client.standings_table(4644, "2025-2026")

    assert table is not None
    assert [row.team for row in table] == ["Hapoel Beer Sheva"]
    assert fetcher.calls[0][1] == TABLE_RESOURCE
    assert fetcher.calls[0][2] == {"l": 4644, "s": "2025-2026"}


def test_standings_table_missing_table_is_none() -> None:
    client = SportsDBClient(FakeFetcher({"table": None}))  # type: ignore[arg-type]
    assert client.standings_table(4644, "2025-2026") is None


def test_close_closes_fetcher() -> None:
    fetcher = FakeFetcher({})
    SportsDBClient(fetcher).close()  # type: ignore[arg-type]
    assert fetcher.closed is True
