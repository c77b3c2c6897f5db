from __future__ import annotations

import datetime as dt
import threading
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

try:
    from leaguefeed.services.fetcher import RateLimitedFetcher
    from leaguefeed.services.models import TeamStanding, int_or_zero, optional_int
except ModuleNotFoundError:
    from services.fetcher import RateLimitedFetcher
    from services.models import TeamStanding, int_or_zero, optional_int

FIXTURES_RESOURCE = "fixtures"
TABLE_RESOURCE = "table"


def parse_event_date(value: Any) -> dt.date | None:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_event_kickoff(date_text: Any, time_text: Any) -> dt.datetime | None:
    """Upstream dates and times are UTC."""
    event_date = parse_event_date(date_text)
    if event_date is None:
        return None

    clock_text = str(time_text or "").strip() or "00:00:00"
    clock_text = clock_text.split("+")[0].rstrip("Z")
    try:
        clock = dt.time.fromisoformat(clock_text)
    except ValueError:
        clock = dt.time(0, 0)
    return dt.datetime.combine(event_date, clock, tzinfo=dt.UTC)


def format_local_time(date_text: Any, time_text: Any, timezone_name: str) -> str:
    if not str(date_text or "").strip() or not str(time_text or "").strip():
        return ""

    kickoff = parse_event_kickoff(date_text, time_text)
    if kickoff is None:
        return str(time_text)

    try:
        zone = ZoneInfo(timezone_name)
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown timezone {timezone_name!r}; keeping UTC kickoff time.")
        return kickoff.strftime("%H:%M")
    return kickoff.astimezone(zone).strftime("%H:%M")


def parse_table_row(row: dict[str, Any]) -> TeamStanding:
    return TeamStanding(
        team=str(row.get("strTeam") or "").strip(),
        rank=optional_int(row.get("intRank")),
        badge=str(row.get("strBadge") or "").strip() or None,
        played=int_or_zero(row.get("intPlayed")),
        win=int_or_zero(row.get("intWin")),
        draw=int_or_zero(row.get("intDraw")),
        loss=int_or_zero(row.get("intLoss")),
        goals_for=int_or_zero(row.get("intGoalsFor")),
        goals_against=int_or_zero(row.get("intGoalsAgainst")),
        points=int_or_zero(row.get("intPoints")),
    )


class SportsDBClient:
    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        base_url: str = "https://www.thesportsdb.com/api/v1/json",
        api_key: str = "3",
    ) -> None:
        self.fetcher = fetcher
        self.base_url = f"{base_url.rstrip('/')}/{api_key}"

    def close(self) -> None:
        self.fetcher.close()

    def events_by_round(
        self,
        season_id: int,
        round_number: int,
        season: str,
        cancel: threading.Event | None = None,
    ) -> list[dict[str, Any]]:
        payload = self.fetcher.fetch_json(
            f"{self.base_url}/eventsround.php",
            FIXTURES_RESOURCE,
            params={"id": season_id, "r": round_number, "s": season},
            cancel=cancel,
        )
        if not isinstance(payload, dict):
            return []
        events = payload.get("events")
        if not isinstance(events, list):
            return []
        return [event for event in events if isinstance(event, dict)]

    def standings_table(self, season_id: int, season: str) -> list[TeamStanding] | None:
        payload = self.fetcher.fetch_json(
            f"{self.base_url}/lookuptable.php",
            TABLE_RESOURCE,
            params={"l": season_id, "s": season},
        )
        if not isinstance(payload, dict):
            return None
        rows = payload.get("table")
        if not isinstance(rows, list):
            return None

        table = [parse_table_row(row) for row in rows if isinstance(row, dict)]
        return [row for row in table if row.team]
