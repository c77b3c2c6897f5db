from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass, field, replace
from typing import Any

REGULAR = "regular"
PLAYOFF = "playoff"


def optional_int(value: Any) -> int | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def int_or_zero(value: Any) -> int:
    parsed = optional_int(value)
    return parsed if parsed is not None else 0


@dataclass(frozen=True)
class FixtureUpdate:
    """Fields of a stored fixture that a re-sync may change."""

    id: str
    date: str
    time: str
    venue: str
    home_score: int | None
    away_score: int | None
    classification: str


@dataclass
class Fixture:
    id: str
    season_id: int
    season: str
    round: int
    date: str
    time: str
    venue: str
    home_team: str
    away_team: str
    home_score: int | None = None
    away_score: int | None = None
    classification: str = REGULAR

    @property
    def natural_key(self) -> tuple[int, str, int, str, str]:
        return (self.season_id, self.season, self.round, self.home_team, self.away_team)

    @property
    def match_date(self) -> dt.date:
        return dt.date.fromisoformat(self.date)

    @property
    def is_played(self) -> bool:
        return self.home_score is not None and self.away_score is not None

    def as_update(self) -> FixtureUpdate:
        return FixtureUpdate(
            id=self.id,
            date=self.date,
            time=self.time,
            venue=self.venue,
            home_score=self.home_score,
            away_score=self.away_score,
            classification=self.classification,
        )

    def apply(self, update: FixtureUpdate) -> Fixture:
        return replace(
            self,
            id=update.id,
            date=update.date,
            time=update.time,
            venue=update.venue,
            home_score=update.home_score,
            away_score=update.away_score,
            classification=update.classification,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "seasonId": self.season_id,
            "season": self.season,
            "round": self.round,
            "date": self.date,
            "time": self.time,
            "venue": self.venue,
            "homeTeam": self.home_team,
            "awayTeam": self.away_team,
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "classification": self.classification,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Fixture:
        return cls(
            id=str(payload.get("id") or ""),
            season_id=int(payload["seasonId"]),
            season=str(payload["season"]),
            round=int(payload["round"]),
            date=str(payload["date"]),
            time=str(payload.get("time") or ""),
            venue=str(payload.get("venue") or ""),
            home_team=str(payload["homeTeam"]),
            away_team=str(payload["awayTeam"]),
            home_score=optional_int(payload.get("homeScore")),
            away_score=optional_int(payload.get("awayScore")),
            classification=str(payload.get("classification") or REGULAR),
        )


@dataclass
class TeamStanding:
    team: str
    played: int = 0
    win: int = 0
    draw: int = 0
    loss: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0
    rank: int | None = None
    badge: str | None = None

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    def is_consistent(self) -> bool:
        return (
            self.played == self.win + self.draw + self.loss
            and self.points == 3 * self.win + self.draw
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "team": self.team,
            "rank": self.rank,
            "badge": self.badge,
            "played": self.played,
            "win": self.win,
            "draw": self.draw,
            "loss": self.loss,
            "goalsFor": self.goals_for,
            "goalsAgainst": self.goals_against,
            "goalDifference": self.goal_difference,
            "points": self.points,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> TeamStanding:
        return cls(
            team=str(payload["team"]),
            played=int_or_zero(payload.get("played")),
            win=int_or_zero(payload.get("win")),
            draw=int_or_zero(payload.get("draw")),
            loss=int_or_zero(payload.get("loss")),
            goals_for=int_or_zero(payload.get("goalsFor")),
            goals_against=int_or_zero(payload.get("goalsAgainst")),
            points=int_or_zero(payload.get("points")),
            rank=optional_int(payload.get("rank")),
            badge=payload.get("badge") or None,
        )


@dataclass
class SyncMetadata:
    season_id: int
    season: str
    regular_season_end_date: str | None
    total_fixtures: int
    last_synced_at: str
    regular_season_fixtures: int = 0
    playoff_fixtures: int = 0
    fetch_time_ms: int = 0
    successful_rounds: int = 0
    failed_rounds: int = 0
    total_rounds_attempted: int = 0
    timed_out: bool = False

    @property
    def last_synced(self) -> dt.datetime | None:
        try:
            parsed = dt.datetime.fromisoformat(self.last_synced_at)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt.UTC)
        return parsed

    def to_dict(self) -> dict[str, Any]:
        return {
            "seasonId": self.season_id,
            "season": self.season,
            "regularSeasonEndDate": self.regular_season_end_date,
            "totalFixtures": self.total_fixtures,
            "regularSeasonFixtures": self.regular_season_fixtures,
            "playoffFixtures": self.playoff_fixtures,
            "lastSyncedAt": self.last_synced_at,
            "fetchTimeMs": self.fetch_time_ms,
            "successfulRounds": self.successful_rounds,
            "failedRounds": self.failed_rounds,
            "totalRoundsAttempted": self.total_rounds_attempted,
            "timedOut": self.timed_out,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> SyncMetadata:
        return cls(
            season_id=int(payload["seasonId"]),
            season=str(payload["season"]),
            regular_season_end_date=payload.get("regularSeasonEndDate"),
            total_fixtures=int_or_zero(payload.get("totalFixtures")),
            last_synced_at=str(payload.get("lastSyncedAt") or ""),
            regular_season_fixtures=int_or_zero(payload.get("regularSeasonFixtures")),
            playoff_fixtures=int_or_zero(payload.get("playoffFixtures")),
            fetch_time_ms=int_or_zero(payload.get("fetchTimeMs")),
            successful_rounds=int_or_zero(payload.get("successfulRounds")),
            failed_rounds=int_or_zero(payload.get("failedRounds")),
            total_rounds_attempted=int_or_zero(payload.get("totalRoundsAttempted")),
            timed_out=bool(payload.get("timedOut", False)),
        )


@dataclass
class SeasonFixtures:
    regular_fixtures: list[Fixture]
    playoff_fixtures: list[Fixture]
    metadata: SyncMetadata

    @property
    def all_fixtures(self) -> list[Fixture]:
        return [*self.regular_fixtures, *self.playoff_fixtures]

    def to_dict(self) -> dict[str, Any]:
        return {
            "regularFixtures": [fixture.to_dict() for fixture in self.regular_fixtures],
            "playoffFixtures": [fixture.to_dict() for fixture in self.playoff_fixtures],
            "allFixtures": [fixture.to_dict() for fixture in self.all_fixtures],
            "regularSeasonEndDate": self.metadata.regular_season_end_date,
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class FixtureSet:
    fixtures: SeasonFixtures
    source: str
    stale: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload = self.fixtures.to_dict()
        payload["source"] = self.source
        payload["stale"] = self.stale
        return payload


@dataclass
class GroupedStandings:
    top_group_table: list[TeamStanding] = field(default_factory=list)
    bottom_group_table: list[TeamStanding] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topGroupTable": [row.to_dict() for row in self.top_group_table],
            "bottomGroupTable": [row.to_dict() for row in self.bottom_group_table],
        }


def standing_copy(row: TeamStanding) -> TeamStanding:
    return TeamStanding(**asdict(row))
