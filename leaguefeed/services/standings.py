from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

try:
    from leaguefeed.services.errors import DataInconsistency
    from leaguefeed.services.models import (
        Fixture,
        GroupedStandings,
        TeamStanding,
        standing_copy,
    )
except ModuleNotFoundError:
    from services.errors import DataInconsistency
    from services.models import Fixture, GroupedStandings, TeamStanding, standing_copy


def group_assignment_key(row: TeamStanding) -> tuple[int, int, int]:
    return row.points, row.goal_difference, row.goals_for


def group_table_key(row: TeamStanding) -> tuple[int, int, int]:
    # Third tie-break is wins here, goals scored for group assignment.
    return row.points, row.goal_difference, row.win


def record_result(home: TeamStanding, away: TeamStanding, home_goals: int, away_goals: int) -> None:
    home.played += 1
    away.played += 1
    home.goals_for += home_goals
    home.goals_against += away_goals
    away.goals_for += away_goals
    away.goals_against += home_goals

    if home_goals > away_goals:
        home.win += 1
        home.points += 3
        away.loss += 1
    elif away_goals > home_goals:
        away.win += 1
        away.points += 3
        home.loss += 1
    else:
        home.draw += 1
        away.draw += 1
        home.points += 1
        away.points += 1


def _apply_match(
    match: Fixture,
    top: dict[str, TeamStanding],
    bottom: dict[str, TeamStanding],
) -> bool:
    for team in (match.home_team, match.away_team):
        if team not in top and team not in bottom:
            raise DataInconsistency(
                f"{match.home_team} vs {match.away_team} on {match.date} references "
                f"{team!r}, which is missing from the regular-season table"
            )

    if not match.is_played:
        return False

    for group in (top, bottom):
        if match.home_team in group and match.away_team in group:
            record_result(
                group[match.home_team],
                group[match.away_team],
                int(match.home_score),  # type: ignore[arg-type]
                int(match.away_score),  # type: ignore[arg-type]
            )
            return True
    return False


def compute_grouped_standings(
    regular_standings: Iterable[TeamStanding],
    subsequent_matches: Iterable[Fixture],
    top_group_size: int,
) -> GroupedStandings:
    """Split the regular-season table into top and bottom groups and replay results.

    Group membership follows (points, goal difference, goals for). Only played
    matches between two members of the same group count; the final tables are
    ordered by (points, goal difference, wins). Input rows are never mutated.
    """
    ordered = sorted(regular_standings, key=group_assignment_key, reverse=True)
    cut = max(0, min(int(top_group_size), len(ordered)))

    top = {row.team: standing_copy(row) for row in ordered[:cut]}
    bottom = {row.team: standing_copy(row) for row in ordered[cut:]}

    applied = 0
    skipped = 0
    for match in subsequent_matches:
        try:
            if _apply_match(match, top, bottom):
                applied += 1
            else:
                skipped += 1
        except DataInconsistency as exc:
            skipped += 1
            logger.warning(f"Skipping match: {exc}")

    logger.debug(f"Grouped standings: {applied} results applied, {skipped} skipped")
    return GroupedStandings(
        top_group_table=sorted(top.values(), key=group_table_key, reverse=True),
        bottom_group_table=sorted(bottom.values(), key=group_table_key, reverse=True),
    )
