"""Force-sync every configured league. Meant to run from cron, e.g. ``30 4 * * *``."""

from __future__ import annotations

import argparse
import json

from loguru import logger

try:
    from leaguefeed.services.config import Settings
    from leaguefeed.services.errors import LeagueFeedError
    from leaguefeed.services.league_service import LeagueFeedService
except ModuleNotFoundError:
    from services.config import Settings
    from services.errors import LeagueFeedError
    from services.league_service import LeagueFeedService


def sync_leagues(service: LeagueFeedService, season: str, league_ids: list[int]) -> dict:
    synced: dict[str, int] = {}
    failures: dict[str, str] = {}

    for season_id in league_ids:
        try:
            result = service.sync_season(season_id, season)
        except LeagueFeedError as exc:
            logger.error(f"Failed to sync fixtures for league {season_id} ({season}): {exc}")
            failures[str(season_id)] = str(exc)
            continue
        synced[str(season_id)] = int(result["savedCount"])

    return {
        "season": season,
        "synced": synced,
        "failures": failures,
        "cache": service.get_cache_stats(),
    }


def main(argv: list[str] | None = None) -> int:
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--season", default=settings.default_season)
    parser.add_argument(
        "--league",
        dest="leagues",
        action="append",
        type=int,
        help="League id to sync; repeatable. Defaults to SYNCED_LEAGUES.",
    )
    args = parser.parse_args(argv)

    with LeagueFeedService.create(settings) as service:
        summary = sync_leagues(service, args.season, args.leagues or settings.synced_leagues)

    summary["cache"].pop("keys", None)
    print(json.dumps(summary, indent=2, default=str))
    return 1 if summary["failures"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
