from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

try:
    from leaguefeed.services.errors import ConfigurationError
except ModuleNotFoundError:
    from services.errors import ConfigurationError

env_path = os.path.join(os.path.dirname(__file__), "..", ".env")
load_dotenv(env_path)

SYNC_MODES = ("sequential", "exhaustive")


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, str(default)).strip().lower()
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        value = default
    return max(minimum, min(maximum, value))


def _env_float(name: str, default: float, minimum: float, maximum: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        value = default
    return max(minimum, min(maximum, value))


def _env_csv_ints(name: str, default: str) -> list[int]:
    values: list[int] = []
    for item in os.getenv(name, default).split(","):
        item = item.strip()
        if not item:
            continue
        try:
            values.append(int(item))
        except ValueError:
            continue
    return values


@dataclass(frozen=True)
class LeagueConfig:
    season_id: int
    name: str
    final_regular_round: int
    total_rounds: int
    top_group_size: int


LEAGUES: dict[int, LeagueConfig] = {
    4644: LeagueConfig(
        season_id=4644,
        name="ligat-haal",
        final_regular_round=26,
        total_rounds=35,
        top_group_size=6,
    ),
    4966: LeagueConfig(
        season_id=4966,
        name="leumit",
        final_regular_round=30,
        total_rounds=37,
        top_group_size=8,
    ),
}


def get_league_config(season_id: int) -> LeagueConfig:
    try:
        return LEAGUES[int(season_id)]
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"No league configured for seasonId={season_id}") from exc


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_ms: int


def _default_rate_limits() -> dict[str, RateLimitConfig]:
    return {
        "fixtures": RateLimitConfig(max_requests=4, window_ms=1000),
        "table": RateLimitConfig(max_requests=2, window_ms=1000),
        "default": RateLimitConfig(max_requests=4, window_ms=1000),
    }


@dataclass
class Settings:
    api_base_url: str = "https://www.thesportsdb.com/api/v1/json"
    api_key: str = "3"
    request_timeout_seconds: float = 10.0
    max_retries: int = 3
    rate_limits: dict[str, RateLimitConfig] = field(default_factory=_default_rate_limits)

    cache_max_size: int = 1000
    cache_default_ttl_seconds: float = 600.0
    cache_cleanup_interval_seconds: float = 300.0
    fixtures_ttl_seconds: float = 2 * 60 * 60
    table_ttl_seconds: float = 30 * 60
    store_fresh_seconds: float = 24 * 60 * 60

    round_ceiling: int = 40
    empty_round_limit: int = 3
    sync_mode: str = "exhaustive"
    sync_workers: int = 5
    sync_deadline_seconds: float = 120.0

    local_timezone: str = "Asia/Jerusalem"
    default_season: str = "2025-2026"
    synced_leagues: list[int] = field(default_factory=lambda: [4644, 4966])

    fixtures_store_path: str = os.path.normpath(
        os.path.join(os.path.dirname(__file__), "..", "data", "fixtures_store.json")
    )
    cache_database_url: str = ""

    @classmethod
    def from_env(cls) -> Settings:
        sync_mode = os.getenv("SYNC_MODE", "exhaustive").strip().lower()
        if sync_mode not in SYNC_MODES:
            sync_mode = "exhaustive"

        return cls(
            api_base_url=os.getenv(
                "SPORTSDB_BASE_URL", "https://www.thesportsdb.com/api/v1/json"
            ).strip().rstrip("/"),
            api_key=os.getenv("SPORTSDB_API_KEY", "3").strip() or "3",
            request_timeout_seconds=_env_float(
                "REQUEST_TIMEOUT_SECONDS", default=10.0, minimum=1.0, maximum=120.0
            ),
            max_retries=_env_int("MAX_RETRIES", default=3, minimum=0, maximum=10),
            rate_limits={
                "fixtures": RateLimitConfig(
                    max_requests=_env_int(
                        "RATE_LIMIT_FIXTURES_MAX", default=4, minimum=1, maximum=1000
                    ),
                    window_ms=_env_int(
                        "RATE_LIMIT_FIXTURES_WINDOW_MS", default=1000, minimum=1, maximum=3_600_000
                    ),
                ),
                "table": RateLimitConfig(
                    max_requests=_env_int(
                        "RATE_LIMIT_TABLE_MAX", default=2, minimum=1, maximum=1000
                    ),
                    window_ms=_env_int(
                        "RATE_LIMIT_TABLE_WINDOW_MS", default=1000, minimum=1, maximum=3_600_000
                    ),
                ),
                "default": RateLimitConfig(
                    max_requests=_env_int(
                        "RATE_LIMIT_DEFAULT_MAX", default=4, minimum=1, maximum=1000
                    ),
                    window_ms=_env_int(
                        "RATE_LIMIT_DEFAULT_WINDOW_MS", default=1000, minimum=1, maximum=3_600_000
                    ),
                ),
            },
            cache_max_size=_env_int("CACHE_MAX_SIZE", default=1000, minimum=1, maximum=100_000),
            cache_default_ttl_seconds=_env_float(
                "CACHE_DEFAULT_TTL_SECONDS", default=600.0, minimum=1.0, maximum=86_400.0
            ),
            cache_cleanup_interval_seconds=_env_float(
                "CACHE_CLEANUP_INTERVAL_SECONDS", default=300.0, minimum=1.0, maximum=86_400.0
            ),
            fixtures_ttl_seconds=_env_float(
                "FIXTURES_TTL_SECONDS", default=7200.0, minimum=60.0, maximum=172_800.0
            ),
            table_ttl_seconds=_env_float(
                "TABLE_TTL_SECONDS", default=1800.0, minimum=60.0, maximum=86_400.0
            ),
            store_fresh_seconds=_env_float(
                "STORE_FRESH_SECONDS", default=86_400.0, minimum=60.0, maximum=604_800.0
            ),
            round_ceiling=_env_int("ROUND_CEILING", default=40, minimum=1, maximum=60),
            empty_round_limit=_env_int("EMPTY_ROUND_LIMIT", default=3, minimum=1, maximum=10),
            sync_mode=sync_mode,
            sync_workers=_env_int("SYNC_WORKERS", default=5, minimum=1, maximum=20),
            sync_deadline_seconds=_env_float(
                "SYNC_DEADLINE_SECONDS", default=120.0, minimum=1.0, maximum=1800.0
            ),
            local_timezone=os.getenv("LOCAL_TIMEZONE", "Asia/Jerusalem").strip()
            or "Asia/Jerusalem",
            default_season=os.getenv("DEFAULT_SEASON", "2025-2026").strip() or "2025-2026",
            synced_leagues=_env_csv_ints("SYNCED_LEAGUES", "4644,4966"),
            fixtures_store_path=os.path.normpath(
                os.getenv(
                    "FIXTURES_STORE_PATH",
                    os.path.join(os.path.dirname(__file__), "..", "data", "fixtures_store.json"),
                )
            ),
            cache_database_url=os.getenv(
                "CACHE_DATABASE_URL",
                os.getenv("DATABASE_URL", ""),
            ).strip(),
        )
