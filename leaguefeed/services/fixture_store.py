from __future__ import annotations

import json
import os
import threading
from typing import Any

from loguru import logger

try:
    from leaguefeed.services.models import Fixture, SyncMetadata
except ModuleNotFoundError:
    from services.models import Fixture, SyncMetadata

try:
    import psycopg
except Exception:  # pragma: no cover - optional dependency fallback
    psycopg = None


def _normalize_database_url(url: str) -> str:
    value = str(url or "").strip()
    if value.startswith("postgres://"):
        return "postgresql://" + value[len("postgres://") :]
    return value


def _season_key(season_id: int, season: str) -> str:
    return f"{int(season_id)}:{season}"


def _natural_key_text(fixture: Fixture) -> str:
    return "|".join(str(part) for part in fixture.natural_key)


class FixtureStore:
    """Durable fixture records for file or Postgres backends.

    Records are upserted on (seasonId, season, round, homeTeam, awayTeam) so a
    re-sync never duplicates a match.
    """

    def __init__(self, file_path: str, database_url: str | None = None) -> None:
        self.file_path = file_path
        self.database_url = _normalize_database_url(database_url or "")
        self.use_postgres = bool(self.database_url) and psycopg is not None
        self.fixtures_table = "league_fixtures"
        self.metadata_table = "league_sync_metadata"
        self._lock = threading.Lock()

        if self.database_url and psycopg is None:
            logger.warning(
                "CACHE_DATABASE_URL is set but psycopg is unavailable. Falling back to file store."
            )

        if self.use_postgres:
            self._ensure_postgres_schema()

    @property
    def backend(self) -> str:
        return "postgres" if self.use_postgres else "file"

    def _ensure_postgres_schema(self) -> None:
        try:
            with psycopg.connect(self.database_url, autocommit=True) as conn:  # type: ignore[arg-type]
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {self.fixtures_table} (
                            season_id INTEGER NOT NULL,
                            season TEXT NOT NULL,
                            round INTEGER NOT NULL,
                            home_team TEXT NOT NULL,
                            away_team TEXT NOT NULL,
                            event_id TEXT NOT NULL DEFAULT '',
                            match_date DATE NOT NULL,
                            match_time TEXT NOT NULL DEFAULT '',
                            venue TEXT NOT NULL DEFAULT '',
                            home_score INTEGER,
                            away_score INTEGER,
                            classification TEXT NOT NULL,
                            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                            PRIMARY KEY (season_id, season, round, home_team, away_team)
                        )
                        """
                    )
                    cur.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {self.metadata_table} (
                            season_id INTEGER NOT NULL,
                            season TEXT NOT NULL,
                            payload JSONB NOT NULL,
                            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                            PRIMARY KEY (season_id, season)
                        )
                        """
                    )
        except Exception as exc:
            logger.error(f"Failed to initialize Postgres fixture schema: {exc}")
            self.use_postgres = False

    # file backend

    def _read_file(self) -> dict[str, Any]:
        if not self.file_path or not os.path.exists(self.file_path):
            return {}
        try:
            with open(self.file_path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Failed to read fixture store {self.file_path}: {exc}")
            return {}
        if not isinstance(payload, dict):
            return {}
        return payload

    def _write_file(self, payload: dict[str, Any]) -> None:
        parent = os.path.dirname(self.file_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        tmp_path = f"{self.file_path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.file_path)

    def _upsert_file(
        self,
        season_id: int,
        season: str,
        fixtures: list[Fixture],
        metadata: SyncMetadata,
    ) -> int:
        with self._lock:
            payload = self._read_file()
            season_bucket = payload.setdefault(_season_key(season_id, season), {})
            stored = season_bucket.setdefault("fixtures", {})

            for fixture in fixtures:
                key = _natural_key_text(fixture)
                existing = stored.get(key)
                if isinstance(existing, dict):
                    updated = Fixture.from_dict(existing).apply(fixture.as_update())
                    stored[key] = updated.to_dict()
                else:
                    stored[key] = fixture.to_dict()

            season_bucket["metadata"] = metadata.to_dict()
            self._write_file(payload)
            return len(stored)

    def _load_file(self, season_id: int, season: str) -> tuple[list[Fixture], SyncMetadata | None]:
        with self._lock:
            payload = self._read_file()

        bucket = payload.get(_season_key(season_id, season))
        if not isinstance(bucket, dict):
            return [], None

        fixtures: list[Fixture] = []
        raw_fixtures = bucket.get("fixtures")
        if isinstance(raw_fixtures, dict):
            for raw in raw_fixtures.values():
                try:
                    fixtures.append(Fixture.from_dict(raw))
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning(f"Skipping malformed stored fixture: {exc}")

        metadata = None
        raw_metadata = bucket.get("metadata")
        if isinstance(raw_metadata, dict):
            try:
                metadata = SyncMetadata.from_dict(raw_metadata)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Ignoring malformed sync metadata: {exc}")
        return fixtures, metadata

    # postgres backend

    def _upsert_postgres(
        self,
        season_id: int,
        season: str,
        fixtures: list[Fixture],
        metadata: SyncMetadata,
    ) -> int:
        with psycopg.connect(self.database_url, autocommit=False) as conn:  # type: ignore[arg-type]
            with conn.cursor() as cur:
                for fixture in fixtures:
                    cur.execute(
                        f"""
                        INSERT INTO {self.fixtures_table} (
                            season_id, season, round, home_team, away_team, event_id,
                            match_date, match_time, venue, home_score, away_score,
                            classification, updated_at
                        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
                        ON CONFLICT (season_id, season, round, home_team, away_team)
                        DO UPDATE SET
                            event_id = EXCLUDED.event_id,
                            match_date = EXCLUDED.match_date,
                            match_time = EXCLUDED.match_time,
                            venue = EXCLUDED.venue,
                            home_score = EXCLUDED.home_score,
                            away_score = EXCLUDED.away_score,
                            classification = EXCLUDED.classification,
                            updated_at = NOW()
                        """,
                        (
                            fixture.season_id,
                            fixture.season,
                            fixture.round,
                            fixture.home_team,
                            fixture.away_team,
                            fixture.id,
                            fixture.date,
                            fixture.time,
                            fixture.venue,
                            fixture.home_score,
                            fixture.away_score,
                            fixture.classification,
                        ),
                    )
                cur.execute(
                    f"""
                    INSERT INTO {self.metadata_table} (season_id, season, payload, updated_at)
                    VALUES (%s, %s, %s::jsonb, NOW())
                    ON CONFLICT (season_id, season)
                    DO UPDATE SET payload = EXCLUDED.payload, updated_at = NOW()
                    """,
                    (season_id, season, json.dumps(metadata.to_dict(), ensure_ascii=False)),
                )
                cur.execute(
                    f"SELECT COUNT(*) FROM {self.fixtures_table} WHERE season_id = %s AND season = %s",
                    (season_id, season),
                )
                row = cur.fetchone()
            conn.commit()
        return int(row[0] if row else 0)

    def _load_postgres(
        self, season_id: int, season: str
    ) -> tuple[list[Fixture], SyncMetadata | None]:
        with psycopg.connect(self.database_url, autocommit=True) as conn:  # type: ignore[arg-type]
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT event_id, round, match_date, match_time, venue, home_team,
                           away_team, home_score, away_score, classification
                    FROM {self.fixtures_table}
                    WHERE season_id = %s AND season = %s
                    """,
                    (season_id, season),
                )
                rows = cur.fetchall()
                cur.execute(
                    f"SELECT payload FROM {self.metadata_table} WHERE season_id = %s AND season = %s",
                    (season_id, season),
                )
                metadata_row = cur.fetchone()

        fixtures = [
            Fixture(
                id=str(row[0] or ""),
                season_id=int(season_id),
                season=season,
                round=int(row[1]),
                date=str(row[2]),
                time=str(row[3] or ""),
                venue=str(row[4] or ""),
                home_team=str(row[5]),
                away_team=str(row[6]),
                home_score=row[7],
                away_score=row[8],
                classification=str(row[9]),
            )
            for row in rows
        ]
        metadata = None
        if metadata_row and isinstance(metadata_row[0], dict):
            metadata = SyncMetadata.from_dict(metadata_row[0])
        return fixtures, metadata

    # public API

    def upsert_season(
        self,
        season_id: int,
        season: str,
        fixtures: list[Fixture],
        metadata: SyncMetadata,
    ) -> int:
        """Upsert a season's fixtures and metadata; returns the stored fixture count."""
        if self.use_postgres:
            try:
                return self._upsert_postgres(season_id, season, fixtures, metadata)
            except Exception as exc:
                logger.warning(
                    f"Failed writing fixtures to Postgres for {season_id}/{season}: {exc}"
                )
                return 0
        try:
            return self._upsert_file(season_id, season, fixtures, metadata)
        except OSError as exc:
            logger.warning(f"Failed to persist fixture store {self.file_path}: {exc}")
            return 0

    def load_season(
        self, season_id: int, season: str
    ) -> tuple[list[Fixture], SyncMetadata | None]:
        if self.use_postgres:
            try:
                return self._load_postgres(season_id, season)
            except Exception as exc:
                logger.warning(
                    f"Failed reading fixtures from Postgres for {season_id}/{season}: {exc}"
                )
                return [], None
        return self._load_file(season_id, season)
