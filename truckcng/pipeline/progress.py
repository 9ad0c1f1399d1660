"""Resumable-run checkpoints."""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Union

import duckdb
from pydantic import BaseModel, ConfigDict, Field

from truckcng.config import settings
from truckcng.utils.io import atomic_write_text

logger = logging.getLogger(__name__)

# Single fixed checkpoint identity; there is only one job
CHECKPOINT_KEY = "anp_truck_cng"


class ProgressState(BaseModel):
    """Last fully processed page and the cumulative number of rows saved."""

    model_config = ConfigDict(frozen=True)

    last_page: int = Field(ge=0)
    saved_count: int = Field(ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def next_page(self) -> int:
        return self.last_page + 1


class ProgressStore(Protocol):
    def load(self) -> Optional[ProgressState]:
        ...

    def save(self, state: ProgressState) -> None:
        ...

    def clear(self) -> None:
        ...


class JsonProgressStore:
    """Checkpoint kept as a small JSON document on local disk."""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path or settings.checkpoint_path)

    def load(self) -> Optional[ProgressState]:
        if not self.path.exists():
            return None
        try:
            return ProgressState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable checkpoint {self.path}: {e}")
            return None

    def save(self, state: ProgressState) -> None:
        atomic_write_text(self.path, state.model_dump_json(indent=2))

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Removed checkpoint {self.path}")


class DuckDBProgressStore:
    """Checkpoint kept in the ``crawl_progress`` table of the project database."""

    def __init__(self, db_path: Optional[str] = None, key: str = CHECKPOINT_KEY):
        self.db_path = db_path or settings.duckdb_path
        self.key = key
        self._init_table()

    def _init_table(self):
        conn = duckdb.connect(self.db_path)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS crawl_progress (
                checkpoint_key VARCHAR PRIMARY KEY,
                last_page INTEGER,
                saved_count INTEGER,
                updated_at TIMESTAMP
            )
        """)
        conn.close()

    def load(self) -> Optional[ProgressState]:
        conn = duckdb.connect(self.db_path)
        row = conn.execute(
            "SELECT last_page, saved_count, updated_at FROM crawl_progress WHERE checkpoint_key = ?",
            [self.key]
        ).fetchone()
        conn.close()

        if not row:
            return None
        try:
            # Stored as naive UTC
            updated_at = row[2].replace(tzinfo=timezone.utc) if row[2] else None
            return ProgressState(last_page=row[0], saved_count=row[1], updated_at=updated_at)
        except ValueError as e:
            logger.warning(f"Ignoring invalid checkpoint row for {self.key}: {e}")
            return None

    def save(self, state: ProgressState) -> None:
        conn = duckdb.connect(self.db_path)
        conn.execute(
            """
            INSERT OR REPLACE INTO crawl_progress
            (checkpoint_key, last_page, saved_count, updated_at)
            VALUES (?, ?, ?, ?)
            """,
            [self.key, state.last_page, state.saved_count,
             state.updated_at.astimezone(timezone.utc).replace(tzinfo=None)]
        )
        conn.close()

    def clear(self) -> None:
        conn = duckdb.connect(self.db_path)
        conn.execute("DELETE FROM crawl_progress WHERE checkpoint_key = ?", [self.key])
        conn.close()


def get_progress_store(backend: Optional[str] = None) -> ProgressStore:
    """
    Build the configured checkpoint store.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = (backend or settings.checkpoint_backend).lower()
    if backend == "json":
        return JsonProgressStore()
    if backend == "duckdb":
        return DuckDBProgressStore()
    raise ValueError(f"Unknown checkpoint backend: {backend}")
