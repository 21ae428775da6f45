"""
SQLite persistence for the last published catalog snapshot.
Only the current snapshot is kept so a restart can serve it immediately.
"""
import logging
from pathlib import Path
from typing import Optional

import aiosqlite
from pydantic import ValidationError

from iptv_addon.models.channel import CatalogSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Single-row SQLite store for the latest CatalogSnapshot."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _ensure_directory(self):
        """Create data directory if it doesn't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self):
        """Create the snapshot table if it doesn't exist."""
        self._ensure_directory()
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS snapshot (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    data TEXT NOT NULL,
                    channel_count INTEGER NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """)
            await db.commit()

    async def save(self, snapshot: CatalogSnapshot):
        """Replace the stored snapshot."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO snapshot (id, data, channel_count, created_at)
                   VALUES (1, ?, ?, ?)""",
                (snapshot.model_dump_json(), len(snapshot), snapshot.created_at.isoformat()),
            )
            await db.commit()
        logger.info(f"Snapshot saved: {len(snapshot)} channels to {self.db_path}")

    async def load(self) -> Optional[CatalogSnapshot]:
        """Load the stored snapshot, or None if there is none or it is unreadable."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT data FROM snapshot WHERE id = 1")
            row = await cursor.fetchone()
        if not row:
            return None
        try:
            return CatalogSnapshot.model_validate_json(row[0])
        except ValidationError as e:
            logger.warning(f"Discarding unreadable snapshot: {e}")
            return None
