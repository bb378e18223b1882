import logging
import os
from pathlib import Path
from typing import Optional

import aiosqlite

from utils.errors import StorageError

LOGGER = logging.getLogger(__name__)

# Bump when a structure (table, index, column) is added. Versions only grow;
# rows are never rewritten by an upgrade.
SCHEMA_VERSION = 8

DATABASE_FILENAME = "survey.db"


class AsyncDatabaseInitializer:
    """
    Manage the survey SQLite database located via the DATABASE_DIR environment variable.

    - The database file is located at: <DATABASE_DIR>/survey.db
    - `db_dir` may be passed explicitly (tests do this); otherwise DATABASE_DIR
      is required. A StorageError is raised if it is missing or invalid
      (not a directory and cannot be created).
    - On the first call to `ensure_database()` for a given instance the
      `records` table, its unique identifier index and any columns added by
      later schema versions are created if missing. Existing rows are kept.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for every store opened on it to call it.
    """

    def __init__(self, db_dir: Optional[Path | str] = None) -> None:
        env_dir = str(db_dir) if db_dir is not None else os.getenv("DATABASE_DIR")

        if env_dir is None or not env_dir.strip():
            raise StorageError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        path = Path(env_dir).expanduser()

        # If the path exists but is not a directory, that's a configuration error.
        if path.exists() and not path.is_dir():
            raise StorageError(
                f"DATABASE_DIR={env_dir!r} points to a file, not a directory "
                f"({path}). Please set DATABASE_DIR to a directory path."
            )

        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create or access database directory at {path}") from exc

        self.db_dir = path
        self.db_path = self.db_dir / DATABASE_FILENAME
        self.schema_version = SCHEMA_VERSION

        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite database at `self.db_path` carries the current schema.

        Raises:
            StorageError: If the file cannot be opened or written, or it was
                stamped by a newer schema version than this code knows.
        """
        if self._initialized:
            return

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await self.upgrade(db)
        except (aiosqlite.Error, OSError) as exc:
            LOGGER.error("Failed to initialize database at %s: %s", self.db_path, exc)
            raise StorageError(f"Failed to open database at {self.db_path}: {exc}") from exc

        self._initialized = True

    async def upgrade(self, db: aiosqlite.Connection) -> int:
        """Create missing structures on an open connection and stamp the schema version.

        Returns:
            The schema version found before the upgrade ran.
        """
        cur = await db.execute("PRAGMA user_version")
        row = await cur.fetchone()
        found = int(row[0]) if row else 0

        if found > self.schema_version:
            raise StorageError(
                f"Database {self.db_path} has schema version {found}, "
                f"newer than the supported version {self.schema_version}"
            )

        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL
            )
            """
        )
        await db.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_records_id ON records(id)")

        # Columns added after the table first shipped.
        cur = await db.execute("PRAGMA table_info(records)")
        cols = await cur.fetchall()
        col_names = {col[1] for col in cols}
        if "last_modified" not in col_names:
            await db.execute("ALTER TABLE records ADD COLUMN last_modified TEXT")

        if found < self.schema_version:
            # PRAGMA does not accept bound parameters; the value is an int constant.
            await db.execute(f"PRAGMA user_version = {int(self.schema_version)}")
            LOGGER.info("Upgraded %s from schema version %d to %d", self.db_path, found, self.schema_version)

        await db.commit()
        return found
