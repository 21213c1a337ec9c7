"""
Crawl ledger for spydr.
Handles the SQLite connection, schema setup and ledger operations.

The ledger is an explicit object handed to the capture pipeline; there is
no process-wide instance.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite

from src.storage.schemas import CrawlRecord, DiscoveredLink
from src.utils.errors import DuplicateKeyError
from src.utils.identity import identify
from src.utils.logging import get_logger

logger = get_logger(__name__)


class Database:
    """Async SQLite crawl ledger."""

    def __init__(self, db_path: str | Path):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else None
        self._dsn = str(db_path)
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "Database":
        await self.connect()
        await self.initialize_schema()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the connection."""
        if self._connection is not None:
            return

        if self.db_path is not None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self._dsn,
            isolation_level=None,  # Auto-commit mode, explicit BEGIN for multi-statement work
        )

        await self._connection.execute("PRAGMA foreign_keys = ON")
        if self.db_path is not None:
            await self._connection.execute("PRAGMA journal_mode = WAL")

        self._connection.row_factory = aiosqlite.Row

        logger.debug("Database connected", path=self._dsn)

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Database connection closed")

    def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database is not connected")
        return self._connection

    async def initialize_schema(self) -> None:
        """Create tables and indexes if they do not exist. Idempotent."""
        schema_path = Path(__file__).parent / "schema.sql"

        if not schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        schema_sql = schema_path.read_text(encoding="utf-8")

        async with self._lock:
            await self._conn().executescript(schema_sql)

        logger.debug("Database schema initialized")

    # ============================================================
    # Low-level helpers
    # ============================================================

    async def execute(
        self,
        sql: str,
        parameters: tuple | dict | None = None,
    ) -> aiosqlite.Cursor:
        """Execute a SQL statement.

        Args:
            sql: SQL statement to execute.
            parameters: Optional parameters for the statement.

        Returns:
            Cursor with results.
        """
        async with self._lock:
            if parameters:
                return await self._conn().execute(sql, parameters)
            return await self._conn().execute(sql)

    async def fetch_one(
        self,
        sql: str,
        parameters: tuple | dict | None = None,
    ) -> dict[str, Any] | None:
        cursor = await self.execute(sql, parameters)
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def fetch_all(
        self,
        sql: str,
        parameters: tuple | dict | None = None,
    ) -> list[dict[str, Any]]:
        cursor = await self.execute(sql, parameters)
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run statements atomically; rolls back on any error."""
        async with self._lock:
            conn = self._conn()
            await conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            await conn.execute("COMMIT")

    # ============================================================
    # Ledger operations
    # ============================================================

    async def find_by_hash(self, url_hash: str) -> CrawlRecord | None:
        """Return the crawl record for a URL hash, if any."""
        row = await self.fetch_one(
            "SELECT * FROM crawled_sites WHERE url_hash = ?",
            (url_hash,),
        )
        return CrawlRecord.from_row(row) if row else None

    async def insert_crawled_site(self, record: CrawlRecord) -> int:
        """Insert a crawl record and return its id.

        Raises:
            DuplicateKeyError: A record with the same url_hash exists.
        """
        try:
            cursor = await self.execute(
                """
                INSERT INTO crawled_sites (timestamp, url, url_hash, http_code, file_directory)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    record.timestamp,
                    record.url,
                    record.url_hash,
                    record.http_code,
                    record.file_directory,
                ),
            )
        except aiosqlite.IntegrityError as e:
            if "UNIQUE" in str(e).upper():
                raise DuplicateKeyError(record.url_hash) from e
            raise

        crawl_id = cursor.lastrowid
        if crawl_id is None:
            raise RuntimeError("INSERT into crawled_sites returned no row id")

        logger.debug("Crawl record inserted", crawl_id=crawl_id, url_hash=record.url_hash)
        return crawl_id

    async def delete_by_hash(self, url_hash: str) -> bool:
        """Delete a crawl record and all of its links.

        Links are removed first because they reference the parent id.

        Returns:
            True if a record was deleted.
        """
        async with self.transaction() as conn:
            await conn.execute(
                """
                DELETE FROM links WHERE crawled_site_id IN (
                    SELECT id FROM crawled_sites WHERE url_hash = ?
                )
                """,
                (url_hash,),
            )
            cursor = await conn.execute(
                "DELETE FROM crawled_sites WHERE url_hash = ?",
                (url_hash,),
            )
            deleted = cursor.rowcount > 0

        logger.debug("Crawl record deleted", url_hash=url_hash, deleted=deleted)
        return deleted

    async def insert_links(self, crawled_site_id: int, links: Iterable[str]) -> int:
        """Bulk-insert the links of a crawled page.

        Returns:
            Number of link rows inserted (0 for no links).
        """
        rows = [(crawled_site_id, link, identify(link)) for link in links]
        if not rows:
            return 0

        async with self.transaction() as conn:
            await conn.executemany(
                "INSERT INTO links (crawled_site_id, url, url_hash) VALUES (?, ?, ?)",
                rows,
            )

        logger.debug("Links inserted", crawl_id=crawled_site_id, count=len(rows))
        return len(rows)

    async def get_links_for_site(self, crawled_site_id: int) -> list[DiscoveredLink]:
        rows = await self.fetch_all(
            "SELECT * FROM links WHERE crawled_site_id = ? ORDER BY id",
            (crawled_site_id,),
        )
        return [DiscoveredLink(**row) for row in rows]

    async def list_all(self) -> list[CrawlRecord]:
        """Return all crawl records, most recent first."""
        rows = await self.fetch_all(
            "SELECT * FROM crawled_sites ORDER BY timestamp DESC, id DESC"
        )
        return [CrawlRecord.from_row(row) for row in rows]
