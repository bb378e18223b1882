"""Async SQLite store for survey records.

`RecordStore` owns a single `aiosqlite` connection to the survey database.
Records are kept as one JSON document per identifier in the `records`
table; the identifier column is the unique key. Every public operation runs
as its own transaction, and concurrent callers are serialized onto the one
connection by an `asyncio.Lock`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional

import aiosqlite

from models.survey_record import SurveyRecord
from utils.database_init import AsyncDatabaseInitializer
from utils.errors import StorageError

LOGGER = logging.getLogger(__name__)


class RecordStore:
	"""Key-value store of `SurveyRecord` documents.

	Usage:
		store = RecordStore(AsyncDatabaseInitializer())
		await store.open()
		await store.put(record)
		await store.close()

	Key normalization and defaults are the repository's job; this class
	stores exactly what it is given.
	"""

	def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
		self._db = db_initializer
		self._conn: Optional[aiosqlite.Connection] = None
		self._lock = asyncio.Lock()

	@property
	def is_open(self) -> bool:
		return self._conn is not None

	async def open(self) -> "RecordStore":
		"""Open the connection, creating or upgrading the schema first.

		Safe to call repeatedly and from concurrent tasks; only the first
		call connects.
		"""
		async with self._lock:
			if self._conn is not None:
				return self
			conn = await self._connection()
			try:
				await conn.execute("PRAGMA journal_mode=WAL;")
				await conn.commit()
			except aiosqlite.Error as exc:
				raise self._failure("open", str(self._db.db_path), exc) from exc
		return self

	async def close(self) -> None:
		"""Close the underlying connection if open."""
		async with self._lock:
			if self._conn is not None:
				await self._conn.close()
				self._conn = None

	async def get(self, key: str) -> Optional[SurveyRecord]:
		"""Return the record stored under `key`, or None if there is none."""
		async with self._lock:
			conn = await self._connection()
			try:
				async with conn.execute("SELECT data FROM records WHERE id = ?", (key,)) as cur:
					row = await cur.fetchone()
			except aiosqlite.Error as exc:
				raise self._failure("read", key, exc) from exc
		return self._row_to_record(row[0]) if row else None

	async def put(self, record: SurveyRecord) -> None:
		"""Insert or overwrite the record under `record.id`."""
		payload = json.dumps(record.to_dict(), separators=(",", ":"))
		async with self._lock:
			conn = await self._connection()
			try:
				await conn.execute(
					"""
					INSERT INTO records (id, data, last_modified) VALUES (?, ?, ?)
					ON CONFLICT(id) DO UPDATE SET data = excluded.data, last_modified = excluded.last_modified
					""",
					(record.id, payload, record.last_modified),
				)
				await conn.commit()
			except aiosqlite.Error as exc:
				await self._rollback(conn)
				raise self._failure("write", record.id, exc) from exc

	async def delete(self, key: str) -> bool:
		"""Delete the record under `key`. Returns True if a row was removed."""
		async with self._lock:
			conn = await self._connection()
			try:
				cur = await conn.execute("DELETE FROM records WHERE id = ?", (key,))
				changed = cur.rowcount
				await conn.commit()
			except aiosqlite.Error as exc:
				await self._rollback(conn)
				raise self._failure("delete", key, exc) from exc
		return bool(changed and changed > 0)

	async def list_all(self) -> List[SurveyRecord]:
		"""Return every stored record in key order."""
		async with self._lock:
			conn = await self._connection()
			try:
				async with conn.execute("SELECT data FROM records ORDER BY id") as cur:
					rows = await cur.fetchall()
			except aiosqlite.Error as exc:
				raise self._failure("list", "*", exc) from exc
		return [self._row_to_record(row[0]) for row in rows]

	async def _connection(self) -> aiosqlite.Connection:
		# Called with the lock held; opens lazily so callers need not await open().
		if self._conn is None:
			await self._db.ensure_database()
			try:
				self._conn = await aiosqlite.connect(self._db.db_path)
			except (aiosqlite.Error, OSError) as exc:
				LOGGER.error("Failed to open record store at %s: %s", self._db.db_path, exc)
				raise StorageError(f"Failed to open record store: {exc}") from exc
		return self._conn

	@staticmethod
	async def _rollback(conn: aiosqlite.Connection) -> None:
		try:
			await conn.rollback()
		except aiosqlite.Error as exc:
			LOGGER.error("Rollback failed: %s", exc)

	@staticmethod
	def _failure(action: str, key: str, exc: Exception) -> StorageError:
		LOGGER.error("Record store %s failed for %s: %s", action, key, exc)
		return StorageError(f"Failed to {action} record {key}: {exc}")

	@staticmethod
	def _row_to_record(data: str) -> SurveyRecord:
		"""Convert a stored JSON document into a SurveyRecord."""
		try:
			document = json.loads(data)
		except (TypeError, ValueError) as exc:
			raise StorageError(f"Stored record is not valid JSON: {exc}") from exc
		if not isinstance(document, dict):
			raise StorageError("Stored record is not a JSON object")
		return SurveyRecord.from_dict(document)

	async def __aenter__(self) -> "RecordStore":
		return await self.open()

	async def __aexit__(self, exc_type, exc, tb) -> None:
		await self.close()
