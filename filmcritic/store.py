"""SQLite key-value store for the last known-good model and probe results."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import aiosqlite
from pydantic import ValidationError

from .schemas import ValidationResult

_LOGGER = logging.getLogger("filmcritic.store")
_SELECTION_KEY = "selection"
_VALIDATION_PREFIX = "validation:"


class SqliteSelectionStore:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._initialized = False

    @property
    def path(self) -> Path:
        return self._path

    async def initialize(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.commit()
        self._initialized = True

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def _get(self, key: str) -> str | None:
        await self._ensure_initialized()
        async with aiosqlite.connect(self._path) as db:
            cursor = await db.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
            await cursor.close()
        return None if row is None else row[0]

    async def _set(self, key: str, value: str) -> None:
        await self._ensure_initialized()
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                VALUES (?, ?, datetime('now'))
                """,
                (key, value),
            )
            await db.commit()

    async def _delete(self, key: str) -> None:
        await self._ensure_initialized()
        async with aiosqlite.connect(self._path) as db:
            await db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await db.commit()

    async def get_selection(self) -> str | None:
        raw = await self._get(_SELECTION_KEY)
        if raw is None:
            return None
        try:
            record = json.loads(raw)
        except json.JSONDecodeError:
            _LOGGER.warning("Discarding unreadable selection record: %r", raw[:200])
            await self._delete(_SELECTION_KEY)
            return None
        model_id = record.get("modelId") if isinstance(record, dict) else None
        return model_id if isinstance(model_id, str) and model_id else None

    async def set_selection(self, model_id: str) -> None:
        await self._set(_SELECTION_KEY, json.dumps({"modelId": model_id}))

    async def clear_selection(self) -> None:
        await self._delete(_SELECTION_KEY)

    async def save_validation(self, result: ValidationResult) -> None:
        await self._set(f"{_VALIDATION_PREFIX}{result.model_id}", result.model_dump_json())

    async def load_validations(self) -> dict[str, ValidationResult]:
        await self._ensure_initialized()
        async with aiosqlite.connect(self._path) as db:
            cursor = await db.execute(
                "SELECT key, value FROM kv_store WHERE key LIKE ?",
                (f"{_VALIDATION_PREFIX}%",),
            )
            rows = await cursor.fetchall()
            await cursor.close()
        results: dict[str, ValidationResult] = {}
        for key, value in rows:
            try:
                result = ValidationResult.model_validate_json(value)
            except ValidationError:
                _LOGGER.warning("Skipping unreadable validation record %s", key)
                continue
            results[result.model_id] = result
        return results
