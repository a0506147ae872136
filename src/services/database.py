import aiosqlite
import json
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
import logging

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, path: str):
        self.path = path
        self._initialized = False

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self.path)
        await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA foreign_keys=ON;")
        conn.row_factory = aiosqlite.Row
        try:
            yield conn
        finally:
            await conn.close()

    async def execute(self, query: str, params: tuple = ()) -> None:
        async with self.connect() as conn:
            await conn.execute(query, params)
            await conn.commit()

    async def fetchone(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def init_tables(self) -> None:
        """Initialize database tables for request status and analytics."""
        if self._initialized:
            return

        db_dir = os.path.dirname(self.path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS request_status (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    message TEXT NOT NULL,
                    progress INTEGER NOT NULL DEFAULT 0,
                    targets TEXT NOT NULL,
                    keywords TEXT NOT NULL,
                    report TEXT,
                    error TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_request_status_created_at ON request_status(created_at)
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS classifier_usage (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    prompt_units INTEGER NOT NULL,
                    completion_units INTEGER NOT NULL,
                    total_units INTEGER NOT NULL,
                    model TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS content_requests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_meta TEXT,
                    targets TEXT NOT NULL,
                    keywords TEXT NOT NULL,
                    post_matches INTEGER NOT NULL,
                    comment_matches INTEGER NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.commit()
            logger.info("Database tables initialized")

        self._initialized = True

    async def insert_request(
        self,
        request_id: str,
        status: str,
        message: str,
        targets: List[str],
        keywords: List[str],
        now: datetime,
    ) -> None:
        await self.execute(
            """
            INSERT INTO request_status
            (id, status, message, progress, targets, keywords, created_at, updated_at)
            VALUES (?, ?, ?, 0, ?, ?, ?, ?)
            """,
            (request_id, status, message, json.dumps(targets), json.dumps(keywords),
             now.isoformat(), now.isoformat())
        )

    async def update_request(
        self,
        request_id: str,
        fields: Dict[str, Any],
        exclude_states: Sequence[str] = (),
    ) -> int:
        """
        Update columns of a request row; returns the number of rows changed.
        Rows whose status is in exclude_states are left alone.
        """
        columns = ", ".join(f"{name} = ?" for name in fields)
        query = f"UPDATE request_status SET {columns} WHERE id = ?"
        params: tuple = (*fields.values(), request_id)
        if exclude_states:
            query += f" AND status NOT IN ({', '.join('?' for _ in exclude_states)})"
            params += tuple(exclude_states)

        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def get_request(self, request_id: str) -> Optional[aiosqlite.Row]:
        return await self.fetchone(
            "SELECT * FROM request_status WHERE id = ?",
            (request_id,)
        )

    async def list_requests(self, limit: int) -> List[aiosqlite.Row]:
        return await self.fetchall(
            "SELECT * FROM request_status ORDER BY created_at DESC LIMIT ?",
            (limit,)
        )

    async def add_classifier_usage(
        self,
        prompt_units: int,
        completion_units: int,
        model: str,
    ) -> None:
        await self.execute(
            """
            INSERT INTO classifier_usage (prompt_units, completion_units, total_units, model)
            VALUES (?, ?, ?, ?)
            """,
            (prompt_units, completion_units, prompt_units + completion_units, model)
        )

    async def add_content_request(
        self,
        source_meta: Optional[str],
        targets: List[str],
        keywords: List[str],
        post_matches: int,
        comment_matches: int,
    ) -> None:
        await self.execute(
            """
            INSERT INTO content_requests
            (source_meta, targets, keywords, post_matches, comment_matches)
            VALUES (?, ?, ?, ?, ?)
            """,
            (source_meta, json.dumps(targets), json.dumps(keywords), post_matches, comment_matches)
        )
