"""嵌入缓存

基于 SQLite 的持久化嵌入缓存，按 (provider, model, 文本哈希) 键控，超出容量时按 LRU 淘汰。
"""
import asyncio
import hashlib
import json
from pathlib import Path
from typing import List, Optional

import aiosqlite

from config.logging import get_logger


logger = get_logger(__name__)


def text_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class EmbeddingCache:
    """Persistent embedding cache."""

    def __init__(self, path: str, max_entries: int = 10000):
        self.path = Path(path).expanduser()
        self.max_entries = max_entries
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def _connect(self) -> aiosqlite.Connection:
        if self._db is not None:
            return self._db
        async with self._lock:
            if self._db is None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                db = await aiosqlite.connect(str(self.path))
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA busy_timeout=5000")
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS embedding_cache (
                        provider TEXT NOT NULL,
                        model TEXT NOT NULL,
                        hash TEXT NOT NULL,
                        dimension INTEGER NOT NULL,
                        embedding TEXT NOT NULL,
                        hit_count INTEGER DEFAULT 0,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        PRIMARY KEY (provider, model, hash)
                    )
                """)
                await db.execute("""
                    CREATE INDEX IF NOT EXISTS ix_embedding_cache_updated_at
                    ON embedding_cache(updated_at)
                """)
                await db.commit()
                self._db = db
                logger.debug(f"[EMBED] Embedding cache opened at {self.path}")
        return self._db

    async def get(self, provider: str, model: str, text: str) -> Optional[List[float]]:
        """Cached embedding for a text, refreshing its LRU position on a hit."""
        db = await self._connect()
        key = (provider, model, text_hash(text))

        cursor = await db.execute(
            "SELECT embedding FROM embedding_cache WHERE provider = ? AND model = ? AND hash = ?",
            key,
        )
        row = await cursor.fetchone()
        await cursor.close()
        if not row:
            return None

        await db.execute("""
            UPDATE embedding_cache
            SET hit_count = hit_count + 1, updated_at = CURRENT_TIMESTAMP
            WHERE provider = ? AND model = ? AND hash = ?
        """, key)
        await db.commit()
        return json.loads(row[0])

    async def put(self, provider: str, model: str, text: str, embedding: List[float]) -> None:
        db = await self._connect()
        await db.execute("""
            INSERT OR REPLACE INTO embedding_cache
            (provider, model, hash, dimension, embedding)
            VALUES (?, ?, ?, ?, ?)
        """, (provider, model, text_hash(text), len(embedding), json.dumps(embedding)))
        await db.commit()

        if self.max_entries:
            await self.prune(self.max_entries)

    async def prune(self, max_entries: int) -> int:
        """Delete the least recently used entries beyond ``max_entries``."""
        db = await self._connect()
        cursor = await db.execute("SELECT COUNT(*) FROM embedding_cache")
        row = await cursor.fetchone()
        await cursor.close()

        count = row[0] if row else 0
        if count <= max_entries:
            return 0

        excess = count - max_entries
        await db.execute("""
            DELETE FROM embedding_cache
            WHERE rowid IN (
                SELECT rowid FROM embedding_cache
                ORDER BY updated_at ASC, hit_count ASC
                LIMIT ?
            )
        """, (excess,))
        await db.commit()
        logger.debug(f"[EMBED] Pruned {excess} cache entries")
        return excess

    async def count(self) -> int:
        db = await self._connect()
        cursor = await db.execute("SELECT COUNT(*) FROM embedding_cache")
        row = await cursor.fetchone()
        await cursor.close()
        return row[0] if row else 0

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
