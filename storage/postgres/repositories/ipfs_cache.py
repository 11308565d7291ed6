"""
IPFS metadata cache repository (database tier behind Redis).
"""
import logging
from typing import Any, Dict, Optional

from psycopg2 import extras

logger = logging.getLogger(__name__)


class IPFSCacheRepository:
    """Persistent copy of fetched IPFS documents keyed by hash."""

    def __init__(self, pool):
        self.pool = pool

    def get(self, ipfs_hash: str) -> Optional[Dict[str, Any]]:
        """Return cached metadata and refresh last_accessed, None on miss."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                UPDATE ipfs_cache SET last_accessed = NOW()
                WHERE ipfs_hash = %s AND data IS NOT NULL
                RETURNING data
            """, (ipfs_hash,))
            row = cur.fetchone()
            return row[0] if row else None

    def save(self, ipfs_hash: str, data: Dict[str, Any], blob_url: Optional[str] = None) -> None:
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                INSERT INTO ipfs_cache (ipfs_hash, content_type, data, blob_url, last_accessed)
                VALUES (%s, 'metadata', %s, %s, NOW())
                ON CONFLICT (ipfs_hash) DO UPDATE SET
                    data = EXCLUDED.data,
                    blob_url = COALESCE(EXCLUDED.blob_url, ipfs_cache.blob_url),
                    last_accessed = NOW()
            """, (ipfs_hash, extras.Json(data), blob_url))
