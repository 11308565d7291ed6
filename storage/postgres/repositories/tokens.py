"""
Token repository.

Handles the tokens table: identity rows written by the indexer and the
metrics columns refreshed by the workers and the backfill.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from psycopg2 import extras

from common.models.data_models import TokenMetrics, TokenRecord

logger = logging.getLogger(__name__)

_SELECT = "SELECT " + ", ".join(TokenRecord.COLUMNS) + " FROM tokens"

# API sort keys mapped to columns
SORT_COLUMNS = {
    'created': 'created_at',
    'holders': 'holder_count',
    'volume': 'volume_24h',
    'price': 'current_price',
    'marketCap': 'market_cap',
    'priceChange': 'price_change_24h',
}


class TokenRepository:
    """
    Repository for token rows.

    Responsibilities:
    - Idempotent inserts of newly indexed tokens
    - Metric and metadata updates
    - Selection queries for workers (activity tiers, missing metadata)
    - Paged listing and market aggregates
    """

    def __init__(self, pool):
        """
        Initialize token repository.

        Args:
            pool: PostgresConnectionPool instance
        """
        self.pool = pool

    def exists(self, address: str) -> bool:
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT 1 FROM tokens WHERE address = %s", (address.lower(),))
            return cur.fetchone() is not None

    def get(self, address: str) -> Optional[TokenRecord]:
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(_SELECT + " WHERE address = %s", (address.lower(),))
            row = cur.fetchone()
            return TokenRecord.from_db_row(row) if row else None

    def insert(self, token: TokenRecord) -> bool:
        """
        Insert a token row.

        Returns:
            True if the row was created, False if the address already existed
        """
        m = token.metrics
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                INSERT INTO tokens
                (address, name, symbol, creator, total_supply, reserve_ratio, metadata_uri,
                 block_number, transaction_hash, created_at, trading_enabled, metadata_cache,
                 logo_url, description, social_links, current_price, market_cap,
                 volume_24h, price_change_24h, current_supply, reserve_balance,
                 holder_count, metrics_updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                        %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (address) DO NOTHING
            """, (
                token.address.lower(),
                token.name,
                token.symbol,
                token.creator.lower(),
                token.total_supply,
                token.reserve_ratio,
                token.metadata_uri,
                token.block_number,
                token.transaction_hash,
                token.created_at,
                token.trading_enabled,
                extras.Json(token.metadata_cache) if token.metadata_cache is not None else None,
                token.logo_url,
                token.description,
                extras.Json(token.social_links) if token.social_links is not None else None,
                m.current_price,
                m.market_cap,
                m.volume_24h,
                m.price_change_24h,
                m.current_supply,
                m.reserve_balance,
                m.holder_count,
                token.metrics_updated_at,
            ))
            created = cur.rowcount == 1
            logger.debug(f"Insert token {token.address}: {'created' if created else 'exists'}")
            return created

    def set_trading_enabled(self, address: str, enabled: bool = True) -> None:
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "UPDATE tokens SET trading_enabled = %s WHERE address = %s",
                (enabled, address.lower()),
            )

    def update_metrics(self, address: str, metrics: TokenMetrics,
                       trading_enabled: Optional[bool] = None) -> None:
        """Store freshly computed metrics and stamp metrics_updated_at."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                UPDATE tokens SET
                    current_price = %s,
                    market_cap = %s,
                    volume_24h = %s,
                    price_change_24h = %s,
                    current_supply = %s,
                    reserve_balance = %s,
                    holder_count = %s,
                    trading_enabled = COALESCE(%s, trading_enabled),
                    metrics_updated_at = %s
                WHERE address = %s
            """, (
                metrics.current_price,
                metrics.market_cap,
                metrics.volume_24h,
                metrics.price_change_24h,
                metrics.current_supply,
                metrics.reserve_balance,
                metrics.holder_count,
                trading_enabled,
                datetime.now(timezone.utc),
                address.lower(),
            ))

    def update_metadata(self, address: str, metadata: Dict[str, Any]) -> None:
        """Store fetched IPFS metadata and the fields derived from it."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                UPDATE tokens SET
                    metadata_cache = %s,
                    logo_url = COALESCE(%s, logo_url),
                    description = COALESCE(%s, description),
                    social_links = COALESCE(%s, social_links)
                WHERE address = %s
            """, (
                extras.Json(metadata),
                metadata.get('image'),
                metadata.get('description'),
                extras.Json(metadata['social']) if metadata.get('social') else None,
                address.lower(),
            ))

    def list_addresses(self, only_missing_metrics: bool = False,
                       limit: Optional[int] = None) -> List[str]:
        """Token addresses, newest first."""
        query = "SELECT address FROM tokens"
        if only_missing_metrics:
            query += " WHERE metrics_updated_at IS NULL"
        query += " ORDER BY created_at DESC"
        params: Tuple = ()
        if limit is not None:
            query += " LIMIT %s"
            params = (limit,)
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(query, params)
            return [row[0] for row in cur.fetchall()]

    def count(self, only_missing_metrics: bool = False) -> int:
        query = "SELECT COUNT(*) FROM tokens"
        if only_missing_metrics:
            query += " WHERE metrics_updated_at IS NULL"
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(query)
            return int(cur.fetchone()[0])

    def find_by_last_trade(self, traded_since: Optional[datetime] = None,
                           not_traded_since: Optional[datetime] = None,
                           limit: int = 100, offset: int = 0,
                           trading_only: bool = False) -> List[str]:
        """
        Select tokens by trade recency.

        Args:
            traded_since: require at least one BUY/SELL at or after this time
            not_traded_since: require no BUY/SELL at or after this time
            limit: max rows
            offset: rows to skip (cold tier rotation)
            trading_only: restrict to tradable tokens
        """
        clauses = []
        params: List[Any] = []
        if trading_only:
            clauses.append("t.trading_enabled")
        if traded_since is not None:
            clauses.append("""EXISTS (
                SELECT 1 FROM transactions x
                WHERE x.token_address = t.address AND x.type IN ('BUY', 'SELL')
                  AND x.timestamp >= %s)""")
            params.append(traded_since)
        if not_traded_since is not None:
            clauses.append("""NOT EXISTS (
                SELECT 1 FROM transactions x
                WHERE x.token_address = t.address AND x.type IN ('BUY', 'SELL')
                  AND x.timestamp >= %s)""")
            params.append(not_traded_since)

        query = "SELECT t.address FROM tokens t"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY t.address LIMIT %s OFFSET %s"
        params.extend([limit, offset])

        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(query, params)
            return [row[0] for row in cur.fetchall()]

    def list_without_metadata(self, limit: int) -> List[Tuple[str, str]]:
        """(address, metadata_uri) of tokens whose IPFS metadata is not cached."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                SELECT address, metadata_uri FROM tokens
                WHERE metadata_cache IS NULL AND metadata_uri <> ''
                ORDER BY created_at DESC
                LIMIT %s
            """, (limit,))
            return [(row[0], row[1]) for row in cur.fetchall()]

    def list_newest(self, limit: int, trading_only: bool = True) -> List[TokenRecord]:
        query = _SELECT
        if trading_only:
            query += " WHERE trading_enabled"
        query += " ORDER BY created_at DESC LIMIT %s"
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(query, (limit,))
            return [TokenRecord.from_db_row(row) for row in cur.fetchall()]

    def list_ranked(self, sort: str, descending: bool = True, limit: int = 10,
                    where: Optional[str] = None) -> List[TokenRecord]:
        """
        Tradable tokens ordered by one of SORT_COLUMNS.

        Args:
            sort: key of SORT_COLUMNS
            where: one of 'volume_positive', 'market_cap_positive',
                'change_positive', 'change_negative'
        """
        column = SORT_COLUMNS[sort]
        filters = {
            None: "",
            'volume_positive': " AND volume_24h > 0",
            'market_cap_positive': " AND market_cap > 0",
            'change_positive': " AND price_change_24h > 0",
            'change_negative': " AND price_change_24h < 0",
        }
        query = (_SELECT + " WHERE trading_enabled" + filters[where] +
                 f" ORDER BY {column} {'DESC' if descending else 'ASC'} LIMIT %s")
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute(query, (limit,))
            return [TokenRecord.from_db_row(row) for row in cur.fetchall()]

    def search(self, page: int = 1, limit: int = 20, sort: str = 'created',
               order: str = 'desc', search: Optional[str] = None,
               creator: Optional[str] = None) -> Tuple[List[TokenRecord], int]:
        """Paged token listing with optional name/symbol search and creator filter."""
        clauses = []
        params: List[Any] = []
        if search:
            clauses.append("(name ILIKE %s OR symbol ILIKE %s OR address = %s)")
            params.extend([f"%{search}%", f"%{search}%", search.lower()])
        if creator:
            clauses.append("creator = %s")
            params.append(creator.lower())
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""

        column = SORT_COLUMNS.get(sort, 'created_at')
        direction = 'ASC' if order.lower() == 'asc' else 'DESC'

        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tokens" + where, params)
            total = int(cur.fetchone()[0])
            cur.execute(
                _SELECT + where + f" ORDER BY {column} {direction}, address LIMIT %s OFFSET %s",
                params + [limit, (page - 1) * limit],
            )
            rows = [TokenRecord.from_db_row(row) for row in cur.fetchall()]
            return rows, total

    def market_totals(self, since: datetime) -> Dict[str, float]:
        """Aggregates over all tokens for the market stats view."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()
            cur.execute("""
                SELECT
                    COUNT(*),
                    COALESCE(SUM(market_cap), 0),
                    COALESCE(SUM(volume_24h), 0),
                    COALESCE(SUM(holder_count), 0),
                    COUNT(*) FILTER (WHERE created_at >= %s),
                    COALESCE(AVG(current_price) FILTER (
                        WHERE trading_enabled AND current_price > 0), 0)
                FROM tokens
            """, (since,))
            row = cur.fetchone()
            return {
                'total_tokens': int(row[0]),
                'total_market_cap': float(row[1]),
                'total_volume_24h': float(row[2]),
                'total_holders': int(row[3]),
                'new_tokens_24h': int(row[4]),
                'avg_token_price': float(row[5]),
            }
