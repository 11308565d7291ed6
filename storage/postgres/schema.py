"""
Schema management for the launchpad database.

Handles table creation and indexes for tokens, trades, holders,
portfolios, the IPFS metadata cache and the indexer cursor.
"""
import logging

logger = logging.getLogger(__name__)


class SchemaManager:
    """
    Manages PostgreSQL schema creation.

    Responsibilities:
    - Create token, transaction, holder and portfolio tables
    - Create the IPFS metadata cache and indexer state tables
    - Create indexes used by the tiered workers and market queries
    """

    def __init__(self, pool):
        """
        Initialize schema manager.

        Args:
            pool: PostgresConnectionPool instance
        """
        self.pool = pool

    def initialize_schema(self):
        """Initialize complete database schema."""
        with self.pool.get_connection() as conn:
            cur = conn.cursor()

            self._create_tokens_table(cur)
            self._create_transactions_table(cur)
            self._create_holders_table(cur)
            self._create_portfolios_table(cur)
            self._create_ipfs_cache_table(cur)
            self._create_indexer_state_table(cur)

            conn.commit()
            logger.info("Database schema initialized")

    def _create_tokens_table(self, cur):
        cur.execute("""
            CREATE TABLE IF NOT EXISTS tokens (
                address TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                symbol TEXT NOT NULL,
                creator TEXT NOT NULL,
                total_supply NUMERIC(78, 0) NOT NULL DEFAULT 0,
                reserve_ratio BIGINT NOT NULL DEFAULT 0,
                metadata_uri TEXT NOT NULL DEFAULT '',
                block_number BIGINT NOT NULL DEFAULT 0,
                transaction_hash TEXT NOT NULL DEFAULT '',
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                trading_enabled BOOLEAN NOT NULL DEFAULT FALSE,
                metadata_cache JSONB,
                logo_url TEXT,
                description TEXT,
                social_links JSONB,
                current_price DOUBLE PRECISION NOT NULL DEFAULT 0,
                market_cap DOUBLE PRECISION NOT NULL DEFAULT 0,
                volume_24h DOUBLE PRECISION NOT NULL DEFAULT 0,
                price_change_24h DOUBLE PRECISION NOT NULL DEFAULT 0,
                current_supply NUMERIC(78, 0) NOT NULL DEFAULT 0,
                reserve_balance NUMERIC(78, 0) NOT NULL DEFAULT 0,
                holder_count INTEGER NOT NULL DEFAULT 0,
                metrics_updated_at TIMESTAMPTZ
            );
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tokens_creator ON tokens (creator);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tokens_created_at ON tokens (created_at DESC);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tokens_market_cap ON tokens (market_cap DESC);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tokens_volume ON tokens (volume_24h DESC);")
        logger.debug("Created tokens table")

    def _create_transactions_table(self, cur):
        cur.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                hash TEXT NOT NULL,
                log_index INTEGER NOT NULL DEFAULT 0,
                user_address TEXT NOT NULL,
                token_address TEXT NOT NULL,
                type TEXT NOT NULL CHECK (type IN ('CREATE', 'BUY', 'SELL')),
                amount_in NUMERIC(78, 0) NOT NULL DEFAULT 0,
                amount_out NUMERIC(78, 0) NOT NULL DEFAULT 0,
                price DOUBLE PRECISION NOT NULL DEFAULT 0,
                block_number BIGINT NOT NULL,
                timestamp TIMESTAMPTZ NOT NULL,
                PRIMARY KEY (hash, log_index)
            );
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_transactions_token_time
            ON transactions (token_address, timestamp DESC);
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_transactions_user_token
            ON transactions (user_address, token_address, timestamp);
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_transactions_block ON transactions (block_number);")
        logger.debug("Created transactions table")

    def _create_holders_table(self, cur):
        cur.execute("""
            CREATE TABLE IF NOT EXISTS holders (
                id BIGSERIAL PRIMARY KEY,
                token_address TEXT NOT NULL,
                holder_address TEXT NOT NULL,
                balance NUMERIC(78, 0) NOT NULL DEFAULT 0,
                first_acquired TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                UNIQUE (token_address, holder_address)
            );
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_holders_token_balance
            ON holders (token_address, balance DESC);
        """)
        logger.debug("Created holders table")

    def _create_portfolios_table(self, cur):
        cur.execute("""
            CREATE TABLE IF NOT EXISTS user_portfolios (
                user_address TEXT NOT NULL,
                token_address TEXT NOT NULL,
                balance NUMERIC(78, 0) NOT NULL DEFAULT 0,
                average_price DOUBLE PRECISION NOT NULL DEFAULT 0,
                total_invested DOUBLE PRECISION NOT NULL DEFAULT 0,
                realized_pnl DOUBLE PRECISION NOT NULL DEFAULT 0,
                unrealized_pnl DOUBLE PRECISION NOT NULL DEFAULT 0,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                PRIMARY KEY (user_address, token_address)
            );
        """)
        logger.debug("Created user_portfolios table")

    def _create_ipfs_cache_table(self, cur):
        cur.execute("""
            CREATE TABLE IF NOT EXISTS ipfs_cache (
                ipfs_hash TEXT PRIMARY KEY,
                content_type TEXT NOT NULL DEFAULT 'metadata',
                data JSONB,
                blob_url TEXT,
                pinned BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                last_accessed TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)
        logger.debug("Created ipfs_cache table")

    def _create_indexer_state_table(self, cur):
        cur.execute("""
            CREATE TABLE IF NOT EXISTS indexer_state (
                name TEXT PRIMARY KEY,
                last_processed_block BIGINT NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)
        logger.debug("Created indexer_state table")
