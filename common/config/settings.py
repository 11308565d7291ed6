"""
Configuration settings for the launchpad backend.
Centralizes all configurable parameters for the indexer, workers and API.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

from common.errors import ConfigurationError

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class HTTPConfig:
    """HTTP connection pool configuration"""
    max_connections: int = 50
    pool_block: bool = True
    max_retries: int = 3
    timeout: int = 30


@dataclass
class AppConfig:
    """API server configuration"""
    port: Optional[int] = None
    env: Optional[str] = None
    api_version: Optional[str] = None
    cors_origins: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.port is None:
            self.port = int(os.getenv('PORT', '3001'))
        self.env = self.env or os.getenv('APP_ENV', 'development')
        self.api_version = self.api_version or os.getenv('API_VERSION', 'v1')
        if not self.cors_origins:
            raw = os.getenv('CORS_ORIGIN', 'http://localhost:3000')
            self.cors_origins = [o.strip() for o in raw.split(',') if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.env == 'production'


@dataclass
class BlockchainConfig:
    """RPC endpoints and contract addresses"""
    primary_rpc_url: Optional[str] = None
    secondary_rpc_url: Optional[str] = None
    tertiary_rpc_url: Optional[str] = None
    token_factory_address: Optional[str] = None
    marketplace_address: Optional[str] = None
    start_block: Optional[int] = None
    rpc_rate_limit: Optional[int] = None
    confirmations: Optional[int] = None
    chain_id: Optional[int] = None

    def __post_init__(self):
        self.primary_rpc_url = self.primary_rpc_url or os.getenv('PRIMARY_RPC_URL')
        self.secondary_rpc_url = self.secondary_rpc_url or os.getenv('SECONDARY_RPC_URL')
        self.tertiary_rpc_url = self.tertiary_rpc_url or os.getenv('TERTIARY_RPC_URL')
        self.token_factory_address = self.token_factory_address or os.getenv('TOKEN_FACTORY_ADDRESS')
        self.marketplace_address = self.marketplace_address or os.getenv('MARKETPLACE_ADDRESS')
        if self.start_block is None:
            self.start_block = int(os.getenv('START_BLOCK', '0'))
        if self.rpc_rate_limit is None:
            self.rpc_rate_limit = int(os.getenv('RPC_RATE_LIMIT', '10'))
        if self.confirmations is None:
            self.confirmations = int(os.getenv('INDEXER_CONFIRMATIONS', '3'))
        if self.chain_id is None:
            self.chain_id = int(os.getenv('CHAIN_ID', '9999999'))

    @property
    def rpc_urls(self) -> List[str]:
        """Configured RPC endpoints in priority order"""
        return [u for u in (self.primary_rpc_url, self.secondary_rpc_url, self.tertiary_rpc_url) if u]


@dataclass
class IPFSConfig:
    """IPFS gateway configuration"""
    gateway_url: Optional[str] = None
    timeout: Optional[float] = None
    fallback_gateways: List[str] = field(default_factory=lambda: [
        'https://cloudflare-ipfs.com/ipfs/',
        'https://ipfs.io/ipfs/',
    ])

    def __post_init__(self):
        self.gateway_url = self.gateway_url or os.getenv(
            'PINATA_GATEWAY_URL', 'https://gateway.pinata.cloud/ipfs/')
        if not self.gateway_url.endswith('/'):
            self.gateway_url += '/'
        if self.timeout is None:
            self.timeout = float(os.getenv('IPFS_TIMEOUT', '10'))

    @property
    def gateways(self) -> List[str]:
        return [self.gateway_url] + [g for g in self.fallback_gateways if g != self.gateway_url]


@dataclass
class CacheConfig:
    """Cache TTLs in seconds"""
    enabled: Optional[bool] = None
    token_list_ttl: int = 300
    token_details_ttl: int = 120
    token_price_ttl: int = 15
    metadata_ttl: int = 3600

    def __post_init__(self):
        if self.enabled is None:
            self.enabled = _env_bool('CACHE_ENABLED', True)


@dataclass
class RedisConfig:
    """Redis configuration for the cache layer"""
    url: Optional[str] = None
    password: Optional[str] = None
    socket_timeout: float = 10.0

    def __post_init__(self):
        if self.url is None:
            self.url = os.getenv('REDIS_URL', 'redis://localhost:6379')
        if self.password is None:
            self.password = os.getenv('REDIS_PASSWORD')

    @property
    def is_local(self) -> bool:
        host = urlparse(self.url).hostname if self.url else None
        return host in ('localhost', '127.0.0.1')


@dataclass
class DatabaseConfig:
    """Database configuration (PostgreSQL)"""
    url: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    min_connections: int = 1
    max_connections: int = 20

    def __post_init__(self):
        self.url = self.url or os.getenv('DATABASE_URL')
        self.host = self.host or os.getenv('DB_HOST')
        if self.port is None:
            self.port = int(os.getenv('DB_PORT', '5432'))
        self.database = self.database or os.getenv('DB_NAME', 'launchpad')
        self.user = self.user or os.getenv('DB_USER', 'postgres')
        self.password = self.password or os.getenv('DB_PASSWORD')

    @property
    def is_configured(self) -> bool:
        return bool(self.url or self.host)


@dataclass
class IndexerConfig:
    """Block indexer configuration"""
    enabled: Optional[bool] = None
    poll_interval: Optional[float] = None
    batch_size: Optional[int] = None
    start_from_current: Optional[bool] = None
    error_backoff: float = 5.0

    def __post_init__(self):
        if self.enabled is None:
            self.enabled = _env_bool('INDEXER_ENABLED', True)
        # INDEXER_POLL_INTERVAL is expressed in milliseconds
        if self.poll_interval is None:
            self.poll_interval = int(os.getenv('INDEXER_POLL_INTERVAL', '5000')) / 1000.0
        if self.batch_size is None:
            self.batch_size = int(os.getenv('INDEXER_BATCH_SIZE', '50'))
        if self.start_from_current is None:
            self.start_from_current = _env_bool('INDEXER_START_FROM_CURRENT', False)


@dataclass
class WorkerConfig:
    """Background worker configuration"""
    enabled: Optional[bool] = None
    concurrency: Optional[int] = None

    def __post_init__(self):
        if self.enabled is None:
            self.enabled = _env_bool('WORKER_ENABLED', True)
        if self.concurrency is None:
            self.concurrency = int(os.getenv('WORKER_CONCURRENCY', '5'))


@dataclass
class LogConfig:
    level: Optional[str] = None
    directory: Optional[str] = None

    def __post_init__(self):
        self.level = (self.level or os.getenv('LOG_LEVEL', 'INFO')).upper()
        self.directory = self.directory or os.getenv('LOG_DIR', 'logs')


@dataclass
class LaunchpadConfig:
    """Complete launchpad backend configuration"""
    app: AppConfig
    http: HTTPConfig
    blockchain: BlockchainConfig
    ipfs: IPFSConfig
    cache: CacheConfig
    redis: RedisConfig
    database: DatabaseConfig
    indexer: IndexerConfig
    worker: WorkerConfig
    log: LogConfig

    @classmethod
    def default(cls):
        """Create default configuration"""
        return cls(
            app=AppConfig(),
            http=HTTPConfig(),
            blockchain=BlockchainConfig(),
            ipfs=IPFSConfig(),
            cache=CacheConfig(),
            redis=RedisConfig(),
            database=DatabaseConfig(),
            indexer=IndexerConfig(),
            worker=WorkerConfig(),
            log=LogConfig(),
        )


def validate_config(config: LaunchpadConfig) -> List[str]:
    """
    Check that the required settings are present.

    Raises:
        ConfigurationError: listing every missing required variable

    Returns:
        List of non-fatal warnings
    """
    missing = []
    if not config.database.is_configured:
        missing.append('DATABASE_URL')
    if not config.blockchain.primary_rpc_url:
        missing.append('PRIMARY_RPC_URL')
    if not config.blockchain.token_factory_address:
        missing.append('TOKEN_FACTORY_ADDRESS')
    if not config.blockchain.marketplace_address:
        missing.append('MARKETPLACE_ADDRESS')

    if missing:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

    invalid = [name for name, value in (
        ('RPC_RATE_LIMIT', config.blockchain.rpc_rate_limit),
        ('INDEXER_BATCH_SIZE', config.indexer.batch_size),
        ('WORKER_CONCURRENCY', config.worker.concurrency),
    ) if value < 1]
    if invalid:
        raise ConfigurationError(f"Settings must be at least 1: {', '.join(invalid)}")

    warnings = []
    if not config.redis.url:
        warnings.append('REDIS_URL not set - caching will be disabled')
    elif config.app.is_production and config.redis.is_local:
        warnings.append('Using local Redis in production - consider a managed instance')
    if len(config.blockchain.rpc_urls) == 1:
        warnings.append('Only one RPC endpoint configured - no failover available')
    return warnings


# Chart timeframes in seconds
TIMEFRAME_CONFIGS = {
    '1m': 60,
    '5m': 300,
    '15m': 900,
    '1h': 3600,
    '4h': 14400,
    '1d': 86400,
}
