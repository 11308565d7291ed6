"""Test fixtures for the launchpad indexer tests."""
import fnmatch
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from common.config.settings import (
    AppConfig,
    BlockchainConfig,
    CacheConfig,
    DatabaseConfig,
    HTTPConfig,
    IndexerConfig,
    IPFSConfig,
    LaunchpadConfig,
    LogConfig,
    RedisConfig,
    WorkerConfig,
)
from common.models.data_models import (
    HolderRecord,
    MarketInfo,
    TokenMetrics,
    TokenRecord,
    TradeRecord,
    TransactionType,
)
from indexer.clients.abi import DecodedEvent
from storage.cache import CacheService

WEI = 10 ** 18
TOKEN_A = '0x' + 'a' * 40
TOKEN_B = '0x' + 'b' * 40
CREATOR = '0x' + 'c' * 40
ALICE = '0x' + '1' * 40
BOB = '0x' + '2' * 40
GENESIS_TS = 1_700_000_000


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# Mock classes (importable for direct instantiation in tests)

class FakeTokenRepository:
    """In-memory tokens table."""

    def __init__(self, trades: 'FakeTradeRepository'):
        self.rows: Dict[str, TokenRecord] = {}
        self.trades = trades

    def exists(self, address: str) -> bool:
        return address.lower() in self.rows

    def get(self, address: str) -> Optional[TokenRecord]:
        return self.rows.get(address.lower())

    def insert(self, token: TokenRecord) -> bool:
        address = token.address.lower()
        if address in self.rows:
            return False
        self.rows[address] = token
        return True

    def set_trading_enabled(self, address: str, enabled: bool = True) -> None:
        token = self.rows.get(address.lower())
        if token:
            token.trading_enabled = enabled

    def update_metrics(self, address: str, metrics: TokenMetrics,
                       trading_enabled: Optional[bool] = None) -> None:
        token = self.rows.get(address.lower())
        if token is None:
            return
        token.metrics = metrics
        if trading_enabled is not None:
            token.trading_enabled = trading_enabled
        token.metrics_updated_at = datetime.now(timezone.utc)

    def update_metadata(self, address: str, metadata: Dict[str, Any]) -> None:
        token = self.rows.get(address.lower())
        if token is None:
            return
        token.metadata_cache = metadata
        token.logo_url = metadata.get('image') or token.logo_url
        token.description = metadata.get('description') or token.description
        token.social_links = metadata.get('social') or token.social_links

    def _newest(self) -> List[TokenRecord]:
        return sorted(self.rows.values(), key=lambda t: t.created_at, reverse=True)

    def list_addresses(self, only_missing_metrics: bool = False,
                       limit: Optional[int] = None) -> List[str]:
        rows = [t.address for t in self._newest()
                if not only_missing_metrics or t.metrics_updated_at is None]
        return rows[:limit] if limit is not None else rows

    def count(self, only_missing_metrics: bool = False) -> int:
        return len(self.list_addresses(only_missing_metrics=only_missing_metrics))

    def _traded_since(self, address: str, since: datetime) -> bool:
        return any(t.token_address == address and t.timestamp >= since
                   and t.type != TransactionType.CREATE
                   for t in self.trades.rows.values())

    def find_by_last_trade(self, traded_since: Optional[datetime] = None,
                           not_traded_since: Optional[datetime] = None,
                           limit: int = 100, offset: int = 0,
                           trading_only: bool = False) -> List[str]:
        selected = []
        for address in sorted(self.rows):
            token = self.rows[address]
            if trading_only and not token.trading_enabled:
                continue
            if traded_since is not None and not self._traded_since(address, traded_since):
                continue
            if not_traded_since is not None and self._traded_since(address, not_traded_since):
                continue
            selected.append(address)
        return selected[offset:offset + limit]

    def list_without_metadata(self, limit: int) -> List[Tuple[str, str]]:
        return [(t.address, t.metadata_uri) for t in self._newest()
                if t.metadata_cache is None and t.metadata_uri][:limit]

    def list_newest(self, limit: int, trading_only: bool = True) -> List[TokenRecord]:
        return [t for t in self._newest() if t.trading_enabled or not trading_only][:limit]

    def list_ranked(self, sort: str, descending: bool = True, limit: int = 10,
                    where: Optional[str] = None) -> List[TokenRecord]:
        keys = {
            'volume': lambda t: t.metrics.volume_24h,
            'marketCap': lambda t: t.metrics.market_cap,
            'priceChange': lambda t: t.metrics.price_change_24h,
            'created': lambda t: t.created_at,
        }
        filters = {
            None: lambda t: True,
            'volume_positive': lambda t: t.metrics.volume_24h > 0,
            'market_cap_positive': lambda t: t.metrics.market_cap > 0,
            'change_positive': lambda t: t.metrics.price_change_24h > 0,
            'change_negative': lambda t: t.metrics.price_change_24h < 0,
        }
        rows = [t for t in self.rows.values() if t.trading_enabled and filters[where](t)]
        return sorted(rows, key=keys[sort], reverse=descending)[:limit]

    def search(self, page: int = 1, limit: int = 20, sort: str = 'created',
               order: str = 'desc', search: Optional[str] = None,
               creator: Optional[str] = None) -> Tuple[List[TokenRecord], int]:
        rows = list(self.rows.values())
        if search:
            needle = search.lower()
            rows = [t for t in rows if needle in t.name.lower() or needle in t.symbol.lower()]
        if creator:
            rows = [t for t in rows if t.creator == creator.lower()]
        keys = {
            'created': lambda t: t.created_at,
            'holders': lambda t: t.metrics.holder_count,
            'volume': lambda t: t.metrics.volume_24h,
            'price': lambda t: t.metrics.current_price,
            'marketCap': lambda t: t.metrics.market_cap,
            'priceChange': lambda t: t.metrics.price_change_24h,
        }
        rows.sort(key=keys[sort], reverse=order.lower() != 'asc')
        start = (page - 1) * limit
        return rows[start:start + limit], len(rows)

    def market_totals(self, since: datetime) -> Dict[str, float]:
        rows = list(self.rows.values())
        prices = [t.metrics.current_price for t in rows
                  if t.trading_enabled and t.metrics.current_price > 0]
        return {
            'total_tokens': len(rows),
            'total_market_cap': sum(t.metrics.market_cap for t in rows),
            'total_volume_24h': sum(t.metrics.volume_24h for t in rows),
            'total_holders': sum(t.metrics.holder_count for t in rows),
            'new_tokens_24h': sum(1 for t in rows if t.created_at >= since),
            'avg_token_price': sum(prices) / len(prices) if prices else 0.0,
        }


class FakeTradeRepository:
    """In-memory transactions ledger keyed by (hash, log_index)."""

    def __init__(self):
        self.rows: Dict[Tuple[str, int], TradeRecord] = {}
        self.tokens: Optional[FakeTokenRepository] = None

    def exists(self, tx_hash: str, log_index: Optional[int] = None) -> bool:
        if log_index is None:
            return any(h == tx_hash for h, _ in self.rows)
        return (tx_hash, log_index) in self.rows

    def insert(self, trade: TradeRecord) -> bool:
        key = (trade.hash, trade.log_index)
        if key in self.rows:
            return False
        self.rows[key] = trade
        return True

    def max_block_number(self) -> Optional[int]:
        if not self.rows:
            return None
        return max(t.block_number for t in self.rows.values())

    @staticmethod
    def _asc(rows):
        return sorted(rows, key=lambda t: (t.timestamp, t.block_number, t.log_index))

    def _swaps(self, token: str) -> List[TradeRecord]:
        return [t for t in self.rows.values()
                if t.token_address == token.lower() and t.type != TransactionType.CREATE]

    def for_user_token(self, user: str, token: str) -> List[TradeRecord]:
        return self._asc(t for t in self.rows.values()
                         if t.user_address == user.lower() and t.token_address == token.lower())

    def for_token_since(self, token: str, since: datetime) -> List[TradeRecord]:
        return self._asc(t for t in self._swaps(token) if t.timestamp >= since)

    def recent_for_token(self, token: str, limit: int) -> List[TradeRecord]:
        return list(reversed(self._asc(self._swaps(token))))[:limit]

    def page_for_token(self, token: str, page: int = 1,
                       limit: int = 20) -> Tuple[List[TradeRecord], int]:
        rows = list(reversed(self._asc(self._swaps(token))))
        start = (page - 1) * limit
        return rows[start:start + limit], len(rows)

    def recent_with_token(self, limit: int) -> List[Tuple[TradeRecord, Dict[str, Any]]]:
        swaps = [t for t in self.rows.values() if t.type != TransactionType.CREATE]
        result = []
        for trade in list(reversed(self._asc(swaps)))[:limit]:
            token = self.tokens.get(trade.token_address) if self.tokens else None
            result.append((trade, {
                'symbol': token.symbol if token else None,
                'name': token.name if token else None,
                'logo': (token.metadata_cache or {}).get('image') if token else None,
            }))
        return result

    def activity_since(self, since: datetime) -> Tuple[int, int]:
        recent = [t for t in self.rows.values() if t.timestamp >= since]
        swaps = sum(1 for t in recent if t.type != TransactionType.CREATE)
        return swaps, len({t.user_address for t in recent})


class FakeHolderRepository:

    def __init__(self):
        self.rows: Dict[Tuple[str, str], HolderRecord] = {}

    def upsert_balance(self, token: str, holder: str, balance: int,
                       at: Optional[datetime] = None) -> None:
        at = at or datetime.now(timezone.utc)
        key = (token.lower(), holder.lower())
        existing = self.rows.get(key)
        if existing:
            existing.balance = balance
            existing.last_updated = at
        else:
            self.rows[key] = HolderRecord(token_address=key[0], holder_address=key[1],
                                          balance=balance, first_acquired=at, last_updated=at)

    def upsert_balances(self, token: str, balances: Dict[str, int]) -> int:
        for holder, balance in balances.items():
            self.upsert_balance(token, holder, balance)
        return len(balances)

    def balance_of(self, token: str, holder: str) -> Optional[int]:
        record = self.rows.get((token.lower(), holder.lower()))
        return record.balance if record else None

    def count_nonzero(self, token: str) -> int:
        return sum(1 for h in self.all_for_token(token) if h.balance > 0)

    def all_for_token(self, token: str) -> List[HolderRecord]:
        return [h for (t, _), h in self.rows.items() if t == token.lower()]

    def page_for_token(self, token: str, page: int = 1,
                       limit: int = 20) -> Tuple[List[HolderRecord], int]:
        rows = sorted((h for h in self.all_for_token(token) if h.balance > 0),
                      key=lambda h: h.balance, reverse=True)
        start = (page - 1) * limit
        return rows[start:start + limit], len(rows)


class FakePortfolioRepository:

    def __init__(self):
        self.rows = {}

    def upsert(self, position) -> None:
        self.rows[(position.user_address, position.token_address)] = position


class FakeIPFSCacheRepository:

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.blob_urls: Dict[str, Optional[str]] = {}

    def get(self, ipfs_hash: str) -> Optional[Dict[str, Any]]:
        return self.rows.get(ipfs_hash)

    def save(self, ipfs_hash: str, data: Dict[str, Any], blob_url: Optional[str] = None) -> None:
        self.rows[ipfs_hash] = data
        self.blob_urls[ipfs_hash] = blob_url


class FakeIndexerStateRepository:

    def __init__(self):
        self.blocks: Dict[str, int] = {}

    def get_last_block(self, name: str = 'launchpad') -> Optional[int]:
        return self.blocks.get(name)

    def save_last_block(self, block_number: int, name: str = 'launchpad') -> None:
        self.blocks[name] = block_number


class FakeStore:
    """In-memory LaunchpadRepository."""

    def __init__(self):
        self.trades = FakeTradeRepository()
        self.tokens = FakeTokenRepository(self.trades)
        self.trades.tokens = self.tokens
        self.holders = FakeHolderRepository()
        self.portfolios = FakePortfolioRepository()
        self.ipfs_cache = FakeIPFSCacheRepository()
        self.indexer_state = FakeIndexerStateRepository()
        self.healthy = True
        self.closed = False

    def ping(self) -> bool:
        if not self.healthy:
            raise ConnectionError("database unreachable")
        return True

    def close(self) -> None:
        self.closed = True


class FakeRedis:
    """Dict-backed stand-in for redis.Redis with decode_responses=True."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.closed = False

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        return True

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    def scan_iter(self, match=None, count=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def ping(self):
        return True

    def info(self):
        return {'redis_version': '7.2.0', 'db0': {'keys': len(self.data)}}

    def flushdb(self):
        self.data.clear()
        return True

    def close(self):
        self.closed = True

    def json(self, key):
        return json.loads(self.data[key])


class FakeContracts:
    """
    Scriptable ContractService.

    Events are DecodedEvent objects filtered by block range; chain reads
    come from per-token dictionaries.
    """

    def __init__(self, head: int = 100):
        self.head = head
        self.created: List[DecodedEvent] = []
        self.listed: List[DecodedEvent] = []
        self.bought: List[DecodedEvent] = []
        self.sold: List[DecodedEvent] = []
        self.transfers: Dict[str, List[DecodedEvent]] = {}
        self.prices: Dict[str, int] = {}
        self.market: Dict[str, MarketInfo] = {}
        self.balances: Dict[Tuple[str, str], int] = {}
        self.details: Dict[str, Dict[str, Any]] = {}
        self.factory_info: Dict[str, Dict[str, Any]] = {}
        self.all_tokens: List[str] = []
        self.fail_queries = False
        self.failing_tokens = set()
        self.queried_ranges: List[Tuple[int, int]] = []
        self.transfer_windows: List[Tuple[int, int]] = []

    def get_latest_block(self) -> int:
        return self.head

    def get_block_timestamp(self, block_number: int) -> int:
        return GENESIS_TS + block_number * 12

    def _in_range(self, events, from_block, to_block):
        if self.fail_queries:
            raise ConnectionError("eth_getLogs failed")
        return sorted((e for e in events if from_block <= e.block_number <= to_block),
                      key=lambda e: e.sort_key)

    def get_token_created_events(self, from_block, to_block):
        self.queried_ranges.append((from_block, to_block))
        return self._in_range(self.created, from_block, to_block)

    def get_token_listed_events(self, from_block, to_block):
        return self._in_range(self.listed, from_block, to_block)

    def get_tokens_bought_events(self, from_block, to_block, token=None):
        return self._in_range(self.bought, from_block, to_block)

    def get_tokens_sold_events(self, from_block, to_block, token=None):
        return self._in_range(self.sold, from_block, to_block)

    def get_transfer_events(self, token, from_block, to_block):
        self.transfer_windows.append((from_block, to_block))
        return self._in_range(self.transfers.get(token.lower(), []), from_block, to_block)

    def _check(self, token):
        if token.lower() in self.failing_tokens:
            raise ConnectionError(f"execution reverted for {token}")

    def get_current_price(self, token: str) -> int:
        self._check(token)
        return self.prices.get(token.lower(), 0)

    def get_token_market_info(self, token: str) -> MarketInfo:
        self._check(token)
        return self.market.get(token.lower(), MarketInfo(0, 0, 500000, False))

    def get_token_name_symbol(self, token: str):
        info = self.details.get(token.lower(), {})
        return info.get('name', 'Listed Token'), info.get('symbol', 'LST')

    def get_token_details(self, token: str) -> Dict[str, Any]:
        self._check(token)
        info = self.details.get(token.lower(), {})
        return {
            'address': token.lower(),
            'name': info.get('name', 'Synced Token'),
            'symbol': info.get('symbol', 'SYN'),
            'decimals': 18,
            'total_supply': info.get('total_supply', 1_000_000 * WEI),
        }

    def get_token_factory_info(self, token: str) -> Dict[str, Any]:
        if token.lower() not in self.factory_info:
            raise ConnectionError("factory lookup failed")
        return self.factory_info[token.lower()]

    def get_token_balance(self, token: str, holder: str) -> int:
        self._check(token)
        return self.balances.get((token.lower(), holder.lower()), 0)

    def get_all_tokens(self) -> List[str]:
        return list(self.all_tokens)


class FakeIPFS:

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None):
        self.documents = documents or {}
        self.requested: List[str] = []

    def fetch_metadata(self, uri: str) -> Optional[Dict[str, Any]]:
        self.requested.append(uri)
        return self.documents.get(uri)


# Event and row builders

def make_event(event_name: str, block: int, log_index: int = 0, tx: Optional[str] = None,
               **args) -> DecodedEvent:
    return DecodedEvent(
        name=event_name,
        args=args,
        address='0x' + 'f' * 40,
        block_number=block,
        transaction_hash=tx or f"0x{block:04x}{log_index:04x}",
        log_index=log_index,
    )


def created_event(token: str, block: int, log_index: int = 0, supply: int = 1_000_000 * WEI,
                  uri: str = 'ipfs://QmToken') -> DecodedEvent:
    return make_event('TokenCreated', block, log_index, tokenAddress=token, creator=CREATOR,
                      name='Alpha', symbol='ALP', totalSupply=supply, reserveRatio=500000,
                      metadataURI=uri)


def listed_event(token: str, block: int, log_index: int = 0,
                 supply: int = 1_000_000 * WEI) -> DecodedEvent:
    return make_event('TokenListed', block, log_index, tokenAddress=token, creator=CREATOR,
                      metadataURI='ipfs://QmListed', totalSupply=supply, reserveRatio=500000)


def bought_event(token: str, buyer: str, block: int, log_index: int = 0,
                 eth: int = WEI, tokens: int = 1000 * WEI) -> DecodedEvent:
    return make_event('TokensBought', block, log_index, tokenAddress=token, buyer=buyer,
                      ethAmount=eth, tokenAmount=tokens, newPrice=0)


def sold_event(token: str, seller: str, block: int, log_index: int = 0,
               eth: int = WEI, tokens: int = 1000 * WEI) -> DecodedEvent:
    return make_event('TokensSold', block, log_index, tokenAddress=token, seller=seller,
                      tokenAmount=tokens, ethAmount=eth, newPrice=0)


def transfer_event(token: str, sender: str, receiver: str, value: int, block: int,
                   log_index: int = 0) -> DecodedEvent:
    event = make_event('Transfer', block, log_index, value=value)
    event.args['from'] = sender
    event.args['to'] = receiver
    event.address = token
    return event


def make_token(address: str = TOKEN_A, created_at: Optional[datetime] = None,
               trading_enabled: bool = True, **metrics) -> TokenRecord:
    return TokenRecord(
        address=address,
        name=f"Token {address[2:6]}",
        symbol=address[2:5].upper(),
        creator=CREATOR,
        total_supply=1_000_000 * WEI,
        reserve_ratio=500000,
        metadata_uri='ipfs://QmMeta',
        block_number=1,
        transaction_hash='0x01',
        created_at=created_at or utc(2024, 1, 1),
        trading_enabled=trading_enabled,
        metrics=TokenMetrics(**metrics),
    )


def make_trade(trade_type: TransactionType, timestamp: datetime, price: float = 0.001,
               eth: int = WEI, tokens: int = 1000 * WEI, user: str = ALICE,
               token: str = TOKEN_A, block: int = 1, log_index: int = 0,
               tx: Optional[str] = None) -> TradeRecord:
    if trade_type == TransactionType.SELL:
        amount_in, amount_out = tokens, eth
    elif trade_type == TransactionType.BUY:
        amount_in, amount_out = eth, tokens
    else:
        amount_in, amount_out = 0, tokens
    return TradeRecord(
        hash=tx or f"0x{block:04x}{log_index:04x}{trade_type.value}",
        user_address=user,
        token_address=token,
        type=trade_type,
        amount_in=amount_in,
        amount_out=amount_out,
        price=price,
        block_number=block,
        timestamp=timestamp,
        log_index=log_index,
    )


# Fixtures

@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return CacheService(fake_redis)


@pytest.fixture
def contracts():
    return FakeContracts()


@pytest.fixture
def ipfs():
    return FakeIPFS({'ipfs://QmToken': {'image': 'https://img/alpha.png',
                                        'description': 'Alpha token'}})


@pytest.fixture
def config():
    """Fully explicit configuration, independent of the environment."""
    return LaunchpadConfig(
        app=AppConfig(port=3001, env='test', api_version='v1', cors_origins=['http://localhost:3000']),
        http=HTTPConfig(),
        blockchain=BlockchainConfig(
            primary_rpc_url='http://rpc.local',
            token_factory_address='0x' + 'd' * 40,
            marketplace_address='0x' + 'e' * 40,
            start_block=0,
            confirmations=3,
        ),
        ipfs=IPFSConfig(gateway_url='https://gateway.test/ipfs/'),
        cache=CacheConfig(enabled=True),
        redis=RedisConfig(url='redis://localhost:6379'),
        database=DatabaseConfig(url='postgresql://localhost/launchpad_test'),
        indexer=IndexerConfig(enabled=True, poll_interval=0.01, batch_size=50, start_from_current=False),
        worker=WorkerConfig(enabled=True, concurrency=2),
        log=LogConfig(level='INFO', directory='logs'),
    )


@pytest.fixture
def now():
    return utc(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def day_ago(now):
    return now - timedelta(hours=24)
