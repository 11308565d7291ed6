"""
Data models for the launchpad backend.
"""
from enum import Enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Dict, Any, Tuple, ClassVar
from datetime import datetime

WEI_PER_ETH = 10 ** 18


def from_wei(value) -> float:
    """Wei (int, Decimal or numeric string) to ETH as a float"""
    if value is None:
        return 0.0
    return int(value) / 1e18


def format_ether(value) -> str:
    """Wei to an exact decimal ETH string ("1.5", "0")"""
    if value is None:
        return '0'
    amount = Decimal(int(value)) / Decimal(WEI_PER_ETH)
    text = format(amount.normalize(), 'f')
    return text if text != '-0' else '0'


class TransactionType(str, Enum):
    """Ledger entry kinds"""
    CREATE = "CREATE"
    BUY = "BUY"
    SELL = "SELL"


@dataclass
class MarketInfo:
    """Marketplace bonding-curve state for one token"""
    current_supply: int
    reserve_balance: int
    reserve_ratio: int
    trading_enabled: bool


@dataclass
class TokenMetrics:
    """Derived market figures stored on the token row"""
    current_price: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0
    current_supply: int = 0
    reserve_balance: int = 0
    holder_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current_price': self.current_price,
            'market_cap': self.market_cap,
            'volume_24h': self.volume_24h,
            'price_change_24h': self.price_change_24h,
            'current_supply': str(self.current_supply),
            'reserve_balance': str(self.reserve_balance),
            'holder_count': self.holder_count,
        }


@dataclass
class TokenRecord:
    """A launchpad token as stored in the tokens table"""
    address: str
    name: str
    symbol: str
    creator: str
    total_supply: int
    reserve_ratio: int
    metadata_uri: str
    block_number: int
    transaction_hash: str
    created_at: datetime
    trading_enabled: bool = False
    metadata_cache: Optional[Dict[str, Any]] = None
    logo_url: Optional[str] = None
    description: Optional[str] = None
    social_links: Optional[Dict[str, Any]] = None
    metrics: TokenMetrics = field(default_factory=TokenMetrics)
    metrics_updated_at: Optional[datetime] = None

    COLUMNS: ClassVar[Tuple[str, ...]] = (
        'address', 'name', 'symbol', 'creator', 'total_supply', 'reserve_ratio',
        'metadata_uri', 'block_number', 'transaction_hash', 'created_at',
        'trading_enabled', 'metadata_cache', 'logo_url', 'description', 'social_links',
        'current_price', 'market_cap', 'volume_24h', 'price_change_24h',
        'current_supply', 'reserve_balance', 'holder_count', 'metrics_updated_at',
    )

    @classmethod
    def from_db_row(cls, row: tuple) -> 'TokenRecord':
        """Build from a row selected in COLUMNS order"""
        (address, name, symbol, creator, total_supply, reserve_ratio, metadata_uri,
         block_number, tx_hash, created_at, trading_enabled, metadata_cache, logo_url,
         description, social_links, current_price, market_cap, volume_24h,
         price_change_24h, current_supply, reserve_balance, holder_count,
         metrics_updated_at) = row
        return cls(
            address=address,
            name=name,
            symbol=symbol,
            creator=creator,
            total_supply=int(total_supply or 0),
            reserve_ratio=int(reserve_ratio or 0),
            metadata_uri=metadata_uri or '',
            block_number=int(block_number or 0),
            transaction_hash=tx_hash or '',
            created_at=created_at,
            trading_enabled=bool(trading_enabled),
            metadata_cache=metadata_cache,
            logo_url=logo_url,
            description=description,
            social_links=social_links,
            metrics=TokenMetrics(
                current_price=float(current_price or 0),
                market_cap=float(market_cap or 0),
                volume_24h=float(volume_24h or 0),
                price_change_24h=float(price_change_24h or 0),
                current_supply=int(current_supply or 0),
                reserve_balance=int(reserve_balance or 0),
                holder_count=int(holder_count or 0),
            ),
            metrics_updated_at=metrics_updated_at,
        )


@dataclass
class TradeRecord:
    """One row of the transactions ledger (amounts in wei)"""
    hash: str
    user_address: str
    token_address: str
    type: TransactionType
    amount_in: int
    amount_out: int
    price: float
    block_number: int
    timestamp: datetime
    log_index: int = 0

    COLUMNS: ClassVar[Tuple[str, ...]] = (
        'hash', 'log_index', 'user_address', 'token_address', 'type',
        'amount_in', 'amount_out', 'price', 'block_number', 'timestamp',
    )

    @property
    def eth_amount(self) -> int:
        """ETH leg in wei: spent on a buy, received on a sell"""
        if self.type == TransactionType.BUY:
            return self.amount_in
        if self.type == TransactionType.SELL:
            return self.amount_out
        return 0

    @property
    def token_amount(self) -> int:
        """Token leg in wei"""
        if self.type == TransactionType.SELL:
            return self.amount_in
        return self.amount_out

    @classmethod
    def from_db_row(cls, row: tuple) -> 'TradeRecord':
        (tx_hash, log_index, user, token, tx_type, amount_in, amount_out,
         price, block_number, timestamp) = row
        return cls(
            hash=tx_hash,
            log_index=int(log_index or 0),
            user_address=user,
            token_address=token,
            type=TransactionType(tx_type),
            amount_in=int(amount_in or 0),
            amount_out=int(amount_out or 0),
            price=float(price or 0),
            block_number=int(block_number or 0),
            timestamp=timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hash': self.hash,
            'log_index': self.log_index,
            'user_address': self.user_address,
            'token_address': self.token_address,
            'type': self.type.value,
            'amount_in': format_ether(self.amount_in),
            'amount_out': format_ether(self.amount_out),
            'price': self.price,
            'block_number': self.block_number,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class HolderRecord:
    token_address: str
    holder_address: str
    balance: int
    first_acquired: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class PortfolioPosition:
    """Per user/token position with PnL, balance in wei"""
    user_address: str
    token_address: str
    balance: int
    average_price: float
    total_invested: float
    realized_pnl: float
    unrealized_pnl: float
