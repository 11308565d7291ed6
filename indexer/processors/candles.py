"""
OHLCV candle aggregation over bonding-curve trades.
Buckets trade prices into fixed intervals for the price chart.
"""
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from common.config.settings import TIMEFRAME_CONFIGS
from common.errors import ValidationError
from common.models.data_models import TradeRecord, TransactionType, from_wei

logger = logging.getLogger(__name__)

# Opening price estimate for the first candle: a buy moved price up into
# the trade, a sell moved it down
FIRST_BUY_OPEN_FACTOR = 0.98
FIRST_SELL_OPEN_FACTOR = 1.02

FLAT_CANDLE_COUNT = 51
DEFAULT_PRICE = 0.001
# the ATH market cap is estimated from this many of the newest trades
ATH_TRADE_WINDOW = 100


@dataclass
class PriceEvent:
    """A single trade as seen by the chart"""
    timestamp: float
    block_number: int
    price: float
    volume: float
    side: str  # 'buy' or 'sell'


@dataclass
class Candle:
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    direction: str  # 'up' or 'down', drives the volume bar color
    trades: int = 0

    def to_dict(self) -> Dict:
        return {
            'time': self.time,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume,
            'direction': self.direction,
            'trades': self.trades,
        }


def interval_seconds(timeframe: str) -> int:
    try:
        return TIMEFRAME_CONFIGS[timeframe]
    except KeyError:
        raise ValidationError(
            f"Unsupported timeframe '{timeframe}', expected one of {', '.join(TIMEFRAME_CONFIGS)}")


def trades_needed(interval: int) -> int:
    """How many recent trades to load for roughly 200 candles of history."""
    return min(500, max(100, (interval * 200) // 60))


def trades_to_events(trades: Iterable[TradeRecord]) -> List[PriceEvent]:
    """BUY/SELL rows to price events sorted by (timestamp, block)."""
    events = []
    for trade in trades:
        if trade.type not in (TransactionType.BUY, TransactionType.SELL):
            continue
        events.append(PriceEvent(
            timestamp=trade.timestamp.timestamp(),
            block_number=trade.block_number,
            price=trade.price,
            volume=from_wei(trade.eth_amount),
            side='buy' if trade.type == TransactionType.BUY else 'sell',
        ))
    events.sort(key=lambda e: (e.timestamp, e.block_number))
    return events


def aggregate_candles(events: List[PriceEvent], interval: int) -> List[Candle]:
    """
    Build candles from events sorted by (timestamp, block).

    Each candle opens at the previous close. A sell-only bucket whose close
    is not below its open has open/close swapped so it renders as a down
    candle; the on-chain curve can report a higher price after a sell.
    """
    if not events:
        return []

    buckets: Dict[int, List[PriceEvent]] = {}
    for event in events:
        start = int(math.floor(event.timestamp / interval) * interval)
        buckets.setdefault(start, []).append(event)

    candles: List[Candle] = []
    previous_close: Optional[float] = None

    for start in sorted(buckets):
        bucket = sorted(buckets[start], key=lambda e: (e.timestamp, e.block_number))
        first = bucket[0]

        if previous_close is not None:
            open_ = previous_close
        elif first.side == 'buy':
            open_ = first.price * FIRST_BUY_OPEN_FACTOR
        else:
            open_ = first.price * FIRST_SELL_OPEN_FACTOR

        close = bucket[-1].price
        prices = [e.price for e in bucket]
        high = max([open_] + prices)
        low = min([open_] + prices)

        buys = sum(1 for e in bucket if e.side == 'buy')
        sells = len(bucket) - buys

        if sells > 0 and buys == 0 and close >= open_:
            open_, close = close, open_
            high = max([open_, close] + prices)
            low = min([open_, close] + prices)

        if len(bucket) == 1:
            direction = 'up' if first.side == 'buy' else 'down'
        elif sells == 0:
            direction = 'up'
        elif buys == 0:
            direction = 'down'
        else:
            direction = 'up' if close > open_ else 'down'

        candles.append(Candle(
            time=start,
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=sum(e.volume for e in bucket),
            direction=direction,
            trades=len(bucket),
        ))
        previous_close = close

    return candles


def flat_candles(current_price: float, interval: int, now: Optional[int] = None,
                 count: int = FLAT_CANDLE_COUNT) -> List[Candle]:
    """Placeholder series for a token with no trades."""
    price = current_price or DEFAULT_PRICE
    now = int(now if now is not None else time.time())
    return [
        Candle(
            time=now - i * interval,
            open=price,
            high=price * 1.01,
            low=price * 0.99,
            close=price,
            volume=0.0,
            direction='up',
        )
        for i in range(count - 1, -1, -1)
    ]


def all_time_high(trade_prices: Iterable[float], current_price: float, current_market_cap: float,
                  candles: Iterable[Candle] = ()) -> Dict[str, float]:
    """
    Highest observed price and the market cap it implies.

    Supply is estimated as market cap / price, so the ATH market cap is
    never below the current one. Candle highs can raise the ATH price but
    not the ATH market cap, which follows `trade_prices` only.
    """
    ath = current_price or DEFAULT_PRICE
    for price in trade_prices:
        if price and math.isfinite(price) and price > ath:
            ath = price

    base_price = current_price or DEFAULT_PRICE
    estimated_supply = current_market_cap / base_price if base_price > 0 else 0.0
    ath_market_cap = max(ath * estimated_supply, current_market_cap or 0.0)

    for candle in candles:
        if candle.high > ath:
            ath = candle.high
    return {
        'ath_price': ath,
        'ath_market_cap': ath_market_cap,
    }


class CandleService:
    """Loads trades for a token and turns them into a chart series."""

    def __init__(self, store):
        self.store = store

    def get_candles(self, address: str, timeframe: str = '1m',
                    now: Optional[datetime] = None) -> Dict:
        interval = interval_seconds(timeframe)
        address = address.lower()

        token = self.store.tokens.get(address)
        current_price = token.metrics.current_price if token else 0.0
        current_market_cap = token.metrics.market_cap if token else 0.0

        trades = self.store.trades.recent_for_token(address, trades_needed(interval))
        events = trades_to_events(trades)

        if events:
            candles = aggregate_candles(events, interval)
        else:
            now_ts = int(now.timestamp()) if now else None
            candles = flat_candles(current_price, interval, now=now_ts)

        recent = trades[:ATH_TRADE_WINDOW]  # newest first
        ath = all_time_high((t.price for t in recent), current_price, current_market_cap,
                            candles if events else ())
        logger.debug(f"Built {len(candles)} {timeframe} candles for {address} from {len(events)} trades")
        return {
            'token_address': address,
            'timeframe': timeframe,
            'interval_seconds': interval,
            'candles': [c.to_dict() for c in candles],
            **ath,
        }
