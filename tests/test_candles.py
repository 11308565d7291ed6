"""Test OHLCV candle aggregation."""
from datetime import timedelta

import pytest

from common.errors import ValidationError
from common.models.data_models import TransactionType
from indexer.processors.candles import (
    CandleService,
    PriceEvent,
    aggregate_candles,
    all_time_high,
    flat_candles,
    interval_seconds,
    trades_needed,
    trades_to_events,
)
from conftest import TOKEN_A, WEI, make_token, make_trade


def event(ts, price, side='buy', block=1, volume=1.0):
    return PriceEvent(timestamp=ts, block_number=block, price=price, volume=volume, side=side)


def test_interval_seconds():
    assert interval_seconds('15m') == 900
    with pytest.raises(ValidationError):
        interval_seconds('2m')


@pytest.mark.parametrize("interval,expected", [(60, 200), (300, 500), (86400, 500), (1, 100)])
def test_trades_needed(interval, expected):
    assert trades_needed(interval) == expected


def test_trades_to_events_skips_create_and_sorts(now):
    events = trades_to_events([
        make_trade(TransactionType.SELL, now + timedelta(seconds=5), price=0.2, eth=WEI // 2, block=3),
        make_trade(TransactionType.CREATE, now, block=1),
        make_trade(TransactionType.BUY, now, price=0.1, eth=2 * WEI, block=2),
    ])
    assert [e.side for e in events] == ['buy', 'sell']
    assert events[0].volume == 2.0
    assert events[1].volume == 0.5


class TestAggregateCandles:

    def test_empty(self):
        assert aggregate_candles([], 60) == []

    def test_first_candle_open_estimated_from_side(self):
        buy = aggregate_candles([event(120, 1.0, 'buy')], 60)[0]
        assert buy.open == pytest.approx(0.98)
        assert buy.direction == 'up'

        sell = aggregate_candles([event(120, 1.0, 'sell')], 60)[0]
        assert sell.open == pytest.approx(1.02)
        assert sell.close == 1.0
        assert sell.direction == 'down'

    def test_buckets_chain_open_to_previous_close(self):
        candles = aggregate_candles([
            event(60, 1.0, 'buy'),
            event(70, 1.2, 'buy'),
            event(130, 1.1, 'sell'),
            event(140, 1.3, 'buy'),
        ], 60)
        assert [c.time for c in candles] == [60, 120]
        first, second = candles
        assert first.close == 1.2
        assert first.high == 1.2
        assert first.low == pytest.approx(0.98)
        assert first.trades == 2
        assert second.open == 1.2
        assert second.close == 1.3
        assert second.low == 1.1
        assert second.direction == 'up'
        assert second.volume == 2.0

    def test_sell_only_bucket_closing_higher_is_flipped(self):
        candles = aggregate_candles([
            event(0, 1.0, 'buy'),
            event(60, 1.1, 'sell'),
            event(61, 1.2, 'sell'),
        ], 60)
        flipped = candles[1]
        assert flipped.open == 1.2
        assert flipped.close == 1.0
        assert flipped.high == 1.2
        assert flipped.low == 1.0
        assert flipped.direction == 'down'

    def test_mixed_bucket_direction_follows_close(self):
        candles = aggregate_candles([
            event(0, 1.0, 'buy'),
            event(60, 1.2, 'buy'),
            event(65, 0.9, 'sell'),
        ], 60)
        assert candles[1].direction == 'down'

    def test_gaps_do_not_create_empty_candles(self):
        candles = aggregate_candles([event(0, 1.0), event(600, 2.0)], 60)
        assert [c.time for c in candles] == [0, 600]
        assert candles[1].open == 1.0


def test_flat_candles():
    candles = flat_candles(0.0, 60, now=10_000)
    assert len(candles) == 51
    assert candles[-1].time == 10_000
    assert candles[0].time == 10_000 - 50 * 60
    assert all(c.open == 0.001 and c.volume == 0.0 for c in candles)
    assert candles[0].high == pytest.approx(0.00101)
    assert candles[0].low == pytest.approx(0.00099)


class TestAllTimeHigh:

    def test_highest_trade_price(self):
        ath = all_time_high([0.5, float('nan'), 2.0, None], 1.0, 100.0)
        assert ath['ath_price'] == 2.0
        assert ath['ath_market_cap'] == pytest.approx(200.0)

    def test_never_below_current(self):
        ath = all_time_high([0.1], 1.0, 50.0)
        assert ath['ath_price'] == 1.0
        assert ath['ath_market_cap'] == 50.0


def test_candle_service_uses_trades(store, now):
    store.tokens.insert(make_token(TOKEN_A, current_price=0.002, market_cap=2.0))
    store.trades.insert(make_trade(TransactionType.BUY, now, price=0.001, block=1))
    store.trades.insert(make_trade(TransactionType.BUY, now + timedelta(minutes=2),
                                   price=0.003, block=2))

    data = CandleService(store).get_candles(TOKEN_A.upper().replace('0X', '0x'), '1m')

    assert data['token_address'] == TOKEN_A
    assert data['interval_seconds'] == 60
    assert len(data['candles']) == 2
    assert data['ath_price'] == 0.003
    assert data['ath_market_cap'] == pytest.approx(3.0)


def test_ath_market_cap_uses_newest_trades_only(store, now):
    store.tokens.insert(make_token(TOKEN_A, current_price=0.002, market_cap=2.0))
    for i in range(150):
        store.trades.insert(make_trade(TransactionType.BUY, now + timedelta(minutes=i),
                                       price=0.01 if i == 0 else 0.001, block=i + 1))

    data = CandleService(store).get_candles(TOKEN_A, '1m')

    assert len(data['candles']) == 150
    assert data['ath_price'] == 0.01
    assert data['ath_market_cap'] == pytest.approx(2.0)


def test_candle_service_flat_series_without_trades(store, now):
    store.tokens.insert(make_token(TOKEN_A, current_price=0.5))
    data = CandleService(store).get_candles(TOKEN_A, '1h', now=now)
    assert len(data['candles']) == 51
    assert data['candles'][-1]['time'] == int(now.timestamp())
    assert data['candles'][0]['close'] == 0.5
    assert data['ath_price'] == 0.5
