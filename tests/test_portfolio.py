"""Test weighted average cost basis and portfolio updates."""
from datetime import timedelta

import pytest

from common.models.data_models import TransactionType
from indexer.services.portfolio import PortfolioService, compute_cost_basis, unrealized_pnl
from conftest import ALICE, TOKEN_A, WEI, make_trade


def test_buys_accumulate_cost_basis(now):
    basis = compute_cost_basis([
        make_trade(TransactionType.BUY, now, eth=WEI, tokens=1000 * WEI),
        make_trade(TransactionType.BUY, now, eth=3 * WEI, tokens=1000 * WEI, log_index=1),
    ])
    assert basis.tokens_held == pytest.approx(2000)
    assert basis.total_cost_basis == pytest.approx(4.0)
    assert basis.total_invested == pytest.approx(4.0)
    assert basis.average_price == pytest.approx(0.002)


def test_sell_realizes_against_average_price(now):
    basis = compute_cost_basis([
        make_trade(TransactionType.BUY, now, eth=2 * WEI, tokens=1000 * WEI),
        make_trade(TransactionType.SELL, now, eth=3 * WEI, tokens=500 * WEI, log_index=1),
    ])
    assert basis.realized_pnl == pytest.approx(2.0)
    assert basis.tokens_held == pytest.approx(500)
    assert basis.total_cost_basis == pytest.approx(1.0)
    assert basis.total_invested == pytest.approx(2.0)


def test_selling_everything_clears_dust(now):
    basis = compute_cost_basis([
        make_trade(TransactionType.BUY, now, eth=WEI, tokens=1000 * WEI),
        make_trade(TransactionType.SELL, now, eth=WEI // 2, tokens=1000 * WEI - 10, log_index=1),
    ])
    assert basis.tokens_held == 0.0
    assert basis.average_price == 0.0
    assert basis.realized_pnl == pytest.approx(-0.5)


def test_create_credits_supply_at_zero_cost(now):
    basis = compute_cost_basis([make_trade(TransactionType.CREATE, now, tokens=10 ** 6 * WEI)])
    assert basis.tokens_held == pytest.approx(10 ** 6)
    assert basis.total_cost_basis == 0.0
    assert basis.average_price == 0.0


def test_unrealized_pnl():
    assert unrealized_pnl(100 * WEI, 0.05, 2.0) == pytest.approx(3.0)
    assert unrealized_pnl(0, 0.05, 2.0) == 0.0


def test_update_user_portfolio(store, contracts, now):
    store.trades.insert(make_trade(TransactionType.BUY, now - timedelta(minutes=2),
                                   eth=WEI, tokens=1000 * WEI))
    store.trades.insert(make_trade(TransactionType.SELL, now - timedelta(minutes=1),
                                   eth=WEI, tokens=250 * WEI, log_index=1))
    contracts.balances[(TOKEN_A, ALICE)] = 750 * WEI
    contracts.prices[TOKEN_A] = 2 * 10 ** 15

    position = PortfolioService(contracts, store).update_user_portfolio(ALICE, TOKEN_A)

    assert position.balance == 750 * WEI
    assert position.average_price == pytest.approx(0.001)
    assert position.total_invested == pytest.approx(1.0)
    assert position.realized_pnl == pytest.approx(0.75)
    assert position.unrealized_pnl == pytest.approx(750 * 0.002 - 0.75)
    assert store.portfolios.rows[(ALICE, TOKEN_A)] is position
