"""Test the PostgreSQL pool and repositories against mocked connections."""
from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock

import pytest

from common.models.data_models import TransactionType
from storage.interfaces import LaunchpadRepository
from storage.postgres import LaunchpadStore, PostgresConnectionPool
from storage.postgres import pool as pool_module
from storage.postgres.repositories import IndexerStateRepository, TradeRepository
from conftest import make_trade


class MockPool:
    """Hands out a single MagicMock connection."""

    def __init__(self):
        self.cursor = MagicMock()
        self.conn = MagicMock()
        self.conn.cursor.return_value = self.cursor
        self.checkouts = 0

    @contextmanager
    def get_connection(self):
        self.checkouts += 1
        yield self.conn

    def ping(self):
        return True

    def close(self):
        pass


@pytest.fixture
def threaded_pool(monkeypatch):
    factory = Mock()
    monkeypatch.setattr(pool_module.psycopg2.pool, 'ThreadedConnectionPool', factory)
    return factory


class TestPostgresConnectionPool:

    def test_dsn_takes_precedence(self, threaded_pool):
        PostgresConnectionPool(dsn='postgresql://db/launchpad', host='ignored', max_conn=5)
        threaded_pool.assert_called_once_with(1, 5, dsn='postgresql://db/launchpad')

    def test_discrete_parameters(self, threaded_pool):
        PostgresConnectionPool(host='db.local', password='secret')
        kwargs = threaded_pool.call_args.kwargs
        assert kwargs['host'] == 'db.local'
        assert kwargs['port'] == 5432
        assert kwargs['database'] == 'launchpad'
        assert kwargs['user'] == 'postgres'

    def test_commit_on_success(self, threaded_pool):
        pg = PostgresConnectionPool(dsn='postgresql://db')
        conn = pg.pool.getconn.return_value

        with pg.get_connection() as got:
            assert got is conn

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        pg.pool.putconn.assert_called_once_with(conn)

    def test_rollback_and_reraise_on_error(self, threaded_pool):
        pg = PostgresConnectionPool(dsn='postgresql://db')
        conn = pg.pool.getconn.return_value

        with pytest.raises(RuntimeError):
            with pg.get_connection():
                raise RuntimeError("constraint violated")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pg.pool.putconn.assert_called_once_with(conn)

    def test_ping_reports_failure(self, threaded_pool):
        pg = PostgresConnectionPool(dsn='postgresql://db')
        pg.pool.getconn.side_effect = RuntimeError("connection refused")
        assert pg.ping() is False


class TestRepositories:

    def setup_method(self):
        self.pool = MockPool()

    def test_cursor_round_trip(self):
        repo = IndexerStateRepository(self.pool)
        self.pool.cursor.fetchone.return_value = (1234,)
        assert repo.get_last_block() == 1234

        self.pool.cursor.fetchone.return_value = None
        assert repo.get_last_block('other') is None

    def test_save_cursor_upserts(self):
        IndexerStateRepository(self.pool).save_last_block(77)
        sql, params = self.pool.cursor.execute.call_args.args
        assert 'ON CONFLICT (name) DO UPDATE' in sql
        assert params == ('launchpad', 77)

    def test_trade_insert_is_idempotent(self):
        repo = TradeRepository(self.pool)
        trade = make_trade(TransactionType.BUY, datetime(2024, 1, 1, tzinfo=timezone.utc),
                           user='0x' + 'A' * 40)

        self.pool.cursor.rowcount = 1
        assert repo.insert(trade) is True
        sql, params = self.pool.cursor.execute.call_args.args
        assert 'ON CONFLICT (hash, log_index) DO NOTHING' in sql
        assert params[2] == '0x' + 'a' * 40
        assert params[4] == 'BUY'

        self.pool.cursor.rowcount = 0
        assert repo.insert(trade) is False

    def test_exists_filters_by_log_index(self):
        repo = TradeRepository(self.pool)
        self.pool.cursor.fetchone.return_value = (1,)
        assert repo.exists('0xabc', 3) is True
        sql, params = self.pool.cursor.execute.call_args.args
        assert 'log_index' in sql
        assert params == ('0xabc', 3)


def test_store_exposes_every_repository():
    store = LaunchpadStore(MockPool(), initialize_schema=False)
    assert isinstance(store, LaunchpadRepository)
    assert store.ping() is True
