"""Test CLI argument parsing and startup validation."""
import pytest

from cli import launchpad_cli
from cli.launchpad_cli import main, parse_args

REQUIRED_VARS = ('DATABASE_URL', 'DB_HOST', 'PRIMARY_RPC_URL', 'TOKEN_FACTORY_ADDRESS',
                 'MARKETPLACE_ADDRESS')


def test_serve_defaults():
    args = parse_args(['serve'])
    assert args.command == 'serve'
    assert args.host == '0.0.0.0'
    assert args.port is None
    assert args.no_indexer is False
    assert args.no_workers is False


def test_backfill_flags():
    args = parse_args(['backfill', '-v', '--only-missing', '--concurrency', '20', '--batch-size', '100'])
    assert args.verify is True
    assert args.only_missing is True
    assert args.concurrency == 20
    assert args.batch_size == 100


def test_candles_timeframe_choices():
    assert parse_args(['candles', '0xabc', '--timeframe', '15m']).timeframe == '15m'
    with pytest.raises(SystemExit):
        parse_args(['candles', '0xabc', '--timeframe', '2m'])


def test_command_required():
    with pytest.raises(SystemExit):
        parse_args([])


def test_missing_configuration_exits_with_error(monkeypatch, tmp_path):
    for name in REQUIRED_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('LOG_DIR', str(tmp_path / 'logs'))
    monkeypatch.setattr(launchpad_cli, 'load_dotenv', lambda: None)

    assert main(['status']) == 1
    assert (tmp_path / 'logs').is_dir()
