"""
Blockchain event indexer.

Polls confirmed block ranges for TokenFactory and TokenMarketplace events
and replays them into the database: token rows, the transactions ledger,
holder balances, user portfolios and token metrics.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from common.config.settings import BlockchainConfig, IndexerConfig
from common.models.data_models import (
    TokenMetrics,
    TokenRecord,
    TradeRecord,
    TransactionType,
    from_wei,
)
from indexer.clients.abi import DecodedEvent
from indexer.utils.structured_logging import get_logger

logger = logging.getLogger(__name__)
slog = get_logger('indexer.blocks')


class BlockchainIndexer:
    """
    Confirmed-block event indexer.

    The cursor (`current_block`) is the next block to index. A range is
    only committed to `indexer_state` after every event query for it
    succeeded, so an RPC failure retries the whole range on the next poll.
    """

    def __init__(self, contracts, store, ipfs, metrics_service, portfolio_service,
                 indexer_config: Optional[IndexerConfig] = None,
                 blockchain_config: Optional[BlockchainConfig] = None):
        """
        Args:
            contracts: ContractService
            store: LaunchpadRepository
            ipfs: IPFSClient
            metrics_service: MetricsService
            portfolio_service: PortfolioService
            indexer_config: polling and batching settings
            blockchain_config: start block and confirmation depth
        """
        self.contracts = contracts
        self.store = store
        self.ipfs = ipfs
        self.metrics_service = metrics_service
        self.portfolio_service = portfolio_service
        self.config = indexer_config or IndexerConfig()
        self.chain_config = blockchain_config or BlockchainConfig()

        self.current_block: int = 0
        self.last_processed_block: int = 0
        self.is_running = False

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """
        Start indexing in a background thread.

        Returns:
            True if a new indexing thread was started
        """
        if not self.config.enabled:
            logger.info("Indexer is disabled")
            return False

        with self._lock:
            if self.is_running:
                logger.warning("Indexer is already running")
                return False
            self.load_resume_point()
            self._stop_event.clear()
            self.is_running = True
            self._thread = threading.Thread(target=self._loop, name='BlockIndexer', daemon=True)
            self._thread.start()

        logger.info(f"Blockchain indexer started from block {self.current_block}")
        return True

    def run(self):
        """Index in the calling thread until stop() is called."""
        if not self.config.enabled:
            logger.info("Indexer is disabled")
            return
        self.load_resume_point()
        self._stop_event.clear()
        self.is_running = True
        logger.info(f"Blockchain indexer running from block {self.current_block}")
        self._loop()

    def stop(self, timeout: float = 10.0):
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None
        self.is_running = False
        logger.info("Blockchain indexer stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            'is_running': self.is_running,
            'current_block': self.current_block,
            'last_processed_block': self.last_processed_block,
        }

    def _loop(self):
        try:
            while not self._stop_event.is_set():
                try:
                    self.process_new_blocks()
                    wait = self.config.poll_interval
                except Exception as e:
                    logger.error(f"Indexer loop error: {e}", exc_info=True)
                    wait = self.config.error_backoff
                self._stop_event.wait(wait)
        finally:
            self.is_running = False

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    def load_resume_point(self) -> int:
        """
        Decide where indexing starts.

        Order: chain head when starting from current, the persisted
        cursor + 1, the highest indexed transaction block + 1, then the
        configured start block.
        """
        if self.config.start_from_current:
            head = self.contracts.get_latest_block()
            self.current_block = head
            self.last_processed_block = head - 1
            logger.info(f"Starting from current block {head}")
            return self.current_block

        saved = self.store.indexer_state.get_last_block()
        if saved is not None:
            self.last_processed_block = saved
            self.current_block = saved + 1
            logger.info(f"Resuming from saved cursor, block {self.current_block}")
            return self.current_block

        latest_tx = self.store.trades.max_block_number()
        if latest_tx is not None:
            self.last_processed_block = latest_tx
            self.current_block = latest_tx + 1
            logger.info(f"Resuming after last indexed transaction, block {self.current_block}")
            return self.current_block

        self.current_block = self.chain_config.start_block
        self.last_processed_block = max(self.current_block - 1, 0)
        logger.info(f"Starting from configured block {self.current_block}")
        return self.current_block

    # ------------------------------------------------------------------
    # Range processing
    # ------------------------------------------------------------------

    def process_new_blocks(self) -> Optional[Dict[str, int]]:
        """
        Index the next confirmed block range.

        Returns:
            Counts of handled events, or None when there was nothing to do

        Raises:
            Whatever the log queries raised; the cursor is left untouched
        """
        head = self.contracts.get_latest_block()
        target = head - self.chain_config.confirmations
        if self.current_block > target:
            return None

        from_block = self.current_block
        to_block = min(from_block + self.config.batch_size, target)

        created = self.contracts.get_token_created_events(from_block, to_block)
        listed = self.contracts.get_token_listed_events(from_block, to_block)
        bought = self.contracts.get_tokens_bought_events(from_block, to_block)
        sold = self.contracts.get_tokens_sold_events(from_block, to_block)
        trades = sorted(bought + sold, key=lambda ev: ev.sort_key)

        counts = {
            'created': self._dispatch(created, self.handle_token_created),
            'listed': self._dispatch(listed, self.handle_token_listed),
            'trades': self._dispatch(trades, self.handle_trade),
        }

        self.store.indexer_state.save_last_block(to_block)
        self.last_processed_block = to_block
        self.current_block = to_block + 1

        if any(counts.values()):
            slog.info("block_range_indexed", from_block=from_block, to_block=to_block, **counts)
        else:
            logger.debug(f"Processed blocks {from_block} to {to_block}, no events")
        return counts

    def _dispatch(self, events: List[DecodedEvent], handler) -> int:
        handled = 0
        for event in events:
            try:
                handler(event)
                handled += 1
            except Exception as e:
                slog.error("event_handler_failed", event=event.name,
                           tx=event.transaction_hash, log_index=event.log_index, error=str(e))
        return handled

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _block_time(self, block_number: int) -> datetime:
        return datetime.fromtimestamp(self.contracts.get_block_timestamp(block_number), tz=timezone.utc)

    def _initial_metrics(self, token: str, total_supply: int) -> TokenMetrics:
        """Price and supply at listing time, zeros when the marketplace call fails."""
        try:
            price = from_wei(self.contracts.get_current_price(token))
            info = self.contracts.get_token_market_info(token)
            return TokenMetrics(
                current_price=price,
                market_cap=from_wei(info.current_supply) * price,
                current_supply=info.current_supply,
                reserve_balance=info.reserve_balance,
            )
        except Exception as e:
            logger.warning(f"Could not fetch price data for {token}: {e}")
            return TokenMetrics(current_supply=total_supply)

    def _record_create(self, token: str, creator: str, total_supply: int,
                       event: DecodedEvent, timestamp: datetime):
        self.store.trades.insert(TradeRecord(
            hash=event.transaction_hash,
            log_index=event.log_index,
            user_address=creator,
            token_address=token,
            type=TransactionType.CREATE,
            amount_in=0,
            amount_out=total_supply,
            price=0.0,
            block_number=event.block_number,
            timestamp=timestamp,
        ))

    def handle_token_created(self, event: DecodedEvent) -> bool:
        """
        Index a TokenCreated event.

        Returns:
            True if a new token row was written
        """
        args = event.args
        token = args['tokenAddress']
        if self.store.tokens.exists(token):
            logger.debug(f"Token {token} already indexed")
            return False

        metadata = self.ipfs.fetch_metadata(args['metadataURI']) if self.ipfs else None
        timestamp = self._block_time(event.block_number)
        metrics = self._initial_metrics(token, args['totalSupply'])

        record = TokenRecord(
            address=token,
            name=args['name'],
            symbol=args['symbol'],
            creator=args['creator'],
            total_supply=args['totalSupply'],
            reserve_ratio=args['reserveRatio'],
            metadata_uri=args['metadataURI'],
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
            created_at=timestamp,
            trading_enabled=False,
            metadata_cache=metadata,
            logo_url=(metadata or {}).get('image'),
            description=(metadata or {}).get('description'),
            social_links=(metadata or {}).get('social'),
            metrics=metrics,
            metrics_updated_at=datetime.now(timezone.utc),
        )
        if not self.store.tokens.insert(record):
            return False

        self._record_create(token, args['creator'], args['totalSupply'], event, timestamp)
        logger.info(f"Token created: {args['name']} ({args['symbol']}) at {token}")
        return True

    def handle_token_listed(self, event: DecodedEvent) -> bool:
        """
        Index a TokenListed event.

        Returns:
            True if trading was enabled or a new token row was written
        """
        args = event.args
        token = args['tokenAddress']

        existing = self.store.tokens.get(token)
        if existing is not None:
            if existing.trading_enabled:
                return False
            self.store.tokens.set_trading_enabled(token, True)
            logger.info(f"Trading enabled for {token}")
            return True

        name, symbol = self.contracts.get_token_name_symbol(token)
        metadata = self.ipfs.fetch_metadata(args['metadataURI']) if self.ipfs else None
        timestamp = self._block_time(event.block_number)
        metrics = self._initial_metrics(token, args['totalSupply'])

        record = TokenRecord(
            address=token,
            name=name,
            symbol=symbol,
            creator=args['creator'],
            total_supply=args['totalSupply'],
            reserve_ratio=args['reserveRatio'],
            metadata_uri=args['metadataURI'],
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
            created_at=timestamp,
            trading_enabled=True,
            metadata_cache=metadata,
            logo_url=(metadata or {}).get('image'),
            description=(metadata or {}).get('description'),
            social_links=(metadata or {}).get('social'),
            metrics=metrics,
            metrics_updated_at=datetime.now(timezone.utc),
        )
        if not self.store.tokens.insert(record):
            return False

        self._record_create(token, args['creator'], args['totalSupply'], event, timestamp)
        logger.info(f"Token listed: {name} ({symbol}) at {token}")
        return True

    def handle_trade(self, event: DecodedEvent) -> bool:
        """
        Index a TokensBought or TokensSold event.

        Returns:
            True if a new ledger row was written
        """
        if self.store.trades.exists(event.transaction_hash, event.log_index):
            return False

        args = event.args
        token = args['tokenAddress']
        eth_amount = args['ethAmount']
        token_amount = args['tokenAmount']
        price = eth_amount / token_amount if token_amount else 0.0

        if event.name == 'TokensBought':
            trader = args['buyer']
            trade_type = TransactionType.BUY
            amount_in, amount_out = eth_amount, token_amount
        else:
            trader = args['seller']
            trade_type = TransactionType.SELL
            amount_in, amount_out = token_amount, eth_amount

        inserted = self.store.trades.insert(TradeRecord(
            hash=event.transaction_hash,
            log_index=event.log_index,
            user_address=trader,
            token_address=token,
            type=trade_type,
            amount_in=amount_in,
            amount_out=amount_out,
            price=price,
            block_number=event.block_number,
            timestamp=self._block_time(event.block_number),
        ))
        if not inserted:
            return False

        self.update_holder_balance(token, trader)
        self.portfolio_service.update_user_portfolio(trader, token)
        self.metrics_service.update_token_metrics(token)

        logger.info(f"{trade_type.value} {from_wei(token_amount):.4f} tokens of {token} "
                    f"for {from_wei(eth_amount):.6f} ETH by {trader}")
        return True

    def update_holder_balance(self, token: str, holder: str) -> int:
        """Store the holder's on-chain balance; zero balances are kept as rows."""
        balance = self.contracts.get_token_balance(token, holder)
        self.store.holders.upsert_balance(token, holder, balance)
        return balance
