"""
State sync straight from contract reads.

Instead of replaying blocks, the factory's token list is read directly and
missing rows are created from ERC-20 and marketplace state. Holder balances
can be rebuilt from a token's Transfer history.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, Optional

from common.models.data_models import TokenMetrics, TokenRecord, from_wei
from indexer.clients.abi import ZERO_ADDRESS

logger = logging.getLogger(__name__)

SYNC_BATCH_SIZE = 10
TRANSFER_WINDOW = 5000
DEFAULT_RESERVE_RATIO = 500000


class SyncService:
    """Brings the tokens and holders tables in line with on-chain state."""

    def __init__(self, contracts, store, ipfs=None, start_block: int = 0):
        """
        Args:
            contracts: ContractService
            store: LaunchpadRepository
            ipfs: IPFSClient used for token metadata (optional)
            start_block: first block scanned when rebuilding holders
        """
        self.contracts = contracts
        self.store = store
        self.ipfs = ipfs
        self.start_block = start_block

    def sync_all_tokens(self) -> Dict[str, int]:
        """
        Create every factory token missing from the database and backfill
        metrics for known tokens that have none.

        Returns:
            {'synced': new tokens, 'skipped': already known, 'errors': failures}
        """
        logger.info("Starting RPC token sync")
        addresses = self.contracts.get_all_tokens()
        logger.info(f"Found {len(addresses)} tokens in factory contract")

        known = set(self.store.tokens.list_addresses())
        missing_metrics = set(self.store.tokens.list_addresses(only_missing_metrics=True))

        synced = skipped = errors = 0
        with ThreadPoolExecutor(max_workers=SYNC_BATCH_SIZE, thread_name_prefix='sync') as executor:
            for start in range(0, len(addresses), SYNC_BATCH_SIZE):
                batch = addresses[start:start + SYNC_BATCH_SIZE]
                futures = {
                    address: executor.submit(self._sync_one, address, known, missing_metrics)
                    for address in batch
                }
                for address, future in futures.items():
                    try:
                        if future.result() == 'synced':
                            synced += 1
                        else:
                            skipped += 1
                    except Exception as e:
                        errors += 1
                        logger.error(f"Error syncing token {address}: {e}")

                done = min(start + SYNC_BATCH_SIZE, len(addresses))
                logger.info(f"Progress: {done}/{len(addresses)} tokens processed "
                            f"({synced} new, {skipped} existing, {errors} errors)")

        logger.info(f"Sync complete: {synced} synced, {skipped} existing, {errors} errors")
        return {'synced': synced, 'skipped': skipped, 'errors': errors}

    def _sync_one(self, address: str, known, missing_metrics) -> str:
        address = address.lower()
        if address in known:
            if address in missing_metrics:
                self.update_token_data(address)
            return 'skipped'
        self.sync_token_from_chain(address)
        return 'synced'

    def _fetch_metrics(self, address: str) -> TokenMetrics:
        price = from_wei(self.contracts.get_current_price(address))
        info = self.contracts.get_token_market_info(address)
        return TokenMetrics(
            current_price=price,
            market_cap=from_wei(info.current_supply) * price,
            current_supply=info.current_supply,
            reserve_balance=info.reserve_balance,
            holder_count=self.store.holders.count_nonzero(address),
        )

    def sync_token_from_chain(self, address: str) -> TokenRecord:
        """Create a token row from contract reads alone."""
        details = self.contracts.get_token_details(address)
        market_info = self.contracts.get_token_market_info(address)

        # creation block and tx are unknown without the event
        creator, reserve_ratio, metadata_uri = ZERO_ADDRESS, DEFAULT_RESERVE_RATIO, ''
        try:
            factory_info = self.contracts.get_token_factory_info(address)
            creator = factory_info['creator']
            reserve_ratio = factory_info['reserve_ratio']
            metadata_uri = factory_info['metadata_uri']
        except Exception as e:
            logger.debug(f"Factory info unavailable for {address}: {e}")

        metadata = None
        if metadata_uri and self.ipfs is not None:
            metadata = self.ipfs.fetch_metadata(metadata_uri)

        try:
            metrics = self._fetch_metrics(address)
        except Exception as e:
            logger.warning(f"Failed to fetch metrics for {address}, will be updated by worker: {e}")
            metrics = TokenMetrics(current_supply=details['total_supply'])

        now = datetime.now(timezone.utc)
        record = TokenRecord(
            address=address,
            name=details['name'],
            symbol=details['symbol'],
            creator=creator,
            total_supply=details['total_supply'],
            reserve_ratio=reserve_ratio,
            metadata_uri=metadata_uri,
            block_number=0,
            transaction_hash='',
            created_at=now,
            trading_enabled=market_info.trading_enabled,
            metadata_cache=metadata,
            logo_url=(metadata or {}).get('image'),
            description=(metadata or {}).get('description'),
            social_links=(metadata or {}).get('social'),
            metrics=metrics,
            metrics_updated_at=now,
        )
        self.store.tokens.insert(record)
        logger.info(f"Synced token: {record.name} ({record.symbol}) at {address}")
        return record

    def update_token_data(self, address: str) -> Optional[TokenMetrics]:
        """Backfill metrics and the trading flag of a known token without metrics."""
        token = self.store.tokens.get(address)
        if token is None:
            return None

        trading_enabled = self.contracts.get_token_market_info(address).trading_enabled
        if token.metrics_updated_at and token.trading_enabled == trading_enabled:
            return None

        if token.metrics_updated_at is None:
            metrics = self._fetch_metrics(address)
            self.store.tokens.update_metrics(address, metrics, trading_enabled=trading_enabled)
            logger.debug(f"Backfilled metrics for {address}")
            return metrics

        self.store.tokens.set_trading_enabled(address, trading_enabled)
        return None

    def sync_token_holders(self, token: str, to_block: Optional[int] = None) -> int:
        """
        Rebuild holder balances from the token's Transfer events.

        Mints (from the zero address) and burns (to it) only touch the
        other side. Only positive balances are written.

        Returns:
            Number of holders stored
        """
        token = token.lower()
        logger.info(f"Syncing holders for token {token}")
        head = to_block if to_block is not None else self.contracts.get_latest_block()

        balances: Dict[str, int] = {}
        block = self.start_block
        while block <= head:
            window_end = min(block + TRANSFER_WINDOW - 1, head)
            events = self.contracts.get_transfer_events(token, block, window_end)
            for event in events:
                sender = event.args['from']
                receiver = event.args['to']
                value = event.args['value']
                if sender != ZERO_ADDRESS:
                    balances[sender] = balances.get(sender, 0) - value
                if receiver != ZERO_ADDRESS:
                    balances[receiver] = balances.get(receiver, 0) + value
            logger.debug(f"Processed blocks {block}-{window_end} ({len(events)} transfers)")
            block = window_end + 1

        positive = {holder: balance for holder, balance in balances.items() if balance > 0}
        self.store.holders.upsert_balances(token, positive)
        logger.info(f"Synced {len(positive)} holders for {token}")
        return len(positive)

    def get_status(self) -> Dict:
        factory_count = len(self.contracts.get_all_tokens())
        db_count = self.store.tokens.count()
        return {
            'factory_token_count': factory_count,
            'db_token_count': db_count,
            'sync_needed': factory_count != db_count,
        }
