"""Holder balance refresh from on-chain balanceOf reads."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional

from common.errors import ValidationError

logger = logging.getLogger(__name__)

BATCH_TOKEN_LIMIT = 50
BALANCE_BATCH_SIZE = 10


class HolderUpdateProcessor:

    def __init__(self, contracts, store):
        self.contracts = contracts
        self.store = store

    def run(self, token_address: Optional[str] = None, batch_update: bool = False) -> Dict[str, int]:
        """
        Refresh holder balances for one token or for a batch of tradable tokens.

        Raises:
            ValidationError: neither a token nor batch mode was requested
        """
        if batch_update:
            logger.info("Starting batch holder balance update")
            addresses = self.store.tokens.find_by_last_trade(
                limit=BATCH_TOKEN_LIMIT, trading_only=True)
            processed = 0
            for address in addresses:
                try:
                    self.update_holders_for_token(address)
                    processed += 1
                except Exception as e:
                    logger.error(f"Failed to update holders for token {address}: {e}")
            logger.info(f"Batch holder update completed: {processed}/{len(addresses)} tokens")
            return {'tokens': len(addresses), 'processed': processed}

        if token_address:
            stats = self.update_holders_for_token(token_address)
            logger.info(f"Updated holders for token {token_address}")
            return {'tokens': 1, 'processed': 1, **stats}

        raise ValidationError("Either token_address or batch_update must be specified")

    def update_holders_for_token(self, token: str) -> Dict[str, int]:
        holders = self.store.holders.all_for_token(token)
        logger.debug(f"Updating {len(holders)} holders for token {token}")

        updated = errors = 0
        with ThreadPoolExecutor(max_workers=BALANCE_BATCH_SIZE, thread_name_prefix='holders') as executor:
            for start in range(0, len(holders), BALANCE_BATCH_SIZE):
                batch = holders[start:start + BALANCE_BATCH_SIZE]
                futures = [
                    executor.submit(self.contracts.get_token_balance, token, h.holder_address)
                    for h in batch
                ]
                balances = {}
                for holder, future in zip(batch, futures):
                    try:
                        balances[holder.holder_address] = future.result()
                    except Exception as e:
                        errors += 1
                        logger.error(f"Failed to update balance for {holder.holder_address}: {e}")
                updated += self.store.holders.upsert_balances(token, balances)

        logger.debug(f"Holder update complete for {token}: {updated} updated, {errors} errors")
        return {'updated': updated, 'errors': errors}
