"""
Contract reads and event queries for the TokenFactory, TokenMarketplace
and launchpad ERC-20 tokens.
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from common.models.data_models import MarketInfo
from .abi import (
    DecodedEvent,
    EventABI,
    address_to_topic,
    TOKEN_CREATED,
    TOKEN_LISTED,
    TOKENS_BOUGHT,
    TOKENS_SOLD,
    TRANSFER,
    GET_ALL_TOKENS,
    FACTORY_GET_TOKEN_INFO,
    MARKET_GET_TOKEN_INFO,
    GET_CURRENT_PRICE,
    CALCULATE_PURCHASE_RETURN,
    CALCULATE_SALE_RETURN,
    ERC20_NAME,
    ERC20_SYMBOL,
    ERC20_DECIMALS,
    ERC20_TOTAL_SUPPLY,
    ERC20_BALANCE_OF,
)
from .rpc_client import RpcClient

logger = logging.getLogger(__name__)


class ContractService:
    """
    Typed access to the launchpad contracts through an RpcClient.

    All returned addresses are lower-case; amounts are wei integers.
    """

    def __init__(self, rpc: RpcClient, factory_address: str, marketplace_address: str,
                 timestamp_cache_size: int = 4096):
        self.rpc = rpc
        self.factory_address = factory_address.lower()
        self.marketplace_address = marketplace_address.lower()
        self._timestamps: Dict[int, int] = {}
        self._timestamp_cache_size = timestamp_cache_size
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    def get_all_tokens(self) -> List[str]:
        result = self.rpc.eth_call(self.factory_address, GET_ALL_TOKENS.encode_call())
        return list(GET_ALL_TOKENS.decode_output(result)[0])

    def get_token_factory_info(self, token: str) -> Dict[str, Any]:
        result = self.rpc.eth_call(self.factory_address, FACTORY_GET_TOKEN_INFO.encode_call(token))
        creator, total_supply, reserve_ratio, metadata_uri = FACTORY_GET_TOKEN_INFO.decode_output(result)
        return {
            'creator': creator,
            'total_supply': total_supply,
            'reserve_ratio': reserve_ratio,
            'metadata_uri': metadata_uri,
        }

    # ------------------------------------------------------------------
    # Marketplace
    # ------------------------------------------------------------------

    def get_token_market_info(self, token: str) -> MarketInfo:
        result = self.rpc.eth_call(self.marketplace_address, MARKET_GET_TOKEN_INFO.encode_call(token))
        current_supply, reserve_balance, reserve_ratio, trading_enabled = \
            MARKET_GET_TOKEN_INFO.decode_output(result)
        return MarketInfo(
            current_supply=current_supply,
            reserve_balance=reserve_balance,
            reserve_ratio=reserve_ratio,
            trading_enabled=trading_enabled,
        )

    def get_current_price(self, token: str) -> int:
        """Current bonding-curve price in wei per token"""
        result = self.rpc.eth_call(self.marketplace_address, GET_CURRENT_PRICE.encode_call(token))
        return GET_CURRENT_PRICE.decode_output(result)[0]

    def calculate_purchase_return(self, token: str, eth_amount: int) -> int:
        result = self.rpc.eth_call(
            self.marketplace_address, CALCULATE_PURCHASE_RETURN.encode_call(token, eth_amount))
        return CALCULATE_PURCHASE_RETURN.decode_output(result)[0]

    def calculate_sale_return(self, token: str, token_amount: int) -> int:
        result = self.rpc.eth_call(
            self.marketplace_address, CALCULATE_SALE_RETURN.encode_call(token, token_amount))
        return CALCULATE_SALE_RETURN.decode_output(result)[0]

    def calculate_market_cap(self, token: str) -> float:
        """current supply * current price, in ETH"""
        info = self.get_token_market_info(token)
        price = self.get_current_price(token)
        return (info.current_supply / 1e18) * (price / 1e18)

    # ------------------------------------------------------------------
    # ERC-20
    # ------------------------------------------------------------------

    def get_token_name_symbol(self, token: str) -> Tuple[str, str]:
        name = ERC20_NAME.decode_output(self.rpc.eth_call(token, ERC20_NAME.encode_call()))[0]
        symbol = ERC20_SYMBOL.decode_output(self.rpc.eth_call(token, ERC20_SYMBOL.encode_call()))[0]
        return name, symbol

    def get_token_details(self, token: str) -> Dict[str, Any]:
        name, symbol = self.get_token_name_symbol(token)
        decimals = ERC20_DECIMALS.decode_output(self.rpc.eth_call(token, ERC20_DECIMALS.encode_call()))[0]
        total_supply = ERC20_TOTAL_SUPPLY.decode_output(
            self.rpc.eth_call(token, ERC20_TOTAL_SUPPLY.encode_call()))[0]
        return {
            'address': token.lower(),
            'name': name,
            'symbol': symbol,
            'decimals': decimals,
            'total_supply': total_supply,
        }

    def get_token_balance(self, token: str, holder: str) -> int:
        result = self.rpc.eth_call(token, ERC20_BALANCE_OF.encode_call(holder))
        return ERC20_BALANCE_OF.decode_output(result)[0]

    # ------------------------------------------------------------------
    # Blocks and events
    # ------------------------------------------------------------------

    def get_latest_block(self) -> int:
        return self.rpc.get_block_number()

    def get_block_timestamp(self, block_number: int) -> int:
        """Unix timestamp of a block, memoised"""
        with self._lock:
            cached = self._timestamps.get(block_number)
        if cached is not None:
            return cached

        block = self.rpc.get_block(block_number)
        if not block:
            raise ValueError(f"Block {block_number} not found")
        timestamp = int(block['timestamp'], 16)

        with self._lock:
            if len(self._timestamps) >= self._timestamp_cache_size:
                self._timestamps.clear()
            self._timestamps[block_number] = timestamp
        return timestamp

    def _query_events(self, event: EventABI, address: str, from_block: int, to_block: int,
                      filters: Optional[List[Optional[str]]] = None) -> List[DecodedEvent]:
        topics: List[Any] = [event.topic]
        if filters:
            topics.extend(filters)
        logs = self.rpc.get_logs(from_block, to_block, address=address, topics=topics)
        events = []
        for log in logs:
            try:
                events.append(event.decode_log(log))
            except Exception as e:
                logger.warning(f"Skipping undecodable {event.name} log "
                               f"{log.get('transactionHash')}: {e}")
        events.sort(key=lambda ev: ev.sort_key)
        return events

    def get_token_created_events(self, from_block: int, to_block: int) -> List[DecodedEvent]:
        return self._query_events(TOKEN_CREATED, self.factory_address, from_block, to_block)

    def get_token_listed_events(self, from_block: int, to_block: int) -> List[DecodedEvent]:
        return self._query_events(TOKEN_LISTED, self.marketplace_address, from_block, to_block)

    def get_tokens_bought_events(self, from_block: int, to_block: int,
                                 token: Optional[str] = None) -> List[DecodedEvent]:
        filters = [address_to_topic(token)] if token else None
        return self._query_events(TOKENS_BOUGHT, self.marketplace_address, from_block, to_block, filters)

    def get_tokens_sold_events(self, from_block: int, to_block: int,
                               token: Optional[str] = None) -> List[DecodedEvent]:
        filters = [address_to_topic(token)] if token else None
        return self._query_events(TOKENS_SOLD, self.marketplace_address, from_block, to_block, filters)

    def get_transfer_events(self, token: str, from_block: int, to_block: int) -> List[DecodedEvent]:
        return self._query_events(TRANSFER, token.lower(), from_block, to_block)
