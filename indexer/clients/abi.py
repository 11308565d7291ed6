"""
On-chain interface of the launchpad contracts.

Event topics and function selectors are keccak-256 hashes of the
canonical signatures; payloads use the standard ABI encoding.
"""
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from eth_abi import decode, encode
from eth_utils import keccak

ZERO_ADDRESS = '0x' + '0' * 40


def _hex_to_bytes(value: str) -> bytes:
    if value.startswith('0x'):
        value = value[2:]
    return bytes.fromhex(value)


def topic_to_address(topic: str) -> str:
    """Indexed address topic (32 bytes) to a lower-case 0x address."""
    return '0x' + topic[-40:].lower()


def address_to_topic(address: str) -> str:
    return '0x' + address.lower().replace('0x', '').rjust(64, '0')


def _normalize(value: Any, abi_type: str) -> Any:
    if abi_type == 'address':
        return value.lower()
    if abi_type == 'address[]':
        return [v.lower() for v in value]
    return value


@dataclass(frozen=True)
class EventParam:
    name: str
    type: str
    indexed: bool = False


@dataclass
class DecodedEvent:
    """A log decoded against an EventABI"""
    name: str
    args: Dict[str, Any]
    address: str
    block_number: int
    transaction_hash: str
    log_index: int

    @property
    def sort_key(self) -> Tuple[int, int]:
        return self.block_number, self.log_index


@dataclass(frozen=True)
class EventABI:
    name: str
    inputs: Tuple[EventParam, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.inputs)})"

    @property
    def topic(self) -> str:
        return '0x' + keccak(text=self.signature).hex()

    def decode_log(self, log: Dict[str, Any]) -> DecodedEvent:
        """
        Decode a raw eth_getLogs entry.

        Raises:
            ValueError: topic0 does not match this event
        """
        topics = log.get('topics') or []
        if not topics or topics[0].lower() != self.topic:
            raise ValueError(f"Log is not a {self.name} event")

        args: Dict[str, Any] = {}
        indexed = [p for p in self.inputs if p.indexed]
        for param, topic in zip(indexed, topics[1:]):
            if param.type == 'address':
                args[param.name] = topic_to_address(topic)
            else:
                args[param.name] = decode([param.type], _hex_to_bytes(topic))[0]

        plain = [p for p in self.inputs if not p.indexed]
        if plain:
            values = decode([p.type for p in plain], _hex_to_bytes(log.get('data') or '0x'))
            for param, value in zip(plain, values):
                args[param.name] = _normalize(value, param.type)

        return DecodedEvent(
            name=self.name,
            args=args,
            address=(log.get('address') or '').lower(),
            block_number=int(log['blockNumber'], 16),
            transaction_hash=log['transactionHash'],
            log_index=int(log.get('logIndex') or '0x0', 16),
        )


@dataclass(frozen=True)
class FunctionABI:
    name: str
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> str:
        return '0x' + keccak(text=self.signature)[:4].hex()

    def encode_call(self, *args: Any) -> str:
        data = self.selector
        if self.inputs:
            data += encode(list(self.inputs), list(args)).hex()
        return data

    def decode_output(self, result: str) -> Tuple[Any, ...]:
        if not result or result == '0x':
            raise ValueError(f"{self.name} returned no data")
        values = decode(list(self.outputs), _hex_to_bytes(result))
        return tuple(_normalize(v, t) for v, t in zip(values, self.outputs))


def _event(name: str, *params: Tuple[str, str, bool]) -> EventABI:
    return EventABI(name, tuple(EventParam(n, t, i) for n, t, i in params))


TOKEN_CREATED = _event(
    'TokenCreated',
    ('tokenAddress', 'address', True),
    ('creator', 'address', True),
    ('name', 'string', False),
    ('symbol', 'string', False),
    ('totalSupply', 'uint256', False),
    ('reserveRatio', 'uint32', False),
    ('metadataURI', 'string', False),
)

TOKEN_LISTED = _event(
    'TokenListed',
    ('tokenAddress', 'address', True),
    ('creator', 'address', True),
    ('metadataURI', 'string', False),
    ('totalSupply', 'uint256', False),
    ('reserveRatio', 'uint256', False),
)

TOKENS_BOUGHT = _event(
    'TokensBought',
    ('tokenAddress', 'address', True),
    ('buyer', 'address', True),
    ('ethAmount', 'uint256', False),
    ('tokenAmount', 'uint256', False),
    ('newPrice', 'uint256', False),
)

TOKENS_SOLD = _event(
    'TokensSold',
    ('tokenAddress', 'address', True),
    ('seller', 'address', True),
    ('tokenAmount', 'uint256', False),
    ('ethAmount', 'uint256', False),
    ('newPrice', 'uint256', False),
)

TRANSFER = _event(
    'Transfer',
    ('from', 'address', True),
    ('to', 'address', True),
    ('value', 'uint256', False),
)

# TokenFactory
GET_ALL_TOKENS = FunctionABI('getAllTokens', (), ('address[]',))
FACTORY_GET_TOKEN_INFO = FunctionABI(
    'getTokenInfo', ('address',), ('address', 'uint256', 'uint32', 'string'))

# TokenMarketplace
MARKET_GET_TOKEN_INFO = FunctionABI(
    'getTokenInfo', ('address',), ('uint256', 'uint256', 'uint32', 'bool'))
GET_CURRENT_PRICE = FunctionABI('getCurrentPrice', ('address',), ('uint256',))
CALCULATE_PURCHASE_RETURN = FunctionABI(
    'calculatePurchaseReturn', ('address', 'uint256'), ('uint256',))
CALCULATE_SALE_RETURN = FunctionABI(
    'calculateSaleReturn', ('address', 'uint256'), ('uint256',))

# ERC-20
ERC20_NAME = FunctionABI('name', (), ('string',))
ERC20_SYMBOL = FunctionABI('symbol', (), ('string',))
ERC20_DECIMALS = FunctionABI('decimals', (), ('uint8',))
ERC20_TOTAL_SUPPLY = FunctionABI('totalSupply', (), ('uint256',))
ERC20_BALANCE_OF = FunctionABI('balanceOf', ('address',), ('uint256',))
