"""
JSON-RPC client for EVM nodes.
Rate limiting, endpoint failover, retry with backoff and connection pooling.
"""
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import time
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from common.errors import BlockchainError, ContractCallError

logger = logging.getLogger(__name__)

# JSON-RPC error codes that mean the request itself is wrong
NON_RETRYABLE_CODES = {3, -32600, -32602}


class RateLimiter:
    """
    Thread-safe sliding-window rate limiter.

    Allows at most `max_requests` calls in any `window_seconds` interval.
    """
    def __init__(self, max_requests: int = 10, window_seconds: float = 10.0):
        self.max_requests = max_requests
        self.window = window_seconds
        self.calls = deque()
        self.lock = threading.Lock()

    def acquire(self):
        """Take a slot, blocking until one frees up"""
        while True:
            with self.lock:
                now = time.monotonic()
                while self.calls and now - self.calls[0] >= self.window:
                    self.calls.popleft()
                if len(self.calls) < self.max_requests:
                    self.calls.append(now)
                    return
                wait = self.window - (now - self.calls[0])
            logger.debug(f"RPC rate limit reached, waiting {wait:.2f}s")
            time.sleep(max(wait, 0.01))


@dataclass
class ProviderStats:
    """Per-endpoint call accounting, updated from many threads"""
    url: str
    call_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None
    is_healthy: bool = True
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_success(self):
        with self._lock:
            self.call_count += 1

    def record_error(self, error: str):
        with self._lock:
            self.call_count += 1
            self.error_count += 1
            self.last_error = error
            if self.error_count > 10 and self.error_count > self.call_count * 0.5:
                self.is_healthy = False

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'url': self.url,
                'call_count': self.call_count,
                'error_count': self.error_count,
                'last_error': self.last_error,
                'is_healthy': self.is_healthy,
                'error_rate': (self.error_count / self.call_count) if self.call_count else 0.0,
            }


class RpcClient:
    """
    JSON-RPC 2.0 client over a pooled HTTP session.

    Features:
    - Ordered endpoint failover (primary, secondary, tertiary)
    - Exponential backoff between full rounds, capped at 5s
    - Sliding-window rate limiting shared by all threads
    - Reverted or malformed calls fail fast with ContractCallError
    """

    def __init__(self, urls: List[str], rate_limit: int = 10, max_retries: int = 2,
                 timeout: int = 30, max_connections: int = 50):
        """
        Initialize RPC client.

        Args:
            urls: Endpoint URLs in priority order
            rate_limit: Requests allowed per 10 second window
            max_retries: Extra rounds over all endpoints after the first
            timeout: Request timeout in seconds
            max_connections: Maximum HTTP connections in pool
        """
        if not urls:
            raise ValueError("At least one RPC URL is required")
        self.providers = [ProviderStats(url=u) for u in urls]
        self.rate_limiter = RateLimiter(rate_limit, 10.0)
        self.max_retries = max_retries
        self.timeout = timeout
        self._id = 0
        self._id_lock = threading.Lock()

        self.session = requests.Session()

        retry_strategy = Retry(
            total=2,
            backoff_factor=0.5,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=["POST"]
        )

        adapter = HTTPAdapter(
            pool_connections=max_connections,
            pool_maxsize=max_connections,
            max_retries=retry_strategy,
            pool_block=True
        )

        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

        logger.info(f"RPC client initialized: {len(urls)} endpoint(s), {rate_limit} req/10s")

    def _next_id(self) -> int:
        with self._id_lock:
            self._id += 1
            return self._id

    def _ordered_providers(self) -> List[ProviderStats]:
        healthy = [p for p in self.providers if p.is_healthy]
        unhealthy = [p for p in self.providers if not p.is_healthy]
        return healthy + unhealthy

    def _post(self, provider: ProviderStats, payload: Dict[str, Any]) -> Any:
        response = self.session.post(provider.url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if 'error' in data and data['error']:
            error = data['error']
            code = error.get('code')
            message = error.get('message', str(error))
            if code in NON_RETRYABLE_CODES or 'revert' in message.lower():
                raise ContractCallError(f"{payload['method']} failed: {message}", code=code)
            raise BlockchainError(f"RPC error: {message}", code=code)
        return data.get('result')

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Execute a JSON-RPC call with failover and retries.

        Raises:
            ContractCallError: the call reverted or was rejected as invalid
            BlockchainError: every endpoint failed on every attempt
        """
        payload = {"jsonrpc": "2.0", "id": self._next_id(), "method": method, "params": params or []}
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            for provider in self._ordered_providers():
                self.rate_limiter.acquire()
                try:
                    result = self._post(provider, payload)
                    provider.record_success()
                    return result
                except ContractCallError:
                    provider.record_success()
                    raise
                except (requests.RequestException, ValueError, BlockchainError) as e:
                    provider.record_error(str(e))
                    last_error = e
                    logger.warning(f"RPC {method} failed on {provider.url}: {e}")

            if attempt < self.max_retries:
                delay = min(1.0 * (2 ** attempt), 5.0)
                logger.warning(f"RPC {method} failed on all endpoints, retrying in {delay:.0f}s "
                               f"(attempt {attempt + 1}/{self.max_retries})")
                time.sleep(delay)

        raise BlockchainError(f"RPC {method} failed after {self.max_retries + 1} attempts: {last_error}")

    def get_block_number(self) -> int:
        return int(self.call("eth_blockNumber"), 16)

    def get_block(self, block_number: int) -> Optional[Dict[str, Any]]:
        return self.call("eth_getBlockByNumber", [hex(block_number), False])

    def get_logs(self, from_block: int, to_block: int, address: Optional[str] = None,
                 topics: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        f: Dict[str, Any] = {"fromBlock": hex(from_block), "toBlock": hex(to_block)}
        if address:
            f["address"] = address
        if topics:
            f["topics"] = topics
        return self.call("eth_getLogs", [f]) or []

    def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return self.call("eth_call", [{"to": to, "data": data}, block])

    def health_check(self) -> Dict[str, Any]:
        """Check the chain head; never raises."""
        started = time.monotonic()
        try:
            block = self.get_block_number()
            return {
                'healthy': True,
                'block_number': block,
                'latency_ms': round((time.monotonic() - started) * 1000, 1),
            }
        except Exception as e:
            return {'healthy': False, 'error': str(e)}

    def provider_stats(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.providers]

    def close(self):
        """Close the HTTP session"""
        self.session.close()
        logger.info("Closed RPC client session")
