"""
Chain and IPFS clients
"""
from .rpc_client import RpcClient, RateLimiter, ProviderStats
from .contracts import ContractService
from .ipfs_client import IPFSClient, extract_ipfs_hash

__all__ = [
    'RpcClient',
    'RateLimiter',
    'ProviderStats',
    'ContractService',
    'IPFSClient',
    'extract_ipfs_hash',
]
