"""Event ingestion pipeline."""
from .block_indexer import BlockchainIndexer

__all__ = ['BlockchainIndexer']
