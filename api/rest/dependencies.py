"""Dependency injection for the REST routers."""
import logging
import re
from typing import Optional

from fastapi import HTTPException

from common.errors import ValidationError
from indexer.service.core import IndexerService

logger = logging.getLogger(__name__)

_ADDRESS = re.compile(r'^0x[0-9a-fA-F]{40}$')

_service: Optional[IndexerService] = None


def get_service() -> IndexerService:
    """
    Dependency provider for IndexerService.

    create_app() configures the instance; routers fail with 500 until then.
    """
    if _service is None:
        raise HTTPException(status_code=500, detail="Indexer service not initialized")
    return _service


def configure_service(service: Optional[IndexerService]):
    """
    Configure the service used by every router.

    Args:
        service: Initialized IndexerService instance, or None to reset
    """
    global _service
    _service = service
    if service is not None:
        logger.info("Configured IndexerService for dependency injection")


def validate_address(address: str) -> str:
    if not _ADDRESS.match(address):
        raise ValidationError(f"Invalid address: {address}")
    return address.lower()
