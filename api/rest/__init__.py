"""REST API package."""
from .app import create_app
from .dependencies import configure_service, get_service

__all__ = ['create_app', 'configure_service', 'get_service']
