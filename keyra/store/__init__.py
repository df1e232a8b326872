"""Content-addressed object store client."""

from .client import ConnectionState, StoreClient

__all__ = ["ConnectionState", "StoreClient"]
