"""REST backend package."""

from finbot.api.document import COLLECTION_KEYS, ServerDocumentStore, default_document
from finbot.api.server import ApiError, create_app

__all__ = [
    "COLLECTION_KEYS",
    "ServerDocumentStore",
    "default_document",
    "ApiError",
    "create_app",
]
