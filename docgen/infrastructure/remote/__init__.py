"""Remote collection store: structured filters and the HTTP client."""

from docgen.infrastructure.remote.collection_client import CollectionClient
from docgen.infrastructure.remote.query import Filter, all_of

__all__ = ["CollectionClient", "Filter", "all_of"]
