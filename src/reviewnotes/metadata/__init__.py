"""Review metadata stores."""

from reviewnotes.metadata.base import MetadataStore
from reviewnotes.metadata.json_store import JsonMetadataStore, adapt_record
from reviewnotes.metadata.memory import InMemoryMetadataStore

__all__ = [
    "MetadataStore",
    "InMemoryMetadataStore",
    "JsonMetadataStore",
    "adapt_record",
]
