"""
Document store adapters.
"""
from .base import ABORT, DocumentStore, TransactionResult, join_path, split_path
from .memory import InMemoryDocumentStore
from .sql import SQLDocumentStore

__all__ = [
    "ABORT",
    "DocumentStore",
    "TransactionResult",
    "join_path",
    "split_path",
    "InMemoryDocumentStore",
    "SQLDocumentStore",
]
