"""
Local-first client side: entity store, resolver, sync client and backups.
"""
from expense_tracker.local.backends import KeyValueBackend, MemoryBackend, SqliteBackend
from expense_tracker.local.resolver import EntityResolver, ReceiptLine
from expense_tracker.local.store import Store, close_store, open_store
from expense_tracker.local.sync_client import SyncClient

__all__ = [
    "KeyValueBackend",
    "MemoryBackend",
    "SqliteBackend",
    "EntityResolver",
    "ReceiptLine",
    "Store",
    "close_store",
    "open_store",
    "SyncClient",
]
