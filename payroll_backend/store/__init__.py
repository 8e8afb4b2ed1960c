"""
Store clients for the payroll data store.

The store is reached only through these clients; see ``StoreClient`` for
the contract shared by every implementation.
"""

from .client import Collections, StoreClient, deadline_scope, remaining_time
from .sql_store import SQLStoreClient

__all__ = [
    'Collections',
    'StoreClient',
    'SQLStoreClient',
    'deadline_scope',
    'remaining_time',
]
