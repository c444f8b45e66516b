"""
Storage backends for Quarry.

Backends implement a single read operation, ``fetch``. The SQLAlchemy
backend is imported from ``quarry.storage.sql``.
"""

from quarry.storage.base import StorageBackend
from quarry.storage.collection import Collection, Index
from quarry.storage.memory import MemoryStorage

__all__ = ['StorageBackend', 'Collection', 'Index', 'MemoryStorage']
