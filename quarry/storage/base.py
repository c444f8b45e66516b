"""
Storage backend contract.

The executor talks to storage through a single read operation. Backends
return plain row mappings in a stable order and raise StorageUnavailable
when they cannot be reached; they never retry on their own.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from quarry.core.entity import EntityDefinition
from quarry.query.plan import OrderTerm
from quarry.query.predicate import Predicate

Row = Dict[str, Any]


class StorageBackend(ABC):
    """Read-only source of rows for registered entities."""

    @abstractmethod
    def fetch(
        self,
        entity: EntityDefinition,
        predicate: Optional[Predicate],
        projection: Sequence[str],
        order_by: Sequence[OrderTerm] = (),
        limit: Optional[int] = None
    ) -> List[Row]:
        """
        Fetch rows of ``entity`` matching ``predicate``.

        Args:
            entity: Entity to read
            predicate: Filter, or None for every row
            projection: Columns to return
            order_by: Sort terms, applied before ``limit``
            limit: Maximum number of rows

        Returns:
            Rows restricted to ``projection``
        """
