"""
In-memory storage backend.

Keeps one Collection per registered entity and serves fetches from it,
using a value index when the predicate pins an indexed field by equality,
membership or a range bound. Handy for tests and for counting storage round trips.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from quarry.core.entity import EntityDefinition
from quarry.core.registry import SchemaRegistry
from quarry.exceptions import StorageUnavailable
from quarry.query.plan import OrderTerm
from quarry.query.predicate import Comparison, Predicate, conjuncts
from quarry.storage.base import Row, StorageBackend
from quarry.storage.collection import Collection

logger = logging.getLogger(__name__)

# Range operator -> (which bound it sets, whether the bound is inclusive)
RANGE_BOUNDS = {
    '>': ('min', False),
    '>=': ('min', True),
    '<': ('max', False),
    '<=': ('max', True),
}


class MemoryStorage(StorageBackend):
    """
    Dict-backed storage.

    Example:
        storage = MemoryStorage(registry)
        storage.load('Post', [{'id': 1, 'title': 'Hello'}])
        rows = storage.fetch(registry.lookup('Post'), None, ['id', 'title'])
    """

    def __init__(self, registry: SchemaRegistry):
        self.registry = registry
        self._collections: Dict[str, Collection] = {}

        for definition in registry.entities():
            collection = Collection(definition)
            for descriptor in registry.indexes_for(definition.name):
                collection.create_index(descriptor.leading_field)
            self._collections[definition.name] = collection

        self.available = True

        # Every fetch issued, as (entity name, predicate)
        self.fetch_log: List[Tuple[str, Optional[Predicate]]] = []

    @property
    def fetch_count(self) -> int:
        return len(self.fetch_log)

    def reset_log(self) -> None:
        self.fetch_log = []

    def collection(self, entity_name: str) -> Collection:
        if entity_name not in self._collections:
            # Raises UnknownEntity for names the registry doesn't know
            self.registry.lookup(entity_name)
        return self._collections[entity_name]

    def load(self, entity_name: str, rows: Iterable[Row]) -> int:
        """Seed rows for an entity. Returns the number of rows loaded."""
        collection = self.collection(entity_name)
        count = 0
        for row in rows:
            collection.add_row(row)
            count += 1
        return count

    def fetch(
        self,
        entity: EntityDefinition,
        predicate: Optional[Predicate],
        projection: Sequence[str],
        order_by: Sequence[OrderTerm] = (),
        limit: Optional[int] = None
    ) -> List[Row]:
        self.fetch_log.append((entity.name, predicate))

        if not self.available:
            raise StorageUnavailable("In-memory storage is offline", entity=entity.name)

        collection = self.collection(entity.name)
        candidates = self._candidates(collection, predicate)

        if predicate is not None:
            candidates = [row for row in candidates if predicate.evaluate(row)]

        candidates = _sort_rows(candidates, order_by)

        if limit is not None:
            candidates = candidates[:limit]

        return [{name: row.get(name) for name in projection} for row in candidates]

    def _candidates(self, collection: Collection, predicate: Optional[Predicate]) -> List[Row]:
        """
        Narrow the rows to check with an index when the predicate allows.

        Equality and membership terms are preferred over range terms. The
        caller still evaluates the whole predicate on what comes back.
        """
        terms = [
            term for term in conjuncts(predicate)
            if isinstance(term, Comparison) and term.value is not None and collection.has_index(term.field)
        ]

        for term in terms:
            if term.operator == '=':
                logger.debug("Index lookup on %s.%s", collection.name, term.field)
                return collection.lookup(term.field, value=term.value)
            if term.operator == 'in':
                logger.debug("Index membership lookup on %s.%s", collection.name, term.field)
                return collection.lookup(term.field, values=term.value)

        for term in terms:
            if term.operator in RANGE_BOUNDS:
                logger.debug("Index range lookup on %s.%s", collection.name, term.field)
                bound, inclusive = RANGE_BOUNDS[term.operator]
                if bound == 'min':
                    return collection.lookup_range(term.field, min_value=term.value, min_inclusive=inclusive)
                return collection.lookup_range(term.field, max_value=term.value, max_inclusive=inclusive)

        return collection.scan()


def _sort_rows(rows: List[Row], order_by: Sequence[OrderTerm]) -> List[Row]:
    # Stable sorts from the last term to the first; None sorts last
    for term in reversed(order_by):
        present = [r for r in rows if r.get(term.field) is not None]
        missing = [r for r in rows if r.get(term.field) is None]
        present.sort(key=lambda r: r[term.field], reverse=term.descending)
        rows = present + missing
    return rows
