"""
Collection: table-like storage of rows for one entity.

Rows are kept by primary key in insertion order. Value indexes give
exact-match, membership and range lookups on a field without scanning
every row.
"""

from typing import Any, Dict, Iterable, List, Optional, Set
from collections import defaultdict
import bisect

from quarry.core.entity import EntityDefinition
from quarry.storage.base import Row


class Index:
    """
    Sorted value index on a single field.

    Rows whose value is missing or None are not indexed.
    """

    def __init__(self, field_name: str):
        self.field_name = field_name
        # Parallel sorted lists for range queries
        self._sorted_values: List[Any] = []
        self._sorted_keys: List[Any] = []
        # Map from value to set of row keys for exact matches
        self._value_map: Dict[Any, Set[Any]] = defaultdict(set)

    def insert(self, key: Any, row: Row) -> None:
        value = row.get(self.field_name)
        if value is None:
            return

        self._value_map[value].add(key)
        position = bisect.bisect_right(self._sorted_values, value)
        self._sorted_values.insert(position, value)
        self._sorted_keys.insert(position, key)

    def remove(self, key: Any, row: Row) -> None:
        value = row.get(self.field_name)
        if value is None:
            return

        if value in self._value_map:
            self._value_map[value].discard(key)
            if not self._value_map[value]:
                del self._value_map[value]

        start = bisect.bisect_left(self._sorted_values, value)
        end = bisect.bisect_right(self._sorted_values, value)
        for position in range(start, end):
            if self._sorted_keys[position] == key:
                del self._sorted_values[position]
                del self._sorted_keys[position]
                break

    def lookup_exact(self, value: Any) -> Set[Any]:
        """Keys of rows whose field equals ``value``."""
        return self._value_map.get(value, set()).copy()

    def lookup_many(self, values: Iterable[Any]) -> Set[Any]:
        """Keys of rows whose field is any of ``values``."""
        keys: Set[Any] = set()
        for value in values:
            keys.update(self._value_map.get(value, ()))
        return keys

    def lookup_range(
        self,
        min_value: Any = None,
        max_value: Any = None,
        min_inclusive: bool = True,
        max_inclusive: bool = True
    ) -> Set[Any]:
        """
        Keys of rows within a value range.

        Args:
            min_value: Lower bound, None for unbounded
            max_value: Upper bound, None for unbounded
            min_inclusive: Whether rows equal to ``min_value`` match
            max_inclusive: Whether rows equal to ``max_value`` match

        Bounds that cannot be compared with the indexed values match nothing.
        """
        start, end = 0, len(self._sorted_values)

        try:
            if min_value is not None:
                find = bisect.bisect_left if min_inclusive else bisect.bisect_right
                start = find(self._sorted_values, min_value)
            if max_value is not None:
                find = bisect.bisect_right if max_inclusive else bisect.bisect_left
                end = find(self._sorted_values, max_value)
        except TypeError:
            return set()

        return set(self._sorted_keys[start:end])

    def __len__(self) -> int:
        return len(self._sorted_values)


class Collection:
    """
    Rows of one entity, keyed by primary key.

    The primary key is always indexed; other indexes are created from the
    schema's index descriptors.
    """

    def __init__(self, definition: EntityDefinition):
        self.definition = definition
        self.name = definition.name

        # Row storage (key -> row), insertion ordered
        self._rows: Dict[Any, Row] = {}
        self._position: Dict[Any, int] = {}
        self._next_position = 0

        # Indexes (field name -> Index)
        self._indexes: Dict[str, Index] = {}
        self.create_index(definition.primary_key)

    def add_row(self, row: Row) -> Any:
        """
        Add or replace a row.

        Returns:
            The row's primary key
        """
        key = row.get(self.definition.primary_key)
        if key is None:
            raise ValueError(f"{self.name} row has no {self.definition.primary_key}: {row!r}")

        previous = self._rows.get(key)
        if previous is not None:
            for index in self._indexes.values():
                index.remove(key, previous)
        else:
            self._position[key] = self._next_position
            self._next_position += 1

        # Store a copy; callers may keep mutating their dicts
        stored = dict(row)
        self._rows[key] = stored
        for index in self._indexes.values():
            index.insert(key, stored)

        return key

    def remove_row(self, key: Any) -> Optional[Row]:
        row = self._rows.pop(key, None)
        if row is not None:
            self._position.pop(key, None)
            for index in self._indexes.values():
                index.remove(key, row)
        return row

    def get_row(self, key: Any) -> Optional[Row]:
        return self._rows.get(key)

    def get_rows(self, keys: Iterable[Any]) -> List[Row]:
        """Rows for ``keys`` in insertion order; unknown keys are skipped."""
        present = [k for k in set(keys) if k in self._rows]
        present.sort(key=self._position.__getitem__)
        return [self._rows[k] for k in present]

    def scan(self) -> List[Row]:
        """Full table scan in insertion order."""
        return list(self._rows.values())

    def create_index(self, field_name: str) -> Index:
        if field_name in self._indexes:
            return self._indexes[field_name]

        index = Index(field_name)
        self._indexes[field_name] = index

        # Populate with existing rows
        for key, row in self._rows.items():
            index.insert(key, row)

        return index

    def has_index(self, field_name: str) -> bool:
        return field_name in self._indexes

    def lookup(self, field_name: str, value: Any = None, values: Optional[Iterable[Any]] = None) -> List[Row]:
        """
        Indexed lookup by exact value or membership.

        Example:
            # Exact: comments.lookup('post_id', value=1)
            # Membership: comments.lookup('post_id', values=[1, 2])
        """
        if field_name == self.definition.primary_key:
            return self.get_rows([value] if values is None else values)

        index = self._indexes[field_name]
        keys = index.lookup_exact(value) if values is None else index.lookup_many(values)
        return self.get_rows(keys)

    def lookup_range(
        self,
        field_name: str,
        min_value: Any = None,
        max_value: Any = None,
        min_inclusive: bool = True,
        max_inclusive: bool = True
    ) -> List[Row]:
        """
        Indexed range lookup, in insertion order.

        Example:
            # score > 10: posts.lookup_range('score', min_value=10, min_inclusive=False)
        """
        keys = self._indexes[field_name].lookup_range(min_value, max_value, min_inclusive, max_inclusive)
        return self.get_rows(keys)

    def count(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"Collection(name={self.name}, count={self.count()}, indexes={list(self._indexes.keys())})"
