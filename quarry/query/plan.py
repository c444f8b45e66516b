"""
Compiled query plans.

Plans are frozen and compare by value. They are built once per query by
the ScopeCompiler and thrown away after the executor has run them.
"""

from typing import Optional, Tuple
from dataclasses import dataclass

from quarry.core.entity import EntityDefinition, Relation
from quarry.query.predicate import Predicate

SINGLE = 'single'
COLLECTION = 'collection'


@dataclass(frozen=True)
class OrderTerm:
    field: str
    descending: bool = False

    @classmethod
    def parse(cls, term: str) -> 'OrderTerm':
        if term.startswith('-'):
            return cls(term[1:], True)
        return cls(term, False)

    def __str__(self) -> str:
        return f"-{self.field}" if self.descending else self.field


@dataclass(frozen=True)
class IncludePlan:
    """
    One eager-loaded relation path.

    ``parent_path`` is '' for relations of the root entity and the dotted
    path of the parent include otherwise ('comments' for 'comments.author').
    """

    path: str
    parent_path: str
    source: EntityDefinition
    relation: Relation
    target: EntityDefinition

    @property
    def depth(self) -> int:
        return self.path.count('.')


@dataclass(frozen=True)
class QueryPlan:
    """
    Everything the executor needs to run one query.

    ``projection`` is what the caller asked for (empty means all declared
    fields); ``fields`` is the resolved list the records will expose.
    """

    entity: EntityDefinition
    projection: Tuple[str, ...]
    predicate: Optional[Predicate]
    includes: Tuple[IncludePlan, ...]
    cardinality: str = COLLECTION
    order_by: Tuple[OrderTerm, ...] = ()
    limit: Optional[int] = None
    scopes: Tuple[str, ...] = ()

    @property
    def fields(self) -> Tuple[str, ...]:
        return self.projection or self.entity.field_names

    @property
    def fetch_fields(self) -> Tuple[str, ...]:
        """Projected fields plus the join columns the executor needs."""
        fields = list(self.fields)
        for name in self.entity.join_fields():
            if name not in fields:
                fields.append(name)
        return tuple(fields)

    @property
    def include_paths(self) -> Tuple[str, ...]:
        return tuple(include.path for include in self.includes)

    @property
    def is_single(self) -> bool:
        return self.cardinality == SINGLE

    @property
    def fetch_limit(self) -> Optional[int]:
        if self.is_single:
            return 1 if self.limit is None else min(self.limit, 1)
        return self.limit

    def expected_fetches(self) -> int:
        """Storage calls the plan costs: one for the root, one per include."""
        return 1 + len(self.includes)

    def __repr__(self) -> str:
        return (
            f"QueryPlan(entity={self.entity.name}, fields={list(self.fields)}, "
            f"predicate={self.predicate!r}, includes={list(self.include_paths)}, "
            f"cardinality={self.cardinality})"
        )
