"""
Scopes: named, reusable query fragments bound to one entity.

A scope bundles predicates, relations to include, fields to project and
optionally an ordering and a limit. Several scopes applied together give
the AND of their predicates and the union of everything else, so applying
a scope a second time changes nothing.
"""

from typing import Iterable, Optional, Sequence, Tuple
from dataclasses import dataclass

from quarry.query.predicate import Predicate, PredicateFragment, conjoin, from_fragment


def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return tuple(seen)


@dataclass(frozen=True)
class Scope:
    """
    Reusable query fragment.

    Example:
        published = Scope.define(
            'Post', 'published',
            where={'status': 'published'},
            order_by=['-created_at'],
        )
    """

    entity: str
    name: str
    predicate: Optional[Predicate] = None
    includes: Tuple[str, ...] = ()
    projection: Tuple[str, ...] = ()
    order_by: Tuple[str, ...] = ()
    limit: Optional[int] = None

    @classmethod
    def define(
        cls,
        entity: str,
        name: str,
        where: Optional[PredicateFragment] = None,
        includes: Sequence[str] = (),
        only: Sequence[str] = (),
        order_by: Sequence[str] = (),
        limit: Optional[int] = None
    ) -> 'Scope':
        predicate = from_fragment(where) if where is not None else None
        return cls(
            entity=entity,
            name=name,
            predicate=predicate,
            includes=_unique(includes),
            projection=_unique(only),
            order_by=_unique(order_by),
            limit=limit,
        )

    def merge(self, other: 'Scope') -> 'Scope':
        """Combine two scopes of the same entity into one."""
        if other.entity != self.entity:
            raise ValueError(f"Cannot merge scopes of {self.entity} and {other.entity}")
        if other == self:
            return self

        return Scope(
            entity=self.entity,
            name=self.name if other.name == self.name else f"{self.name}+{other.name}",
            predicate=conjoin([self.predicate, other.predicate]),
            includes=_unique(self.includes + other.includes),
            projection=_unique(self.projection + other.projection),
            order_by=merge_ordering(self.order_by, other.order_by),
            limit=merge_limit(self.limit, other.limit),
        )


def merge_ordering(*orderings: Sequence[str]) -> Tuple[str, ...]:
    """Concatenate orderings; the first mention of a field wins."""
    merged = []
    seen_fields = set()
    for ordering in orderings:
        for term in ordering:
            field_name = term.lstrip('-')
            if field_name not in seen_fields:
                seen_fields.add(field_name)
                merged.append(term)
    return tuple(merged)


def merge_limit(*limits: Optional[int]) -> Optional[int]:
    given = [limit for limit in limits if limit is not None]
    return min(given) if given else None
