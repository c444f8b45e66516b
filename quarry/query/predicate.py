"""
Predicate trees for WHERE clauses.

Predicates are immutable values: two predicates built from the same parts
compare equal, which is what lets scope composition drop duplicates.
Backends either evaluate them row by row (``evaluate``) or compile them to
their own query language.

Row evaluation follows SQL three-valued logic: a comparison against NULL
is unknown rather than false, and NOT of unknown stays unknown. Only rows
whose predicate is definitely true match.
"""

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union
from dataclasses import dataclass

OPERATORS = ('=', '!=', '<', '<=', '>', '>=', 'in', 'is_null')


class Predicate:
    """Base class for predicate nodes."""

    def evaluate(self, row: Mapping[str, Any]) -> bool:
        """True only when the row definitely matches."""
        return self.truth(row) is True

    def truth(self, row: Mapping[str, Any]) -> Optional[bool]:
        """Three-valued result: True, False, or None for unknown."""
        raise NotImplementedError

    def fields(self) -> Iterator[str]:
        """Yield every field name the predicate reads."""
        raise NotImplementedError

    def __and__(self, other: 'Predicate') -> 'Predicate':
        return conjoin([self, other])

    def __or__(self, other: 'Predicate') -> 'Predicate':
        return Or((self, other))

    def __invert__(self) -> 'Predicate':
        return Not(self)


@dataclass(frozen=True)
class Comparison(Predicate):
    field: str
    operator: str
    value: Any = None

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.operator}")
        if self.operator == 'in':
            # Keep membership sets hashable and order-stable
            object.__setattr__(self, 'value', tuple(self.value))
        if self.operator == 'is_null':
            object.__setattr__(self, 'value', bool(True if self.value is None else self.value))

    def truth(self, row: Mapping[str, Any]) -> Optional[bool]:
        actual = row.get(self.field)

        if self.operator == 'is_null':
            return (actual is None) == self.value

        if self.operator == 'in':
            # Membership in nothing is false, even for NULL
            if not self.value:
                return False
            if actual is None:
                return None
            if actual in self.value:
                return True
            return None if None in self.value else False

        # Any comparison involving NULL is unknown
        if actual is None or self.value is None:
            return None

        try:
            if self.operator == '=':
                return actual == self.value
            elif self.operator == '!=':
                return actual != self.value
            elif self.operator == '<':
                return actual < self.value
            elif self.operator == '<=':
                return actual <= self.value
            elif self.operator == '>':
                return actual > self.value
            else:  # >=
                return actual >= self.value
        except TypeError:
            # Incomparable types never match, negated or not
            return None

    def fields(self) -> Iterator[str]:
        yield self.field

    def __repr__(self) -> str:
        return f"({self.field} {self.operator} {self.value!r})"


@dataclass(frozen=True)
class And(Predicate):
    children: Tuple[Predicate, ...]

    def __post_init__(self):
        object.__setattr__(self, 'children', tuple(self.children))

    def truth(self, row: Mapping[str, Any]) -> Optional[bool]:
        result: Optional[bool] = True
        for child in self.children:
            value = child.truth(row)
            if value is False:
                return False
            if value is None:
                result = None
        return result

    def fields(self) -> Iterator[str]:
        for child in self.children:
            yield from child.fields()

    def __repr__(self) -> str:
        return '(' + ' AND '.join(repr(c) for c in self.children) + ')'


@dataclass(frozen=True)
class Or(Predicate):
    children: Tuple[Predicate, ...]

    def __post_init__(self):
        object.__setattr__(self, 'children', tuple(self.children))

    def truth(self, row: Mapping[str, Any]) -> Optional[bool]:
        result: Optional[bool] = False
        for child in self.children:
            value = child.truth(row)
            if value is True:
                return True
            if value is None:
                result = None
        return result

    def fields(self) -> Iterator[str]:
        for child in self.children:
            yield from child.fields()

    def __repr__(self) -> str:
        return '(' + ' OR '.join(repr(c) for c in self.children) + ')'


@dataclass(frozen=True)
class Not(Predicate):
    child: Predicate

    def truth(self, row: Mapping[str, Any]) -> Optional[bool]:
        value = self.child.truth(row)
        return None if value is None else not value

    def fields(self) -> Iterator[str]:
        return self.child.fields()

    def __repr__(self) -> str:
        return f"NOT {self.child!r}"


PredicateFragment = Union[Predicate, Mapping[str, Any]]


def eq(field: str, value: Any) -> Comparison:
    return Comparison(field, '=', value)


def in_(field: str, values: Iterable[Any]) -> Comparison:
    return Comparison(field, 'in', tuple(values))


def is_null(field: str, null: bool = True) -> Comparison:
    return Comparison(field, 'is_null', null)


def where(field: str, operator: str, value: Any = None) -> Comparison:
    """
    Build a comparison in the familiar ``field, operator, value`` order.

    Example:
        where('score', '>=', 10)
    """
    return Comparison(field, operator, value)


def from_fragment(fragment: PredicateFragment) -> Predicate:
    """Turn a ``{field: value}`` mapping into equality comparisons."""
    if isinstance(fragment, Predicate):
        return fragment
    if isinstance(fragment, Mapping):
        comparisons = [eq(k, v) for k, v in fragment.items()]
        if not comparisons:
            raise ValueError("Empty predicate fragment")
        return conjoin(comparisons)
    raise TypeError(f"Unsupported predicate fragment: {fragment!r}")


def conjoin(predicates: Iterable[Optional[Predicate]]) -> Optional[Predicate]:
    """
    AND predicates together.

    Nested conjunctions are flattened and structurally equal terms kept
    once, in first-seen order. Returns None for no predicates and the bare
    term for a single one.
    """
    terms: List[Predicate] = []
    for predicate in predicates:
        if predicate is None:
            continue
        parts = predicate.children if isinstance(predicate, And) else (predicate,)
        for part in parts:
            if part not in terms:
                terms.append(part)

    if not terms:
        return None
    if len(terms) == 1:
        return terms[0]
    return And(tuple(terms))


def conjuncts(predicate: Optional[Predicate]) -> Tuple[Predicate, ...]:
    """Top-level AND terms of a predicate."""
    if predicate is None:
        return ()
    if isinstance(predicate, And):
        return predicate.children
    return (predicate,)


def describe(predicate: Optional[Predicate]) -> Dict[str, Any]:
    """Plain-dict form of a predicate, for explain() output and logs."""
    if predicate is None:
        return {}
    if isinstance(predicate, Comparison):
        return {'field': predicate.field, 'op': predicate.operator, 'value': predicate.value}
    if isinstance(predicate, And):
        return {'and': [describe(c) for c in predicate.children]}
    if isinstance(predicate, Or):
        return {'or': [describe(c) for c in predicate.children]}
    if isinstance(predicate, Not):
        return {'not': describe(predicate.child)}
    raise TypeError(f"Unsupported predicate: {predicate!r}")
