"""
ScopeCompiler: turns query directives into a validated QueryPlan.

All schema checks happen here, before any storage call is made:
unknown relations, unknown fields in projections, predicates or orderings,
and scopes bound to the wrong entity are rejected at compile time.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from quarry.core.entity import EntityDefinition
from quarry.core.registry import SchemaRegistry
from quarry.exceptions import InvalidScope
from quarry.query.plan import COLLECTION, SINGLE, IncludePlan, OrderTerm, QueryPlan
from quarry.query.predicate import PredicateFragment, conjoin, from_fragment
from quarry.query.scope import Scope, merge_limit, merge_ordering

logger = logging.getLogger(__name__)

EntityRef = Union[str, EntityDefinition]
ScopeRef = Union[str, Scope]


class ScopeCompiler:
    """
    Compile predicates, includes, projections and scopes into a QueryPlan.

    Composition rules:
    - predicate fragments and scope predicates are ANDed
    - include lists are unioned and deduplicated
    - projection lists are unioned; an empty projection means all fields
    """

    def __init__(self, registry: SchemaRegistry):
        self.registry = registry

    def compile(
        self,
        entity: EntityRef,
        predicate_fragments: Iterable[PredicateFragment] = (),
        include_list: Iterable[str] = (),
        projection_list: Iterable[str] = (),
        *,
        scopes: Iterable[ScopeRef] = (),
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
        cardinality: str = COLLECTION
    ) -> QueryPlan:
        """
        Build a plan.

        Args:
            entity: Root entity name or definition
            predicate_fragments: Predicates or ``{field: value}`` mappings
            include_list: Relation names (dotted for nested) to eager-load
            projection_list: Fields to expose; empty for all
            scopes: Scope names (looked up in the registry) or Scope objects
            order_by: Field names, ``-`` prefix for descending
            limit: Maximum number of root rows
            cardinality: 'collection' or 'single'

        Returns:
            Validated QueryPlan
        """
        definition = self._resolve_entity(entity)

        if cardinality not in (SINGLE, COLLECTION):
            raise ValueError(f"Unsupported cardinality: {cardinality}")
        if limit is not None and limit < 0:
            raise ValueError(f"Limit must not be negative: {limit}")

        resolved_scopes = self._resolve_scopes(definition, scopes)

        # Predicates: explicit fragments first, then scopes in application order
        predicates = [from_fragment(fragment) for fragment in predicate_fragments]
        predicates.extend(scope.predicate for scope in resolved_scopes)
        predicate = conjoin(predicates)
        if predicate is not None:
            for field_name in predicate.fields():
                definition.require_field(field_name)

        includes = list(include_list)
        projection = list(projection_list)
        orderings: List[Sequence[str]] = [order_by]
        limits = [limit]
        for scope in resolved_scopes:
            includes.extend(scope.includes)
            projection.extend(scope.projection)
            orderings.append(scope.order_by)
            limits.append(scope.limit)

        plan = QueryPlan(
            entity=definition,
            projection=self._compile_projection(definition, projection),
            predicate=predicate,
            includes=self._compile_includes(definition, includes),
            cardinality=cardinality,
            order_by=self._compile_ordering(definition, merge_ordering(*orderings)),
            limit=merge_limit(*limits),
            scopes=tuple(dict.fromkeys(scope.name for scope in resolved_scopes)),
        )

        logger.debug("Compiled %r", plan)
        return plan

    def _resolve_entity(self, entity: EntityRef) -> EntityDefinition:
        if isinstance(entity, EntityDefinition):
            # Make sure the definition is the registered one
            return self.registry.lookup(entity.name)
        return self.registry.lookup(entity)

    def _resolve_scopes(self, definition: EntityDefinition, scopes: Iterable[ScopeRef]) -> List[Scope]:
        resolved: List[Scope] = []
        for scope in scopes:
            if isinstance(scope, str):
                scope = self.registry.get_scope(definition.name, scope)
            if scope.entity != definition.name:
                raise InvalidScope(scope.name, scope.entity, definition.name)
            if scope not in resolved:
                resolved.append(scope)
        return resolved

    def _compile_projection(self, definition: EntityDefinition, fields: Iterable[str]) -> Tuple[str, ...]:
        projection: List[str] = []
        for field_name in fields:
            definition.require_field(field_name)
            if field_name not in projection:
                projection.append(field_name)
        return tuple(projection)

    def _compile_includes(self, definition: EntityDefinition, paths: Iterable[str]) -> Tuple[IncludePlan, ...]:
        """
        Resolve include paths, adding implied parents ('comments' for
        'comments.author') and ordering every parent before its children.
        """
        planned = {}
        for path in paths:
            source = definition
            parent_path = ''
            for name in path.split('.'):
                relation = source.relation(name)
                current = f"{parent_path}.{name}" if parent_path else name
                target = self.registry.lookup(relation.target)
                if current not in planned:
                    planned[current] = IncludePlan(current, parent_path, source, relation, target)
                source = target
                parent_path = current

        # Stable sort keeps first-seen order within a level
        return tuple(sorted(planned.values(), key=lambda include: include.depth))

    def _compile_ordering(self, definition: EntityDefinition, terms: Iterable[str]) -> Tuple[OrderTerm, ...]:
        ordering = []
        for term in terms:
            parsed = OrderTerm.parse(term)
            definition.require_field(parsed.field)
            ordering.append(parsed)
        return tuple(ordering)
