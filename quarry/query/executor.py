"""
Query Executor for Quarry

Runs compiled plans against a storage backend with the smallest number of
storage calls:

1. One fetch for the root entity (predicate, projection, ordering, limit)
2. One fetch per eager-loaded relation path, covering every parent row at
   once through an ``in`` filter over the parent keys
3. Assembly of nested records by matching foreign keys

Relations that were not eager-loaded stay deferred and are fetched on
first access, one record at a time. That is the N+1 pattern, so the
configured lazy-load policy can warn about it or forbid it.
"""

from typing import Any, Dict, List, Optional, Sequence, Union
from collections import defaultdict
import logging
import time

from quarry.config import QuarrySettings, settings as default_settings
from quarry.core.entity import EntityDefinition
from quarry.core.record import Record
from quarry.core.registry import SchemaRegistry
from quarry.exceptions import LazyLoadForbidden, StorageUnavailable
from quarry.query.plan import IncludePlan, OrderTerm, QueryPlan
from quarry.query.predicate import Comparison, Predicate, conjuncts, describe, eq, in_
from quarry.storage.base import StorageBackend

logger = logging.getLogger(__name__)


def _unique(values) -> List[Any]:
    seen = {}
    for value in values:
        if value is not None and value not in seen:
            seen[value] = None
    return list(seen)


class QueryExecutor:
    """
    Execute QueryPlans with batched eager loading.

    A plan either succeeds completely or raises before any record is
    returned; storage failures are not retried here.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        storage: StorageBackend,
        settings: Optional[QuarrySettings] = None
    ):
        """
        Initialize query executor.

        Args:
            registry: Schema used to resolve deferred relations
            storage: Backend rows are read from
            settings: Lazy-load policy and cost constants
        """
        self.registry = registry
        self.storage = storage
        self.settings = settings or default_settings

        # Execution statistics
        self.stats = {
            'total_queries': 0,
            'failed_queries': 0,
            'total_fetches': 0,
            'lazy_loads': 0,
            'total_execution_time_ms': 0.0,
        }

    def execute(self, plan: QueryPlan) -> Union[Optional[Record], List[Record]]:
        """
        Execute a compiled plan.

        Args:
            plan: Plan from ScopeCompiler.compile()

        Returns:
            A list of records, or a single record (None when nothing
            matched) for single-cardinality plans
        """
        start_time = time.time()

        try:
            rows = self._fetch(
                plan.entity, plan.predicate, plan.fetch_fields, plan.order_by, plan.fetch_limit
            )
            records = [self._record(plan.entity, row, plan.fields) for row in rows]

            # Parents are always planned before their children
            loaded: Dict[str, List[Record]] = {'': records}
            for include in plan.includes:
                loaded[include.path] = self._load_include(include, loaded[include.parent_path])
        except StorageUnavailable:
            self.stats['failed_queries'] += 1
            raise

        execution_time_ms = (time.time() - start_time) * 1000
        self.stats['total_queries'] += 1
        self.stats['total_execution_time_ms'] += execution_time_ms
        logger.debug(
            "Executed %s query: %d rows, %d includes in %.2fms",
            plan.entity.name, len(records), len(plan.includes), execution_time_ms
        )

        if plan.is_single:
            return records[0] if records else None
        return records

    def _fetch(
        self,
        entity: EntityDefinition,
        predicate: Optional[Predicate],
        projection: Sequence[str],
        order_by: Sequence[OrderTerm] = (),
        limit: Optional[int] = None
    ):
        logger.debug("Fetch %s where %r", entity.name, predicate)
        self.stats['total_fetches'] += 1
        return self.storage.fetch(entity, predicate, projection, order_by, limit)

    def _record(self, definition: EntityDefinition, row, fields) -> Record:
        return Record(definition, row, fields, loader=self._lazy_load)

    def _load_include(self, include: IncludePlan, parents: List[Record]) -> List[Record]:
        """
        Fetch one relation for every parent in a single call and attach it.

        The fetch is issued even when there are no parent keys, so a plan
        always costs exactly ``plan.expected_fetches()`` storage calls.

        Returns:
            The distinct related records, parents for the next level
        """
        relation = include.relation
        target = include.target
        fields = target.field_names

        if relation.is_many:
            keys = _unique(parent.key for parent in parents)
            rows = self._fetch(target, in_(relation.foreign_key, keys), fields)
            children = [self._record(target, row, fields) for row in rows]

            grouped: Dict[Any, List[Record]] = defaultdict(list)
            for child in children:
                grouped[child.raw(relation.foreign_key)].append(child)

            for parent in parents:
                parent.set_relation(relation.name, list(grouped.get(parent.key, ())))
            return children

        keys = _unique(parent.raw(relation.foreign_key) for parent in parents)
        rows = self._fetch(target, in_(target.primary_key, keys), fields)
        by_key = {}
        for row in rows:
            child = self._record(target, row, fields)
            by_key[child.key] = child

        for parent in parents:
            parent.set_relation(relation.name, by_key.get(parent.raw(relation.foreign_key)))
        return list(by_key.values())

    def _lazy_load(self, record: Record, relation_name: str):
        """Load one deferred relation for one record."""
        relation = record.definition.relation(relation_name)
        policy = self.settings.lazy_load

        if policy == 'raise':
            raise LazyLoadForbidden(record.entity, relation_name)
        if policy == 'warn':
            logger.warning(
                "Lazy load of %s.%s; include it in the query to avoid one fetch per row",
                record.entity, relation_name
            )

        target = self.registry.lookup(relation.target)
        fields = target.field_names

        if relation.is_many:
            if record.key is None:
                return []
            self.stats['lazy_loads'] += 1
            rows = self._fetch(target, eq(relation.foreign_key, record.key), fields)
            return [self._record(target, row, fields) for row in rows]

        foreign_key = record.raw(relation.foreign_key)
        if foreign_key is None:
            return None
        self.stats['lazy_loads'] += 1
        rows = self._fetch(target, eq(target.primary_key, foreign_key), fields, limit=1)
        return self._record(target, rows[0], fields) if rows else None

    def explain(self, plan: QueryPlan) -> Dict[str, Any]:
        """
        Describe how a plan would run (like SQL EXPLAIN), without running it.

        Shows the access path chosen for each fetch from the declared
        indices, and an estimated cost from the configured scan and lookup
        costs.
        """
        root_access = self._root_access(plan.entity, plan.predicate)
        fetches = [dict(root_access, path='', entity=plan.entity.name)]

        for include in plan.includes:
            if include.relation.is_many:
                key_field = include.relation.foreign_key
            else:
                key_field = include.target.primary_key
            fetches.append(dict(
                self._access(include.target.name, key_field),
                path=include.path,
                entity=include.target.name,
            ))

        return {
            'entity': plan.entity.name,
            'fields': list(plan.fields),
            'predicate': describe(plan.predicate),
            'includes': list(plan.include_paths),
            'scopes': list(plan.scopes),
            'cardinality': plan.cardinality,
            'order_by': [str(term) for term in plan.order_by],
            'limit': plan.fetch_limit,
            'expected_fetches': plan.expected_fetches(),
            'fetches': fetches,
            'estimated_cost': sum(f['estimated_cost'] for f in fetches),
        }

    def _root_access(self, definition: EntityDefinition, predicate: Optional[Predicate]) -> Dict[str, Any]:
        # Same preference as the storage backends: exact match, then range
        terms = [
            term for term in conjuncts(predicate)
            if isinstance(term, Comparison) and term.value is not None
            and self.registry.is_indexed(definition.name, term.field)
        ]

        for term in terms:
            if term.operator in ('=', 'in'):
                return self._access(definition.name, term.field)

        for term in terms:
            if term.operator in ('<', '<=', '>', '>='):
                return {
                    'access': 'index_range',
                    'index_field': term.field,
                    'unique': self.registry.is_unique(definition.name, term.field),
                    'estimated_cost': self.settings.range_cost,
                }

        return {'access': 'full_scan', 'index_field': None, 'estimated_cost': self.settings.scan_cost}

    def _access(self, entity_name: str, field_name: str) -> Dict[str, Any]:
        if self.registry.is_indexed(entity_name, field_name):
            return {
                'access': 'index_lookup',
                'index_field': field_name,
                'unique': self.registry.is_unique(entity_name, field_name),
                'estimated_cost': self.settings.lookup_cost,
            }
        return {'access': 'full_scan', 'index_field': None, 'estimated_cost': self.settings.scan_cost}

    def get_stats(self) -> Dict[str, Any]:
        """Get execution statistics."""
        stats = dict(self.stats)
        if stats['total_queries'] > 0:
            stats['avg_execution_time_ms'] = stats['total_execution_time_ms'] / stats['total_queries']
            stats['avg_fetches_per_query'] = (
                (stats['total_fetches'] - stats['lazy_loads']) / stats['total_queries']
            )
        return stats

    def reset_stats(self) -> None:
        for key in self.stats:
            self.stats[key] = 0.0 if key.endswith('_ms') else 0
