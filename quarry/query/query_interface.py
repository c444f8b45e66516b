"""
Unified query interface for Quarry.

A Session ties a frozen registry, a compiler and an executor together and
hands out chainable Query builders:

    session = Session(registry, storage)
    posts = (
        session.query('Post')
        .scope('published')
        .includes('comments')
        .only('title', 'created_at')
        .where(author_id=7)
        .all()
    )
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from quarry.config import QuarrySettings, settings as default_settings
from quarry.core.record import Record
from quarry.core.registry import SchemaRegistry
from quarry.query.compiler import EntityRef, ScopeCompiler, ScopeRef
from quarry.query.executor import QueryExecutor
from quarry.query.plan import COLLECTION, SINGLE, QueryPlan
from quarry.query.predicate import PredicateFragment, where as comparison
from quarry.storage.base import StorageBackend


class Query:
    """
    Immutable query builder; every method returns a new Query.

    Nothing touches storage until ``all()``, ``first()`` or iteration.
    """

    def __init__(
        self,
        session: 'Session',
        entity: EntityRef,
        predicates: Tuple[PredicateFragment, ...] = (),
        include_list: Tuple[str, ...] = (),
        projection: Tuple[str, ...] = (),
        scopes: Tuple[ScopeRef, ...] = (),
        order_by: Tuple[str, ...] = (),
        limit: Optional[int] = None
    ):
        self.session = session
        self.entity = entity
        self._predicates = predicates
        self._includes = include_list
        self._projection = projection
        self._scopes = scopes
        self._order_by = order_by
        self._limit = limit

    def _copy(self, **changes: Any) -> 'Query':
        state = {
            'predicates': self._predicates,
            'include_list': self._includes,
            'projection': self._projection,
            'scopes': self._scopes,
            'order_by': self._order_by,
            'limit': self._limit,
        }
        state.update(changes)
        return Query(self.session, self.entity, **state)

    def where(self, *fragments: Any, **equals: Any) -> 'Query':
        """
        Add predicates, ANDed with the existing ones.

        Examples:
            q.where(status='published')
            q.where('status', 'published')
            q.where('score', '>=', 10)
            q.where(eq('status', 'draft') | eq('status', 'review'))
        """
        if len(fragments) == 2 and isinstance(fragments[0], str):
            fragments = (comparison(fragments[0], '=', fragments[1]),)
        elif len(fragments) == 3 and isinstance(fragments[0], str):
            fragments = (comparison(*fragments),)
        added = tuple(fragments) + ((equals,) if equals else ())
        return self._copy(predicates=self._predicates + added)

    def includes(self, *relations: str) -> 'Query':
        """Eager-load relations (dotted paths for nested ones)."""
        return self._copy(include_list=self._includes + relations)

    def only(self, *fields: str) -> 'Query':
        """Restrict the fields records expose."""
        return self._copy(projection=self._projection + fields)

    def scope(self, *scopes: ScopeRef) -> 'Query':
        return self._copy(scopes=self._scopes + scopes)

    def order_by(self, *terms: str) -> 'Query':
        return self._copy(order_by=self._order_by + terms)

    def limit(self, limit: int) -> 'Query':
        return self._copy(limit=limit)

    def plan(self, cardinality: str = COLLECTION) -> QueryPlan:
        return self.session.compiler.compile(
            self.entity,
            self._predicates,
            self._includes,
            self._projection,
            scopes=self._scopes,
            order_by=self._order_by,
            limit=self._limit,
            cardinality=cardinality,
        )

    def all(self) -> List[Record]:
        return self.session.executor.execute(self.plan())

    def first(self) -> Optional[Record]:
        return self.session.executor.execute(self.plan(SINGLE))

    def explain(self) -> Dict[str, Any]:
        return self.session.executor.explain(self.plan())

    def __iter__(self):
        return iter(self.all())

    def __repr__(self) -> str:
        return f"Query({self.plan()!r})"


class Session:
    """
    Main entry point.

    The registry is frozen on construction so that nothing can change the
    schema while queries are running.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        storage: StorageBackend,
        settings: Optional[QuarrySettings] = None
    ):
        """
        Initialize a session.

        Args:
            registry: Schema; frozen here if it isn't already
            storage: Backend rows are read from
            settings: Defaults to the shared ``quarry.config.settings``
        """
        self.registry = registry.freeze()
        self.storage = storage
        self.settings = settings or default_settings
        self.compiler = ScopeCompiler(self.registry)
        self.executor = QueryExecutor(self.registry, storage, self.settings)

    def query(self, entity: EntityRef) -> Query:
        # Fail fast on unknown entities
        self.registry.lookup(entity if isinstance(entity, str) else entity.name)
        return Query(self, entity)

    def compile(self, entity: EntityRef, predicate_fragments: Sequence[PredicateFragment] = (),
                include_list: Sequence[str] = (), projection_list: Sequence[str] = (),
                **options: Any) -> QueryPlan:
        return self.compiler.compile(entity, predicate_fragments, include_list, projection_list, **options)

    def execute(self, plan: QueryPlan):
        return self.executor.execute(plan)

    def get_stats(self) -> Dict[str, Any]:
        """Get query execution statistics."""
        return self.executor.get_stats()


# Convenience function for one-off queries
def query(registry: SchemaRegistry, storage: StorageBackend, entity: EntityRef) -> Query:
    """
    Start a query without keeping a Session around.

    Example:
        from quarry.query import query

        titles = [p.title for p in query(registry, storage, 'Post').only('title')]
    """
    return Session(registry, storage).query(entity)
