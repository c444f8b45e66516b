"""
SQLAlchemy Core storage backend.

Describes every registered entity as a ``Table`` and turns fetches into
SELECT statements. Tables and indices are only described, never created:
schema management belongs to whoever owns the database.
"""

import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    cast,
    create_engine,
    not_,
    null,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from quarry.config import QuarrySettings, settings as default_settings
from quarry.core.entity import EntityDefinition
from quarry.core.registry import SchemaRegistry
from quarry.exceptions import StorageUnavailable
from quarry.query.plan import OrderTerm
from quarry.query.predicate import And, Comparison, Not, Or, Predicate
from quarry.storage.base import Row, StorageBackend

logger = logging.getLogger(__name__)

COLUMN_TYPES = {
    'int': Integer,
    'float': Float,
    'str': String,
    'text': Text,
    'bool': Boolean,
    'datetime': DateTime,
    'date': Date,
    'json': JSON,
}


def build_metadata(registry: SchemaRegistry, table_names: Optional[Dict[str, str]] = None) -> MetaData:
    """
    Describe the registry as SQLAlchemy tables.

    Args:
        registry: Schema to describe
        table_names: Optional entity name -> table name overrides
    """
    table_names = table_names or {}
    metadata = MetaData()

    for definition in registry.entities():
        columns = [
            Column(name, COLUMN_TYPES[type_tag](), primary_key=(name == definition.primary_key))
            for name, type_tag in definition.fields
        ]
        table = Table(table_names.get(definition.name, definition.name), metadata, *columns)

        for descriptor in registry.indexes_for(definition.name):
            Index(
                f"ix_{table.name}_{'_'.join(descriptor.fields)}",
                *[table.c[name] for name in descriptor.fields],
                unique=descriptor.unique,
            )

    return metadata


class SQLAlchemyStorage(StorageBackend):
    """
    Relational storage through a SQLAlchemy engine.

    Example:
        storage = SQLAlchemyStorage(registry, create_engine("postgresql://..."))
        rows = storage.fetch(registry.lookup('Post'), eq('status', 'published'), ['id', 'title'])
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        engine: Optional[Engine] = None,
        table_names: Optional[Dict[str, str]] = None,
        settings: Optional[QuarrySettings] = None
    ):
        settings = settings or default_settings
        self.registry = registry
        self.engine = engine or create_engine(settings.database_url, echo=settings.echo_sql)
        self._table_names = dict(table_names or {})
        self.metadata = build_metadata(registry, self._table_names)
        self.fetch_count = 0

    def table(self, entity_name: str) -> Table:
        self.registry.lookup(entity_name)
        return self.metadata.tables[self._table_names.get(entity_name, entity_name)]

    def fetch(
        self,
        entity: EntityDefinition,
        predicate: Optional[Predicate],
        projection: Sequence[str],
        order_by: Sequence[OrderTerm] = (),
        limit: Optional[int] = None
    ) -> List[Row]:
        table = self.table(entity.name)
        stmt = select(*[table.c[name] for name in projection])

        if predicate is not None:
            stmt = stmt.where(compile_predicate(predicate, table))

        for term in order_by:
            column = table.c[term.field]
            stmt = stmt.order_by((column.desc() if term.descending else column.asc()).nulls_last())

        if limit is not None:
            stmt = stmt.limit(limit)

        self.fetch_count += 1
        try:
            with self.engine.connect() as conn:
                result = conn.execute(stmt)
                return [dict(row._mapping) for row in result]
        except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
            logger.error("Fetch of %s failed: %s", entity.name, exc)
            raise StorageUnavailable(f"Database unavailable while reading {entity.name}", entity=entity.name) from exc


def compile_predicate(predicate: Predicate, table: Table):
    """Translate a predicate tree into a SQLAlchemy boolean expression."""
    if isinstance(predicate, And):
        return and_(*[compile_predicate(c, table) for c in predicate.children])
    if isinstance(predicate, Or):
        return or_(*[compile_predicate(c, table) for c in predicate.children])
    if isinstance(predicate, Not):
        return not_(compile_predicate(predicate.child, table))
    if not isinstance(predicate, Comparison):
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    column = table.c[predicate.field]
    op, value = predicate.operator, predicate.value

    if op == 'is_null':
        return column.is_(None) if value else column.is_not(None)
    if op == 'in':
        return column.in_(value)
    if value is None:
        # Comparing with NULL is unknown, and stays unknown under NOT
        return cast(null(), Boolean)
    if op == '=':
        return column == value
    elif op == '!=':
        return column != value
    elif op == '<':
        return column < value
    elif op == '<=':
        return column <= value
    elif op == '>':
        return column > value
    else:  # >=
        return column >= value
