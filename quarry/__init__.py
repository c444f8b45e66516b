"""
Quarry: a read-query planner for object-relational mapping layers.

Declares entities, indices and named scopes once, compiles queries into
immutable plans, and executes them with batched eager loading so that
related rows never cost one fetch per parent row.
"""

__version__ = "0.1.0"
__author__ = "Quarry Project"

from quarry.core.entity import (
    EntityDefinition,
    IndexDescriptor,
    Relation,
    belongs_to,
    entity,
    has_many,
)
from quarry.core.record import Record
from quarry.core.registry import SchemaRegistry
from quarry.query.scope import Scope
from quarry.query.compiler import ScopeCompiler
from quarry.query.executor import QueryExecutor
from quarry.query.query_interface import Query, Session

__all__ = [
    'EntityDefinition',
    'IndexDescriptor',
    'Relation',
    'belongs_to',
    'entity',
    'has_many',
    'Record',
    'SchemaRegistry',
    'Scope',
    'ScopeCompiler',
    'QueryExecutor',
    'Query',
    'Session',
]
