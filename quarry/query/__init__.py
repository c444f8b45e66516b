"""
Query processing layer for Quarry.

Predicates and scopes describe what to read; the ScopeCompiler validates
them against the schema and produces a QueryPlan; the QueryExecutor runs
the plan with batched eager loading.
"""

from quarry.query.predicate import And, Comparison, Not, Or, Predicate, eq, in_, is_null, where
from quarry.query.scope import Scope
from quarry.query.plan import QueryPlan, IncludePlan, OrderTerm, SINGLE, COLLECTION
from quarry.query.compiler import ScopeCompiler
from quarry.query.executor import QueryExecutor
from quarry.query.query_interface import Query, Session, query

__all__ = [
    'And',
    'Comparison',
    'Not',
    'Or',
    'Predicate',
    'eq',
    'in_',
    'is_null',
    'where',
    'Scope',
    'QueryPlan',
    'IncludePlan',
    'OrderTerm',
    'SINGLE',
    'COLLECTION',
    'ScopeCompiler',
    'QueryExecutor',
    'Query',
    'Session',
    'query',
]
