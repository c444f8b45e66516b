"""
Core schema structures for Quarry.

Entity definitions, the registry that holds them, and the records the
executor hands back.
"""

from quarry.core.entity import EntityDefinition, IndexDescriptor, Relation
from quarry.core.registry import SchemaRegistry
from quarry.core.record import Record

__all__ = ['EntityDefinition', 'IndexDescriptor', 'Relation', 'SchemaRegistry', 'Record']
