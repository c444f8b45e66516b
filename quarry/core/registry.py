"""
SchemaRegistry: the process-wide catalogue of entities, indices and scopes.

The registry is filled once at startup and then frozen. Query processing
only ever reads from it, so concurrent queries can share one instance.
"""

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Tuple

from quarry.core.entity import EntityDefinition, IndexDescriptor
from quarry.exceptions import (
    DuplicateEntity,
    SchemaFrozen,
    UnknownEntity,
    UnknownField,
    UnknownScope,
)

if TYPE_CHECKING:
    from quarry.query.scope import Scope

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """
    Holds entity definitions, their declared indices and named scopes.

    Example:
        registry = SchemaRegistry()
        registry.register(post)
        registry.register(comment)
        registry.add_index(IndexDescriptor.on('Comment', 'post_id'))
        registry.freeze()
    """

    def __init__(self, entities: Iterable[EntityDefinition] = ()):
        self._entities: Dict[str, EntityDefinition] = {}
        self._indexes: Dict[str, List[IndexDescriptor]] = {}
        self._scopes: Dict[Tuple[str, str], 'Scope'] = {}
        self._frozen = False

        for definition in entities:
            self.register(definition)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            raise SchemaFrozen("Schema registry is frozen")

    def register(self, definition: EntityDefinition) -> EntityDefinition:
        """
        Add an entity definition.

        Raises:
            DuplicateEntity: if an entity with the same name exists
        """
        self._check_mutable()
        if definition.name in self._entities:
            raise DuplicateEntity(definition.name)

        self._entities[definition.name] = definition
        self._indexes[definition.name] = []
        logger.debug("Registered entity %s", definition.name)
        return definition

    def lookup(self, name: str) -> EntityDefinition:
        """
        Get an entity definition by name.

        Raises:
            UnknownEntity: if no such entity is registered
        """
        definition = self._entities.get(name)
        if definition is None:
            raise UnknownEntity(name)
        return definition

    def __contains__(self, name: str) -> bool:
        return name in self._entities

    def entities(self) -> List[EntityDefinition]:
        return list(self._entities.values())

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    def add_index(self, descriptor: IndexDescriptor) -> IndexDescriptor:
        self._check_mutable()
        definition = self.lookup(descriptor.entity)
        for field_name in descriptor.fields:
            definition.require_field(field_name)

        existing = self._indexes[descriptor.entity]
        if descriptor not in existing:
            existing.append(descriptor)
        return descriptor

    def indexes_for(self, name: str) -> List[IndexDescriptor]:
        self.lookup(name)
        return list(self._indexes[name])

    def is_indexed(self, name: str, field_name: str) -> bool:
        """
        True if ``field_name`` can be looked up through an index.

        The primary key always counts as indexed; composite indices only
        serve their leading field.
        """
        definition = self.lookup(name)
        if field_name == definition.primary_key:
            return True
        return any(ix.leading_field == field_name for ix in self._indexes[name])

    def is_unique(self, name: str, field_name: str) -> bool:
        definition = self.lookup(name)
        if field_name == definition.primary_key:
            return True
        return any(
            ix.unique and ix.fields == (field_name,) for ix in self._indexes[name]
        )

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    def define_scope(self, scope: 'Scope') -> 'Scope':
        """Register a named scope for the entity it is bound to."""
        self._check_mutable()
        self.lookup(scope.entity)
        self._scopes[(scope.entity, scope.name)] = scope
        return scope

    def get_scope(self, entity_name: str, scope_name: str) -> 'Scope':
        scope = self._scopes.get((entity_name, scope_name))
        if scope is None:
            raise UnknownScope(entity_name, scope_name)
        return scope

    def scopes_for(self, entity_name: str) -> List['Scope']:
        return [s for (e, _), s in self._scopes.items() if e == entity_name]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """
        Check that every relation points at a registered entity and that
        to-many foreign keys exist on their targets.
        """
        for definition in self._entities.values():
            for relation in definition.relations:
                target = self.lookup(relation.target)
                if relation.is_many and not target.has_field(relation.foreign_key):
                    raise UnknownField(target.name, relation.foreign_key)

    def freeze(self) -> 'SchemaRegistry':
        """Validate and make the registry read-only."""
        if not self._frozen:
            self.validate()
            self._frozen = True
            logger.info(
                "Schema registry frozen with %d entities", len(self._entities)
            )
        return self

    def to_dict(self) -> Dict[str, object]:
        """Serialize registry metadata."""
        return {
            name: {
                'fields': dict(definition.fields),
                'primary_key': definition.primary_key,
                'relations': {
                    r.name: {'target': r.target, 'cardinality': r.cardinality, 'foreign_key': r.foreign_key}
                    for r in definition.relations
                },
                'indexes': [list(ix.fields) for ix in self._indexes[name]],
                'scopes': [s.name for s in self.scopes_for(name)],
            }
            for name, definition in self._entities.items()
        }

    def __repr__(self) -> str:
        return f"SchemaRegistry(entities={list(self._entities)}, frozen={self._frozen})"
