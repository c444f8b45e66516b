"""
Entity definitions: the declared shape of every mapped table.

An EntityDefinition names its fields (with type tags), its primary key and
its relations to other entities. Definitions are built once when the schema
is loaded and never change afterwards.
"""

from typing import Dict, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, field

from quarry.exceptions import UnknownField, UnknownRelation

FIELD_TYPES = ('int', 'float', 'str', 'text', 'bool', 'datetime', 'date', 'json')

ONE = 'one'
MANY = 'many'

# Record attributes; a field or relation with one of these names could
# never be read as ``record.<name>``
RESERVED_NAMES = frozenset({
    'entity', 'definition', 'fields', 'key', 'raw', 'get_property',
    'has_property', 'set_relation', 'is_loaded', 'to_dict',
})


def _check_name(entity_name: str, name: str) -> None:
    if name in RESERVED_NAMES or name.startswith('_'):
        raise ValueError(f"Reserved name {entity_name}.{name}; records could not expose it")


@dataclass(frozen=True)
class Relation:
    """
    A named link from one entity to another.

    For a to-many relation the foreign key lives on the target and points at
    the source's primary key (Post.comments -> Comment.post_id). For a to-one
    relation the foreign key lives on the source and points at the target's
    primary key (Comment.post -> Comment.post_id).
    """

    name: str
    target: str
    cardinality: str
    foreign_key: str

    def __post_init__(self):
        if self.cardinality not in (ONE, MANY):
            raise ValueError(f"Unsupported cardinality: {self.cardinality}")

    @property
    def is_many(self) -> bool:
        return self.cardinality == MANY


@dataclass(frozen=True)
class IndexDescriptor:
    """Declared index on one or more fields. A cost hint, never a constraint."""

    entity: str
    fields: Tuple[str, ...]
    unique: bool = False

    @classmethod
    def on(cls, entity: str, fields: Union[str, Sequence[str]], unique: bool = False) -> 'IndexDescriptor':
        if isinstance(fields, str):
            fields = (fields,)
        return cls(entity, tuple(fields), unique)

    @property
    def leading_field(self) -> str:
        return self.fields[0]


@dataclass(frozen=True)
class EntityDefinition:
    """
    Immutable description of an entity.

    Args:
        name: Entity name (e.g., "Post")
        fields: Ordered (field name, type tag) pairs
        relations: Relations to other entities
        primary_key: Field holding the row identity
    """

    name: str
    fields: Tuple[Tuple[str, str], ...]
    relations: Tuple[Relation, ...] = ()
    primary_key: str = 'id'
    _field_types: Dict[str, str] = field(init=False, repr=False, compare=False)
    _relation_map: Dict[str, Relation] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        # Normalise lists to tuples so definitions hash and compare by value
        object.__setattr__(self, 'fields', tuple((n, t) for n, t in self.fields))
        object.__setattr__(self, 'relations', tuple(self.relations))

        field_types: Dict[str, str] = {}
        for name, type_tag in self.fields:
            if type_tag not in FIELD_TYPES:
                raise ValueError(f"Unsupported type tag {type_tag!r} for {self.name}.{name}")
            _check_name(self.name, name)
            if name in field_types:
                raise ValueError(f"Field declared twice: {self.name}.{name}")
            field_types[name] = type_tag

        if self.primary_key not in field_types:
            raise UnknownField(self.name, self.primary_key)

        relation_map: Dict[str, Relation] = {}
        for relation in self.relations:
            _check_name(self.name, relation.name)
            if relation.name in field_types or relation.name in relation_map:
                raise ValueError(f"Relation name clashes: {self.name}.{relation.name}")
            # To-one foreign keys are ours; to-many ones are checked against the target
            if not relation.is_many and relation.foreign_key not in field_types:
                raise UnknownField(self.name, relation.foreign_key)
            relation_map[relation.name] = relation

        object.__setattr__(self, '_field_types', field_types)
        object.__setattr__(self, '_relation_map', relation_map)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.fields)

    def has_field(self, name: str) -> bool:
        return name in self._field_types

    def field_type(self, name: str) -> str:
        if name not in self._field_types:
            raise UnknownField(self.name, name)
        return self._field_types[name]

    def require_field(self, name: str) -> str:
        """Return ``name`` if declared, otherwise raise UnknownField."""
        if name not in self._field_types:
            raise UnknownField(self.name, name)
        return name

    def has_relation(self, name: str) -> bool:
        return name in self._relation_map

    def relation(self, name: str) -> Relation:
        if name not in self._relation_map:
            raise UnknownRelation(self.name, name)
        return self._relation_map[name]

    def join_fields(self) -> Tuple[str, ...]:
        """Fields a fetch must read so that any relation can be resolved."""
        needed = [self.primary_key]
        for relation in self.relations:
            if not relation.is_many and relation.foreign_key not in needed:
                needed.append(relation.foreign_key)
        return tuple(needed)

    def __repr__(self) -> str:
        return f"EntityDefinition(name={self.name}, fields={list(self.field_names)}, relations={list(self._relation_map)})"


def entity(
    name: str,
    fields: Sequence[Tuple[str, str]],
    relations: Optional[List[Relation]] = None,
    primary_key: str = 'id'
) -> EntityDefinition:
    """
    Convenience constructor.

    Example:
        post = entity('Post', [('id', 'int'), ('title', 'str')],
                      relations=[has_many('comments', 'Comment', 'post_id')])
    """
    return EntityDefinition(name, tuple(fields), tuple(relations or ()), primary_key)


def has_many(name: str, target: str, foreign_key: str) -> Relation:
    return Relation(name, target, MANY, foreign_key)


def belongs_to(name: str, target: str, foreign_key: str) -> Relation:
    return Relation(name, target, ONE, foreign_key)
