"""
Record: one result row handed back by the executor.

A record exposes exactly the fields its query projected plus its
relations. Eager-loaded relations are attached at assembly time; any other
relation is deferred and fetched on first access through a loader supplied
by the executor.
"""

from typing import Any, Callable, Dict, Optional, Tuple

from quarry.core.entity import EntityDefinition
from quarry.exceptions import FieldNotLoaded

_MISSING = object()


class Record:
    """
    Projected view over a fetched row.

    Fields can be read as attributes (``post.title``), by key
    (``post['title']``) or through ``get_property``. Reading a declared
    field that the query did not project raises FieldNotLoaded. Entity
    definitions reject field names that would collide with the attributes
    below (see ``quarry.core.entity.RESERVED_NAMES``).
    """

    __slots__ = ('_definition', '_values', '_fields', '_relations', '_loader')

    def __init__(
        self,
        definition: EntityDefinition,
        values: Dict[str, Any],
        fields: Tuple[str, ...],
        loader: Optional[Callable[['Record', str], Any]] = None
    ):
        """
        Initialize a Record.

        Args:
            definition: Entity the row belongs to
            values: Raw row; may hold join columns beyond ``fields``
            fields: Fields the caller is allowed to read
            loader: Called as ``loader(record, relation)`` for deferred relations
        """
        self._definition = definition
        self._values = values
        self._fields = fields
        self._relations: Dict[str, Any] = {}
        self._loader = loader

    @property
    def entity(self) -> str:
        return self._definition.name

    @property
    def definition(self) -> EntityDefinition:
        return self._definition

    @property
    def fields(self) -> Tuple[str, ...]:
        return self._fields

    @property
    def key(self) -> Any:
        """Primary key value, always fetched even when not projected."""
        return self._values.get(self._definition.primary_key)

    def raw(self, field_name: str) -> Any:
        """Read a fetched column regardless of projection. Used for joining."""
        return self._values.get(field_name)

    def get_property(self, key: str, default: Any = _MISSING) -> Any:
        if key in self._fields:
            return self._values.get(key)
        if self._definition.has_relation(key):
            return self._relation(key)
        if default is not _MISSING:
            return default
        raise FieldNotLoaded(self.entity, key)

    def has_property(self, key: str) -> bool:
        return key in self._fields

    def set_relation(self, name: str, value: Any) -> None:
        self._relations[name] = value

    def is_loaded(self, relation: str) -> bool:
        return relation in self._relations

    def _relation(self, name: str) -> Any:
        if name not in self._relations:
            if self._loader is None:
                # Detached record: nothing to defer to
                return [] if self._definition.relation(name).is_many else None
            self._relations[name] = self._loader(self, name)
        return self._relations[name]

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_'):
            raise AttributeError(name)
        return self.get_property(name)

    def __getitem__(self, key: str) -> Any:
        return self.get_property(key)

    def __contains__(self, key: str) -> bool:
        return key in self._fields or key in self._relations

    def to_dict(self) -> Dict[str, Any]:
        """Serialize projected fields and loaded relations (deferred ones are skipped)."""
        data = {name: self._values.get(name) for name in self._fields}
        for name, value in self._relations.items():
            if isinstance(value, list):
                data[name] = [item.to_dict() for item in value]
            elif value is not None:
                data[name] = value.to_dict()
            else:
                data[name] = None
        return data

    def __repr__(self) -> str:
        props = ', '.join(f"{k}={self._values.get(k)!r}" for k in self._fields[:3])
        if len(self._fields) > 3:
            props += '...'
        return f"Record({self.entity}, {props})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Record):
            return False
        return self.entity == other.entity and self.key == other.key

    def __hash__(self) -> int:
        return hash((self.entity, self.key))
