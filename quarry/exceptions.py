"""
Exception hierarchy for Quarry.

Schema errors are raised while the registry is built or a plan is
compiled; they are caller errors and never worth retrying. Storage errors
come from the backend at execution time and are surfaced unchanged.
"""

from typing import Any, Dict, Optional


class QuarryError(Exception):
    """Base exception for all Quarry errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


# ============================================================================
# Schema Errors
# ============================================================================


class SchemaError(QuarryError):
    """Base exception for schema and compile-time errors."""

    pass


class DuplicateEntity(SchemaError):
    """Raised when an entity name is registered twice."""

    def __init__(self, entity: str):
        super().__init__(f"Entity already registered: {entity}", {"entity": entity})
        self.entity = entity


class UnknownEntity(SchemaError):
    """Raised when an entity name is not registered."""

    def __init__(self, entity: str):
        super().__init__(f"Unknown entity: {entity}", {"entity": entity})
        self.entity = entity


class UnknownRelation(SchemaError):
    """Raised when a relation is not declared on an entity."""

    def __init__(self, entity: str, relation: str):
        super().__init__(
            f"Unknown relation {relation!r} on {entity}",
            {"entity": entity, "relation": relation},
        )
        self.entity = entity
        self.relation = relation


class UnknownField(SchemaError):
    """Raised when a field is not declared on an entity."""

    def __init__(self, entity: str, field: str):
        super().__init__(
            f"Unknown field {field!r} on {entity}",
            {"entity": entity, "field": field},
        )
        self.entity = entity
        self.field = field


class UnknownScope(SchemaError):
    """Raised when a named scope is not defined for an entity."""

    def __init__(self, entity: str, scope: str):
        super().__init__(
            f"Unknown scope {scope!r} on {entity}",
            {"entity": entity, "scope": scope},
        )
        self.entity = entity
        self.scope = scope


class SchemaFrozen(SchemaError):
    """Raised when a frozen registry is modified."""

    pass


# ============================================================================
# Query Errors
# ============================================================================


class QueryError(QuarryError):
    """Base exception for errors raised while building or reading results."""

    pass


class InvalidScope(QueryError):
    """Raised when a scope is applied to an entity it is not bound to."""

    def __init__(self, scope: str, scope_entity: str, entity: str):
        super().__init__(
            f"Scope {scope!r} is bound to {scope_entity}, not {entity}",
            {"scope": scope, "scope_entity": scope_entity, "entity": entity},
        )
        self.scope = scope


class FieldNotLoaded(QueryError, AttributeError):
    """Raised when a record field outside the plan's projection is read."""

    def __init__(self, entity: str, field: str):
        super().__init__(
            f"Field {field!r} of {entity} is not part of the projection",
            {"entity": entity, "field": field},
        )
        self.entity = entity
        self.field = field


class LazyLoadForbidden(QueryError):
    """Raised when a deferred relation is touched under the 'raise' policy."""

    def __init__(self, entity: str, relation: str):
        super().__init__(
            f"Lazy load of {entity}.{relation} is forbidden; include it in the query",
            {"entity": entity, "relation": relation},
        )
        self.entity = entity
        self.relation = relation


# ============================================================================
# Storage Errors
# ============================================================================


class StorageError(QuarryError):
    """Base exception for storage backend errors."""

    pass


class StorageUnavailable(StorageError):
    """Raised when the storage backend cannot be reached. Never retried here."""

    def __init__(self, message: str = "Storage backend unavailable", entity: Optional[str] = None):
        super().__init__(message, {"entity": entity} if entity else None)
        self.entity = entity
