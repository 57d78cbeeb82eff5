"""Repository layer for document persistence.

Every entity goes through ``BaseRepository``: soft-deleting, cache-aside,
cursor-paginated and evented. Entity-specific repositories compose it.
"""

from persistence.repositories.base import BaseRepository
from persistence.repositories.exceptions import (
    ConflictError,
    InvalidArgumentError,
    InvalidCursorError,
    NotFoundError,
    RepositoryError,
    RepositoryTimeoutError,
    SerializationError,
    StoreReadError,
    StoreWriteError,
)
from persistence.repositories.filters import (
    NOT_DELETED,
    Filter,
    Operator,
    Predicate,
    absent,
    canonicalize,
    compose_filter,
    eq,
    exists,
    gt,
    gte,
    in_,
    lt,
    lte,
    ne,
)
from persistence.repositories.order import OrderRepository
from persistence.repositories.pagination import (
    PageWindow,
    PaginatedResult,
    PaginationParams,
    compute_page_window,
    decode_cursor,
    encode_cursor,
)
from persistence.repositories.serializer import EntitySerializer
from persistence.repositories.store import DocumentStore, SQLDocumentStore, UpdateResult

__all__ = [
    "BaseRepository",
    "ConflictError",
    "DocumentStore",
    "EntitySerializer",
    "Filter",
    "InvalidArgumentError",
    "InvalidCursorError",
    "NOT_DELETED",
    "NotFoundError",
    "Operator",
    "OrderRepository",
    "PageWindow",
    "PaginatedResult",
    "PaginationParams",
    "Predicate",
    "RepositoryError",
    "RepositoryTimeoutError",
    "SQLDocumentStore",
    "SerializationError",
    "StoreReadError",
    "StoreWriteError",
    "UpdateResult",
    "absent",
    "canonicalize",
    "compose_filter",
    "compute_page_window",
    "decode_cursor",
    "encode_cursor",
    "eq",
    "exists",
    "gt",
    "gte",
    "in_",
    "lt",
    "lte",
    "ne",
]
