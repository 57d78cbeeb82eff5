"""Document store collaborator.

``DocumentStore`` is the interface the repository depends on: a schemaless
collection store with typed filters, ascending sort on the primary key,
single-document atomic updates and server-side counts.

``SQLDocumentStore`` implements it on async SQLAlchemy. Every collection
lives in the shared ``documents`` table keyed by ``(collection, id)``; the
document body is a JSON column and the common timestamps are mirrored into
indexed columns so soft-delete and cursor predicates never touch JSON.

Each call opens its own session from the injected session factory, so one
store instance is safe to share between concurrent callers. Engines whose
pool hands every session the same connection (in-memory SQLite on a
``StaticPool``) get their sessions serialized, since overlapping
transactions on one connection would commit or roll back each other.
"""

import asyncio
import enum
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Protocol

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic.alias_generators import to_camel
from sqlalchemy import ColumnElement, false, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import Pool, StaticPool

from persistence.core.logging import get_logger
from persistence.core.tracing import trace_database
from persistence.models.base import DocumentRecord
from persistence.repositories.exceptions import (
    ConflictError,
    StoreReadError,
    StoreWriteError,
)
from persistence.repositories.filters import Filter, Operator, Predicate

logger = get_logger(__name__)

_JSON_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)

# Document fields mirrored into real columns
_COLUMNS: dict[str, Any] = {
    "id": DocumentRecord.id,
    "createdAt": DocumentRecord.created_at,
    "updatedAt": DocumentRecord.updated_at,
    "deletedAt": DocumentRecord.deleted_at,
}
_TIMESTAMP_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "deletedAt": "deleted_at",
}

# One lock per single-connection pool, shared by every store bound to it
_CONNECTION_LOCKS: "weakref.WeakKeyDictionary[Pool, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


class UpdateResult(BaseModel):
    """Acknowledgment of a single-document update.

    Attributes:
        matched_count: Documents that satisfied the filter (0 or 1)
        modified_count: Documents actually changed (0 or 1)
        document_id: Id of the changed document, if any
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    matched_count: int = 0
    modified_count: int = 0
    document_id: str | None = None


class DocumentStore(Protocol):
    """Operations the repository needs from a document store."""

    async def insert_one(self, collection: str, document: dict[str, Any]) -> None: ...

    async def find_one(self, collection: str, filter: Filter) -> dict[str, Any] | None: ...

    def find(
        self,
        collection: str,
        filter: Filter,
        *,
        skip: int = 0,
        limit: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]: ...

    async def count(self, collection: str, filter: Filter) -> int: ...

    async def replace_one(
        self,
        collection: str,
        document_id: str,
        document: dict[str, Any],
        filter: Filter = (),
    ) -> dict[str, Any] | None: ...

    async def update_one(
        self,
        collection: str,
        document_id: str,
        set_fields: dict[str, Any],
        filter: Filter = (),
    ) -> UpdateResult: ...


def _to_json_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return _JSON_ADAPTER.dump_python(value, mode="json")


def _to_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    raise ValueError(f"Expected a timestamp, got {type(value).__name__}")


def _json_element(field: str, sample: Any) -> Any:
    """Typed accessor for a document field, chosen from the compared value."""
    path: Any = tuple(field.split(".")) if "." in field else field
    element = DocumentRecord.data[path]
    if isinstance(sample, bool):
        return element.as_boolean()
    if isinstance(sample, int):
        return element.as_integer()
    if isinstance(sample, float):
        return element.as_float()
    return element.as_string()


def _compile_predicate(predicate: Predicate) -> ColumnElement[bool]:
    """Translate one predicate into a SQL condition.

    Inequality follows document-store semantics: a missing field is "not
    equal" to any value.
    """
    op = predicate.op

    if predicate.field in _COLUMNS:
        element = _COLUMNS[predicate.field]
        is_timestamp = predicate.field in _TIMESTAMP_FIELDS
        if op is Operator.EXISTS:
            return element.is_not(None) if predicate.value else element.is_(None)
        if op is Operator.IN:
            values = [_to_datetime(v) if is_timestamp else v for v in predicate.value]
            return element.in_(values) if values else false()
        value = _to_datetime(predicate.value) if is_timestamp else predicate.value
    else:
        if op is Operator.EXISTS:
            present = _json_element(predicate.field, "")
            return present.is_not(None) if predicate.value else present.is_(None)
        if op is Operator.IN:
            values = [_to_json_value(v) for v in predicate.value]
            if not values:
                return false()
            return _json_element(predicate.field, values[0]).in_(values)
        value = _to_json_value(predicate.value)
        element = _json_element(predicate.field, value)

    if op is Operator.EQ:
        return element.is_(None) if value is None else element == value
    if op is Operator.NE:
        if value is None:
            return element.is_not(None)
        return or_(element != value, element.is_(None))
    if op is Operator.GT:
        return element > value
    if op is Operator.GTE:
        return element >= value
    if op is Operator.LT:
        return element < value
    if op is Operator.LTE:
        return element <= value
    raise ValueError(f"Unsupported operator {op!r}")


def compile_filter(collection: str, filter: Filter) -> list[ColumnElement[bool]]:
    """Translate a filter into SQL conditions scoped to one collection."""
    return [DocumentRecord.collection == collection] + [
        _compile_predicate(predicate) for predicate in filter
    ]


def _mirrored_columns(document: dict[str, Any]) -> dict[str, Any]:
    return {
        column: _to_datetime(document.get(field))
        for field, column in _TIMESTAMP_FIELDS.items()
    }


def _shared_connection_lock(
    session_maker: async_sessionmaker[AsyncSession],
) -> asyncio.Lock | None:
    """Lock for session factories whose pool shares a single connection."""
    bind = session_maker.kw.get("bind")
    if not isinstance(bind, AsyncEngine) or not isinstance(bind.pool, StaticPool):
        return None
    lock = _CONNECTION_LOCKS.get(bind.pool)
    if lock is None:
        lock = _CONNECTION_LOCKS[bind.pool] = asyncio.Lock()
    return lock


class SQLDocumentStore:
    """DocumentStore over async SQLAlchemy.

    Args:
        session_maker: Session factory (default: the process-wide one)

    Example:
        store = SQLDocumentStore(async_session_maker)
        await store.insert_one("faqs", {"id": "...", "createdAt": "...", ...})
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None) -> None:
        if session_maker is None:
            from persistence.core.database import async_session_maker
            session_maker = async_session_maker
        self._session_maker = session_maker
        self._lock = _shared_connection_lock(session_maker)

    @asynccontextmanager
    async def _session(self, *, write: bool = False) -> AsyncIterator[AsyncSession]:
        """Open a session, inside a transaction when writing.

        The connection lock is held until the session has closed and handed
        its connection back.
        """
        async with AsyncExitStack() as stack:
            if self._lock is not None:
                await stack.enter_async_context(self._lock)
            session = await stack.enter_async_context(self._session_maker())
            if write:
                await stack.enter_async_context(session.begin())
            yield session

    @trace_database("store.insert_one")
    async def insert_one(self, collection: str, document: dict[str, Any]) -> None:
        try:
            record = DocumentRecord(
                collection=collection,
                id=document["id"],
                data=document,
                **_mirrored_columns(document),
            )
            async with self._session(write=True) as session:
                session.add(record)
        except IntegrityError as e:
            logger.error("Document insert conflicted", collection=collection, error=str(e))
            raise ConflictError(f"Document conflicts with existing data: {e}") from e
        except (SQLAlchemyError, KeyError, ValueError) as e:
            logger.error("Document insert failed", collection=collection, error=str(e))
            raise StoreWriteError(f"Failed to insert document: {e}") from e

    @trace_database("store.find_one")
    async def find_one(self, collection: str, filter: Filter) -> dict[str, Any] | None:
        stmt = select(DocumentRecord.data).where(*compile_filter(collection, filter)).limit(1)
        try:
            async with self._session() as session:
                return (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Document lookup failed", collection=collection, error=str(e))
            raise StoreReadError(f"Failed to read document: {e}") from e

    async def find(
        self,
        collection: str,
        filter: Filter,
        *,
        skip: int = 0,
        limit: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield matching documents in ascending id order."""
        stmt = (
            select(DocumentRecord.data)
            .where(*compile_filter(collection, filter))
            .order_by(DocumentRecord.id.asc())
        )
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._session() as session:
                documents = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            logger.error("Document query failed", collection=collection, error=str(e))
            raise StoreReadError(f"Failed to query documents: {e}") from e

        for document in documents:
            yield document

    @trace_database("store.count")
    async def count(self, collection: str, filter: Filter) -> int:
        stmt = (
            select(func.count())
            .select_from(DocumentRecord)
            .where(*compile_filter(collection, filter))
        )
        try:
            async with self._session() as session:
                return int((await session.execute(stmt)).scalar() or 0)
        except SQLAlchemyError as e:
            logger.error("Document count failed", collection=collection, error=str(e))
            raise StoreReadError(f"Failed to count documents: {e}") from e

    @trace_database("store.replace_one")
    async def replace_one(
        self,
        collection: str,
        document_id: str,
        document: dict[str, Any],
        filter: Filter = (),
    ) -> dict[str, Any] | None:
        """Replace the document body; return the stored body, or None if no match."""
        try:
            stmt = (
                update(DocumentRecord)
                .where(
                    *compile_filter(collection, filter),
                    DocumentRecord.id == document_id,
                )
                .values(data=document, **_mirrored_columns(document))
                .returning(DocumentRecord.data)
                .execution_options(synchronize_session=False)
            )
            async with self._session(write=True) as session:
                return (await session.execute(stmt)).scalar_one_or_none()
        except IntegrityError as e:
            logger.error("Document replace conflicted", collection=collection, error=str(e))
            raise ConflictError(f"Replacement conflicts with existing data: {e}") from e
        except (SQLAlchemyError, ValueError) as e:
            logger.error("Document replace failed", collection=collection, error=str(e))
            raise StoreWriteError(f"Failed to replace document: {e}") from e

    @trace_database("store.update_one")
    async def update_one(
        self,
        collection: str,
        document_id: str,
        set_fields: dict[str, Any],
        filter: Filter = (),
    ) -> UpdateResult:
        """Set fields on one document atomically.

        The conditional column update claims the document; the JSON body is
        then patched inside the same transaction.
        """
        json_fields = {field: _to_json_value(value) for field, value in set_fields.items()}
        try:
            column_values = {
                _TIMESTAMP_FIELDS[field]: _to_datetime(value)
                for field, value in set_fields.items()
                if field in _TIMESTAMP_FIELDS
            }
            conditions = [*compile_filter(collection, filter), DocumentRecord.id == document_id]
            if column_values:
                claim: Any = (
                    update(DocumentRecord)
                    .where(*conditions)
                    .values(**column_values)
                    .returning(DocumentRecord.data)
                    .execution_options(synchronize_session=False)
                )
            else:
                claim = select(DocumentRecord.data).where(*conditions).with_for_update()
            async with self._session(write=True) as session:
                current = (await session.execute(claim)).scalar_one_or_none()
                if current is None:
                    return UpdateResult(matched_count=0, modified_count=0)

                patch = (
                    update(DocumentRecord)
                    .where(
                        DocumentRecord.collection == collection,
                        DocumentRecord.id == document_id,
                    )
                    .values(data={**current, **json_fields})
                    .execution_options(synchronize_session=False)
                )
                await session.execute(patch)
            return UpdateResult(matched_count=1, modified_count=1, document_id=document_id)
        except (SQLAlchemyError, ValueError) as e:
            logger.error("Document update failed", collection=collection, error=str(e))
            raise StoreWriteError(f"Failed to update document: {e}") from e
