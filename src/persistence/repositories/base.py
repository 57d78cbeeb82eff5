"""Base repository with cache-aside reads and evented, soft-deleting writes.

This module implements the one persistence pipeline every marketplace entity
goes through. An entity type declares its schema, collection name and topic
prefix; ``BaseRepository[EntityType]`` derives all operations from that.

Key Concepts:
- COMPOSITION PATTERN: entity repositories hold a BaseRepository, they do not inherit it
- SOFT DELETE: Delete writes a ``deletedAt`` tombstone; reads never see tombstones
- CACHE-ASIDE: Create populates the cache, Update/Delete invalidate it, Get
  revalidates against the store and repopulates
- CURSOR PAGINATION: opaque after/before cursors with first/last caps
- EVENTS: every successful mutation emits ``<topic-prefix>.<verb>`` fire-and-forget
- DEADLINES: store calls are bounded; list iteration has its own budget

Usage Example:
    from persistence.models import FAQ
    from persistence.repositories import BaseRepository, PaginationParams

    repo = BaseRepository(FAQ)
    faq = await repo.create(FAQ(question="Where is my order?"))
    same = await repo.get(faq.id)
    page = await repo.list(pagination=PaginationParams(first=20))
    faq = await repo.update(faq.model_copy(update={"answer": "On its way"}))
    await repo.delete(faq.id)

See persistence/repositories/order.py for an example of composition pattern usage.
"""

import asyncio
from contextlib import aclosing
from typing import Any, Awaitable, Generic, Optional, TypeVar

from persistence.core.cache import EntityCache
from persistence.core.clock import Clock, system_clock
from persistence.core.config import settings
from persistence.core.events import EventEmitter
from persistence.core.logging import get_logger
from persistence.core.tracing import trace_database
from persistence.models.base import Entity
from persistence.models.ids import new_object_id, parse_object_id
from persistence.repositories.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    RepositoryTimeoutError,
    SerializationError,
)
from persistence.repositories.filters import NOT_DELETED, Filter, compose_filter, eq
from persistence.repositories.pagination import (
    PaginatedResult,
    PaginationParams,
    compute_page_window,
)
from persistence.repositories.serializer import EntitySerializer
from persistence.repositories.store import DocumentStore, SQLDocumentStore

# ============================================================================
# GENERIC TYPE DEFINITION
# ============================================================================
# EntityT is bound to the pydantic Entity base, so BaseRepository[FAQ] returns
# FAQ instances with full type checking and IDE autocomplete.
EntityT = TypeVar("EntityT", bound=Entity)

T = TypeVar("T")

logger = get_logger(__name__)

VERB_CREATED = "created"
VERB_UPDATED = "updated"
VERB_DELETED = "deleted"


# ============================================================================
# BASE REPOSITORY - MAIN CRUD IMPLEMENTATION
# ============================================================================


class BaseRepository(Generic[EntityT]):
    """Generic repository providing the persistence contract for any entity.

    The repository holds no mutable state of its own: the store, cache and
    emitter are injected collaborators, and every call opens its own store
    session. One instance can serve any number of concurrent callers.

    Failure policy:
    - Store errors are raised (StoreWriteError, StoreReadError,
      RepositoryTimeoutError, SerializationError)
    - Cache errors are logged and swallowed by EntityCache
    - Event errors are logged and swallowed by EventEmitter

    Args:
        entity_type: Entity class (e.g. FAQ, Order)
        store: Document store (default: SQLDocumentStore on the process-wide engine)
        cache: Entity cache (default: EntityCache on the process-wide client)
        emitter: Event emitter (default: the process-wide emitter)
        clock: Timestamp source (default: system UTC clock)
        trust_cache_hits: Return cache hits from get() without revalidating
            against the store (default: settings.trust_cache_hits)
        store_timeout_seconds: Deadline for single-document store calls
        list_timeout_seconds: Deadline for list iteration

    Example (Composition Pattern):
        class FAQRepository:
            def __init__(self) -> None:
                self._base_repo = BaseRepository(FAQ)

            async def get(self, faq_id: str) -> Optional[FAQ]:
                return await self._base_repo.get(faq_id)
    """

    def __init__(
        self,
        entity_type: type[EntityT],
        store: DocumentStore | None = None,
        cache: EntityCache | None = None,
        emitter: EventEmitter | None = None,
        clock: Clock | None = None,
        *,
        trust_cache_hits: bool | None = None,
        store_timeout_seconds: float | None = None,
        list_timeout_seconds: float | None = None,
    ) -> None:
        if emitter is None:
            from persistence.core.events import event_emitter
            emitter = event_emitter

        self._entity_type = entity_type
        self._collection = entity_type.collection_name
        self._topic_prefix = entity_type.topic_prefix
        self._store = store if store is not None else SQLDocumentStore()
        self._cache = cache if cache is not None else EntityCache()
        self._emitter = emitter
        self._clock = clock or system_clock
        self._serializer: EntitySerializer[EntityT] = EntitySerializer(entity_type)
        self._trust_cache_hits = (
            settings.trust_cache_hits if trust_cache_hits is None else trust_cache_hits
        )
        self._store_timeout = (
            store_timeout_seconds if store_timeout_seconds is not None
            else settings.store_timeout_seconds
        )
        self._list_timeout = (
            list_timeout_seconds if list_timeout_seconds is not None
            else settings.list_timeout_seconds
        )
        self._logger = get_logger(f"{__name__}.{entity_type.__name__}Repository")

    @property
    def entity_type(self) -> type[EntityT]:
        return self._entity_type

    @property
    def topic_prefix(self) -> str:
        return self._topic_prefix

    @property
    def serializer(self) -> EntitySerializer[EntityT]:
        return self._serializer

    # ========================================================================
    # INTERNAL HELPERS
    # ========================================================================

    def _parse_id(self, entity_id: Any) -> str:
        try:
            return parse_object_id(entity_id)
        except ValueError as e:
            raise InvalidArgumentError(
                f"Invalid {self._entity_type.__name__} id: {e}"
            ) from e

    async def _with_deadline(self, awaitable: Awaitable[T], operation: str) -> T:
        """Await a store call, converting deadline overruns to RepositoryTimeoutError."""
        try:
            async with asyncio.timeout(self._store_timeout):
                return await awaitable
        except TimeoutError as e:
            self._logger.error(
                "Store call timed out",
                model=self._entity_type.__name__,
                operation=operation,
                timeout_seconds=self._store_timeout,
            )
            raise RepositoryTimeoutError(
                f"{operation} on {self._collection} exceeded {self._store_timeout}s"
            ) from e

    async def _cache_entity(self, entity: EntityT) -> None:
        """Best-effort cache write of the serialized entity."""
        try:
            blob = self._serializer.encode(entity)
        except SerializationError as e:
            self._logger.warning("Skipping cache write", entity_id=entity.id, error=str(e))
            return
        if not await self._cache.set(entity.id, blob):  # type: ignore[arg-type]
            self._logger.warning(
                "Entity stored but not cached",
                model=self._entity_type.__name__,
                entity_id=entity.id,
            )

    def _emit(self, verb: str, payload: Any) -> None:
        self._emitter.emit(f"{self._topic_prefix}.{verb}", payload)

    # ========================================================================
    # CREATE OPERATION
    # ========================================================================

    @trace_database()
    async def create(self, entity: EntityT) -> EntityT:
        """Insert a new entity and return it fully populated.

        Assigns a fresh id and sets createdAt = updatedAt = now. Any id,
        timestamps or tombstone on the input are replaced. The store write
        completes before the cache write and the ``<prefix>.created`` event.

        Args:
            entity: Entity with its entity-specific fields set

        Returns:
            The stored entity with id, createdAt and updatedAt populated

        Raises:
            ConflictError: If the insert violates a store constraint
            StoreWriteError: For other store failures
            RepositoryTimeoutError: If the insert exceeds its deadline
            SerializationError: If the entity cannot be encoded

        Example:
            faq = await repo.create(FAQ(question="Q", answer="A"))
            # faq.id is now a 24-character object id
        """
        now = self._clock.now()
        entity = entity.model_copy(
            update={
                "id": new_object_id(now.timestamp()),
                "created_at": now,
                "updated_at": now,
                "deleted_at": None,
            }
        )
        self._logger.debug("Creating new entity", model=self._entity_type.__name__)

        document = self._serializer.to_document(entity)
        await self._with_deadline(self._store.insert_one(self._collection, document), "insert")

        self._logger.info(
            "Entity created successfully",
            model=self._entity_type.__name__,
            entity_id=entity.id,
        )

        await self._cache_entity(entity)
        self._emit(VERB_CREATED, entity)
        return entity

    # ========================================================================
    # READ OPERATIONS (GET)
    # ========================================================================

    @trace_database()
    async def get(self, entity_id: str) -> Optional[EntityT]:
        """Get a non-deleted entity by id.

        The cache is consulted first, but the store is always asked for the
        authoritative value unless ``trust_cache_hits`` is enabled. The cache
        is refreshed when its blob differs from the store's value, and cleared
        when the store no longer has a live document.

        Args:
            entity_id: 24-character object id

        Returns:
            The entity, or None if it does not exist or is soft-deleted

        Raises:
            InvalidArgumentError: If entity_id is malformed
            StoreReadError: For store failures
            RepositoryTimeoutError: If the read exceeds its deadline
            SerializationError: If the stored document cannot be decoded
        """
        entity_id = self._parse_id(entity_id)
        self._logger.debug(
            "Getting entity by ID",
            model=self._entity_type.__name__,
            entity_id=entity_id,
        )

        cached_blob = await self._cache.get(entity_id)
        if cached_blob is not None:
            try:
                cached = self._serializer.decode(cached_blob)
            except SerializationError as e:
                self._logger.warning("Discarding undecodable cache entry", entity_id=entity_id, error=str(e))
                cached_blob = None
            else:
                if self._trust_cache_hits and not cached.is_deleted:
                    self._logger.debug("Serving entity from cache", entity_id=entity_id)
                    return cached

        document = await self._with_deadline(
            self._store.find_one(self._collection, compose_filter([eq("id", entity_id)])),
            "find_one",
        )
        if document is None:
            self._logger.debug(
                "Entity not found",
                model=self._entity_type.__name__,
                entity_id=entity_id,
            )
            if cached_blob is not None:
                await self._cache.delete(entity_id)
            return None

        entity = self._serializer.from_document(document)
        try:
            fresh_blob = self._serializer.encode(entity)
        except SerializationError as e:
            self._logger.warning("Skipping cache refresh", entity_id=entity_id, error=str(e))
        else:
            if fresh_blob != cached_blob:
                await self._cache.set(entity_id, fresh_blob)
        return entity

    async def get_or_raise(self, entity_id: str) -> EntityT:
        """Get entity by id or raise NotFoundError.

        Raises:
            NotFoundError: If the entity does not exist or is soft-deleted
            RepositoryError: For other failures (see get)
        """
        entity = await self.get(entity_id)
        if entity is None:
            raise NotFoundError(f"{self._entity_type.__name__} with id {entity_id} not found")
        return entity

    # ========================================================================
    # LIST OPERATION (WITH CURSOR PAGINATION)
    # ========================================================================

    @trace_database()
    async def list(
        self,
        filter: Filter | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResult[EntityT]:
        """List non-deleted entities matching filter, ascending by id.

        The effective filter is ``filter AND deletedAt absent AND id > after
        AND id < before``. Skip/limit and the page flags are computed from the
        number of documents in that window and the first/last caps.
        ``total_count`` counts the caller filter alone, so it does not change
        as the caller pages with cursors.

        A document that fails to decode is logged and skipped; any other
        failure aborts the page.

        Args:
            filter: Caller predicates (e.g. ``[eq("isActive", True)]``)
            pagination: Cursors and caps (default: the entire set)

        Returns:
            PaginatedResult with items, total_count and page flags

        Raises:
            StoreReadError: For store failures
            RepositoryTimeoutError: If counting or iteration exceeds its deadline

        Example:
            page = await repo.list(pagination=PaginationParams(first=2))
            if page.has_next_page:
                page = await repo.list(
                    pagination=PaginationParams(first=2, after=page.end_cursor)
                )
        """
        pagination = pagination or PaginationParams()
        caller_filter = list(filter or ())

        self._logger.debug(
            "Listing entities",
            model=self._entity_type.__name__,
            pagination=repr(pagination),
            predicates=len(caller_filter),
        )

        effective = compose_filter(caller_filter, pagination.after_id, pagination.before_id)
        window_count = await self._with_deadline(
            self._store.count(self._collection, effective), "count"
        )
        if pagination.after_id is None and pagination.before_id is None:
            total_count = window_count
        else:
            total_count = await self._with_deadline(
                self._store.count(self._collection, compose_filter(caller_filter)), "count"
            )

        window = compute_page_window(pagination.first, pagination.last, window_count)

        items: list[EntityT] = []
        skipped = 0
        try:
            async with asyncio.timeout(self._list_timeout):
                documents = self._store.find(
                    self._collection, effective, skip=window.skip, limit=window.limit
                )
                async with aclosing(documents):  # type: ignore[type-var]
                    async for document in documents:
                        try:
                            items.append(self._serializer.from_document(document))
                        except SerializationError as e:
                            skipped += 1
                            self._logger.error(
                                "Skipping undecodable document",
                                model=self._entity_type.__name__,
                                entity_id=document.get("id") if isinstance(document, dict) else None,
                                error=str(e),
                            )
        except TimeoutError as e:
            self._logger.error(
                "List iteration timed out",
                model=self._entity_type.__name__,
                timeout_seconds=self._list_timeout,
            )
            raise RepositoryTimeoutError(
                f"list on {self._collection} exceeded {self._list_timeout}s"
            ) from e

        self._logger.debug(
            "Listed entities successfully",
            model=self._entity_type.__name__,
            count=len(items),
            skipped=skipped,
            total=total_count,
        )

        return PaginatedResult(
            items=items,
            total_count=total_count,
            has_previous_page=window.has_previous_page,
            has_next_page=window.has_next_page,
        )

    # ========================================================================
    # COUNT OPERATION
    # ========================================================================

    @trace_database()
    async def count(self, filter: Filter | None = None) -> int:
        """Count non-deleted entities matching filter.

        Raises:
            StoreReadError: For store failures
            RepositoryTimeoutError: If the count exceeds its deadline
        """
        return await self._with_deadline(
            self._store.count(self._collection, compose_filter(filter)), "count"
        )

    # ========================================================================
    # UPDATE OPERATION
    # ========================================================================

    @trace_database()
    async def update(self, entity: EntityT) -> EntityT:
        """Replace a stored entity with the given value.

        Sets updatedAt = now and replaces the non-deleted document with the
        same id. The caller is responsible for carrying id and createdAt over
        from the current state. The cache entry is invalidated rather than
        rewritten, so the next read repopulates it from the store.

        Args:
            entity: Full replacement value, including its id

        Returns:
            The entity as stored after the replace

        Raises:
            InvalidArgumentError: If the entity has no id or a malformed id
            NotFoundError: If no live document has this id (never creates)
            StoreWriteError: For store failures
            RepositoryTimeoutError: If the replace exceeds its deadline

        Example:
            faq = await repo.get(faq_id)
            faq = await repo.update(faq.model_copy(update={"answer": "New answer"}))
        """
        if entity.id is None:
            raise InvalidArgumentError(f"Cannot update a {self._entity_type.__name__} without an id")
        entity_id = self._parse_id(entity.id)

        self._logger.debug(
            "Updating entity",
            model=self._entity_type.__name__,
            entity_id=entity_id,
        )

        entity = entity.model_copy(update={"id": entity_id, "updated_at": self._clock.now()})
        document = self._serializer.to_document(entity)
        stored = await self._with_deadline(
            self._store.replace_one(self._collection, entity_id, document, filter=[NOT_DELETED]),
            "replace",
        )
        if stored is None:
            self._logger.debug(
                "Entity not found for update",
                model=self._entity_type.__name__,
                entity_id=entity_id,
            )
            raise NotFoundError(f"{self._entity_type.__name__} with id {entity_id} not found")

        await self._cache.delete(entity_id)
        try:
            updated = self._serializer.from_document(stored)
        except SerializationError as e:
            # The replace has committed; report the value that was written
            self._logger.warning(
                "Stored document did not decode after update",
                model=self._entity_type.__name__,
                entity_id=entity_id,
                error=str(e),
            )
            updated = entity

        self._logger.info(
            "Entity updated successfully",
            model=self._entity_type.__name__,
            entity_id=entity_id,
        )

        self._emit(VERB_UPDATED, updated)
        return updated

    # ========================================================================
    # DELETE OPERATION
    # ========================================================================

    @trace_database()
    async def delete(self, entity_id: str) -> bool:
        """Soft-delete an entity by id.

        Sets deletedAt = now on the document if it is not already tombstoned.
        The entity disappears from get() and list() immediately; the document
        itself stays in the store.

        Args:
            entity_id: 24-character object id

        Returns:
            True if exactly one document was tombstoned, False if no live
            document matched (unknown id or already deleted)

        Raises:
            InvalidArgumentError: If entity_id is malformed
            StoreWriteError: For store failures
            RepositoryTimeoutError: If the update exceeds its deadline

        Example:
            assert await repo.delete(faq_id) is True
            assert await repo.delete(faq_id) is False  # no second event
        """
        entity_id = self._parse_id(entity_id)
        self._logger.debug(
            "Deleting entity",
            model=self._entity_type.__name__,
            entity_id=entity_id,
        )

        result = await self._with_deadline(
            self._store.update_one(
                self._collection,
                entity_id,
                {"deletedAt": self._clock.now()},
                filter=[NOT_DELETED],
            ),
            "update",
        )

        if result.matched_count != 1 or result.modified_count != 1:
            self._logger.debug(
                "Entity not found for deletion",
                model=self._entity_type.__name__,
                entity_id=entity_id,
                matched=result.matched_count,
                modified=result.modified_count,
            )
            return False

        await self._cache.delete(entity_id)

        self._logger.info(
            "Entity deleted successfully",
            model=self._entity_type.__name__,
            entity_id=entity_id,
        )

        self._emit(VERB_DELETED, result)
        return True

    # ========================================================================
    # DOMAIN EVENTS
    # ========================================================================

    def publish(self, verb: str, payload: Any) -> None:
        """Emit a domain event ``<topic-prefix>.<verb>`` fire-and-forget.

        For higher-level topics beyond created/updated/deleted, such as
        ``order.status_changed``.

        Raises:
            InvalidArgumentError: If verb is empty or contains a dot
        """
        if not verb or "." in verb:
            raise InvalidArgumentError(f"Invalid event verb {verb!r}")
        self._emit(verb, payload)
