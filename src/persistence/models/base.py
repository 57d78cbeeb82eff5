"""Base classes for stored documents and the entities they hold.

Two layers live here:

- ``DocumentRecord`` is the SQLAlchemy table backing the document store. Every
  entity collection shares it, keyed by ``(collection, id)``; the entity body
  is kept as a JSON document while the common timestamps are mirrored into
  indexed columns.
- ``Entity`` is the pydantic base every marketplace entity extends. It carries
  the common shape (``id``, ``createdAt``, ``updatedAt``, ``deletedAt``) and the
  per-entity wiring (``collection_name``, ``topic_prefix``).
"""

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from persistence.models.ids import OBJECT_ID_LENGTH


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns.

    Values come from the repository clock rather than the database server so
    the mirrored columns always match the document body.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        """Timestamp when the record was created."""
        return mapped_column(DateTime(timezone=True), nullable=False)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        """Timestamp when the record was last replaced."""
        return mapped_column(DateTime(timezone=True), nullable=False)


class SoftDeleteMixin:
    """Mixin that adds soft delete functionality with deleted_at timestamp."""

    @declared_attr
    def deleted_at(cls) -> Mapped[datetime | None]:
        """Timestamp when the record was soft-deleted. None if not deleted."""
        return mapped_column(
            DateTime(timezone=True),
            nullable=True,
            default=None,
        )


def generate_repr(*attrs: str) -> Any:
    """Generate a __repr__ method for model classes.

    Example:
        __repr__ = generate_repr("collection", "id")
    """

    def __repr__(self: Any) -> str:
        class_name = self.__class__.__name__
        attr_strs = [f"{attr}={getattr(self, attr)!r}" for attr in attrs]
        return f"{class_name}({', '.join(attr_strs)})"

    return __repr__


class DocumentRecord(Base, TimestampMixin, SoftDeleteMixin):
    """A single stored document within a named collection.

    Attributes:
        collection: Collection name declared by the entity type
        id: 24-character object id, unique within the collection
        data: Full document body as JSON (camelCase keys)
        created_at / updated_at / deleted_at: Mirrors of the document timestamps
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(OBJECT_ID_LENGTH), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_documents_collection_deleted_at", "collection", "deleted_at"),
    )

    __repr__ = generate_repr("collection", "id", "deleted_at")


class Entity(BaseModel):
    """Common shape of every soft-deletable marketplace entity.

    Subclasses declare their fields plus two class variables:

        class FAQ(Entity):
            collection_name: ClassVar[str] = "faqs"
            topic_prefix: ClassVar[str] = "faq"

            question: str = ""

    Field names are snake_case in Python and camelCase on the wire. Unknown
    fields are ignored on decode so additive schema changes stay readable.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    collection_name: ClassVar[str]
    topic_prefix: ClassVar[str]

    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        """True if the entity carries a tombstone."""
        return self.deleted_at is not None
