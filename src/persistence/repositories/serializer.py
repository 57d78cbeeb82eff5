"""Entity <-> bytes (cache) and entity <-> document (store) conversion."""

from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from persistence.models.base import Entity
from persistence.repositories.exceptions import SerializationError

EntityT = TypeVar("EntityT", bound=Entity)


class EntitySerializer(Generic[EntityT]):
    """Serializer for one entity type.

    Blobs are compact UTF-8 JSON with camelCase field names. ``deletedAt`` is
    omitted while unset, matching the stored document shape. Decoding is
    strict on field types (no string-to-number coercion) and ignores fields
    the entity does not declare.
    """

    def __init__(self, entity_type: type[EntityT]) -> None:
        self._entity_type = entity_type

    @property
    def entity_type(self) -> type[EntityT]:
        return self._entity_type

    @staticmethod
    def _exclude(entity: Entity) -> set[str] | None:
        return {"deleted_at"} if entity.deleted_at is None else None

    def encode(self, entity: EntityT) -> bytes:
        """Serialize entity into a cache blob."""
        try:
            return entity.model_dump_json(by_alias=True, exclude=self._exclude(entity)).encode("utf-8")
        except Exception as e:
            raise SerializationError(
                f"Failed to encode {self._entity_type.__name__}: {e}"
            ) from e

    def decode(self, blob: bytes | str) -> EntityT:
        """Deserialize a cache blob."""
        try:
            return self._entity_type.model_validate_json(blob, strict=True)
        except ValidationError as e:
            raise SerializationError(
                f"Failed to decode {self._entity_type.__name__}: {e}"
            ) from e

    def to_document(self, entity: EntityT) -> dict[str, Any]:
        """Convert entity into a JSON-compatible store document."""
        try:
            return entity.model_dump(mode="json", by_alias=True, exclude=self._exclude(entity))
        except Exception as e:
            raise SerializationError(
                f"Failed to encode {self._entity_type.__name__}: {e}"
            ) from e

    def from_document(self, document: dict[str, Any]) -> EntityT:
        """Convert a store document back into an entity.

        Documents come out of a JSON column, so timestamps arrive as ISO
        strings; validation runs in JSON-compatible mode for that reason.
        """
        if not isinstance(document, dict):
            raise SerializationError(
                f"Expected a document object for {self._entity_type.__name__}, "
                f"got {type(document).__name__}"
            )
        try:
            return self._entity_type.model_validate(document)
        except ValidationError as e:
            raise SerializationError(
                f"Failed to decode {self._entity_type.__name__} document "
                f"{document.get('id')!r}: {e}"
            ) from e
