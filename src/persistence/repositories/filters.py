"""Store filters and the soft-delete filter composer.

A filter is an ordered list of predicates combined with AND. Field names are
the wire (camelCase) names of the document, e.g. ``"isActive"``; the common
fields ``id``, ``createdAt``, ``updatedAt`` and ``deletedAt`` map onto indexed
columns in the store.

Example:
    from persistence.repositories.filters import eq, gte

    page = await repo.list([eq("isActive", True), gte("displayOrder", 2)])
"""

import enum
from dataclasses import dataclass
from typing import Any, Sequence

DELETED_AT = "deletedAt"
ID = "id"


class Operator(str, enum.Enum):
    """Comparison operators supported by the document store."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    EXISTS = "exists"


@dataclass(frozen=True)
class Predicate:
    """A single typed condition on a document field.

    For ``EXISTS`` the value is a bool: True requires the field to be
    present (and not null), False requires it to be absent.
    """

    field: str
    op: Operator
    value: Any = None

    def __post_init__(self) -> None:
        if not self.field:
            raise ValueError("Predicate field must be a non-empty string")
        if self.op is Operator.EXISTS and not isinstance(self.value, bool):
            raise ValueError("EXISTS predicates take a bool value")
        if self.op is Operator.IN and isinstance(self.value, (str, bytes)):
            raise ValueError("IN predicates take a sequence of values")


Filter = Sequence[Predicate]


def eq(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.EQ, value)


def ne(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.NE, value)


def gt(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.GT, value)


def gte(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.GTE, value)


def lt(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.LT, value)


def lte(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.LTE, value)


def in_(field: str, values: Sequence[Any]) -> Predicate:
    return Predicate(field, Operator.IN, tuple(values))


def exists(field: str) -> Predicate:
    return Predicate(field, Operator.EXISTS, True)


def absent(field: str) -> Predicate:
    return Predicate(field, Operator.EXISTS, False)


NOT_DELETED = absent(DELETED_AT)


def _canonical_id(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def canonicalize(predicate: Predicate) -> Predicate:
    """Lower-case string values compared against ``id``.

    Ids are stored lowercase, so this lets a filter match the same ids that
    get() and delete() accept. Other predicates are returned as is.
    """
    if predicate.field != ID or predicate.op is Operator.EXISTS:
        return predicate
    if predicate.op is Operator.IN:
        value: Any = tuple(_canonical_id(v) for v in predicate.value)
    else:
        value = _canonical_id(predicate.value)
    if value == predicate.value:
        return predicate
    return Predicate(predicate.field, predicate.op, value)


def compose_filter(
    caller_filter: Filter | None = None,
    after_id: str | None = None,
    before_id: str | None = None,
) -> list[Predicate]:
    """Build the effective store filter for a read.

    The caller's predicates come first, in order and with string ids
    lower-cased (see canonicalize), followed by ``deletedAt absent`` and then
    the cursor bounds (``id > after_id``, ``id < before_id``). The not-deleted
    predicate is always appended, so a caller filter that asks for
    ``deletedAt`` can never surface tombstones.

    Pure function; no I/O.
    """
    effective = [canonicalize(predicate) for predicate in caller_filter or ()]
    effective.append(NOT_DELETED)
    if after_id is not None:
        effective.append(gt(ID, after_id))
    if before_id is not None:
        effective.append(lt(ID, before_id))
    return effective
