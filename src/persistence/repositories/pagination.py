"""Cursor pagination over the ascending id order.

Cursors are the entity id rendered as its canonical string and wrapped in
URL-safe base64. Callers must treat them as opaque tokens; only the
repository decodes them.

Page boundaries are computed from the number of documents in the cursor
window and the ``first``/``last`` caps alone. Returned items are never
inspected to decide the page flags.
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from persistence.models.base import Entity
from persistence.models.ids import parse_object_id
from persistence.repositories.exceptions import InvalidArgumentError, InvalidCursorError

EntityT = TypeVar("EntityT", bound=Entity)


def encode_cursor(entity_id: str) -> str:
    """Wrap an entity id into an opaque URL-safe cursor."""
    return base64.urlsafe_b64encode(entity_id.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> str:
    """Unwrap an opaque cursor into the entity id it points at.

    Raises:
        InvalidCursorError: If the cursor is not URL-safe base64 of an object id
    """
    if not isinstance(cursor, str) or not cursor:
        raise InvalidCursorError(f"Invalid cursor {cursor!r}")
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        return parse_object_id(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidCursorError(f"Invalid cursor {cursor!r}") from e


class PaginationParams:
    """Cursor pagination parameters for list operations.

    Attributes:
        after: Opaque cursor; only items with a greater id are returned
        before: Opaque cursor; only items with a smaller id are returned
        first: Cap on items, counted from the start of the window
        last: Cap on items, counted from the end of the window

    Example:
        page = await repo.list(pagination=PaginationParams(first=20))
        if page.has_next_page:
            page = await repo.list(
                pagination=PaginationParams(first=20, after=page.end_cursor)
            )

    Raises:
        InvalidArgumentError: If first or last is negative or not an integer
        InvalidCursorError: If after or before cannot be decoded
    """

    def __init__(
        self,
        after: str | None = None,
        before: str | None = None,
        first: int | None = None,
        last: int | None = None,
    ) -> None:
        for name, value in (("first", first), ("last", last)):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidArgumentError(f"{name} must be an integer")
            if value < 0:
                raise InvalidArgumentError(f"{name} must be non-negative")

        self.after = after
        self.before = before
        self.first = first
        self.last = last
        self.after_id = decode_cursor(after) if after is not None else None
        self.before_id = decode_cursor(before) if before is not None else None

    def __repr__(self) -> str:
        return (
            f"PaginationParams(after={self.after!r}, before={self.before!r}, "
            f"first={self.first!r}, last={self.last!r})"
        )


@dataclass(frozen=True)
class PageWindow:
    """Skip/limit to apply to the store query plus the page flags.

    ``limit`` of None means unbounded; a limit of 0 is an empty page.
    """

    skip: int
    limit: Optional[int]
    has_previous_page: bool
    has_next_page: bool


def compute_page_window(first: int | None, last: int | None, count: int) -> PageWindow:
    """Resolve skip/limit and page flags from the caps and the window size.

    ``first`` caps the window from the front when the window is larger than
    it. ``last`` then keeps only the tail: of the first-capped window when
    that cap applied, otherwise of the whole window.

    Args:
        first: Optional cap from the start of the window
        last: Optional cap from the end of the window
        count: Number of documents in the cursor window

    Example:
        >>> compute_page_window(first=10, last=2, count=5)
        PageWindow(skip=3, limit=None, has_previous_page=True, has_next_page=False)
    """
    skip = 0
    limit: int | None = None

    if first is not None and count > first:
        limit = first

    if last is not None:
        if limit is not None:
            if limit > last:
                skip = limit - last
                limit = last
        elif count > last:
            skip = count - last

    return PageWindow(
        skip=skip,
        limit=limit,
        has_previous_page=last is not None and count > last,
        has_next_page=first is not None and count > first,
    )


class PaginatedResult(Generic[EntityT]):
    """A page of entities with connection-style metadata.

    Attributes:
        items: Entities in ascending id order
        total_count: Non-deleted entities matching the caller filter,
            regardless of cursors and caps
        has_previous_page / has_next_page: Page flags
    """

    def __init__(
        self,
        items: list[EntityT],
        total_count: int,
        has_previous_page: bool = False,
        has_next_page: bool = False,
    ) -> None:
        self.items = items
        self.total_count = total_count
        self.has_previous_page = has_previous_page
        self.has_next_page = has_next_page

    @staticmethod
    def cursor_for(item: Entity) -> str:
        """Opaque cursor pointing at item."""
        if item.id is None:
            raise InvalidArgumentError("Cannot build a cursor for an entity without an id")
        return encode_cursor(item.id)

    @property
    def start_cursor(self) -> str | None:
        return self.cursor_for(self.items[0]) if self.items else None

    @property
    def end_cursor(self) -> str | None:
        return self.cursor_for(self.items[-1]) if self.items else None

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        return (
            f"PaginatedResult(items={len(self.items)}, total_count={self.total_count}, "
            f"has_previous_page={self.has_previous_page}, has_next_page={self.has_next_page})"
        )
