"""Exception hierarchy for repository and document store operations.

Applications catch these to map persistence failures onto their own
responses. Cache and event failures never surface here; they are recovered
where they happen.
"""


class RepositoryError(Exception):
    """Base exception for all repository operations.

    Example:
        try:
            faq = await repo.create(FAQ(question="..."))
        except RepositoryError as e:
            logger.error("Persistence failed", error=str(e))
    """
    pass


class InvalidArgumentError(RepositoryError, ValueError):
    """Raised for malformed input: bad ids, bad cursors, negative page sizes."""
    pass


class InvalidCursorError(InvalidArgumentError):
    """Raised when an opaque pagination cursor cannot be decoded."""
    pass


class NotFoundError(RepositoryError):
    """Raised when an operation requires a document that does not exist.

    Reads report absence as ``None`` instead; this is raised by Update and by
    ``get_or_raise``.
    """
    pass


class StoreWriteError(RepositoryError):
    """Raised when an authoritative store mutation fails."""
    pass


class ConflictError(StoreWriteError):
    """Raised when a write violates a store constraint (duplicate id, ...)."""
    pass


class StoreReadError(RepositoryError):
    """Raised when a store read fails for any reason other than a miss."""
    pass


class RepositoryTimeoutError(RepositoryError, TimeoutError):
    """Raised when a store call exceeds its deadline."""
    pass


class SerializationError(RepositoryError):
    """Raised when an entity cannot be encoded or a blob/document decoded."""
    pass
