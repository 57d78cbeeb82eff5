"""Server-assigned object identifiers.

Identifiers are 12 bytes rendered as 24 lowercase hex characters:

    4 bytes  seconds since the epoch (big-endian)
    5 bytes  random value fixed for the lifetime of the process
    3 bytes  incrementing counter

The timestamp prefix makes identifiers sort in creation order, which lets the
identifier double as the pagination key.
"""

import itertools
import os
import re
import secrets
import threading
import time

OBJECT_ID_LENGTH = 24

_OBJECT_ID_PATTERN = re.compile(r"[0-9a-f]{24}")
_PROCESS_UNIQUE = os.urandom(5)
_COUNTER_MAX = 0xFFFFFF

# Start in the lower half so a wrap inside a single second is practically impossible
_counter = itertools.count(secrets.randbelow(_COUNTER_MAX // 2))
_counter_lock = threading.Lock()


def new_object_id(timestamp: float | None = None) -> str:
    """Generate a new sortable object identifier.

    Args:
        timestamp: Seconds since the epoch to embed (default: current time)

    Returns:
        24-character lowercase hex identifier
    """
    seconds = int(time.time() if timestamp is None else timestamp) & 0xFFFFFFFF
    with _counter_lock:
        count = next(_counter) & _COUNTER_MAX
    raw = seconds.to_bytes(4, "big") + _PROCESS_UNIQUE + count.to_bytes(3, "big")
    return raw.hex()


def is_object_id(value: object) -> bool:
    """Return True if value is a canonical object identifier string."""
    return isinstance(value, str) and bool(_OBJECT_ID_PATTERN.fullmatch(value))


def parse_object_id(value: object) -> str:
    """Validate and canonicalize an object identifier.

    Hex digits are accepted in either case and returned lowercase.

    Raises:
        ValueError: If value is not a 24-character hex string
    """
    if not isinstance(value, str):
        raise ValueError(f"object id must be a string, got {type(value).__name__}")
    canonical = value.lower()
    if not _OBJECT_ID_PATTERN.fullmatch(canonical):
        raise ValueError(f"{value!r} is not a valid object id")
    return canonical
