"""
Internal Row Identifiers
========================

Opaque ids used as the join key for edits, removals and bookkeeping.

An id combines the nanosecond clock, a process-wide monotonic counter and a
random suffix, so two ids generated in the same clock tick still differ and
ids are never reused within a session.
"""

import itertools
import secrets
import threading
import time

_counter = itertools.count()
_lock = threading.Lock()


def new_internal_id() -> str:
    """Generate a new collision-free internal row id."""
    with _lock:
        seq = next(_counter)
    return f"{time.time_ns():x}-{seq:x}-{secrets.token_hex(3)}"
