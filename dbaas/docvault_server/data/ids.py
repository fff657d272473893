"""
Dated identifiers for new documents.

Ids look like ``20261018164205123000aq3x9k2m``:

    YYYYMMDDhhmmss + milliseconds (17 chars, UTC)
    sequence within the millisecond (3 chars, base36)
    random suffix (8 chars, base36)

They sort by creation time as plain strings, and the random suffix keeps
ids from separate processes apart.
"""

from __future__ import annotations

import secrets
import string
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone

ALPHABET = string.digits + string.ascii_lowercase


def _base36(value: int, width: int) -> str:
    chars = []
    for _ in range(width):
        value, rem = divmod(value, 36)
        chars.append(ALPHABET[rem])
    return "".join(reversed(chars))


class IdForge:
    """Generates time-ordered, collision-resistant ids.

    Attributes:
        random_length: Length of the random suffix

    Thread safety:
        The per-millisecond sequence is guarded by a lock.
    """

    def __init__(
        self,
        random_length: int = 8,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.random_length = random_length
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = 0
        self._seq = 0

    def dated_id(self) -> str:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            if now_ms <= self._last_ms:
                # Clock stalled or went backwards: stay on the last millisecond
                now_ms = self._last_ms
                self._seq += 1
            else:
                self._last_ms = now_ms
                self._seq = 0
            seq = self._seq

        stamp = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
        suffix = "".join(secrets.choice(ALPHABET) for _ in range(self.random_length))
        return f"{stamp:%Y%m%d%H%M%S}{now_ms % 1000:03d}{_base36(seq, 3)}{suffix}"

    __call__ = dated_id


_default_forge = IdForge()


def new_id() -> str:
    """Generate an id from the process-wide forge."""
    return _default_forge.dated_id()
