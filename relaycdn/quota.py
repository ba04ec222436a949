"""
Per-client upload accounting.

Each client id owns a QuotaState holding the bytes and upload count admitted
since ``window_start``. The window is not slid continuously: it restarts on
the first request that arrives after it expired.

State lives in process memory and is read and written without a lock, so
requests interleaving on the same client can both be admitted against the same
stale counters. Quotas are not shared between processes and vanish on restart.
"""

from dataclasses import dataclass
import logging
import time
from typing import Callable

logger = logging.getLogger("relaycdn.quota")

UNKNOWN_CLIENT = "Unknown"


def epoch_millis() -> int:
    return int(time.time() * 1000)


def coerce_size(value) -> int:
    """Turn a client-declared size into a non-negative int, 0 when unusable."""
    if isinstance(value, bool):
        return 0
    try:
        size = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return size if size > 0 else 0


@dataclass
class QuotaState:
    window_start: int
    bytes_used: int = 0
    upload_count: int = 0


@dataclass(frozen=True)
class Admission:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Admission(allowed=True)


class QuotaLimiter:
    def __init__(
        self,
        name: str,
        window_seconds: int,
        max_uploads: int,
        max_bytes: int | None = None,
        clock: Callable[[], int] = epoch_millis,
    ):
        self.name = name
        self.window_ms = window_seconds * 1000
        self.max_uploads = max_uploads
        self.max_bytes = max_bytes
        self._clock = clock
        self._states: dict[str, QuotaState] = {}

    def admit(self, client_id: str | None, requested_bytes=0) -> Admission:
        client_id = client_id or UNKNOWN_CLIENT
        requested = coerce_size(requested_bytes)
        now = self._clock()

        state = self._states.get(client_id)
        if state is None:
            state = QuotaState(window_start=now)
            self._states[client_id] = state
        elif now - state.window_start > self.window_ms:
            state.window_start = now
            state.bytes_used = 0
            state.upload_count = 0

        if self.max_bytes is not None and state.bytes_used + requested > self.max_bytes:
            logger.warning(
                "%s denied client %s: %d + %d bytes exceeds %d",
                self.name, client_id, state.bytes_used, requested, self.max_bytes,
                extra={"client_id": client_id},
            )
            return Admission(allowed=False, reason="byte quota exceeded")

        if state.upload_count + 1 > self.max_uploads:
            logger.warning(
                "%s denied client %s: upload count %d reached ceiling",
                self.name, client_id, state.upload_count,
                extra={"client_id": client_id},
            )
            return Admission(allowed=False, reason="upload count exceeded")

        state.bytes_used += requested
        state.upload_count += 1
        return ALLOW

    def usage(self, client_id: str | None) -> QuotaState | None:
        state = self._states.get(client_id or UNKNOWN_CLIENT)
        if state is None:
            return None
        return QuotaState(state.window_start, state.bytes_used, state.upload_count)

    def reset(self) -> None:
        self._states.clear()
