from __future__ import annotations

import datetime as dt
import time


def elapsed_ms(started_at: float) -> int:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return int((time.perf_counter() - started_at) * 1000)


def utc_timestamp() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()
