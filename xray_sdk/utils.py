"""
Id and clock helpers shared by the builder and the session
"""

import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional


def generate_id(prefix: str) -> str:
    """
    Millisecond timestamp plus a full uuid4 suffix.

    The timestamp keeps ids roughly sortable; the uuid makes them safe to
    share across processes writing to the same store.
    """
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_after(previous: Optional[datetime]) -> datetime:
    """Current UTC time, bumped to stay strictly after `previous`"""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now
