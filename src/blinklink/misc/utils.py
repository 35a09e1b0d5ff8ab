from datetime import UTC, datetime
from time import time

from rich.console import Console

# Handles
cout = Console()
cerr = Console(stderr=True)


def time_now_ms() -> int:
    """Return time in milliseconds since the Epoch."""
    return int(time() * 1000)


def iso_now() -> str:
    """Return the current UTC time as an ISO-8601 string (event timestamps)."""
    return datetime.now(UTC).isoformat()


def ms_from_iso(value: str) -> int | None:
    """Parse an ISO-8601 timestamp into epoch milliseconds, or None if invalid."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp() * 1000)
