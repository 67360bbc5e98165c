from datetime import datetime, timezone


def format_date_to_iso(date: datetime) -> str:
    """Helper function to format dates to the required ISO 8601 format (e.g., 2024-11-01T17:12:26.000Z)."""
    return date.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def now_iso() -> str:
    return format_date_to_iso(datetime.now(timezone.utc))


def now_timestamp() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def to_unix_seconds(value) -> int:
    """
    Normalise a stored timestamp to unix seconds. Older documents hold
    milliseconds, datetimes or {"seconds": ..., "nanoseconds": ...} maps.
    """
    if value is None:
        return 0

    if isinstance(value, datetime):
        return int(value.timestamp())

    if isinstance(value, dict):
        return int(value.get("seconds") or 0)

    try:
        value = int(value)
    except (TypeError, ValueError):
        return 0

    # Stored as milliseconds
    if len(str(value)) > 10:
        value = value // 1000

    return value


def unique_strings(values) -> list[str]:
    """Drop non-strings and blanks, keep first occurrence order."""
    if not isinstance(values, list):
        return []

    seen = {}
    for value in values:
        if isinstance(value, str) and value:
            seen.setdefault(value, None)
    return list(seen)
