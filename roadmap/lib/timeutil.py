"""Timestamp helpers. All stored timestamps are ISO-8601 UTC."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utc_now().isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def time_ago(value: str, now: datetime | None = None) -> str:
    """Short relative age for CLI listings ("5m ago", "2d ago")."""
    now = now or utc_now()
    seconds = int((now - parse_timestamp(value)).total_seconds())

    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    if seconds < 604800:
        return f"{seconds // 86400}d ago"
    return parse_timestamp(value).strftime("%Y-%m-%d")
