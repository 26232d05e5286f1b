from datetime import date, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def shorten(text, width: int = 50) -> str:
    """Truncate text for log lines."""
    if not text:
        return ""
    return text if len(text) <= width else text[:width] + "..."
