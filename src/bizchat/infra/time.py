"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def normalize_timestamp(value: str | int | float | None) -> str:
    """Normalize a provider timestamp to ISO-8601 UTC.

    Providers disagree on the format: Meta sends epoch seconds as a string,
    MSG91 sends "YYYY-MM-DD HH:MM:SS" or ISO strings, Twilio sends nothing.
    Naive datetimes are assumed to be UTC. Unparseable or missing values
    fall back to the current time.
    """
    if value is None or value == "":
        return utc_now().isoformat()

    if isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().isdigit()):
        try:
            return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return utc_now().isoformat()

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return utc_now().isoformat()

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()
