from datetime import datetime, timezone


def utcnow():
    """Naive UTC timestamp; the DateTime columns carry no timezone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
