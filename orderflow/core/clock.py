from datetime import datetime

import pytz


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 back to an aware datetime (naive values are taken as UTC)."""
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else pytz.utc.localize(parsed)
