from datetime import datetime, timezone
from typing import Optional


# Every reader and writer of stored dates goes through this format.
# Changing it makes previously written records unparseable.
DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_date(value: datetime) -> str:
    return _as_utc(value).strftime(DATE_FORMAT)


def parse_date(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value, DATE_FORMAT)
    except (TypeError, ValueError):
        return None


def to_timestamp_ms(value: datetime) -> int:
    return round(_as_utc(value).timestamp() * 1000)


def from_timestamp_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
