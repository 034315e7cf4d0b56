from datetime import datetime, timedelta, timezone
from typing import Tuple

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _to_utc(dt: datetime) -> datetime:
    if dt is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if dt.tzinfo is None:
        # naive timestamps from the db are already UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def _to_micros(dt: datetime) -> int:
    dt = _to_utc(dt)
    return (dt - _EPOCH) // timedelta(microseconds=1)

def _from_micros(us: int) -> datetime:
    return _EPOCH + timedelta(microseconds=us)

# listing ids are opaque strings and may contain ':', so the id is always the tail

# --- newest: (created_us, id) ---

def make_cursor_newest(created_at: datetime, listing_id: str) -> str:
    return f"{_to_micros(created_at)}:{listing_id}"

def parse_cursor_newest(s: str) -> Tuple[int, str]:
    us_s, lid = s.split(":", 1)
    if not lid:
        raise ValueError("cursor without id")
    return int(us_s), lid

# --- price: (price_cents, id) ---

def make_cursor_price(price_cents: int, listing_id: str) -> str:
    return f"{int(price_cents)}:{listing_id}"

def parse_cursor_price(s: str) -> Tuple[int, str]:
    p_s, lid = s.split(":", 1)
    if not lid:
        raise ValueError("cursor without id")
    return int(p_s), lid
