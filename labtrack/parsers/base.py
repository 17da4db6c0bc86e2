from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from .models import EPOCH


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def _get(ref: Any, key: str) -> Any:
    if isinstance(ref, Mapping):
        return ref.get(key)
    return getattr(ref, key, None)


def first_present(ref: Any, *keys: str) -> Any:
    """First non-blank value among `keys` (dicts or plain objects)."""
    if ref is None:
        return None
    for k in keys:
        v = _get(ref, k)
        if is_present(v):
            return v
    return None


def key_str(value: Any) -> Optional[str]:
    # 12, "12" and " 12 " are the same key to the backend
    return str(value).strip() if is_present(value) else None


def parse_timestamp(raw: Any, default: datetime = EPOCH) -> datetime:
    """ISO string / epoch millis / datetime -> aware UTC datetime; otherwise `default`."""
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, bool):
        return default
    elif isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return default
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return default
    else:
        return default
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
