import uuid
from datetime import datetime, timedelta

# In-memory cache for presigned URLs
_url_cache: dict[str, dict[str, str | datetime]] = {}

# Plaintext API keys kept for a short reveal window after issuance
_revealed_keys: dict[uuid.UUID, dict[str, str | uuid.UUID | datetime]] = {}

REVEAL_WINDOW = timedelta(hours=24)


def cache_presigned_url(object_key: str, url: str, expires_in: int) -> None:
    """Cache a presigned URL until shortly before it expires"""
    buffer = min(600, expires_in // 6)
    _url_cache[object_key] = {
        "url": url,
        "expires_at": datetime.now() + timedelta(seconds=expires_in - buffer),
    }


def get_cached_presigned_url(object_key: str) -> str | None:
    """Get cached presigned URL if still valid"""
    cached = _url_cache.get(object_key)
    if cached:
        expires_at = cached["expires_at"]
        if isinstance(expires_at, datetime) and expires_at > datetime.now():
            url = cached["url"]
            return str(url) if isinstance(url, str) else None

    _url_cache.pop(object_key, None)
    return None


def clear_presigned_url_cache(object_key: str) -> None:
    """Drop the cached URL of an object that was deleted, replaced or moved"""
    _url_cache.pop(object_key, None)


def store_revealed_key(key_id: uuid.UUID, token: str, user_id: uuid.UUID) -> None:
    _revealed_keys[key_id] = {
        "token": token,
        "user_id": user_id,
        "expires_at": datetime.now() + REVEAL_WINDOW,
    }


def get_revealed_key(key_id: uuid.UUID, user_id: uuid.UUID) -> str | None:
    """Return the plaintext token while the reveal window is open and the caller owns it."""
    entry = _revealed_keys.get(key_id)
    if not entry:
        return None
    expires_at = entry["expires_at"]
    if not isinstance(expires_at, datetime) or expires_at <= datetime.now():
        _revealed_keys.pop(key_id, None)
        return None
    if entry["user_id"] != user_id:
        return None
    return str(entry["token"])


def remove_revealed_key(key_id: uuid.UUID) -> None:
    _revealed_keys.pop(key_id, None)


def cleanup_revealed_keys() -> int:
    """Evict expired reveal entries. Returns how many were removed."""
    now = datetime.now()
    expired = [key_id for key_id, entry in _revealed_keys.items() if not isinstance(entry["expires_at"], datetime) or entry["expires_at"] <= now]
    for key_id in expired:
        del _revealed_keys[key_id]
    return len(expired)
