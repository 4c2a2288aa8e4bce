"""
Session core types.

A ``Session`` is a string-keyed mapping of JSON-serialisable values plus
timestamps. The token that identifies it is opaque and random; the cookie
sent to the client carries only that token.

Lifetime is absolute: ``expires_at`` is fixed at creation and never
extended. ``last_accessed`` is refreshed on every load.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, Optional


def new_token() -> str:
    """Generate an opaque session token (256 bits, URL-safe)."""
    return secrets.token_urlsafe(32)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session:
    """
    One user's session record.

    Mutations mark the session dirty; ``SessionManager.commit`` only writes
    dirty sessions back to the store.
    """

    __slots__ = (
        "token",
        "data",
        "created_at",
        "last_accessed",
        "expires_at",
        "_dirty",
        "_destroyed",
        "_is_new",
        "_previous_token",
    )

    def __init__(
        self,
        token: str,
        *,
        data: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
        last_accessed: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
        lifetime: timedelta = timedelta(hours=24),
        is_new: bool = False,
    ):
        now = utcnow()
        self.token = token
        self.data: Dict[str, Any] = dict(data or {})
        self.created_at = created_at or now
        self.last_accessed = last_accessed or self.created_at
        self.expires_at = expires_at or (self.created_at + lifetime)
        self._dirty = False
        self._destroyed = False
        self._is_new = is_new
        self._previous_token: Optional[str] = None

    @classmethod
    def create(cls, lifetime: timedelta, now: Optional[datetime] = None) -> "Session":
        return cls(new_token(), created_at=now or utcnow(), lifetime=lifetime, is_new=True)

    # ========================================================================
    # Data access
    # ========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def put(self, key: str, value: Any) -> None:
        self.data[key] = value
        self._dirty = True

    def pop(self, key: str, default: Any = None) -> Any:
        if key not in self.data:
            return default
        self._dirty = True
        return self.data.pop(key)

    def remove(self, key: str) -> None:
        if key in self.data:
            del self.data[key]
            self._dirty = True

    def clear(self) -> None:
        if self.data:
            self.data.clear()
            self._dirty = True

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.put(key, value)

    def __delitem__(self, key: str) -> None:
        if key not in self.data:
            raise KeyError(key)
        self.remove(key)

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_accessed = now or utcnow()

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        return max(self.expires_at - (now or utcnow()), timedelta(0))

    def destroy(self) -> None:
        """Mark for deletion; the manager removes it from the store on commit."""
        self.data.clear()
        self._destroyed = True

    def renew(self, token: str) -> None:
        """Swap the token, keeping data. The old record is deleted on commit."""
        if self._previous_token is None and not self._is_new:
            self._previous_token = self.token
        self.token = token
        self._dirty = True

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def is_new(self) -> bool:
        return self._is_new

    @property
    def previous_token(self) -> Optional[str]:
        return self._previous_token

    def mark_clean(self) -> None:
        self._dirty = False
        self._is_new = False
        self._previous_token = None

    # ========================================================================
    # Serialization
    # ========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "created_at": self.created_at.isoformat(),
            "last_accessed": self.last_accessed.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, token: str, payload: Dict[str, Any]) -> "Session":
        return cls(
            token,
            data=payload.get("data") or {},
            created_at=datetime.fromisoformat(payload["created_at"]),
            last_accessed=datetime.fromisoformat(payload["last_accessed"]),
            expires_at=datetime.fromisoformat(payload["expires_at"]),
        )

    def __repr__(self) -> str:
        return f"<Session keys={sorted(self.data)} expires_at={self.expires_at.isoformat()}>"
