"""
hxforge sessions - cookie-token server-side sessions.

The cookie carries only an opaque token; data lives in a ``SessionStore``
(in-memory or Redis/Valkey). ``SessionManager`` owns load and commit,
``SessionMiddleware`` wires it into the request chain.
"""

from .core import Session, new_token
from .faults import SessionFault, SessionStoreUnavailableFault
from .manager import SessionManager
from .store import MemoryStore, RedisStore, SessionStore

__all__ = [
    "Session",
    "new_token",
    "SessionFault",
    "SessionStoreUnavailableFault",
    "SessionManager",
    "SessionStore",
    "MemoryStore",
    "RedisStore",
]
