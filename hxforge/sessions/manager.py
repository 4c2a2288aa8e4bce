"""
Session manager - load/commit lifecycle around one request.

1. Load - read the token cookie, fetch from the store or start a new session
2. Bind - the middleware attaches the session to the request
3. Mutate - handlers read/write session data
4. Commit - persist dirty sessions and emit the cookie, or destroy

A store outage during load degrades to a fresh, unsaved session unless the
manager was built with ``required=True``.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Optional

from .core import Session, new_token
from .faults import SessionStoreUnavailableFault

if TYPE_CHECKING:
    from hxforge.request import Request
    from hxforge.response import Response
    from .store import SessionStore


class SessionManager:
    """
    Cookie-token session lifecycle orchestrator.

    Example:
        >>> manager = SessionManager(MemoryStore(), lifetime=3600)
        >>> session = await manager.load(request)
        >>> session["count"] = 3
        >>> await manager.commit(session, response)
    """

    def __init__(
        self,
        store: "SessionStore",
        *,
        lifetime: int = 24 * 60 * 60,
        cookie_name: str = "session",
        cookie_path: str = "/",
        cookie_domain: Optional[str] = None,
        secure: bool = False,
        samesite: str = "Lax",
        required: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.lifetime = timedelta(seconds=lifetime)
        self.cookie_name = cookie_name
        self.cookie_path = cookie_path
        self.cookie_domain = cookie_domain
        self.secure = secure
        self.samesite = samesite
        self.required = required
        self.logger = logger or logging.getLogger("hxforge.sessions")

    # ========================================================================
    # Load
    # ========================================================================

    async def load(self, request: "Request") -> Session:
        """
        Resolve the session for a request.

        Raises:
            SessionStoreUnavailableFault: store is down and sessions are required
        """
        token = request.cookie(self.cookie_name)
        if not token:
            return self.new_session()

        try:
            session = await self.store.load(token)
        except SessionStoreUnavailableFault as fault:
            if self.required:
                raise
            self.logger.warning("Session store unavailable, using a fresh session: %s", fault.message)
            return self.new_session()

        if session is None or session.is_expired():
            return self.new_session()

        session.touch()
        return session

    def new_session(self) -> Session:
        return Session.create(self.lifetime)

    # ========================================================================
    # Commit
    # ========================================================================

    async def commit(self, session: Session, response: Optional["Response"]) -> bool:
        """
        Persist a session and write its cookie.

        ``response`` may be None when the handler raised; the store write
        still happens so work done before the error is kept. Store failures
        are logged, never raised, because the response is already decided.

        Returns True when the client's cookie has to change.
        """
        if session.is_destroyed:
            await self._delete(session.token)
            if session.previous_token:
                await self._delete(session.previous_token)
            if response is not None:
                self.write_cookie(session, response)
            return True

        if not session.is_dirty:
            return False

        previous = session.previous_token
        try:
            await self.store.save(session)
        except SessionStoreUnavailableFault as fault:
            self.logger.error("Failed to persist session: %s", fault.message)
            return False

        if previous:
            await self._delete(previous)
        session.mark_clean()

        if response is not None:
            self.write_cookie(session, response)
        return True

    def write_cookie(self, session: Session, response: "Response") -> None:
        """Set the session cookie on ``response``, or expire it for a destroyed session."""
        if session.is_destroyed:
            response.delete_cookie(
                self.cookie_name,
                path=self.cookie_path,
                domain=self.cookie_domain,
                secure=self.secure,
                samesite=self.samesite,
            )
            return
        response.set_cookie(
            self.cookie_name,
            session.token,
            max_age=max(int(session.remaining().total_seconds()), 0),
            expires=session.expires_at,
            path=self.cookie_path,
            domain=self.cookie_domain,
            secure=self.secure,
            httponly=True,
            samesite=self.samesite,
        )

    async def _delete(self, token: str) -> None:
        try:
            await self.store.delete(token)
        except SessionStoreUnavailableFault as fault:
            self.logger.warning("Failed to delete session record: %s", fault.message)

    # ========================================================================
    # Helpers for handlers
    # ========================================================================

    def destroy(self, session: Session) -> None:
        session.destroy()

    def renew_token(self, session: Session) -> None:
        """Issue a new token for the same data (call after privilege changes)."""
        session.renew(new_token())

    async def shutdown(self) -> None:
        await self.store.shutdown()

    def __repr__(self) -> str:
        return f"<SessionManager store={self.store.name} cookie={self.cookie_name!r}>"


__all__ = ["SessionManager"]
