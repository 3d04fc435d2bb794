"""
Resource pool manager for the shared rendering session.

Owns at most one live shared session ("epoch"). The session is created
lazily on the first borrow and torn down by ``recycle()``; attempts only
ever see per-attempt handles lent through ``borrow_handle()``, which
releases the handle on every exit path.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from lexicon_harvester.utils.errors import SessionError
from lexicon_harvester.utils.logging import get_logger
from .interfaces import Handle, SessionProvider, SharedSession


logger = get_logger(__name__)


class SessionPool:
    """Lifecycle manager for one shared session and its borrowed handles."""

    def __init__(self, provider: SessionProvider):
        """
        Initialize the pool.

        Args:
            provider: Factory used to create each epoch's shared session
        """
        self.provider = provider

        self._session: Optional[SharedSession] = None
        self._lock = asyncio.Lock()
        self._closed = False

        # Statistics
        self._outstanding = 0
        self._epochs = 0
        self._recycles = 0
        self._borrows = 0
        self._borrow_failures = 0

    @property
    def has_session(self) -> bool:
        return self._session is not None

    @property
    def outstanding_handles(self) -> int:
        return self._outstanding

    @property
    def epochs(self) -> int:
        """Number of shared sessions created so far."""
        return self._epochs

    @property
    def recycles(self) -> int:
        return self._recycles

    async def _ensure_session(self) -> SharedSession:
        session = self._session
        if session is not None:
            return session

        async with self._lock:
            if self._closed:
                raise SessionError("Session pool is closed")

            if self._session is None:
                logger.info(f"Starting shared session (epoch {self._epochs + 1})")
                try:
                    self._session = await self.provider.acquire_session()
                except SessionError:
                    raise
                except Exception as e:
                    raise SessionError(
                        "Failed to create shared session",
                        {"error": str(e), "error_type": type(e).__name__}
                    ) from e
                self._epochs += 1

            return self._session

    @asynccontextmanager
    async def borrow_handle(self) -> AsyncIterator[Handle]:
        """
        Borrow a per-attempt handle from the current session.

        The handle is released when the block exits, whether it returns,
        raises or is cancelled.

        Raises:
            SessionError: If the session cannot be created or lend a handle
        """
        session = await self._ensure_session()

        try:
            handle = await session.borrow()
        except Exception as e:
            self._borrow_failures += 1
            raise SessionError(
                "Failed to borrow handle from shared session",
                {"error": str(e), "error_type": type(e).__name__}
            ) from e

        self._outstanding += 1
        self._borrows += 1
        try:
            yield handle
        finally:
            self._outstanding -= 1
            try:
                await handle.release()
            except Exception as e:
                logger.warning(f"Error releasing handle: {e}")

    async def recycle(self, reason: str = "") -> bool:
        """
        Tear down the current session so the next borrow starts a new one.

        Safe to call when no session exists.

        Args:
            reason: Short label for the log

        Returns:
            True if a session was torn down
        """
        async with self._lock:
            session = self._session
            if session is None:
                logger.debug("Recycle requested with no live session")
                return False

            if self._outstanding:
                logger.warning(f"Recycling session with {self._outstanding} handles still outstanding")

            logger.info(f"Recycling shared session (epoch {self._epochs}){': ' + reason if reason else ''}")
            self._session = None
            self._recycles += 1

            try:
                await session.close()
            except Exception as e:
                logger.warning(f"Error while closing shared session: {e}")

            return True

    async def close(self) -> None:
        """Release the session for good; later borrows fail with SessionError."""
        if self._closed:
            return
        await self.recycle("shutdown")
        self._closed = True
        logger.info("Session pool closed")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "has_session": self.has_session,
            "epochs": self._epochs,
            "recycles": self._recycles,
            "borrows": self._borrows,
            "borrow_failures": self._borrow_failures,
            "outstanding_handles": self._outstanding,
            "closed": self._closed,
        }

    async def __aenter__(self) -> "SessionPool":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
