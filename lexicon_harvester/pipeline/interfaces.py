"""
Boundary the pipeline consumes: session providers and extractors.

A provider hands out one expensive shared session, the session lends cheap
per-attempt handles, and an extractor turns a key plus a handle into a
ResultRecord. Concrete implementations live in ``lexicon_harvester.crawlers``.
"""

from abc import ABC, abstractmethod

from .models import RecordSchema, ResultRecord, WorkKey


class Handle(ABC):
    """Per-attempt sub-resource borrowed from a shared session (e.g. one page)."""

    @abstractmethod
    async def release(self) -> None:
        """Return the handle. Must be safe to call more than once."""


class SharedSession(ABC):
    """Expensive, stateful resource shared by all attempts of one epoch."""

    @abstractmethod
    async def borrow(self) -> Handle:
        """Create a handle for a single attempt."""

    @abstractmethod
    async def close(self) -> None:
        """Tear the session down."""


class SessionProvider(ABC):
    """Factory for shared sessions."""

    @abstractmethod
    async def acquire_session(self) -> SharedSession:
        """Create a fresh shared session."""


class Extractor(ABC):
    """Turns one key into one record."""

    @property
    @abstractmethod
    def schema(self) -> RecordSchema:
        """Fixed output columns produced by this extractor."""

    @abstractmethod
    async def extract(self, key: WorkKey, handle: Handle) -> ResultRecord:
        """
        Extract one record.

        Args:
            key: Work key to look up
            handle: Borrowed handle to render with

        Returns:
            Record for ``key``; missing fields are empty strings

        Raises:
            Exception: Any failure is treated as transient by the caller
        """
