"""
Pytest configuration and fixtures for lexicon harvester tests.
"""

import asyncio
import logging
import os
from typing import Callable, Dict, Iterable, List, Optional, Set

import pytest
from hypothesis import HealthCheck, settings, Verbosity

from lexicon_harvester.pipeline import (
    BatchScheduler,
    CheckpointStore,
    Extractor,
    Handle,
    PipelineConfig,
    RecordSchema,
    ResultRecord,
    SessionPool,
    SessionProvider,
    SharedSession
)

# Configure Hypothesis for faster test runs
# Autouse fixtures here only reset process state
suppressed = [HealthCheck.function_scoped_fixture]
settings.register_profile("fast", max_examples=15, deadline=None, verbosity=Verbosity.quiet,
                          suppress_health_check=suppressed)
settings.register_profile("thorough", max_examples=200, deadline=None, verbosity=Verbosity.normal,
                          suppress_health_check=suppressed)

# Use fast profile by default
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))


TEST_SCHEMA = RecordSchema(
    key_field="word",
    primary_field="meaning",
    fields=("word", "meaning", "note"),
    not_found="N/A"
)


class FakeHandle(Handle):
    """Handle that records its release on the owning session."""

    def __init__(self, session: "FakeSession"):
        self.session = session
        self.released = False

    async def release(self) -> None:
        if not self.released:
            self.released = True
            self.session.released += 1


class FakeSession(SharedSession):
    def __init__(self, epoch: int, fail_borrow: bool = False):
        self.epoch = epoch
        self.fail_borrow = fail_borrow
        self.borrowed = 0
        self.released = 0
        self.closed = False

    async def borrow(self) -> FakeHandle:
        if self.closed:
            raise RuntimeError("session already closed")
        if self.fail_borrow:
            raise RuntimeError("cannot open page")
        self.borrowed += 1
        return FakeHandle(self)

    async def close(self) -> None:
        self.closed = True


class FakeSessionProvider(SessionProvider):
    """Creates FakeSessions; can be told to fail acquisition or borrowing."""

    def __init__(self, fail_acquire: int = 0, fail_borrow: bool = False):
        self.fail_acquire = fail_acquire
        self.fail_borrow = fail_borrow
        self.sessions: List[FakeSession] = []

    async def acquire_session(self) -> FakeSession:
        if self.fail_acquire > 0:
            self.fail_acquire -= 1
            raise RuntimeError("browser failed to launch")
        session = FakeSession(len(self.sessions) + 1, self.fail_borrow)
        self.sessions.append(session)
        return session

    @property
    def live_sessions(self) -> List[FakeSession]:
        return [session for session in self.sessions if not session.closed]


class FakeExtractor(Extractor):
    """
    Scripted extractor.

    Keys in ``always_fail`` raise on every attempt, keys in ``flaky`` raise
    the given number of times before succeeding, keys in ``empty`` succeed
    with no content. Every call yields to the event loop once.
    """

    def __init__(
        self,
        always_fail: Iterable[str] = (),
        flaky: Optional[Dict[str, int]] = None,
        empty: Iterable[str] = (),
        on_extract: Optional[Callable[[str], None]] = None
    ):
        self.always_fail: Set[str] = set(always_fail)
        self.flaky: Dict[str, int] = dict(flaky or {})
        self.empty: Set[str] = set(empty)
        self.on_extract = on_extract
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def schema(self) -> RecordSchema:
        return TEST_SCHEMA

    async def extract(self, key: str, handle: Handle) -> ResultRecord:
        assert isinstance(handle, FakeHandle) and not handle.released
        self.calls.append(key)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_extract:
                self.on_extract(key)
            await asyncio.sleep(0)

            if key in self.always_fail:
                raise RuntimeError(f"source unavailable for {key}")
            if self.flaky.get(key, 0) > 0:
                self.flaky[key] -= 1
                raise RuntimeError(f"transient error for {key}")
            if key in self.empty:
                return ResultRecord.from_values(TEST_SCHEMA, key, {})
            return ResultRecord.from_values(TEST_SCHEMA, key, {"meaning": f"meaning of {key}", "note": "ok"})
        finally:
            self.in_flight -= 1

    def attempts_for(self, key: str) -> int:
        return self.calls.count(key)


class RecordingSleeper:
    """Sleeper that records requested delays instead of waiting."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


def fast_pipeline_config(**overrides) -> PipelineConfig:
    """Pipeline tunables with small, distinct delays for assertions."""
    values = dict(
        concurrency=2,
        batch_size=2,
        max_retries=2,
        retry_base_delay=0.5,
        item_delay=0.01,
        batch_delay=0.3,
        failure_threshold=5,
        cooldown_seconds=7.0,
        recycle_every_batches=0,
        attempt_timeout=None
    )
    values.update(overrides)
    return PipelineConfig(**values)


def build_scheduler(output_path, extractor=None, provider=None, sleeper=None, **overrides):
    """Wire a scheduler over fakes; returns (scheduler, extractor, provider, sleeper)."""
    extractor = extractor or FakeExtractor()
    provider = provider or FakeSessionProvider()
    sleeper = sleeper or RecordingSleeper()
    pool = SessionPool(provider)
    checkpoint = CheckpointStore(output_path, extractor.schema)
    scheduler = BatchScheduler(
        extractor=extractor,
        pool=pool,
        checkpoint=checkpoint,
        config=fast_pipeline_config(**overrides),
        sleep=sleeper
    )
    return scheduler, extractor, provider, sleeper


@pytest.fixture
def schema() -> RecordSchema:
    return TEST_SCHEMA


@pytest.fixture
def provider() -> FakeSessionProvider:
    return FakeSessionProvider()


@pytest.fixture
def sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture
def output_path(tmp_path):
    """Output CSV path inside a per-test directory."""
    return tmp_path / "results.csv"


@pytest.fixture
def input_path(tmp_path):
    """Factory writing an input CSV with a ``word`` column."""
    def _write(keys: List[str], column: str = "word") -> str:
        path = tmp_path / "input.csv"
        lines = [f"{column},level"] + [f"{key},1" for key in keys]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return str(path)
    return _write


def pytest_configure(config):
    """Configure pytest with custom settings."""
    logging.getLogger("lexicon_harvester").setLevel(logging.WARNING)
    logging.getLogger("hypothesis").setLevel(logging.WARNING)


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers."""
    for item in items:
        # Mark property-based tests
        if "property" in item.name.lower() or getattr(item.obj, "is_hypothesis_test", False):
            item.add_marker(pytest.mark.property)

        if "integration" in item.fspath.basename:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
