"""
Resilient batch extraction pipeline.

Main Components:
- BatchScheduler: batches, bounded concurrency, per-batch persistence
- RetryController: bounded per-key retries with linear backoff
- CircuitBreaker: consecutive-failure guard between batches
- SessionPool: lifecycle of the shared rendering session
- CheckpointStore / ResultSet: resume support and the output dataset
"""

from .models import (
    PipelineConfig,
    RecordSchema,
    ResultRecord,
    RunSummary,
    WorkItem,
    WorkKey,
    WorkState
)

from .interfaces import Extractor, Handle, SessionProvider, SharedSession
from .checkpoint import CheckpointStore, ResultSet
from .session_pool import SessionPool
from .circuit_breaker import CircuitBreaker
from .retry import RetryController
from .scheduler import BatchScheduler

__all__ = [
    # Core models
    'PipelineConfig',
    'RecordSchema',
    'ResultRecord',
    'RunSummary',
    'WorkItem',
    'WorkKey',
    'WorkState',

    # Adapter boundary
    'Extractor',
    'Handle',
    'SessionProvider',
    'SharedSession',

    # Main components
    'CheckpointStore',
    'ResultSet',
    'SessionPool',
    'CircuitBreaker',
    'RetryController',
    'BatchScheduler'
]
