"""
Data models for the batch extraction pipeline.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Mapping, Tuple
from datetime import datetime
from enum import Enum

from lexicon_harvester.utils.errors import ValidationError


WorkKey = str


class WorkState(Enum):
    """Lifecycle state of a single work item."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PipelineConfig:
    """Tunables for the batch extraction pipeline."""
    concurrency: int = 2
    batch_size: int = 5
    max_retries: int = 2
    retry_base_delay: float = 5.0
    item_delay: float = 1.0
    batch_delay: float = 3.0
    failure_threshold: int = 5
    cooldown_seconds: float = 60.0
    recycle_every_batches: int = 4
    attempt_timeout: Optional[float] = 90.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ValidationError: If configuration is invalid
        """
        errors = []

        if not (1 <= self.concurrency <= 32):
            errors.append("concurrency must be between 1 and 32")

        if not (1 <= self.batch_size <= 1000):
            errors.append("batch_size must be between 1 and 1000")

        if not (0 <= self.max_retries <= 10):
            errors.append("max_retries must be between 0 and 10")

        for name in ("retry_base_delay", "item_delay", "batch_delay", "cooldown_seconds"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must not be negative")

        if self.failure_threshold < 1:
            errors.append("failure_threshold must be at least 1")

        # 0 disables the cadence
        if self.recycle_every_batches < 0:
            errors.append("recycle_every_batches must not be negative")

        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            errors.append("attempt_timeout must be positive or None")

        if errors:
            raise ValidationError(
                "Pipeline configuration validation failed",
                {"errors": errors}
            )


@dataclass(frozen=True)
class RecordSchema:
    """Fixed column set of the output dataset."""
    key_field: str
    primary_field: str
    fields: Tuple[str, ...]
    not_found: str = "not found"

    def __post_init__(self):
        if self.key_field not in self.fields:
            raise ValidationError("key_field must be one of the schema fields",
                                  {"key_field": self.key_field})
        if self.primary_field not in self.fields:
            raise ValidationError("primary_field must be one of the schema fields",
                                  {"primary_field": self.primary_field})

    def blank_row(self, key: WorkKey) -> Dict[str, str]:
        """Row with every field empty except the key."""
        row = {name: "" for name in self.fields}
        row[self.key_field] = key
        return row

    def normalize(self, key: WorkKey, values: Mapping[str, Any]) -> Dict[str, str]:
        """
        Project arbitrary values onto the schema.

        Unknown fields are dropped, missing ones become empty strings and the
        key field always carries ``key``.
        """
        row = self.blank_row(key)
        for name in self.fields:
            value = values.get(name)
            if value is not None and name != self.key_field:
                row[name] = str(value)
        return row

    def is_empty(self, values: Mapping[str, str]) -> bool:
        """True when no field besides the key holds real content."""
        for name in self.fields:
            if name == self.key_field:
                continue
            value = values.get(name, "")
            if value and value != self.not_found:
                return False
        return True


@dataclass
class ResultRecord:
    """Terminal outcome of one work item, shaped by a RecordSchema."""
    key: WorkKey
    values: Dict[str, str]
    succeeded: bool = True
    attempts: int = 0
    error_message: Optional[str] = None

    @classmethod
    def from_values(cls, schema: RecordSchema, key: WorkKey, values: Mapping[str, Any],
                    attempts: int = 0) -> "ResultRecord":
        """Build a successful record; an empty primary field gets the sentinel."""
        row = schema.normalize(key, values)
        if not row[schema.primary_field]:
            row[schema.primary_field] = schema.not_found
        return cls(key=key, values=row, succeeded=True, attempts=attempts)

    @classmethod
    def failure(cls, schema: RecordSchema, key: WorkKey, attempts: int = 0,
                error_message: Optional[str] = None) -> "ResultRecord":
        """Build a terminal-failure record (sentinel in the primary field)."""
        row = schema.blank_row(key)
        row[schema.primary_field] = schema.not_found
        return cls(key=key, values=row, succeeded=False, attempts=attempts,
                   error_message=error_message)

    def to_row(self, schema: RecordSchema) -> Dict[str, str]:
        """Persistable row in schema column order."""
        return schema.normalize(self.key, self.values)


@dataclass
class WorkItem:
    """A distinct pending key and its progress through the pipeline."""
    key: WorkKey
    state: WorkState = WorkState.PENDING
    attempt: int = 0
    last_error: Optional[str] = None

    def dispatch(self) -> None:
        """Mark item as handed to a worker slot."""
        self.state = WorkState.IN_FLIGHT

    def begin_attempt(self) -> int:
        """Count a new attempt and return its number (1-based)."""
        self.attempt += 1
        return self.attempt

    def succeed(self) -> None:
        self.state = WorkState.SUCCEEDED
        self.last_error = None

    def fail(self, error_message: str) -> None:
        self.state = WorkState.FAILED
        self.last_error = error_message


@dataclass
class RunSummary:
    """Overall result of one pipeline run."""
    total_keys: int = 0
    skipped: int = 0
    pending: int = 0
    succeeded: int = 0
    failed: int = 0
    empty: int = 0
    batches_completed: int = 0
    batches_total: int = 0
    breaker_trips: int = 0
    recycles: int = 0
    interrupted: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    execution_time: float = 0.0
    output_path: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def get_success_rate(self) -> float:
        """Newly succeeded keys as a percentage of the pending set."""
        if self.pending == 0:
            return 0.0
        return (self.succeeded / self.pending) * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_keys": self.total_keys,
            "already_processed": self.skipped,
            "pending": self.pending,
            "newly_succeeded": self.succeeded,
            "newly_failed": self.failed,
            "empty_results": self.empty,
            "success_rate": round(self.get_success_rate(), 1),
            "batches_completed": self.batches_completed,
            "batches_total": self.batches_total,
            "breaker_trips": self.breaker_trips,
            "recycles": self.recycles,
            "interrupted": self.interrupted,
            "execution_time_seconds": round(self.execution_time, 2),
            "output_path": self.output_path,
            "errors": list(self.errors),
        }
