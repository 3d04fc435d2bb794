"""
Checkpoint store and result set.

The checkpoint is simply the set of keys already present in the persisted
output. It is read once at start-up and never changes during a run.
"""

from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Union

from lexicon_harvester.data.dataset import read_header, read_rows, write_rows
from lexicon_harvester.utils.errors import CheckpointError, DatasetError
from lexicon_harvester.utils.logging import get_logger
from .models import RecordSchema, ResultRecord, WorkKey


logger = get_logger(__name__)


class ResultSet:
    """Ordered, key-unique collection of output rows."""

    def __init__(self, schema: RecordSchema):
        self.schema = schema
        self._rows: "OrderedDict[WorkKey, Dict[str, str]]" = OrderedDict()

    def add_row(self, key: WorkKey, row: Dict[str, str]) -> bool:
        """
        Append a row unless ``key`` is already present.

        Returns:
            True if the row was added
        """
        if key in self._rows:
            logger.debug(f"Result for '{key}' already recorded, keeping the first one")
            return False
        self._rows[key] = self.schema.normalize(key, row)
        return True

    def add(self, record: ResultRecord) -> bool:
        return self.add_row(record.key, record.to_row(self.schema))

    def copy(self) -> "ResultSet":
        clone = ResultSet(self.schema)
        clone._rows = OrderedDict((key, dict(row)) for key, row in self._rows.items())
        return clone

    def keys(self) -> Set[WorkKey]:
        return set(self._rows)

    def rows(self) -> List[Dict[str, str]]:
        return [dict(row) for row in self._rows.values()]

    def get(self, key: WorkKey) -> Optional[Dict[str, str]]:
        row = self._rows.get(key)
        return dict(row) if row is not None else None

    def __contains__(self, key: object) -> bool:
        return key in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[WorkKey]:
        return iter(self._rows)


class CheckpointStore:
    """
    Reads prior results and answers which keys are already done.

    A prior output that cannot be read does not abort the run: it is moved
    aside to ``<name>.unreadable`` and the run starts fresh.
    """

    def __init__(self, output_path: Union[str, Path], schema: RecordSchema, encoding: str = "utf-8"):
        self.output_path = Path(output_path)
        self.schema = schema
        self.encoding = encoding
        self._prior = ResultSet(schema)
        self._loaded = False

    def load(self) -> Set[WorkKey]:
        """
        Load prior results once and return their keys.

        Returns:
            Keys already recorded; empty when there is no usable prior output
        """
        if self._loaded:
            return self._prior.keys()

        self._loaded = True

        if not self.output_path.exists():
            logger.info(f"No existing results at {self.output_path}, starting fresh")
            return set()

        try:
            self._prior = self._read_prior()
        except CheckpointError as e:
            logger.warning(
                f"Could not read existing results {self.output_path}: {e.message}; "
                f"starting fresh {e.details}"
            )
            self._quarantine()
            self._prior = ResultSet(self.schema)
            return set()

        logger.info(f"Loaded {len(self._prior)} existing results from {self.output_path}")
        return self._prior.keys()

    def result_set(self) -> ResultSet:
        """ResultSet seeded with the prior rows (a fresh copy)."""
        if not self._loaded:
            self.load()
        return self._prior.copy()

    @staticmethod
    def merge(result_set: ResultSet, record: ResultRecord) -> ResultSet:
        """Append ``record`` to ``result_set``; existing keys are never overwritten."""
        result_set.add(record)
        return result_set

    def persist(self, result_set: ResultSet) -> int:
        """
        Rewrite the output with the full result set.

        Raises:
            DatasetError: If the output cannot be written
        """
        return write_rows(self.output_path, self.schema.fields, result_set.rows(), self.encoding)

    def _read_prior(self) -> ResultSet:
        try:
            header = read_header(self.output_path, self.encoding)
            rows = read_rows(self.output_path, self.encoding)
        except DatasetError as e:
            raise CheckpointError("Existing results are unreadable", e.details)

        if not header:
            return ResultSet(self.schema)

        if self.schema.key_field not in header:
            raise CheckpointError(
                "Existing results have no key column",
                {"key_field": self.schema.key_field, "columns": header}
            )

        prior = ResultSet(self.schema)
        dropped = 0
        for row in rows:
            key = row.get(self.schema.key_field, "").strip()
            if not key or not prior.add_row(key, row):
                dropped += 1

        if dropped:
            logger.warning(f"Ignored {dropped} blank or duplicate rows in {self.output_path}")

        return prior

    def _quarantine(self) -> None:
        backup = self.output_path.with_name(self.output_path.name + ".unreadable")
        try:
            self.output_path.replace(backup)
            logger.warning(f"Moved unreadable results to {backup}")
        except OSError as e:
            logger.warning(f"Could not move unreadable results aside: {e}")
