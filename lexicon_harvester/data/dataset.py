"""
CSV input and output for the harvested dataset.

The output file is always rewritten whole: rows go to a temporary file in
the same directory which then replaces the target, so the file on disk is
either the previous complete dataset or the new one.
"""

import csv
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from lexicon_harvester.utils.errors import DatasetError
from lexicon_harvester.utils.logging import get_logger


logger = get_logger(__name__)

PathLike = Union[str, Path]


def read_rows(path: PathLike, encoding: str = "utf-8") -> List[Dict[str, str]]:
    """
    Read a header-first CSV file into a list of dicts.

    Blank lines are skipped. Missing trailing cells come back as empty
    strings rather than ``None``.

    Raises:
        DatasetError: If the file cannot be opened, decoded or parsed
    """
    path = Path(path)
    try:
        with open(path, "r", encoding=encoding, newline="") as f:
            reader = csv.DictReader(f)
            if reader.fieldnames is None:
                return []
            rows = []
            for raw in reader:
                if not any((value or "").strip() for key, value in raw.items() if key is not None):
                    continue
                rows.append({
                    key: (value or "") for key, value in raw.items() if key is not None
                })
            return rows
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise DatasetError(
            f"Failed to read dataset {path}",
            {"path": str(path), "error": str(e)}
        )


def read_header(path: PathLike, encoding: str = "utf-8") -> List[str]:
    """Return the header row of a CSV file (empty list for an empty file)."""
    path = Path(path)
    try:
        with open(path, "r", encoding=encoding, newline="") as f:
            reader = csv.reader(f)
            return next(reader, [])
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise DatasetError(
            f"Failed to read dataset header {path}",
            {"path": str(path), "error": str(e)}
        )


def read_input_keys(path: PathLike, key_column: str, encoding: str = "utf-8") -> List[str]:
    """
    Read the work keys of the input dataset in file order.

    Keys are stripped and blank keys dropped; duplicates are kept here and
    collapsed by the scheduler.

    Raises:
        DatasetError: If the file is missing, unreadable or lacks ``key_column``
    """
    path = Path(path)
    if not path.exists():
        raise DatasetError(f"Input dataset not found: {path}", {"path": str(path)})

    header = read_header(path, encoding)
    if key_column not in header:
        raise DatasetError(
            f"Input dataset has no '{key_column}' column",
            {"path": str(path), "columns": header}
        )

    rows = read_rows(path, encoding)
    keys = [row.get(key_column, "").strip() for row in rows]
    keys = [key for key in keys if key]

    logger.info(f"Read {len(rows)} rows ({len(keys)} keys) from {path}")
    return keys


def write_rows(
    path: PathLike,
    fieldnames: Sequence[str],
    rows: Iterable[Dict[str, str]],
    encoding: str = "utf-8"
) -> int:
    """
    Atomically rewrite ``path`` with ``rows``.

    Args:
        path: Target CSV path
        fieldnames: Column order
        rows: Rows to write; extra keys are ignored
        encoding: File encoding

    Returns:
        Number of rows written

    Raises:
        DatasetError: If the file cannot be written
    """
    path = Path(path)
    temp_path: Optional[Path] = None
    count = 0

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(f".{path.name}.tmp")

        with open(temp_path, "w", encoding=encoding, newline="") as f:
            writer = csv.DictWriter(f, fieldnames=list(fieldnames), extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow(row)
                count += 1
            f.flush()
            os.fsync(f.fileno())

        # Atomic on POSIX and Windows
        os.replace(temp_path, path)
        logger.debug(f"Wrote {count} rows to {path}")
        return count

    except (OSError, UnicodeError) as e:
        raise DatasetError(
            f"Failed to write dataset {path}",
            {"path": str(path), "error": str(e)}
        )

    finally:
        # Left over only when the write did not complete
        if temp_path is not None and temp_path.exists():
            temp_path.unlink()
