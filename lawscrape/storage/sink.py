"""Output stores for extracted documents.

Both stores end up as a single pretty-printed JSON array per jurisdiction.
JsonArraySink rewrites the array on every append; JsonLinesSink appends one
line per record and is compacted into the array at the end of a run.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from ..errors import PersistenceFailure

logger = logging.getLogger(__name__)


def _write_array(path: Path, records: list) -> None:
    """Replace ``path`` with ``records`` without ever exposing a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class JsonArraySink:
    """Read-modify-write JSON array file.

    A missing or blank file counts as an empty array. Anything that is not a
    JSON array raises PersistenceFailure rather than being overwritten.
    """

    def __init__(self, path: Path):
        self.path = path

    def read(self) -> list:
        try:
            if not self.path.exists():
                return []
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceFailure(f"Cannot read {self.path}: {e}", context=str(self.path)) from e

        if not text.strip():
            return []
        try:
            records = json.loads(text)
        except json.JSONDecodeError as e:
            raise PersistenceFailure(f"{self.path} is not valid JSON: {e}", context=str(self.path)) from e
        if not isinstance(records, list):
            raise PersistenceFailure(f"{self.path} does not hold a JSON array", context=str(self.path))
        return records

    def append(self, record: dict) -> None:
        records = self.read()
        records.append(record)
        try:
            _write_array(self.path, records)
        except OSError as e:
            raise PersistenceFailure(f"Cannot write {self.path}: {e}", context=str(self.path)) from e
        logger.debug("Saved record %d to %s", len(records), self.path)

    def finalize(self) -> Path:
        """Make sure the store exists, even for a source that produced nothing."""
        if not self.path.exists():
            try:
                _write_array(self.path, [])
            except OSError as e:
                raise PersistenceFailure(f"Cannot write {self.path}: {e}", context=str(self.path)) from e
        return self.path


class JsonLinesSink:
    """Append-only JSON-lines log with a final compaction to a JSON array.

    Args:
        path: The ``.jsonl`` log file.
        target: The JSON array written by finalize(); defaults to ``path``
            with a ``.json`` suffix.
    """

    def __init__(self, path: Path, target: Path | None = None):
        self.path = path
        self.target = target or path.with_suffix(".json")

    def append(self, record: dict) -> None:
        line = json.dumps(record, ensure_ascii=False)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()
        except OSError as e:
            raise PersistenceFailure(f"Cannot append to {self.path}: {e}", context=str(self.path)) from e

    def read(self) -> list:
        return list(read_json_lines(self.path))

    def finalize(self) -> Path:
        count = compact(self.path, self.target)
        logger.info("Compacted %d records into %s", count, self.target)
        return self.target


def read_json_lines(path: Path):
    """Yield records from a JSON-lines file, skipping a torn final line."""
    if not path.exists():
        return
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise PersistenceFailure(f"Cannot read {path}: {e}", context=str(path)) from e

    for i, line in enumerate(lines):
        if not line.strip():
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError as e:
            if i == len(lines) - 1:
                logger.warning("Ignoring incomplete last line of %s", path)
                return
            raise PersistenceFailure(f"{path} line {i + 1} is not valid JSON: {e}", context=str(path)) from e


def compact(source: Path, target: Path) -> int:
    """Write the records of a JSON-lines file to ``target`` as a JSON array."""
    records = list(read_json_lines(source))
    try:
        _write_array(target, records)
    except OSError as e:
        raise PersistenceFailure(f"Cannot write {target}: {e}", context=str(target)) from e
    return len(records)


def open_sink(output_dir: Path, filename: str, fmt: str = "json"):
    """Create the store for one jurisdiction's output file."""
    target = output_dir / filename
    if fmt == "json":
        return JsonArraySink(target)
    if fmt == "jsonl":
        return JsonLinesSink(target.with_suffix(".jsonl"), target)
    raise ValueError(f"Unknown output format: {fmt}")
