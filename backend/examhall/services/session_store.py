"""Durable key-value storage for in-progress attempts.

Every attempt is keyed by (assignment, student). The start timestamp and the
variant index are written once and then only read back; answers and the
violation counter are overwritten on every change. Values are kept as strings
and parsed on read. Anything that cannot be parsed reads back as absent, so a
damaged record degrades into a fresh start instead of an error.
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from examhall.errors import PersistenceError

logger = logging.getLogger(__name__)

START = "start"
VARIANT = "variant_idx"
ANSWERS = "answers"
VIOLATIONS = "violations"
FIELDS = (START, VARIANT, ANSWERS, VIOLATIONS)


@dataclass(frozen=True)
class SessionKey:
    assignment_id: str
    student_id: str

    @property
    def prefix(self) -> str:
        return f"attempt_{self.assignment_id}_{self.student_id}"


def to_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class SessionStore:
    """Typed session-state operations over a raw string store.

    Subclasses implement ``_read``, ``_write``, ``_delete`` and ``_delete_all``.
    ``_write`` and the deletes raise PersistenceError on failure.
    """

    def _read(self, key: SessionKey, field: str) -> str | None:
        raise NotImplementedError

    def _write(self, key: SessionKey, field: str, value: str) -> None:
        raise NotImplementedError

    def _delete(self, key: SessionKey, field: str) -> None:
        raise NotImplementedError

    def _delete_all(self, key: SessionKey) -> None:
        raise NotImplementedError

    def _read_int(self, key: SessionKey, field: str) -> int | None:
        raw = self._read(key, field)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Ignoring unparsable {field} for {key.prefix}: {raw!r}")
            return None

    # Start timestamp (sticky)

    def get_start_time(self, key: SessionKey) -> datetime | None:
        millis = self._read_int(key, START)
        if millis is None or millis <= 0:
            return None
        return from_millis(millis)

    def set_start_time_once(self, key: SessionKey, moment: datetime) -> datetime:
        """Write the start time unless a valid one exists; return the stored value."""
        existing = self.get_start_time(key)
        if existing is not None:
            return existing
        self._write(key, START, str(to_millis(moment)))
        return from_millis(to_millis(moment))

    # Variant index (sticky)

    def get_variant_index(self, key: SessionKey) -> int | None:
        index = self._read_int(key, VARIANT)
        if index is None or index < 0:
            return None
        return index

    def set_variant_index_once(self, key: SessionKey, index: int) -> int:
        existing = self.get_variant_index(key)
        if existing is not None:
            return existing
        self._write(key, VARIANT, str(index))
        return index

    def discard_variant_index(self, key: SessionKey) -> None:
        """Drop a stored index that no longer points at a variant."""
        self._delete(key, VARIANT)

    # Answers

    def get_answers(self, key: SessionKey) -> dict[str, str] | None:
        raw = self._read(key, ANSWERS)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring unparsable answers for {key.prefix}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed answers for {key.prefix}")
            return None
        return {str(q): str(a) for q, a in data.items() if isinstance(a, str) and a}

    def set_answers(self, key: SessionKey, answers: dict[str, str]) -> None:
        self._write(key, ANSWERS, json.dumps(answers, sort_keys=True))

    def clear_answers(self, key: SessionKey) -> None:
        self._delete(key, ANSWERS)

    # Violations

    def get_violation_count(self, key: SessionKey) -> int | None:
        count = self._read_int(key, VIOLATIONS)
        if count is None or count < 0:
            return None
        return count

    def set_violation_count(self, key: SessionKey, count: int) -> None:
        self._write(key, VIOLATIONS, str(count))

    def clear_all(self, key: SessionKey) -> None:
        self._delete_all(key)


class InMemorySessionStore(SessionStore):
    """Process-local store. Used in tests and single-process deployments."""

    def __init__(self):
        self.data: dict[str, str] = {}

    @staticmethod
    def _name(key: SessionKey, field: str) -> str:
        return f"{key.prefix}_{field}"

    def _read(self, key, field):
        return self.data.get(self._name(key, field))

    def _write(self, key, field, value):
        self.data[self._name(key, field)] = value

    def _delete(self, key, field):
        self.data.pop(self._name(key, field), None)

    def _delete_all(self, key):
        for field in FIELDS:
            self._delete(key, field)


_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileSessionStore(SessionStore):
    """One JSON document per attempt under a directory.

    Writes go to a temporary file that replaces the document, so a crash
    mid-write leaves the previous version in place.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: SessionKey) -> Path:
        return self.directory / (_UNSAFE.sub("_", key.prefix) + ".json")

    def _load(self, key: SessionKey) -> dict[str, str]:
        path = self._path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning(f"Could not read session file {path.name}: {e}")
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(f"Session file {path.name} is corrupted, treating as empty")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, key: SessionKey, data: dict[str, str]) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(data), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise PersistenceError(f"Could not save session state to {path.name}: {e}") from e

    def _read(self, key, field):
        return self._load(key).get(field)

    def _write(self, key, field, value):
        data = self._load(key)
        data[field] = value
        self._save(key, data)

    def _delete(self, key, field):
        data = self._load(key)
        if data.pop(field, None) is not None:
            self._save(key, data)

    def _delete_all(self, key):
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not remove session state for {key.prefix}: {e}") from e
