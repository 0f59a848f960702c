"""Checkpoint store — whole-state JSON snapshots of completed outcomes.

The file on disk is always a complete JSON array. It is rewritten in full on
every save (temp file, then rename), so an interrupted job leaves either the
previous snapshot or the new one, never a partial write.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Generic, Sequence, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from harvester.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


def _url_key(record: BaseModel) -> str:
    return getattr(record, "url")


class CheckpointStore(Generic[RecordT]):
    """Reads and writes a JSON array of ``model`` records keyed by identifier."""

    def __init__(
        self,
        path: Path,
        model: type[RecordT],
        key_of: Callable[[RecordT], str] = _url_key,
    ) -> None:
        self._path = path
        self._model = model
        self._key_of = key_of
        self._adapter: TypeAdapter[list[RecordT]] = TypeAdapter(list[model])

    @property
    def path(self) -> Path:
        return self._path

    def key_of(self, record: RecordT) -> str:
        return self._key_of(record)

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> list[RecordT]:
        """Load the last snapshot.

        A missing file is an empty state. A file that is not valid JSON or
        does not match the record schema is also treated as empty, with a
        warning, so a damaged checkpoint never blocks a run.
        """
        if not self._path.exists():
            return []

        try:
            records = self._adapter.validate_json(self._path.read_bytes())
        except (ValidationError, UnicodeDecodeError) as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.CHECKPOINT_CORRUPT,
                message=f"Checkpoint {self._path} is unreadable, starting from empty state",
                suppressed=True,
                details={"error": str(exc)[:500]},
                level=logging.WARNING,
            )
            return []

        unique: list[RecordT] = []
        seen: set[str] = set()
        for record in records:
            key = self._key_of(record)
            if key in seen:
                continue
            seen.add(key)
            unique.append(record)

        if len(unique) != len(records):
            logger.warning(
                "Checkpoint %s contained %d duplicate entries; keeping first occurrences",
                self._path,
                len(records) - len(unique),
            )
        return unique

    def save(self, records: Sequence[RecordT]) -> int:
        """Atomically overwrite the checkpoint with ``records``.

        Returns the number of records written.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        payload = self._adapter.dump_json(list(records), by_alias=True, indent=2)
        try:
            temp_path.write_bytes(payload)
            temp_path.replace(self._path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise
        return len(records)
