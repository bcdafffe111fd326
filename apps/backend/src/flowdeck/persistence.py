"""Persistence helpers for JSON record files: atomic replace, record locks, typed reads and listings."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

try:  # pragma: no cover - platform-dependent import
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX fallback
    fcntl = None

from .errors import ConflictError, CorruptRecordError, NotFoundError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def atomic_write_text(path: Path, content: str) -> None:
    """Atomically write text content to a file using replace-on-commit."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())

        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


class FileLock:
    """Process/thread-safe lock on a sidecar file, using flock when available."""

    def __init__(self, path: Path):
        self.path = path
        self._thread_lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Acquire an exclusive lock and release it on exit."""
        with self._thread_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a+", encoding="utf-8") as lock_file:
                if fcntl is not None:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    if fcntl is not None:
                        fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


_record_locks: dict[Path, FileLock] = {}
_record_locks_guard = threading.Lock()


def record_lock(path: Path) -> FileLock:
    """Shared lock guarding check-then-write on one record file.

    The sidecar is ``.<name>.lock`` next to the record, so record listings
    (which filter on the record suffix) never see it.
    """
    lock_path = path.with_name(f".{path.name}.lock")
    with _record_locks_guard:
        lock = _record_locks.get(lock_path)
        if lock is None:
            lock = _record_locks[lock_path] = FileLock(lock_path)
        return lock


def dump_record(payload: dict[str, Any]) -> str:
    """Pretty-print a record the way it is stored on disk (2-space indent, trailing newline)."""
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def content_etag(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


def current_etag(path: Path) -> str | None:
    """Etag of the file currently at ``path``, or None if there is no file."""
    try:
        return content_etag(path.read_bytes())
    except FileNotFoundError:
        return None


class FileListing(BaseModel):
    dir: str
    files: list[str]


class WriteResult(BaseModel):
    path: str
    etag: str


class DeleteResult(BaseModel):
    path: str
    existed: bool


def list_record_files(directory: Path, suffix: str, *, reverse: bool = False) -> list[str]:
    """Sorted names of regular files in ``directory`` ending with ``suffix``.

    A missing directory is an empty listing, not an error.
    """
    try:
        entries = list(directory.iterdir())
    except FileNotFoundError:
        logger.debug("record directory %s does not exist; empty listing", directory)
        return []
    files = sorted(entry.name for entry in entries if entry.is_file() and entry.name.endswith(suffix))
    if reverse:
        files.reverse()
    return files


def load_record(path: Path, model: type[M], missing: NotFoundError) -> tuple[M, str]:
    """Read and parse a record file, returning the model and the file's etag."""
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        raise missing from exc
    try:
        record = model.model_validate(json.loads(raw.decode("utf-8")))
    except (UnicodeDecodeError, json.JSONDecodeError, PydanticValidationError) as exc:
        raise CorruptRecordError(f"Cannot parse {path}: {exc}") from exc
    return record, content_etag(raw)


def remove_record(path: Path) -> bool:
    """Delete a record file. Returns False when it was already absent."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def ensure_etag(path: Path, expected_etag: str | None) -> None:
    """Raise ConflictError unless the file at ``path`` still has ``expected_etag``.

    ``None`` disables the check (last writer wins).
    """
    if expected_etag is None:
        return
    actual = current_etag(path)
    if actual != expected_etag:
        raise ConflictError(
            f"{path.name} changed since it was read (expected etag {expected_etag}, found {actual})"
        )
