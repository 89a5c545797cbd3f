"""
Persist the accepted OpenAPI contract snapshot.

The snapshot is the pretty-printed canonical form of the live document:
two-space indentation, sorted keys and exactly one trailing newline. Writes go
through a temporary file in the target directory and are moved into place with
``os.replace`` while holding an advisory lock on ``<snapshot>.lock``.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

import portalocker

from contract_sync.canonical import pretty
from contract_sync.errors import SpecIOError
from contract_sync.settings import ContractPaths

__all__ = ["SnapshotWriter", "write_snapshot"]

logger = logging.getLogger(__name__)


@contextmanager
def _acquire_snapshot_lock(path: Path) -> Iterator[IO[bytes]]:
    """Hold an exclusive advisory lock next to ``path``."""
    lock_path = path.with_suffix(path.suffix + ".lock")
    with lock_path.open("a+b") as lock_fp:
        portalocker.lock(lock_fp, portalocker.LOCK_EX)
        try:
            yield lock_fp
        finally:
            portalocker.unlock(lock_fp)


def _fsync_directory(path: Path) -> None:
    """Durably flush directory metadata when supported by the platform."""
    if os.name == "nt":  # pragma: no cover - Windows does not need dir fsync
        return
    flags = getattr(os, "O_DIRECTORY", None)
    if flags is None:  # pragma: no cover - platform without O_DIRECTORY
        return
    fd = os.open(str(path), flags)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write_snapshot(doc: object, path: str | Path) -> Path:
    """
    Write the canonical, indented form of ``doc`` to ``path``.

    Existing content is replaced wholesale. Parent directories are created on
    demand.

    Returns the path written.

    Raises:
        SpecIOError: If the snapshot cannot be written.
    """
    target = Path(path)
    body = pretty(doc).encode("utf-8")

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with _acquire_snapshot_lock(target):
            temp_path: Path | None = None
            try:
                with tempfile.NamedTemporaryFile(
                    "wb", dir=str(target.parent), prefix=f".{target.name}.", delete=False
                ) as tmp:
                    temp_path = Path(tmp.name)
                    tmp.write(body)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(temp_path, target)
            except BaseException:
                if temp_path is not None:
                    temp_path.unlink(missing_ok=True)
                raise
    except OSError as exc:
        raise SpecIOError(str(target), str(exc)) from exc

    try:
        _fsync_directory(target.parent)
    except OSError as exc:
        logger.warning(
            "Failed to fsync snapshot directory",
            extra={"path": str(target.parent), "error": str(exc)},
        )

    logger.info("Snapshot written", extra={"path": str(target), "bytes": len(body)})
    return target


class SnapshotWriter:
    """Write snapshots to the location configured in :class:`ContractPaths`."""

    def __init__(self, paths: ContractPaths) -> None:
        self._paths = paths

    @property
    def path(self) -> Path:
        """Location the snapshot is written to."""

        return self._paths.snapshot_path

    def exists(self) -> bool:
        """Return ``True`` when a snapshot file is already present."""

        return self._paths.snapshot_path.is_file()

    def write(self, doc: object) -> Path:
        """Write ``doc`` as the accepted snapshot; see :func:`write_snapshot`."""

        return write_snapshot(doc, self._paths.snapshot_path)
