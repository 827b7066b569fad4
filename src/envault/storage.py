"""Atomic file writes.

A file is written to a temporary sibling and renamed over the target, so a
reader (or an interrupted run) only ever sees the old or the new content.
"""

import contextlib
import os
import tempfile
from pathlib import Path

from envault.logging import get_logger

log = get_logger("envault.storage")


def atomic_write(path: Path | str, data: bytes, mode: int | None = None) -> Path:
    """Write ``data`` to ``path`` via write-temp-then-rename.

    Args:
        path: Destination file. Parent directories are created.
        data: Bytes to write.
        mode: Optional permission bits applied to the temp file before the rename.

    Returns:
        The destination path.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise

    log.debug("file_written", path=str(target), size=len(data))
    return target
