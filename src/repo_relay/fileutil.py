"""File utilities for repo-relay.

Whole-file JSON persistence: the thread link store rewrites its entire
map on every mutation, so a crash mid-write must never leave a truncated
file behind.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any


def atomic_write(path: Path, content: str) -> None:
    """Replace *path* with *content* via temp-file + fsync + rename.

    On failure the previous file (if any) is left untouched and the
    temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fd = -1
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if fd >= 0:
            os.close(fd)
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise


def atomic_write_json(path: Path, data: Any) -> None:
    """Serialize *data* as indented JSON and write it atomically."""
    atomic_write(path, json.dumps(data, indent=2, ensure_ascii=False))


def read_json(path: Path) -> Any | None:
    """Read JSON from *path*.

    Returns None when the file does not exist. Every other failure
    (permissions, invalid JSON) propagates to the caller.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return json.loads(text)
