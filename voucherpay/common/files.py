"""Atomic file primitives used by the file-backed stores.

Readers never see a half-written file: content is written and fsynced under
a temporary name in the same directory, then moved into place.
"""

import os
import re
import tempfile
from pathlib import Path

SAFE_KEY = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_safe_key(key: str | None) -> bool:
    """True when `key` can be used as a file stem without escaping its directory."""

    return bool(key) and SAFE_KEY.match(key) is not None


def _write_temp(directory: Path, data: bytes) -> Path:
    fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".tmp-")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return Path(tmp_name)


def write_atomic(path: Path, data: bytes) -> None:
    """Create or replace `path` atomically."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = _write_temp(path.parent, data)
    try:
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def create_exclusive(path: Path, data: bytes) -> bool:
    """Atomically create `path` with `data`; False if it already exists."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = _write_temp(path.parent, data)
    try:
        os.link(tmp, path)
    except FileExistsError:
        return False
    finally:
        tmp.unlink(missing_ok=True)
    return True
