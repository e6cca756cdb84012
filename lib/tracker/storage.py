"""Whole-file writes that never leave a half-written file behind."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path

from lib.tracker.errors import ArchivePersistenceError


def write_text_atomic(path: Path, content: str) -> None:
    """
    Write to a temp file in the same directory, then move it into place.

    Raises:
        ArchivePersistenceError: directory creation, write or rename failed
    """
    path = Path(path)
    temp_path: Path | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=str(path.parent), prefix=f".{path.name}.", delete=False
        ) as tmp_file:
            tmp_file.write(content)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
            temp_path = Path(tmp_file.name)
        temp_path.replace(path)
    except OSError as e:
        if temp_path is not None and temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass
        raise ArchivePersistenceError(f"Failed to write {path}: {e}") from e
