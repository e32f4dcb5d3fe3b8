"""
File store infrastructure for vendorlock.

Atomic writes: content goes to a temp file in the destination directory
and is renamed into place, so readers never see a partial document.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Union

logger = logging.getLogger(__name__)


def write_atomic(path: Union[str, Path], content: str) -> Path:
    """
    Write text atomically using temp file and rename.

    Args:
        path: Final destination
        content: Text to write (UTF-8)

    Returns:
        Resolved destination path
    """
    path = Path(path).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp"
    )

    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, path)

    except BaseException:
        # Clean up temp file on error
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise

    logger.debug(f"Wrote {path}")
    return path


def dumps_json(data: Any) -> str:
    """Serialize deterministically: stable indent and a trailing newline."""
    return json.dumps(data, indent=4, ensure_ascii=False) + '\n'


def write_json_atomic(path: Union[str, Path], data: Any) -> Path:
    return write_atomic(path, dumps_json(data))
