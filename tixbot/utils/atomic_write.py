"""Atomic file write.

The gateway reads its config the moment it is spawned, so the config must be
complete on disk before the spawn happens and must never be observed half
written.

The write flow:
1. Write to file.tmp
2. fsync (ensure physical write)
3. rename to final name (atomic operation)

Example:
    from tixbot.utils.atomic_write import atomic_write_json

    atomic_write_json(state_dir / "openclaw.json", {"gateway": {...}})
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Union


def atomic_write(
    file_path: Union[str, Path],
    content: str,
    encoding: str = "utf-8",
) -> Path:
    """Write a text file atomically.

    Args:
        file_path: Target file path
        content: Text to write
        encoding: Text encoding (default: utf-8)

    Returns:
        Final file path

    Raises:
        OSError: The directory is not writable or the rename failed
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = file_path.with_suffix(file_path.suffix + '.tmp')

    try:
        with open(tmp_path, 'w', encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())  # Ensure physical write

        # replace() is atomic on POSIX and overwrites on Windows
        tmp_path.replace(file_path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise

    return file_path


def atomic_write_json(
    file_path: Union[str, Path],
    data: Dict[str, Any],
    indent: int = 2,
) -> Path:
    """Atomic JSON write with a trailing newline.

    Args:
        file_path: Target JSON file path
        data: Dictionary to write
        indent: JSON indentation (default: 2)

    Returns:
        Final file path
    """
    content = json.dumps(data, indent=indent) + "\n"
    return atomic_write(file_path, content)


__all__ = [
    'atomic_write',
    'atomic_write_json',
]
