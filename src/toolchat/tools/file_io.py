from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path

from toolchat.errors import ToolInputError

_NEW_FILE_MODE = 0o644


def encode_utf8(text: str, what: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as ex:
        raise ToolInputError(f"{what} cannot be encoded as UTF-8: {ex.reason}") from None


def replace_file(file_path: Path, data: bytes) -> bool:
    """Write ``data`` to a temp file beside ``file_path`` and rename it into place.

    The target is either left untouched or fully replaced. An existing file
    keeps its permission bits; a new one gets 0644. Returns whether the target existed before.
    """
    if file_path.is_dir():
        raise IsADirectoryError(str(file_path))
    existed = file_path.exists()
    file_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        mode = stat.S_IMODE(file_path.stat().st_mode) if existed else _NEW_FILE_MODE
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, file_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return existed
