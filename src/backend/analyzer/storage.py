"""Content store for uploaded configuration files."""
import os
from contextlib import suppress
from pathlib import Path, PurePosixPath

from errors import StorageError

UPLOAD_PREFIX = "uploads"


def upload_path(report_id: str, file_name: str) -> str:
    """``uploads/<report_id>/<file name>``; any directory part of ``file_name`` is dropped."""
    name = PurePosixPath(file_name.replace("\\", "/")).name or "config.txt"
    return f"{UPLOAD_PREFIX}/{report_id}/{name}"


class LocalContentStore:
    """Stores blobs as files under ``root`` using the object path as relative path."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if target != self.root and self.root not in target.parents:
            raise StorageError(f"Path escapes the content store: {path}")
        return target

    def put(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        tmp = target.with_name(target.name + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, target)
        except OSError as e:
            with suppress(OSError):
                tmp.unlink()
            raise StorageError(f"Could not write {path}: {e}") from e

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(f"Could not read {path}: {e}") from e
