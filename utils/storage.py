"""Durable local key-value storage backed by one file per key."""

import os
import tempfile
from pathlib import Path

from utils.logger import logger


class FileStorage:
    """
    String storage that survives restarts.

    Never raises on I/O problems: reads return None, writes return False,
    and the failure is logged.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / key

    def read_string(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Failed to read {key} from local storage: {e}")
            return None

    def write_string(self, key: str, value: str) -> bool:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # Write to a temp file in the same dir, then swap it in
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            return True
        except OSError as e:
            logger.warning(f"Failed to write {key} to local storage: {e}")
            return False

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove {key} from local storage: {e}")
