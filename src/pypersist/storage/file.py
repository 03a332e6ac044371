"""Directory-backed storage backend, one file per key."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

import aiofiles
import aiofiles.os

from pypersist.exceptions import PersistStorageError

_logger = logging.getLogger(__name__)

# ``quote(key, safe="")`` never produces "#", so no key can map to this name.
_TEMP_DIR = "#tmp"


class FileStorage:
    """Store each key as a UTF-8 text file under ``directory``.

    Keys are percent-encoded into file names. Each write goes to its own
    temporary file under ``directory/#tmp`` and is moved into place, so
    readers never see a partial value and overlapping writes to one key do
    not collide. Methods return awaitables and ignore the completion callback.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        return self._directory / quote(key, safe="")

    async def get_item(self, key: str, callback: Callable[..., None] | None = None) -> str | None:
        path = self._path(key)
        if not await aiofiles.os.path.exists(path):
            return None
        async with aiofiles.open(path, encoding="utf-8") as f:
            return await f.read()

    async def set_item(self, key: str, value: Any, callback: Callable[..., None] | None = None) -> None:
        if not isinstance(value, str):
            raise PersistStorageError(
                f"FileStorage stores text, got {type(value).__name__} for key {key!r}",
                key=key,
            )
        temp_dir = self._directory / _TEMP_DIR
        await aiofiles.os.makedirs(temp_dir, exist_ok=True)
        path = self._path(key)
        temp_path = temp_dir / f"{path.name}.{secrets.token_hex(8)}"
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(value)
        await aiofiles.os.replace(temp_path, path)
        _logger.debug("Wrote %s (%d chars)", path, len(value))

    async def remove_item(self, key: str, callback: Callable[..., None] | None = None) -> None:
        path = self._path(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass

    async def get_all_keys(self, callback: Callable[..., None] | None = None) -> list[str]:
        if not await aiofiles.os.path.isdir(self._directory):
            return []
        keys = []
        for name in await aiofiles.os.listdir(self._directory):
            if await aiofiles.os.path.isfile(self._directory / name):
                keys.append(unquote(name))
        return sorted(keys)
