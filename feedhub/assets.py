"""Local asset store for images uploaded with a post; files are served under /uploads."""

import asyncio
import os
import time


class LocalAssetStore:
    def __init__(self, upload_dir: str, public_base_url: str) -> None:
        self._upload_dir = upload_dir
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def upload_dir(self) -> str:
        return self._upload_dir

    def ensure_dir(self) -> None:
        os.makedirs(self._upload_dir, exist_ok=True)

    async def save(self, filename: str, data: bytes) -> str:
        """Write data as <epoch-ms>-<basename> and return its public URL."""
        basename = os.path.basename(filename or "") or "upload"
        name = f"{int(time.time() * 1000)}-{basename}"
        path = os.path.join(self._upload_dir, name)
        self.ensure_dir()
        await asyncio.to_thread(_write_file, path, data)
        return f"{self._public_base_url}/uploads/{name}"

    async def delete(self, url: str) -> None:
        """Remove a file previously returned by save; a missing file is ignored."""
        path = os.path.join(self._upload_dir, os.path.basename(url))
        await asyncio.to_thread(_remove_file, path)


def _write_file(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)


def _remove_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
