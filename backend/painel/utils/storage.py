"""Filesystem-backed object storage for the `mockup-images` bucket.

Objects live under `settings.STORAGE_DIR / <bucket>` and are addressed by
forward-slash paths such as `clientes/abc.png`. Public URLs follow the
`/storage/v1/object/public/<bucket>/<path>` shape so that URLs stored in
pedidos and mockups keep working across deployments.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import quote

from ..config import settings

logger = logging.getLogger("painel.storage")

PUBLIC_PREFIX = "/storage/v1/object/public"

# pedido column -> storage folder
PEDIDO_FOLDERS = {
    "fotos_cliente": "clientes",
    "foto_aprovacao": "aprovacao",
    "molde_producao": "molde",
}


class StorageError(Exception):
    pass


class LocalObjectStorage:
    def __init__(self, root: Optional[Path] = None, bucket: Optional[str] = None, public_base_url: Optional[str] = None):
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.root = Path(root or settings.STORAGE_DIR) / self.bucket
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    def _resolve(self, path: str) -> Path:
        clean = path.strip().lstrip("/")
        if not clean:
            raise StorageError("empty object path")
        target = (self.root / clean).resolve()
        root = self.root.resolve()
        if root != target and root not in target.parents:
            raise StorageError(f"invalid object path: {path}")
        return target

    def upload(self, path: str, data: bytes, upsert: bool = False) -> str:
        """Write `data` at `path` and return the object path."""
        target = self._resolve(path)
        if target.exists() and not upsert:
            raise StorageError(f"object already exists: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(f"object not found: {path}")
        return target.read_bytes()

    def local_path(self, path: str) -> Path:
        """Filesystem location of an object; raises `StorageError` for paths outside the bucket."""
        return self._resolve(path)

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except StorageError:
            return False

    def list(self, folder: str = "") -> List[dict]:
        """List the direct children of `folder` (files only, dotfiles skipped)."""
        base = self.root / folder.strip("/") if folder else self.root
        if not base.is_dir():
            return []
        out = []
        for entry in sorted(base.iterdir()):
            if not entry.is_file() or entry.name.startswith("."):
                continue
            stat = entry.stat()
            out.append({"name": entry.name, "size": stat.st_size, "updated_at": stat.st_mtime})
        return out

    def remove(self, paths: Iterable[str]) -> List[str]:
        """Delete objects; missing ones are ignored. Returns the removed paths."""
        removed = []
        for path in paths:
            try:
                target = self._resolve(path)
            except StorageError:
                logger.warning("storage_remove_skipped %s", path)
                continue
            if target.is_file():
                target.unlink()
                removed.append(path)
        return removed

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}{PUBLIC_PREFIX}/{self.bucket}/{quote(path.lstrip('/'))}"

    def extract_path(self, url: Optional[str]) -> Optional[str]:
        """Return the object path of a public URL, or the file name as fallback."""
        if not url:
            return None
        parts = url.split(f"/{self.bucket}/")
        if len(parts) == 2:
            return parts[1]
        name = url.rstrip("/").split("/")[-1]
        return name or None


def pedido_storage_paths(pedido, storage: LocalObjectStorage) -> List[str]:
    """Object paths of every file attached to a pedido, mapped to their folders."""
    paths = []
    for column, folder in PEDIDO_FOLDERS.items():
        for url in getattr(pedido, column, None) or []:
            path = storage.extract_path(url)
            if not path:
                continue
            paths.append(path if f"{folder}/" in path else f"{folder}/{path}")
    return paths


def get_storage() -> LocalObjectStorage:
    return LocalObjectStorage()
