"""Orphan-file reconciliation for the storage bucket.

Stored objects are compared against every URL referenced by pedidos,
mockup canvases and mockups. Client photos are never reported as
orphans.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional
from urllib.parse import unquote

from sqlalchemy.exc import SQLAlchemyError

from .storage import LocalObjectStorage

logger = logging.getLogger("painel.cleanup")

SCANNED_FOLDERS = ("clientes", "aprovacao", "molde", "mockups")
PROTECTED_FOLDER = "clientes/"
DOUBLE_CHECK_FOLDER = "mockups/"


def normalize_path(path: str) -> str:
    return path.lower().strip()


def path_variations(url: Optional[str], bucket: str) -> List[str]:
    """Normalised object paths a URL may correspond to (raw, decoded, `%20`)."""
    if not url:
        return []
    parts = url.split(f"/{bucket}/")
    if len(parts) != 2:
        return []
    raw = parts[1]
    out = [normalize_path(raw)]
    decoded = unquote(raw)
    if decoded != raw:
        out.append(normalize_path(decoded))
    encoded = raw.replace(" ", "%20")
    if encoded != raw:
        out.append(normalize_path(encoded))
    return out


def list_bucket_files(storage: LocalObjectStorage, folders: Iterable[str] = SCANNED_FOLDERS) -> List[str]:
    files = []
    for folder in folders:
        for entry in storage.list(folder):
            files.append(f"{folder}/{entry['name']}")
    return files


class OrphanReport:
    def __init__(self, total_files: int, referenced: int, orphans: List[str], protected: List[str]):
        self.total_files = total_files
        self.referenced = referenced
        self.orphans = orphans
        self.protected = protected

    def summary(self, limit: int = 50) -> dict:
        return {
            "success": True,
            "orphanCount": len(self.orphans),
            "totalFiles": self.total_files,
            "referencedFiles": self.referenced,
            "protectedCount": len(self.protected),
            "orphanFiles": [{"path": p, "size": 0, "lastModified": ""} for p in self.orphans[:limit]],
        }


def find_orphans(
    storage: LocalObjectStorage,
    pedidos: Iterable,
    canvas_urls: Iterable[str],
    mockup_urls: Iterable[str],
    count_mockup_references: Callable[[str], int],
) -> OrphanReport:
    """Compute which stored files are not referenced anywhere.

    `count_mockup_references(path)` is a case-insensitive substring lookup
    over canvas and mockup base images, used as a second check for files
    under `mockups/`.
    """
    files = list_bucket_files(storage)
    referenced = set()
    client_photos = set()
    for pedido in pedidos:
        for url in pedido.fotos_cliente or []:
            variations = path_variations(url, storage.bucket)
            referenced.update(variations)
            client_photos.update(variations)
        for url in list(pedido.foto_aprovacao or []) + list(pedido.molde_producao or []):
            referenced.update(path_variations(url, storage.bucket))
    for url in list(canvas_urls) + list(mockup_urls):
        referenced.update(path_variations(url, storage.bucket))

    orphans: List[str] = []
    protected: List[str] = []
    for path in files:
        norm = normalize_path(path)
        if path.startswith(PROTECTED_FOLDER) or norm in client_photos:
            protected.append(path)
            continue
        if norm in referenced:
            continue
        if path.startswith(DOUBLE_CHECK_FOLDER):
            try:
                count = count_mockup_references(path)
            except SQLAlchemyError:
                # unverifiable files are kept
                logger.exception("cleanup_reference_check_failed %s", path)
                protected.append(path)
                continue
            if count:
                protected.append(path)
                continue
        orphans.append(path)
    logger.info(
        "cleanup_scan total=%s referenced=%s orphans=%s protected=%s",
        len(files), len(referenced), len(orphans), len(protected),
    )
    return OrphanReport(len(files), len(referenced), orphans, protected)


def delete_in_batches(storage: LocalObjectStorage, paths: List[str], batch_size: int) -> int:
    """Remove `paths` in fixed-size batches; failed batches are logged and not counted."""
    deleted = 0
    for start in range(0, len(paths), batch_size):
        batch = paths[start:start + batch_size]
        try:
            storage.remove(batch)
        except OSError:
            logger.exception("cleanup_batch_failed start=%s size=%s", start, len(batch))
            continue
        deleted += len(batch)
    return deleted
