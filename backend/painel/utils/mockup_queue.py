"""In-memory mockup generation queue.

Items are processed one at a time by a single daemon thread in the order
they were added. Finished items (completed or error) stay visible for a
short while and are then pruned. Nothing is persisted.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger("painel.mockup_queue")

FINISHED = ("completed", "error")


class MockupQueue:
    def __init__(self, worker: Callable[[dict], Optional[dict]], prune_seconds: float = 10.0):
        self._items: list[dict] = []
        self._lock = threading.Lock()
        self._processing = False
        self._current_id: Optional[str] = None
        self._worker = worker
        self._prune_seconds = prune_seconds

    def add(self, pedido_id: str, numero_pedido: str = "", tipo_gerar: str = "all") -> Optional[dict]:
        """Append a pedido; returns `None` when it is already pending."""
        self._cleanup()
        with self._lock:
            for item in self._items:
                if item["pedido_id"] == pedido_id and item["status"] == "pending":
                    return None
            item = {
                "id": f"{pedido_id}-{int(time.time() * 1000)}",
                "pedido_id": pedido_id,
                "numero_pedido": numero_pedido,
                "tipo_gerar": tipo_gerar,
                "status": "pending",
                "error": None,
                "result": None,
                "created_at": datetime.now(timezone.utc).isoformat(),
                "finished_at": None,
            }
            self._items.append(item)
            added = dict(item)
            start = not self._processing
            if start:
                self._processing = True
        if start:
            threading.Thread(target=self._drain, daemon=True).start()
        return added

    def snapshot(self) -> dict:
        self._cleanup()
        with self._lock:
            items = [dict(i) for i in self._items]
            processing = next((i for i in items if i["status"] == "processing"), None)
            return {
                "queue": items,
                "is_processing": self._processing,
                "pending_count": sum(1 for i in items if i["status"] == "pending"),
                "processing_item": processing,
                "current_processing_id": self._current_id,
            }

    def _next_pending(self) -> Optional[dict]:
        with self._lock:
            item = next((i for i in self._items if i["status"] == "pending"), None)
            if item is None:
                self._processing = False
                self._current_id = None
                return None
            item["status"] = "processing"
            self._current_id = item["pedido_id"]
            return dict(item)

    def _drain(self) -> None:
        while True:
            item = self._next_pending()
            if item is None:
                return
            try:
                result = self._worker(item)
                self._finish(item["id"], "completed", result=result)
            except Exception as exc:
                logger.exception("mockup_generation_failed pedido=%s", item["pedido_id"])
                self._finish(item["id"], "error", error=str(exc))

    def _finish(self, item_id: str, status: str, result=None, error: Optional[str] = None) -> None:
        with self._lock:
            for item in self._items:
                if item["id"] == item_id:
                    item["status"] = status
                    item["result"] = result
                    item["error"] = error
                    item["finished_at"] = time.time()
                    break

    def _cleanup(self) -> None:
        cutoff = time.time() - self._prune_seconds
        with self._lock:
            self._items = [
                i for i in self._items
                if i["status"] not in FINISHED or (i["finished_at"] or 0) > cutoff
            ]
