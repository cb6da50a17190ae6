"""BillingModelStore -- thread-safe billing model repository.

Same persistence pattern as the other local stores:
  - configure_persistence(path) -> _replay(path) on boot
  - Append-only JSONL records; deletes are tombstones
  - Thread-safe with threading.Lock()
  - reset() for test isolation
"""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pricepilot.core.errors import StoreError
from pricepilot.core.models import BillingModel

logger = logging.getLogger("pricepilot.billing")


def new_model_id() -> str:
    return f"bm_{uuid.uuid4().hex[:16]}"


class BillingModelStore:
    """Thread-safe in-memory billing model store with optional JSONL persistence."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._models: Dict[str, BillingModel] = {}
        self._persist_path: Optional[str] = None

    def configure_persistence(self, path: Optional[str]) -> None:
        with self._lock:
            self._persist_path = path
        if path:
            self._replay(path)

    def _replay(self, path: str) -> None:
        p = Path(path)
        if not p.exists():
            return
        try:
            with open(p) as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    d = json.loads(line)
                    with self._lock:
                        if d.get("deleted"):
                            self._models.pop(d.get("id", ""), None)
                        else:
                            model = BillingModel.from_dict(d)
                            self._models[model.id] = model
        except Exception:
            logger.warning("model_store: replay failed for %s", path, exc_info=True)

    def _append(self, record: Dict[str, Any]) -> None:
        path = self._persist_path
        if not path:
            return
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a") as f:
                f.write(json.dumps(record, separators=(",", ":")) + "\n")
                f.flush()
        except OSError as e:
            logger.warning("model_store: persist failed", exc_info=True)
            raise StoreError(f"could not write {path}: {e}") from e

    def save(self, model: BillingModel) -> BillingModel:
        """Insert or replace. Assigns an id and created_at when absent."""
        changes: Dict[str, Any] = {}
        if not model.id:
            changes["id"] = new_model_id()
        if not model.created_at:
            changes["created_at"] = datetime.now(timezone.utc).isoformat()
        if changes:
            model = dataclasses.replace(model, **changes)
        # Disk first: a failed write leaves memory untouched.
        with self._lock:
            self._append(model.to_dict())
            self._models[model.id] = model
        return model

    def get(self, model_id: str) -> Optional[BillingModel]:
        with self._lock:
            return self._models.get(model_id)

    def list(self, owner_id: Optional[str] = None) -> List[BillingModel]:
        """Models in insertion order, optionally for one owner."""
        with self._lock:
            models = list(self._models.values())
        if owner_id is not None:
            models = [m for m in models if m.owner_id == owner_id]
        return models

    def delete(self, model_id: str) -> bool:
        """Remove a model. Returns False if it did not exist."""
        with self._lock:
            if model_id not in self._models:
                return False
            self._append({"id": model_id, "deleted": True})
            del self._models[model_id]
        return True

    def reset(self) -> None:
        with self._lock:
            self._models.clear()
            self._persist_path = None


billing_model_store = BillingModelStore()
