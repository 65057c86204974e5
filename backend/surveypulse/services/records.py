# surveypulse/services/records.py
"""
Response record stores.

Two interchangeable implementations of the same small capability
(insert, find newest-first with a limit, count):

  memory   process-local list, the default for development and tests
  storage  JSONL file on the storage backend (local disk or S3)

Set RECORD_STORE to pick one.
"""
from __future__ import annotations

import json
import logging
import os
import random
import string
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from surveypulse.errors import StorageNotFound
from surveypulse.services.storage import StorageBackend, make_storage

RECORD_STORE = os.getenv("RECORD_STORE", "memory")  # 'memory' or 'storage'
RESPONSES_PATH = "responses/responses.jsonl"

logger = logging.getLogger(__name__)

_ALPHABET = string.digits + string.ascii_lowercase


# ---------- Helpers ----------

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _ALPHABET[r] + out
        if n == 0:
            return out


def new_record_id() -> str:
    """Millisecond clock in base 36 plus a short random suffix."""
    suffix = "".join(random.choices(_ALPHABET, k=4))
    return _base36(int(time.time() * 1000)) + suffix


def _matches(doc: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    return all(doc.get(k) == v for k, v in query.items())


def _clean_query(query: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return {k: v for k, v in (query or {}).items() if v not in (None, "")}


# ---------- Stores ----------

class RecordStore:
    """Abstract record store"""

    def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Persist doc with an id and createdAt; return the stored copy"""
        raise NotImplementedError

    def find(self, query: Optional[Mapping[str, Any]] = None, limit: int = 0) -> List[Dict[str, Any]]:
        """Records matching every key of query, newest first; limit <= 0 means no limit"""
        raise NotImplementedError

    def count(self, query: Optional[Mapping[str, Any]] = None) -> int:
        return len(self.find(query))

    @staticmethod
    def _stamp(doc: Dict[str, Any]) -> Dict[str, Any]:
        return {"_id": new_record_id(), **doc, "createdAt": utc_now()}


class MemoryRecordStore(RecordStore):
    """Process-local store, newest record at the front"""

    def __init__(self):
        self._docs: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        saved = self._stamp(doc)
        with self._lock:
            self._docs.insert(0, saved)
        return dict(saved)

    def find(self, query: Optional[Mapping[str, Any]] = None, limit: int = 0) -> List[Dict[str, Any]]:
        query = _clean_query(query)
        with self._lock:
            docs = list(self._docs)
        results = [dict(d) for d in docs if _matches(d, query)]
        results.sort(key=lambda d: d["createdAt"], reverse=True)
        return results[:limit] if limit > 0 else results


class StorageRecordStore(RecordStore):
    """Append-only JSONL file on a StorageBackend"""

    def __init__(self, storage: StorageBackend, path: str = RESPONSES_PATH):
        self.storage = storage
        self.path = path
        self._lock = threading.Lock()

    def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        saved = self._stamp(doc)
        line = dict(saved, createdAt=saved["createdAt"].isoformat())
        with self._lock:
            self.storage.append_jsonl(self.path, line)
        return saved

    def _load(self) -> List[Dict[str, Any]]:
        if not self.storage.exists(self.path):
            return []
        try:
            text = self.storage.read_text(self.path)
        except StorageNotFound:
            return []
        docs = []
        for line in text.splitlines():
            if not line.strip():
                continue
            doc = json.loads(line)
            created = doc.get("createdAt")
            if isinstance(created, str):
                doc["createdAt"] = datetime.fromisoformat(created.replace("Z", "+00:00"))
            docs.append(doc)
        return docs

    def find(self, query: Optional[Mapping[str, Any]] = None, limit: int = 0) -> List[Dict[str, Any]]:
        query = _clean_query(query)
        # file is oldest-first; reverse so equal timestamps keep newest-first
        results = [d for d in reversed(self._load()) if _matches(d, query)]
        results.sort(key=lambda d: d.get("createdAt") or datetime.min.replace(tzinfo=timezone.utc),
                     reverse=True)
        return results[:limit] if limit > 0 else results


def make_record_store(kind: Optional[str] = None) -> RecordStore:
    """Build the store named by RECORD_STORE (or the explicit argument)"""
    kind = (kind or RECORD_STORE).lower()
    if kind == "storage":
        storage = make_storage()
        logger.info("Record store: JSONL at %s", RESPONSES_PATH)
        return StorageRecordStore(storage)
    logger.info("Record store: in-memory")
    return MemoryRecordStore()
