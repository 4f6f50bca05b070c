"""Content-hash keyed caches.

The content hash is the only validity token: a module whose file bytes hash
to the value recorded in the previous manifest is reused verbatim, and an AI
summary is reused for as long as its key (module hash, or
``hash:symbol_id``) is unchanged.
"""

import hashlib
import logging
import threading
from datetime import datetime, timezone

from .models import AnalysisManifest, ModuleInfo, SummaryCacheEntry

log = logging.getLogger(__name__)

HASH_LENGTH = 16


def content_hash(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()[:HASH_LENGTH]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def symbol_key(module_hash: str, symbol_id: str) -> str:
    return f"{module_hash}:{symbol_id}"


class ModuleCache:
    """Previous-run modules, looked up by path and validated by content hash."""

    def __init__(self, previous: AnalysisManifest | None = None):
        self._modules: dict[str, ModuleInfo] = previous.module_map() if previous else {}

    def lookup(self, file_path: str, digest: str) -> ModuleInfo | None:
        mod = self._modules.get(file_path)
        if mod is None or mod.content_hash != digest:
            return None
        return mod


class SummaryCache:
    """
    AI summaries keyed by content hash.

    Entries are additive. Shared between concurrent summarization tasks, so
    every access goes through a lock.
    """

    def __init__(self, entries: list[SummaryCacheEntry] | None = None):
        self._lock = threading.Lock()
        self._entries: dict[str, SummaryCacheEntry] = {}
        for entry in entries or []:
            self._entries[entry.content_hash] = entry

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
        return entry.summary if entry else None

    def put(self, key: str, summary: str) -> None:
        entry = SummaryCacheEntry(content_hash=key, summary=summary, generated_at=now_iso())
        with self._lock:
            self._entries[key] = entry

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self) -> list[SummaryCacheEntry]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda e: e.content_hash)
