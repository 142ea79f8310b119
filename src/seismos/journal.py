from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional
import os
import threading
import time
import orjson

from .utils import sha256_bytes


@dataclass
class JournalEntry:
    ts_unix: float
    kind: str
    payload: Dict[str, Any]


class EventJournal:
    """Hash-chained record of world transitions.

    Every entry carries the hash of its predecessor so a journal file can be
    checked for truncation or edits with ``verify_chain``. With ``path=None``
    entries are kept in memory only.
    """

    def __init__(self, path: Optional[str] = None, actor: str = "seismos", keep_in_memory: int = 1000):
        self.path = path
        self.actor = actor
        self.keep_in_memory = keep_in_memory
        self.last_hash: Optional[str] = None
        self.seq = 0
        self.entries: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        if self.path and os.path.exists(self.path):
            with open(self.path, "rb") as f:
                lines = [line for line in f.readlines() if line.strip()]
            if lines:
                last = orjson.loads(lines[-1])
                self.last_hash = last.get("hash")
                self.seq = int(last.get("seq", 0))

    def write(self, kind: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            self.seq += 1
            entry = asdict(JournalEntry(ts_unix=time.time(), kind=kind, payload=payload))
            entry["actor"] = self.actor
            entry["seq"] = self.seq
            entry["prev_hash"] = self.last_hash
            serialized = orjson.dumps(entry, option=orjson.OPT_SORT_KEYS | orjson.OPT_SERIALIZE_NUMPY)
            entry["hash"] = sha256_bytes(serialized)
            self.last_hash = entry["hash"]
            self.entries.append(entry)
            if len(self.entries) > self.keep_in_memory:
                del self.entries[: len(self.entries) - self.keep_in_memory]
            if self.path:
                line = orjson.dumps(entry, option=orjson.OPT_SERIALIZE_NUMPY).decode("utf-8")
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            return entry

    def kinds(self) -> List[str]:
        with self._lock:
            return [e["kind"] for e in self.entries]

    def of_kind(self, kind: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [e for e in self.entries if e["kind"] == kind]

    def verify_chain(self, raise_on_failure: bool = False) -> bool:
        """Verify seq numbering and hash links of the journal file (or memory when file-less)."""
        if self.path:
            if not os.path.exists(self.path):
                return True
            with open(self.path, "rb") as f:
                rows = [orjson.loads(line) for line in f if line.strip()]
        else:
            with self._lock:
                rows = [dict(e) for e in self.entries]
        prev_hash = rows[0].get("prev_hash") if rows else None
        expected_seq = int(rows[0].get("seq", 1)) - 1 if rows else 0
        try:
            for data in rows:
                expected_seq += 1
                if data.get("seq") != expected_seq:
                    raise ValueError(f"Seq mismatch at {expected_seq}")
                payload = dict(data)
                stored = payload.pop("hash", None)
                if payload.get("prev_hash") != prev_hash:
                    raise ValueError(f"Prev hash mismatch at seq {expected_seq}")
                computed = sha256_bytes(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS | orjson.OPT_SERIALIZE_NUMPY))
                if stored != computed:
                    raise ValueError(f"Hash mismatch at seq {expected_seq}")
                prev_hash = computed
        except ValueError:
            if raise_on_failure:
                raise
            return False
        return True
