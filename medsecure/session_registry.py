from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .services.session import SessionStore


@dataclass
class SessionRecord:
    store: SessionStore
    expires_at: float


class SessionRegistry:
    """
    One SessionStore per browser session, keyed by an opaque id.
    In-memory, single instance; expired entries are dropped on access and swept on create.
    """

    def __init__(self, factory: Callable[[str], SessionStore], ttl_seconds: int) -> None:
        self._factory = factory
        self._ttl = ttl_seconds
        self._records: Dict[str, SessionRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def _sweep(self) -> None:
        now = time.time()
        for sid in [sid for sid, rec in self._records.items() if rec.expires_at < now]:
            self._records.pop(sid).store.logout()

    def create(self) -> Tuple[str, SessionStore]:
        self._sweep()
        sid = uuid.uuid4().hex
        store = self._factory(sid)
        self._records[sid] = SessionRecord(store=store, expires_at=time.time() + self._ttl)
        return sid, store

    def get(self, sid: str) -> Optional[SessionStore]:
        rec = self._records.get(sid)
        if not rec:
            return None
        if rec.expires_at < time.time():
            rec.store.logout()
            self._records.pop(sid, None)
            return None
        rec.expires_at = time.time() + self._ttl
        return rec.store

    def delete(self, sid: str) -> None:
        self._records.pop(sid, None)
