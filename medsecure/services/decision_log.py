from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Literal

from ..models.decision import Decision

log = logging.getLogger("medsecure.decisions")

Outcome = Literal["all", "allowed", "denied"]


class DecisionLog:
    """
    Append-only audit trail of authorization decisions.

    Bounded ring buffer: once capacity is reached the oldest entry is evicted
    and counted in `evicted`.
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.evicted = 0
        self._entries: Deque[Decision] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, decision: Decision) -> Decision:
        if len(self._entries) == self.capacity:
            self.evicted += 1
        self._entries.append(decision)

        log.debug(
            "%s %s on %s for user %s: %s (mode=%s)",
            "ALLOWED" if decision.allowed else "DENIED",
            decision.action,
            decision.resource,
            decision.actor_id,
            decision.detail or decision.reason.value,
            decision.mode.value,
        )
        return decision

    def entries(self, outcome: Outcome = "all", *, newest_first: bool = False) -> List[Decision]:
        out = list(self._entries)
        if outcome == "allowed":
            out = [d for d in out if d.allowed]
        elif outcome == "denied":
            out = [d for d in out if not d.allowed]
        if newest_first:
            out.reverse()
        return out

    def last(self) -> Decision:
        if not self._entries:
            raise IndexError("decision log is empty")
        return self._entries[-1]
