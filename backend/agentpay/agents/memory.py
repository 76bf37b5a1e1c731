"""
Bounded Memory Store

Keyed long-term memory shared across sessions. Holds at most `capacity`
entries; storing into a full store evicts the least recently stored key.
"""
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..models.tasks import AgentResult, AgentTask, MemoryWriteParams
from .base import Capability

logger = logging.getLogger(__name__)


def memory_key(service_id: str, day: Optional[datetime] = None) -> str:
    """Key for a payment outcome: payment_<service>_<yyyymmdd>."""
    day = day or datetime.utcnow()
    return f"payment_{service_id}_{day.strftime('%Y%m%d')}"


class BoundedMemoryStore:
    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def store(self, key: str, value: Dict[str, Any]) -> Optional[str]:
        """
        Store a value under key.

        Re-storing an existing key moves it to the newest position.

        Returns:
            The evicted key, if any
        """
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = value

        if len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Memory full ({self.capacity}); evicted {evicted}")
            return evicted
        return None

    def recall(self, key: str) -> Optional[Dict[str, Any]]:
        return self._entries.get(key)

    def recent(self, count: int = 10) -> List[Tuple[str, Dict[str, Any]]]:
        """Newest entries first."""
        return list(reversed(list(self._entries.items())))[:count]

    def search(self, query: str, top_k: int = 5) -> List[Tuple[str, Dict[str, Any]]]:
        """Entries whose key or values contain the query, newest first."""
        needle = query.lower()
        matches = []
        for key, value in reversed(self._entries.items()):
            haystack = key.lower() + " " + " ".join(str(v).lower() for v in value.values())
            if needle in haystack:
                matches.append((key, value))
                if len(matches) >= top_k:
                    break
        return matches


class MemoryAgent:
    """Memory-writer role capability."""

    capability = Capability.MEMORY

    def __init__(self, store: BoundedMemoryStore):
        self.store = store

    async def run(self, task: AgentTask) -> AgentResult:
        params = task.require(MemoryWriteParams)
        evicted = self.store.store(params.key, params.value)
        return AgentResult(
            success=True,
            output=params.key,
            reasoning=f"Stored memory {params.key}",
            tools_used=["memory_store"],
            confidence_score=1.0,
            details={"evicted": evicted, "size": len(self.store)},
        )
