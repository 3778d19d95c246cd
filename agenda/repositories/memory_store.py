"""
In-memory document store.

Holds the whole tree in one nested dict. ``patch`` copies only the dicts along
the patched paths, applies the updates to that candidate and swaps it in under
the lock, so a failing update leaves nothing half applied and untouched
branches are shared between the old and new tree. Used by tests and by local
development (STORE_BACKEND=memory).
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional, Set

from agenda.domain.interfaces import IDocumentStore, StoreCallback, Subscription

from .tree import SubscriptionRegistry, generate_push_id, get_in, set_in, split_path

logger = logging.getLogger(__name__)


def _detach_path(root: Dict[str, Any], parts: List[str], copied: Set[int]) -> None:
    """Shallow-copy each existing dict on the way to the leaf, once per patch."""
    node = root
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            return
        if id(child) not in copied:
            child = dict(child)
            node[part] = child
            copied.add(id(child))
        node = child


class InMemoryDocumentStore(IDocumentStore):
    """Thread-safe nested-dict implementation of the store contract."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._lock = threading.RLock()
        self._tree: Dict[str, Any] = {}
        self._subscriptions = SubscriptionRegistry()
        for key, value in (initial or {}).items():
            set_in(self._tree, split_path(key), value)

    def read(self, path: str) -> Any:
        parts = split_path(path)
        with self._lock:
            value = get_in(self._tree, parts) if parts else self._tree
            return copy.deepcopy(value) if value not in ({}, None) else None

    def subscribe(self, path: str, callback: StoreCallback) -> Subscription:
        subscription = self._subscriptions.add(path, callback)
        callback(self.read(path))
        return subscription

    def write(self, path: str, value: Any) -> None:
        self.patch({path: value})

    def patch(self, updates: Dict[str, Any]) -> None:
        if not updates:
            return
        parsed = [(split_path(path), value) for path, value in updates.items()]
        with self._lock:
            candidate = dict(self._tree)
            copied = {id(candidate)}
            for parts, value in parsed:
                _detach_path(candidate, parts, copied)
                set_in(candidate, parts, value)
            self._tree = candidate
        logger.debug(
            "Store patch applied",
            extra={"context": {"paths": list(updates.keys())[:20], "count": len(updates)}},
        )
        self._subscriptions.notify((parts for parts, _ in parsed), self.read)

    def generate_key(self, path: str) -> str:
        split_path(path)
        return generate_push_id()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)
