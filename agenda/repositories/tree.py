"""
Helpers shared by the document store adapters: path handling, nested-dict
mutation, push-id generation and the in-process subscription registry.
"""

import copy
import logging
import secrets
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from agenda.core.exceptions import ValidationError
from agenda.domain.interfaces import StoreCallback, Subscription

logger = logging.getLogger(__name__)

_PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"
_push_lock = threading.Lock()
_last_push_ms = 0
_last_random: List[int] = []
_FORBIDDEN_KEY_CHARS = set(".#$[]")


def split_path(path: str) -> List[str]:
    """``"/users/u1/"`` -> ``["users", "u1"]``; rejects empty segments and ``.#$[]`` in keys."""
    if path is None:
        raise ValidationError("Store path is required")
    stripped = path.strip("/")
    if not stripped:
        return []
    parts = stripped.split("/")
    if any(not part or _FORBIDDEN_KEY_CHARS.intersection(part) for part in parts):
        raise ValidationError(f"Invalid store path: {path!r}")
    return parts


def paths_overlap(a: List[str], b: List[str]) -> bool:
    """True if one path is an ancestor of (or equal to) the other."""
    shorter = min(len(a), len(b))
    return a[:shorter] == b[:shorter]


def clean_value(value: Any) -> Any:
    """Drop ``None`` members and empty containers, the way the store never keeps them."""
    if isinstance(value, dict):
        cleaned = {}
        for key, member in value.items():
            member = clean_value(member)
            if member is not None:
                cleaned[str(key)] = member
        return cleaned or None
    if isinstance(value, (list, tuple)):
        items = [clean_value(item) for item in value]
        items = [item for item in items if item is not None]
        return items or None
    return value


def get_in(tree: Any, parts: List[str]) -> Any:
    node = tree
    for part in parts:
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def set_in(tree: Dict[str, Any], parts: List[str], value: Any) -> Dict[str, Any]:
    """Set (or delete when ``value`` is None) a nested member in place, pruning empty parents."""
    if not parts:
        raise ValidationError("Cannot overwrite the store root")
    value = clean_value(value)
    trail: List[Tuple[Dict[str, Any], str]] = []
    node = tree
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            if value is None:
                return tree
            child = {}
            node[part] = child
        trail.append((node, part))
        node = child
    if value is None:
        node.pop(parts[-1], None)
        for parent, key in reversed(trail):
            if parent[key]:
                break
            del parent[key]
    else:
        node[parts[-1]] = copy.deepcopy(value)
    return tree


def generate_push_id(now_ms: Optional[int] = None) -> str:
    """Chronologically sortable 20-char key (8 time chars + 12 random chars)."""
    global _last_push_ms, _last_random
    with _push_lock:
        timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
        duplicate = timestamp == _last_push_ms
        _last_push_ms = timestamp

        time_chars = []
        for _ in range(8):
            time_chars.append(_PUSH_CHARS[timestamp % 64])
            timestamp //= 64
        key = "".join(reversed(time_chars))

        if not duplicate or not _last_random:
            _last_random = [secrets.randbelow(64) for _ in range(12)]
        else:
            # Same millisecond: increment the random part so keys stay ordered
            index = 11
            while index >= 0 and _last_random[index] == 63:
                _last_random[index] = 0
                index -= 1
            if index >= 0:
                _last_random[index] += 1
        return key + "".join(_PUSH_CHARS[value] for value in _last_random)


class _RegisteredSubscription(Subscription):
    def __init__(self, registry: "SubscriptionRegistry", token: int, path: str) -> None:
        self._registry = registry
        self._token = token
        self.path = path

    def unsubscribe(self) -> None:
        self._registry.remove(self._token)

    @property
    def active(self) -> bool:
        return self._registry.contains(self._token)


class SubscriptionRegistry:
    """Callbacks keyed by path; delivery is synchronous and in write order."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: Dict[int, Tuple[List[str], StoreCallback]] = {}
        self._next_token = 0

    def add(self, path: str, callback: StoreCallback) -> Subscription:
        parts = split_path(path)
        with self._lock:
            self._next_token += 1
            token = self._next_token
            self._entries[token] = (parts, callback)
        return _RegisteredSubscription(self, token, path)

    def remove(self, token: int) -> None:
        with self._lock:
            self._entries.pop(token, None)

    def contains(self, token: int) -> bool:
        with self._lock:
            return token in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def notify(self, changed: Iterable[List[str]], reader: Callable[[str], Any]) -> None:
        """Deliver the fresh value to every subscription overlapping a changed path."""
        changed = list(changed)
        with self._lock:
            targets = [
                (token, parts, callback)
                for token, (parts, callback) in self._entries.items()
                if any(paths_overlap(parts, other) for other in changed)
            ]
        for token, parts, callback in targets:
            if not self.contains(token):
                continue
            try:
                callback(reader("/".join(parts)))
            except Exception:
                # A failing listener must not prevent delivery to the others
                logger.exception(
                    "Store subscription callback failed",
                    extra={"context": {"path": "/".join(parts)}},
                )
