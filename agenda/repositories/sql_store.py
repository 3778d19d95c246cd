"""
SQLAlchemy-backed document store.

Each top-level document (``users/{uid}``, ``businesses/{id}``...) is one
``store_nodes`` row holding JSON. A ``patch`` loads the touched documents,
applies every path write in memory and commits once, so either all paths
land or none do. Subscriptions are delivered in-process after commit.
"""

import copy
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from agenda.core.exceptions import UpstreamStoreError, ValidationError
from agenda.db.base import StoreNode
from agenda.domain.interfaces import IDocumentStore, StoreCallback, Subscription

from .tree import (
    SubscriptionRegistry,
    clean_value,
    generate_push_id,
    get_in,
    set_in,
    split_path,
)

logger = logging.getLogger(__name__)

DocKey = Tuple[str, str]
_MISSING = object()


class SqlDocumentStore(IDocumentStore):
    """Store adapter persisting the tree in a relational database."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._subscriptions = SubscriptionRegistry()

    def read(self, path: str) -> Any:
        parts = split_path(path)
        try:
            with self._session_factory() as session:
                if not parts:
                    tree: Dict[str, Any] = {}
                    for node in session.scalars(select(StoreNode)):
                        tree.setdefault(node.collection, {})[node.key] = node.value
                    return tree or None
                if len(parts) == 1:
                    rows = session.scalars(
                        select(StoreNode).where(StoreNode.collection == parts[0])
                    )
                    collection = {node.key: copy.deepcopy(node.value) for node in rows}
                    return collection or None
                node = session.get(StoreNode, (parts[0], parts[1]))
                if node is None:
                    return None
                value = get_in(node.value, parts[2:]) if len(parts) > 2 else node.value
                return copy.deepcopy(value)
        except SQLAlchemyError as e:
            logger.error(
                "Store read failed",
                extra={"context": {"path": path, "error": str(e)}},
                exc_info=True,
            )
            raise UpstreamStoreError(f"Store read failed for {path}") from e

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
        if any(not parts for parts, _ in parsed):
            raise ValidationError("Cannot overwrite the store root")

        with self._session_factory() as session:
            try:
                docs: Dict[DocKey, Any] = {}
                for parts, value in parsed:
                    self._apply(session, docs, parts, value)
                for (collection, key), value in docs.items():
                    if value is None:
                        session.execute(
                            delete(StoreNode).where(
                                StoreNode.collection == collection,
                                StoreNode.key == key,
                            )
                        )
                    else:
                        session.merge(
                            StoreNode(collection=collection, key=key, value=value)
                        )
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(
                    "Store patch failed, rolled back",
                    extra={"context": {"paths": list(updates.keys())[:20], "error": str(e)}},
                    exc_info=True,
                )
                raise UpstreamStoreError("Store update failed") from e

        self._subscriptions.notify((parts for parts, _ in parsed), self.read)

    def generate_key(self, path: str) -> str:
        split_path(path)
        return generate_push_id()

    def _load(self, session: Session, docs: Dict[DocKey, Any], doc_key: DocKey) -> Any:
        cached = docs.get(doc_key, _MISSING)
        if cached is not _MISSING:
            return cached
        node = session.get(StoreNode, doc_key)
        value = copy.deepcopy(node.value) if node is not None else None
        docs[doc_key] = value
        return value

    def _apply(
        self, session: Session, docs: Dict[DocKey, Any], parts: list, value: Any
    ) -> None:
        collection = parts[0]
        if len(parts) == 1:
            if value is not None and not isinstance(value, dict):
                raise ValidationError(f"Collection {collection!r} must be a mapping")
            rows = session.scalars(
                select(StoreNode.key).where(StoreNode.collection == collection)
            )
            for key in rows:
                docs[(collection, key)] = None
            for key in list(docs):
                if key[0] == collection:
                    docs[key] = None
            for key, member in (clean_value(value) or {}).items():
                docs[(collection, key)] = member
            return

        doc_key = (collection, parts[1])
        if len(parts) == 2:
            docs[doc_key] = clean_value(value)
            return

        current = self._load(session, docs, doc_key)
        if not isinstance(current, dict):
            current = {}
        updated: Optional[Dict[str, Any]] = set_in(current, parts[2:], value)
        docs[doc_key] = updated or None
