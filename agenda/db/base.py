from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .session import Base


class StoreNode(Base):
    """One top-level document of the tree (``users/u1``, ``businesses/b1``...).

    ``collection`` is the first path segment and ``key`` the second, so a
    whole collection is one indexed range scan.
    """

    __tablename__ = "store_nodes"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<StoreNode {self.collection}/{self.key}>"
