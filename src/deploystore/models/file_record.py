"""FileRecord model for content-addressed file storage and deduplication."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deploystore.models.base import Base

if TYPE_CHECKING:
    from deploystore.models.deployment_file import DeploymentFile


class FileRecord(Base):
    """Content-addressed file record.

    Records are identified by the SHA-256 of their bytes; ``file_id`` is a
    surrogate key for joins only. Many deployment paths may point at the same
    record. ``stored`` is set once the bytes are durably in the blob store.
    """

    __tablename__ = "files"

    # SQLite only autoincrements INTEGER PRIMARY KEY
    file_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    content_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    byte_size: Mapped[int] = mapped_column(BigInteger)
    stored: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    # Relationships
    links: Mapped[list[DeploymentFile]] = relationship(back_populates="file")
