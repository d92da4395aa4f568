"""Deployment model: one immutable upload of a site's files."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deploystore.models.base import Base

if TYPE_CHECKING:
    from deploystore.models.deployment_file import DeploymentFile


class Deployment(Base):
    """A deployment of a site.

    Deployments are append-only: created once, never mutated and never
    removed by garbage collection. ``created_at`` decides whether the
    deployment protects its files from collection.
    """

    __tablename__ = "deployments"

    deployment_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    site_id: Mapped[str] = mapped_column(String(64), index=True)
    context: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    # Relationships
    files: Mapped[list[DeploymentFile]] = relationship(back_populates="deployment")
