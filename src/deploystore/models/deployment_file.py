"""Association between deployments and the file records they serve."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deploystore.models.base import Base

if TYPE_CHECKING:
    from deploystore.models.deployment import Deployment
    from deploystore.models.file_record import FileRecord


class DeploymentFile(Base):
    """A path served by a deployment, pointing at a content-addressed file.

    ``(deployment_id, path)`` is unique. Links are removed together with
    their file record.
    """

    __tablename__ = "deployment_files"

    deployment_id: Mapped[str] = mapped_column(
        ForeignKey("deployments.deployment_id"), primary_key=True
    )
    path: Mapped[str] = mapped_column(String(2048), primary_key=True)
    file_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("files.file_id", ondelete="CASCADE"),
        index=True,
    )
    mime_type: Mapped[str] = mapped_column(String(255), default="")

    # Relationships
    deployment: Mapped[Deployment] = relationship(back_populates="files")
    file: Mapped[FileRecord] = relationship(back_populates="links")
