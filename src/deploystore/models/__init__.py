"""Database models for deploystore."""

from deploystore.models.base import Base
from deploystore.models.deployment import Deployment
from deploystore.models.deployment_file import DeploymentFile
from deploystore.models.file_record import FileRecord

__all__ = [
    "Base",
    "Deployment",
    "DeploymentFile",
    "FileRecord",
]
