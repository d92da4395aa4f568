"""Base types for archive extraction."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import IO, Protocol


@dataclass(frozen=True)
class ArchiveEntry:
    """One entry of a deployment archive.

    Directory entries carry no content; ``open`` must not be called on them.
    """

    path: str
    is_directory: bool
    size: int = 0
    _opener: Callable[[], IO[bytes]] | None = field(default=None, repr=False, compare=False)

    def open(self) -> IO[bytes]:
        """Open a readable byte stream over the entry's content."""
        if self.is_directory or self._opener is None:
            raise IsADirectoryError(self.path)
        return self._opener()


class ArchiveExtractor(Protocol):
    """Protocol for archive decoders.

    ``open`` validates the whole archive up front and raises ``ArchiveCorrupt``
    before yielding anything, so no entry is processed from a broken archive.
    """

    def open(self, data: bytes) -> Iterator[ArchiveEntry]:
        """Decode an in-memory archive into its entries.

        Args:
            data: Raw archive bytes.

        Returns:
            Lazy iterator over the archive's entries, in archive order.
        """
        ...
