"""Document metadata and raw blob collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from agent_pipeline.errors import NotFoundError
from agent_pipeline.types import SourceDocument


class BlobStorage(Protocol):
    """Fetches raw document bytes by storage locator."""

    def read(self, locator: str) -> bytes:
        """Return the stored bytes or raise `NotFoundError`."""


class InMemoryBlobStorage:
    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    def write(self, locator: str, data: bytes) -> None:
        self._blobs[locator] = data

    def read(self, locator: str) -> bytes:
        data = self._blobs.get(locator)
        if data is None:
            raise NotFoundError("blob", locator)
        return data


class FileSystemBlobStorage:
    """Resolves locators as paths under a root directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def read(self, locator: str) -> bytes:
        path = (self.root / locator).resolve()
        if not path.is_relative_to(self.root) or not path.is_file():
            raise NotFoundError("blob", locator)
        return path.read_bytes()


class DocumentStore(Protocol):
    def get(self, document_id: str) -> SourceDocument:
        """Return the document or raise `NotFoundError`."""

    def save(self, document: SourceDocument) -> None:
        """Insert or replace the document record."""


class InMemoryDocumentStore:
    def __init__(self) -> None:
        self._documents: dict[str, SourceDocument] = {}

    def get(self, document_id: str) -> SourceDocument:
        document = self._documents.get(document_id)
        if document is None:
            raise NotFoundError("document", document_id)
        return document

    def save(self, document: SourceDocument) -> None:
        self._documents[document.document_id] = document
