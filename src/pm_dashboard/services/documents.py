"""Document metadata library (``documents`` key)."""

from __future__ import annotations

import logging

from pm_dashboard.core.records import Document, new_id, now_iso
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

DOCUMENTS_KEY = "documents"


class DocumentLibrary:
    def __init__(self, store: ProjectStore) -> None:
        self._store = store

    def all(self) -> list[Document]:
        return [Document.from_dict(d) for d in self._store.read(DOCUMENTS_KEY, [])]

    def get(self, document_id: str) -> Document | None:
        return next((d for d in self.all() if d.id == document_id), None)

    def save(self, document: Document) -> Document:
        """Insert (newest first) or replace by id."""
        documents = self.all()
        timestamp = now_iso()
        for idx, existing in enumerate(documents):
            if document.id and existing.id == document.id:
                document.created_at = existing.created_at
                documents[idx] = document
                break
        else:
            document.id = document.id or new_id()
            document.project_id = self._store.project_id or "default"
            document.upload_date = document.upload_date or timestamp
            document.created_at = document.created_at or timestamp
            documents.insert(0, document)
        self._store.write(DOCUMENTS_KEY, [d.to_dict() for d in documents])
        logger.info("Document %s saved", document.filename or document.id)
        return document

    def delete(self, document_id: str) -> bool:
        documents = self.all()
        kept = [d for d in documents if d.id != document_id]
        if len(kept) == len(documents):
            return False
        self._store.write(DOCUMENTS_KEY, [d.to_dict() for d in kept])
        return True

    def supersede(self, old_id: str, new_document_id: str) -> Document | None:
        """Mark *old_id* as replaced by *new_document_id*."""
        documents = self.all()
        old = next((d for d in documents if d.id == old_id), None)
        if old is None:
            return None
        old.status = "superseded"
        old.superseded_by = new_document_id
        self._store.write(DOCUMENTS_KEY, [d.to_dict() for d in documents])
        return old

    def current(self) -> list[Document]:
        return [d for d in self.all() if d.status == "current"]

    def search(self, query: str) -> list[Document]:
        needle = query.lower()
        return [
            d for d in self.all()
            if needle in d.filename.lower()
            or needle in d.description.lower()
            or needle in d.text_content.lower()
        ]
