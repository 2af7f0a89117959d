"""Tests for pm_dashboard.services.documents."""

from __future__ import annotations

from pathlib import Path

from pm_dashboard.core.records import Document
from pm_dashboard.services.documents import DocumentLibrary
from pm_dashboard.services.store import ProjectStore


class TestDocumentLibrary:
    """Document metadata CRUD."""

    def test_save_stamps_new_documents(self, tmp_path: Path) -> None:
        library = DocumentLibrary(ProjectStore(tmp_path, "p"))
        doc = library.save(Document(filename="charter.pdf", file_type="application/pdf"))
        assert doc.id
        assert doc.project_id == "p"
        assert doc.upload_date
        assert library.get(doc.id) == doc

    def test_newest_first(self, tmp_path: Path) -> None:
        library = DocumentLibrary(ProjectStore(tmp_path, "p"))
        library.save(Document(filename="a.txt"))
        library.save(Document(filename="b.txt"))
        assert [d.filename for d in library.all()] == ["b.txt", "a.txt"]

    def test_replace_keeps_created_at(self, tmp_path: Path) -> None:
        library = DocumentLibrary(ProjectStore(tmp_path, "p"))
        doc = library.save(Document(filename="a.txt"))
        created = doc.created_at
        doc.description = "Updated"
        library.save(Document.from_dict({**doc.to_dict(), "created_at": ""}))
        stored = library.get(doc.id)
        assert stored is not None
        assert stored.description == "Updated"
        assert stored.created_at == created
        assert len(library.all()) == 1

    def test_supersede(self, tmp_path: Path) -> None:
        library = DocumentLibrary(ProjectStore(tmp_path, "p"))
        v1 = library.save(Document(filename="requirements-v1.docx"))
        v2 = library.save(Document(filename="requirements-v2.docx"))
        old = library.supersede(v1.id, v2.id)
        assert old is not None
        assert old.status == "superseded"
        assert [d.id for d in library.current()] == [v2.id]
        assert library.supersede("missing", v2.id) is None

    def test_search_and_delete(self, tmp_path: Path) -> None:
        library = DocumentLibrary(ProjectStore(tmp_path, "p"))
        doc = library.save(Document(filename="notes.txt", text_content="Budget approved by CFO"))
        library.save(Document(filename="other.txt"))
        assert [d.id for d in library.search("cfo")] == [doc.id]
        assert library.delete(doc.id)
        assert not library.delete(doc.id)
        assert library.search("cfo") == []
