"""Tests for the local letter store."""

import re

import pytest

from src.rtb.core.exceptions import NotFoundError, ValidationError
from src.rtb.workflow.adapters import LocalDocumentStore

PDF = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF"


@pytest.fixture
def documents(tmp_path):
    return LocalDocumentStore(str(tmp_path / "uploads"), max_size_bytes=1024)


class TestLocalDocumentStore:
    @pytest.mark.asyncio
    async def test_store_and_retrieve(self, documents, tmp_path):
        ref = await documents.store("request.pdf", PDF, "application/pdf")

        assert re.fullmatch(r"letter-[0-9a-f]{32}\.pdf", ref)
        assert (tmp_path / "uploads" / ref).read_bytes() == PDF
        assert await documents.retrieve(ref) == PDF

    @pytest.mark.asyncio
    async def test_refs_are_unique(self, documents):
        first = await documents.store("a.pdf", PDF, "application/pdf")
        second = await documents.store("a.pdf", PDF, "application/pdf")
        assert first != second

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content,content_type",
        [
            (PDF, "image/png"),
            (b"GIF89a not a pdf", "application/pdf"),
            (b"", "application/pdf"),
            (PDF, None),
        ],
    )
    async def test_rejects_invalid_letters(self, documents, content, content_type):
        with pytest.raises(ValidationError) as exc_info:
            await documents.store("letter", content, content_type)
        assert exc_info.value.field == "letter"

    @pytest.mark.asyncio
    async def test_rejects_oversized_letter(self, documents):
        with pytest.raises(ValidationError) as exc_info:
            await documents.store("big.pdf", PDF + b"0" * 2048, "application/pdf")
        assert "limit" in exc_info.value.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "ref",
        ["../secrets.pdf", "letter-123.pdf", "", f"letter-{'0' * 32}.pdf"],
    )
    async def test_retrieve_unknown_ref(self, documents, ref):
        with pytest.raises(NotFoundError):
            await documents.retrieve(ref)

    @pytest.mark.asyncio
    async def test_delete(self, documents, tmp_path):
        ref = await documents.store("request.pdf", PDF, "application/pdf")

        assert await documents.delete(ref) is True
        assert not (tmp_path / "uploads" / ref).exists()
        assert await documents.delete(ref) is False

    @pytest.mark.asyncio
    async def test_delete_ignores_foreign_paths(self, documents, tmp_path):
        outside = tmp_path / "keep.pdf"
        outside.write_bytes(PDF)

        assert await documents.delete("../keep.pdf") is False
        assert outside.exists()
