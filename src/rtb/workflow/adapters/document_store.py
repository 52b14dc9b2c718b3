"""Local filesystem document store for application letters."""

import logging
import os
import re
from uuid import uuid4

import aiofiles
import aiofiles.os

from ...core.exceptions import NotFoundError, ValidationError
from ..domain.ports import IDocumentStore

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"application/pdf": ".pdf"}

# References are generated here, never taken from user input
_REF_PATTERN = re.compile(r"^letter-[0-9a-f]{32}\.pdf$")


class LocalDocumentStore(IDocumentStore):
    """Stores letters as files under a single upload directory."""

    def __init__(self, base_dir: str, max_size_bytes: int = 10 * 1024 * 1024):
        self.base_dir = base_dir
        self.max_size_bytes = max_size_bytes

    async def store(self, filename: str, content: bytes, content_type: str) -> str:
        """Validate and write a PDF letter.

        Raises:
            ValidationError: Not a PDF, empty, or over the size limit
        """
        if not content:
            raise ValidationError("Letter file is empty", field="letter")
        extension = ALLOWED_CONTENT_TYPES.get((content_type or "").lower())
        if extension is None or not content.startswith(b"%PDF"):
            raise ValidationError("Only PDF files are allowed", field="letter")
        if len(content) > self.max_size_bytes:
            raise ValidationError(
                f"Letter exceeds the {self.max_size_bytes // (1024 * 1024)}MB limit",
                field="letter",
            )

        os.makedirs(self.base_dir, exist_ok=True)
        ref = f"letter-{uuid4().hex}{extension}"
        async with aiofiles.open(os.path.join(self.base_dir, ref), "wb") as f:
            await f.write(content)

        logger.info(f"Stored letter {filename!r} as {ref} ({len(content):,} bytes)")
        return ref

    async def retrieve(self, ref: str) -> bytes:
        path = os.path.join(self.base_dir, ref or "")
        if not _REF_PATTERN.match(ref or "") or not os.path.isfile(path):
            raise NotFoundError("Document", ref)
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def delete(self, ref: str) -> bool:
        path = os.path.join(self.base_dir, ref or "")
        if not _REF_PATTERN.match(ref or "") or not os.path.isfile(path):
            return False
        await aiofiles.os.remove(path)
        logger.info(f"Deleted letter {ref}")
        return True
