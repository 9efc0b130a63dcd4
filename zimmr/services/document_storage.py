"""
ZIMMR Backend — Document Storage Service
=========================================

What:  Persists generated invoice/quote PDFs on the local filesystem.
Why:   A PDF is kept for every document that was sent so the craftsman can
       prove what the customer received.
How:   Async file I/O (aiofiles) into month-organized directories.
Who:   Called by the invoice routes after a PDF has been rendered.

Directory Structure:
    storage/
    └── invoices/
        └── 2024/
            └── 06/
                ├── invoice_INV-202406-3-0001.pdf
                └── quote_ANG-202406-3-0002.pdf
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from zimmr.config import settings
from zimmr.exceptions import DocumentError
from zimmr.services.formatting import safe_filename

logger = logging.getLogger(__name__)


class DocumentStorage:
    """Writes PDF bytes below storage_root/invoices/YYYY/MM/."""

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the default storage path (used in tests).
                          If None, uses settings.storage_root.
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("DocumentStorage initialized with storage_root=%s", self.storage_root)

    @staticmethod
    def document_filename(doc_type: str, invoice_number: str) -> str:
        """e.g. invoice_INV-202406-3-0001.pdf"""
        return f"{safe_filename(doc_type)}_{safe_filename(invoice_number)}.pdf"

    def _generate_storage_path(self, filename: str) -> Tuple[Path, str]:
        now = datetime.now(timezone.utc)
        relative_path = f"invoices/{now.strftime('%Y/%m')}/{filename}"
        return self.storage_root / relative_path, relative_path

    async def store_document(self, content: bytes, filename: str) -> Tuple[str, str]:
        """
        Write a rendered document to disk. An existing file with the same
        name (a resend) is overwritten.

        Returns:
            Tuple of (absolute_path, relative_path).

        Raises:
            DocumentError if directory creation or the write fails.
        """
        absolute_path, relative_path = self._generate_storage_path(filename)

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)

            logger.info("Document stored: %s (%d bytes)", relative_path, len(content))
            return str(absolute_path), relative_path

        except OSError as e:
            logger.error("Failed to store document at %s: %s", absolute_path, str(e))
            raise DocumentError(
                message="Failed to save the generated document. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )


document_storage = DocumentStorage()
