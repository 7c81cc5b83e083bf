"""Assembly of rendered layers into output files."""
from __future__ import annotations

import logging
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF - robust PDF reader
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError, PdfStreamError

from .errors import AssemblyError


logger = logging.getLogger(__name__)


class AssemblerState(Enum):
    EMPTY = "empty"
    TEMPLATED = "templated"


class PdfAssembler:
    """
    Merges rendered layer PDFs into one multi-page document.

    The first document added becomes the template of the output, every
    following document is appended after it. Pages keep the order in which
    documents are added.

    States:
        EMPTY --add--> TEMPLATED --add--> TEMPLATED

    `write` is only valid in TEMPLATED.
    """

    def __init__(self, use_fitz_fallback: bool = True) -> None:
        self.use_fitz_fallback = use_fitz_fallback
        self.state = AssemblerState.EMPTY
        self._writer: Optional[PdfWriter] = None

    @property
    def page_count(self) -> int:
        if self._writer is None:
            return 0
        return len(self._writer.pages)

    def add(self, data: bytes, name: str = "layer") -> None:
        """
        Add one rendered layer document.

        Args:
            data: Raw PDF bytes of the layer
            name: Layer name, used in error messages

        Raises:
            AssemblyError: If the bytes cannot be read as a PDF
        """
        reader = self._read(data, name)
        if self.state is AssemblerState.EMPTY:
            self._writer = PdfWriter(clone_from=reader)
            self.state = AssemblerState.TEMPLATED
        else:
            self._writer.append(reader)

    def write(self, output_path: Path) -> Path:
        """
        Serialize the merged document.

        Raises:
            ValueError: If no document was added
        """
        if self.state is AssemblerState.EMPTY:
            raise ValueError("No layer documents to write - assembler is empty.")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("wb") as fh:
            self._writer.write(fh)
        logger.debug("Wrote %d pages to %s", self.page_count, output_path)
        return output_path

    def _read(self, data: bytes, name: str) -> PdfReader:
        # Try pypdf first
        try:
            if not data.startswith(b"%PDF"):
                raise PdfReadError(f"Invalid PDF header: {data[:10]!r}")
            reader = PdfReader(BytesIO(data))
            # Force the page tree to load so broken files fail here
            len(reader.pages)
            return reader
        except (PdfReadError, PdfStreamError) as e:
            pypdf_error = f"{type(e).__name__}: {e}"

        if not self.use_fitz_fallback:
            raise AssemblyError(f"Cannot read {name} as PDF: {pypdf_error}")

        # Fallback: let PyMuPDF repair the document, then read the rewrite
        logger.warning("pypdf could not read %s (%s), using PyMuPDF fallback", name, pypdf_error)
        try:
            doc = fitz.open(stream=data, filetype="pdf")
            try:
                repaired = doc.tobytes(garbage=3, deflate=True)
            finally:
                doc.close()
            reader = PdfReader(BytesIO(repaired))
            page_count = len(reader.pages)
        except Exception as e:
            raise AssemblyError(f"Cannot read {name} as PDF: {type(e).__name__}: {e}") from e
        if page_count == 0:
            raise AssemblyError(f"Cannot read {name} as PDF: no pages")
        return reader


def write_image(data: bytes, output_path: Path) -> Path:
    """Write image bytes verbatim; images need no assembly."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(data)
    return output_path


def get_file_size_str(file_path: Path) -> str:
    """
    Get a human-readable file size string.

    Args:
        file_path: Path to the file

    Returns:
        Size string like "1.5 MB" or "256 KB"
    """
    file_size = file_path.stat().st_size
    if file_size >= 1024 * 1024:
        return f"{file_size / (1024 * 1024):.1f} MB"
    else:
        return f"{file_size / 1024:.1f} KB"
