"""Raw document → plain text, keyed by document type."""

from __future__ import annotations

import io
import logging

from agentic_engine.engine.models import Document
from agentic_engine.errors import UnsupportedDocumentError

logger = logging.getLogger(__name__)

TEXT_TYPES = {"txt", "text", "md", "markdown", "json", "csv"}
PDF_TYPES = {"pdf"}
SUPPORTED_TYPES = TEXT_TYPES | PDF_TYPES


def normalize_type(doc_type: str) -> str:
    return doc_type.lower().lstrip(".").split("/")[-1]


def extract_text(document: Document) -> str:
    """Inline ``content`` wins; otherwise decode ``data`` by document type."""
    if document.content is not None:
        return document.content
    if not document.data:
        return ""

    kind = normalize_type(document.doc_type)
    if kind in TEXT_TYPES or kind == "plain":
        return document.data.decode("utf-8", errors="replace")
    if kind in PDF_TYPES:
        return _read_pdf(document.data)
    raise UnsupportedDocumentError(document.doc_type)


def _read_pdf(raw: bytes) -> str:
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(raw))
    text = "\n".join(page.extract_text() or "" for page in reader.pages)
    logger.debug("Extracted %d chars from %d PDF page(s)", len(text), len(reader.pages))
    return text
