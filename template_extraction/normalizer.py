# SPDX-License-Identifier: AGPL-3.0-only

"""
Document normalization.

Turns an incoming payload into a ``ParsedDocument``: images and PDFs are read
by the vision model, word documents arrive as already-extracted text, and
spreadsheets are decoded locally with pandas.
"""

import base64
import binascii
import datetime
import io
import logging
from typing import Any, List, Optional

import pandas as pd

from .errors import NormalizationError, TemplateExtractionError, UnsupportedFormatError
from .inference import InferenceCapability
from .models import DocumentType, ParsedDocument, SheetData

logger = logging.getLogger(__name__)

SHEET_LABEL = "工作表"
ROW_LABEL = "行"

DOCUMENT_READ_PROMPT = (
    "Carefully analyse this {kind} and extract all of its text content and structured information.\n\n"
    "Requirements:\n"
    "1. Extract all visible text\n"
    "2. Identify tables, lists and other structured data\n"
    "3. Preserve the hierarchy and layout of the text\n"
    "4. If there are several pages, organise the content page by page\n\n"
    "Return the content in a structured way, including all text, table data (if any) "
    "and key information points.\n"
    "Return format: plain text clearly describing the document content."
)


def strip_data_uri(content: str) -> str:
    """Drop a ``data:<mime>;base64,`` prefix if the client sent one."""
    if content.startswith("data:") and "," in content:
        return content.split(",", 1)[1]
    return content


def _b64decode(content: str) -> bytes:
    """Strict base64 decode that tolerates MIME line wrapping."""
    payload = strip_data_uri(content).replace("\r", "").replace("\n", "")
    return base64.b64decode(payload, validate=True)


def _cell_value(value: Any) -> Any:
    """Convert a pandas cell to a plain Python value; blanks become ``""``."""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if hasattr(value, "item"):
        return value.item()
    return value


def render_sheets(sheets: List[SheetData]) -> str:
    """Render sheets as a line-oriented text block with one line per row."""
    lines = []
    for index, sheet in enumerate(sheets, start=1):
        lines.append(f"{SHEET_LABEL} {index}: {sheet.sheet_name}")
        for row_number, row in enumerate(sheet.data, start=1):
            cells = " | ".join("" if cell is None else str(cell) for cell in row)
            lines.append(f"{ROW_LABEL}{row_number}: {cells}")
        lines.append("")
    return "\n".join(lines)


class DocumentNormalizer:
    """Produces a ``ParsedDocument`` for each supported document type."""

    def __init__(self, inference: InferenceCapability):
        """
        Initialize the normalizer.

        Args:
            inference: Vision capability used for image and PDF documents
        """
        self.inference = inference

    def normalize(self, document_type: DocumentType, content: str, file_name: Optional[str] = None) -> ParsedDocument:
        """
        Normalize a document.

        Args:
            document_type: Detected document type
            content: Text-safe transport of the document (base64 or text)
            file_name: Original file name, used only for diagnostics

        Returns:
            Normalized document

        Raises:
            UnsupportedFormatError: If the type has no normalizer
            NormalizationError: If the document cannot be read
        """
        try:
            document_type = DocumentType(document_type)
        except ValueError:
            raise UnsupportedFormatError(
                f"Unsupported document type: {document_type}",
                details={"document_type": str(document_type), "file_name": file_name},
            )

        if document_type in (DocumentType.IMAGE, DocumentType.PDF):
            return self._read_with_vision(document_type, content)
        if document_type == DocumentType.WORD:
            return self._read_word(content)
        return self._read_excel(content, file_name)

    def _read_with_vision(self, document_type: DocumentType, content: str) -> ParsedDocument:
        kind = "PDF document" if document_type == DocumentType.PDF else "image"
        try:
            reply = self.inference.read_image(content, DOCUMENT_READ_PROMPT.format(kind=kind))
        except TemplateExtractionError as e:
            logger.error("Vision read of %s document failed: %s", document_type.value, e)
            raise NormalizationError(document_type, e.message, error=e) from e
        except Exception as e:
            logger.error("Vision read of %s document failed: %s", document_type.value, e)
            raise NormalizationError(document_type, str(e), error=e) from e

        text = reply if isinstance(reply, str) else str(reply)
        return ParsedDocument(type=document_type, raw_data=text.strip())

    def _read_word(self, content: str) -> ParsedDocument:
        """Word content is text extracted client-side, usually base64-encoded."""
        try:
            text = _b64decode(content).decode("utf-8")
        except (binascii.Error, ValueError):
            # Already plain text
            text = content
        return ParsedDocument(type=DocumentType.WORD, raw_data=text)

    def _read_excel(self, content: str, file_name: Optional[str]) -> ParsedDocument:
        try:
            raw = _b64decode(content)
        except (binascii.Error, ValueError) as e:
            raise NormalizationError(DocumentType.EXCEL, "content is not valid base64", error=e) from e

        # Cell texts such as "NA" or "null" are data, not missing values
        try:
            frames = pd.read_excel(io.BytesIO(raw), sheet_name=None, header=None, dtype=object,
                                   keep_default_na=False, na_filter=False)
        except Exception as e:
            logger.error("Could not read spreadsheet %s: %s", file_name or "<upload>", e)
            raise NormalizationError(DocumentType.EXCEL, str(e), error=e) from e

        sheets = []
        for sheet_name, frame in frames.items():
            grid = [[_cell_value(v) for v in row] for row in frame.itertuples(index=False, name=None)]
            sheets.append(SheetData(sheet_name=str(sheet_name), data=grid))

        logger.info("Read %d sheet(s) from %s", len(sheets), file_name or "<upload>")
        return ParsedDocument(type=DocumentType.EXCEL, raw_data=render_sheets(sheets), structured_data=sheets)
