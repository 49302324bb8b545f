# SPDX-License-Identifier: AGPL-3.0-only

"""Document type detection from a declared media type and an optional file name."""

import logging
import os
from typing import Optional

from .models import DocumentType

logger = logging.getLogger(__name__)


class FormatDetector:
    """Maps a declared media type (or file name) onto a ``DocumentType``."""

    MEDIA_TYPES = {
        "application/pdf": DocumentType.PDF,
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentType.WORD,
        "application/msword": DocumentType.WORD,
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": DocumentType.EXCEL,
        "application/vnd.ms-excel": DocumentType.EXCEL,
    }

    EXTENSIONS = {
        ".jpg": DocumentType.IMAGE,
        ".jpeg": DocumentType.IMAGE,
        ".png": DocumentType.IMAGE,
        ".webp": DocumentType.IMAGE,
        ".bmp": DocumentType.IMAGE,
        ".gif": DocumentType.IMAGE,
        ".pdf": DocumentType.PDF,
        ".docx": DocumentType.WORD,
        ".doc": DocumentType.WORD,
        ".xlsx": DocumentType.EXCEL,
        ".xls": DocumentType.EXCEL,
    }

    def detect(self, declared_media_type: Optional[str], file_name: Optional[str] = None) -> DocumentType:
        """
        Resolve the document type. Never raises.

        Args:
            declared_media_type: Media type (or bare type token) sent by the client
            file_name: Original file name, if known

        Returns:
            Detected type, ``image`` when nothing matches
        """
        media_type = (declared_media_type or "").strip().lower()
        if ";" in media_type:
            media_type = media_type.split(";", 1)[0].strip()

        if media_type.startswith("image/"):
            return DocumentType.IMAGE
        if media_type in self.MEDIA_TYPES:
            return self.MEDIA_TYPES[media_type]

        if file_name:
            ext = os.path.splitext(file_name.strip().lower())[1]
            if ext in self.EXTENSIONS:
                return self.EXTENSIONS[ext]

        # Bare tokens such as "excel" sent by form clients
        try:
            return DocumentType(media_type)
        except ValueError:
            pass

        if media_type or file_name:
            logger.debug("Unrecognised document type %r (file %r), defaulting to image", declared_media_type, file_name)
        return DocumentType.IMAGE
