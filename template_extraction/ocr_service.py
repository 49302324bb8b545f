"""
Lightweight word-level OCR for document images.

Uses Pillow for preprocessing and pytesseract to recognise words with their
bounding boxes, feeding the position and keyword strategies.
"""

# SPDX-License-Identifier: AGPL-3.0-only

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
from typing import Any, Optional, Union

from PIL import Image, ImageFilter, ImageOps
import pytesseract

from .config import config
from .models import BoundingBox, OcrResult, OcrWord

logger = logging.getLogger(__name__)


class OCRService:
    def __init__(self, language: Optional[str] = None, tesseract_cmd: Optional[str] = None) -> None:
        self.language = language or config.ocr_language
        cmd = tesseract_cmd or config.tesseract_cmd
        if not cmd and os.name == 'nt':
            guess = r"C:\\Program Files\\Tesseract-OCR\\tesseract.exe"
            if os.path.isfile(guess):
                cmd = guess
        if cmd:
            pytesseract.pytesseract.tesseract_cmd = cmd

    def recognize_image(self, image: Union[bytes, str], page: int = 1) -> OcrResult:
        """Recognise the words of one page image (raw bytes or base64 text).

        Returns an OcrResult with full text and word boxes in image pixels;
        word confidence is tesseract's 0-100 score scaled to 0-1.
        """
        pil_img = Image.open(io.BytesIO(self._as_bytes(image)))
        pil_img = self._preprocess_image(pil_img)

        data = pytesseract.image_to_data(pil_img, lang=self.language, output_type=pytesseract.Output.DICT)

        words = []
        lines = {}
        for i, text in enumerate(data.get('text', [])):
            text = (text or '').strip()
            if not text:
                continue
            conf = data['conf'][i]
            confidence = float(conf) / 100.0 if self._is_number(conf) and float(conf) >= 0 else None
            words.append(OcrWord(
                text=text,
                bbox=BoundingBox(
                    x=float(data['left'][i]),
                    y=float(data['top'][i]),
                    width=float(data['width'][i]),
                    height=float(data['height'][i]),
                ),
                confidence=confidence,
                page=page,
            ))
            key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
            lines.setdefault(key, []).append(text)

        full_text = "\n".join(" ".join(parts) for parts in lines.values())
        logger.info("OCR recognised %d word(s) on page %d", len(words), page)
        return OcrResult(text=full_text, words=words)

    @staticmethod
    def _as_bytes(image: Union[bytes, str]) -> bytes:
        if isinstance(image, bytes):
            return image
        if image.startswith("data:") and "," in image:
            image = image.split(",", 1)[1]
        try:
            return base64.b64decode(image, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Image content is not valid base64") from e

    def _preprocess_image(self, img: Image.Image) -> Image.Image:
        gray = ImageOps.grayscale(img)
        blurred = gray.filter(ImageFilter.MedianFilter(size=3))
        return ImageOps.autocontrast(blurred)

    def _is_number(self, v: Any) -> bool:
        try:
            float(v)
            return True
        except (TypeError, ValueError):
            return False
