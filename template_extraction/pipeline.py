# SPDX-License-Identifier: AGPL-3.0-only

"""
Main extraction pipeline.

This module wires the format detector, the document normalizer, the batched
field binder and the per-field extractor into a single call that turns a
template and a document payload into ranked candidates per field.
"""

import logging
from typing import Dict, List, Optional

from .binder import FieldBinder
from .config import config
from .detector import FormatDetector
from .errors import TemplateExtractionError
from .inference import InferenceCapability
from .models import (
    DocumentPayload,
    DocumentType,
    ExtractionMethod,
    ExtractionResponse,
    ExtractionResult,
    OcrResult,
    ParsedDocument,
    Template,
    TemplateField,
)
from .normalizer import DocumentNormalizer, strip_data_uri
from .ocr_service import OCRService
from .strategies import FieldExtractor

logger = logging.getLogger(__name__)

MODE_BATCH = "batch"
MODE_PER_FIELD = "per_field"
MODE_AUTO = "auto"
MODES = (MODE_BATCH, MODE_PER_FIELD, MODE_AUTO)

_BINDER_METHODS = (ExtractionMethod.AI, ExtractionMethod.HYBRID)
_VISION_TYPES = (DocumentType.IMAGE, DocumentType.PDF)


class ExtractionPipeline:
    """Main pipeline for template-driven extraction."""

    def __init__(
        self,
        detector: FormatDetector,
        normalizer: DocumentNormalizer,
        binder: FieldBinder,
        field_extractor: FieldExtractor,
        ocr_service: Optional[OCRService] = None
    ):
        """
        Initialize the extraction pipeline.

        Args:
            detector: Resolves the document type
            normalizer: Produces the parsed document
            binder: Binds fields with one batched inference call
            field_extractor: Runs per-field strategies
            ocr_service: Optional OCR for word boxes on image documents
        """
        self.detector = detector
        self.normalizer = normalizer
        self.binder = binder
        self.field_extractor = field_extractor
        self.ocr_service = ocr_service

    @classmethod
    def from_inference(cls, inference: InferenceCapability,
                       ocr_service: Optional[OCRService] = None) -> "ExtractionPipeline":
        """Build a pipeline whose components share one inference capability."""
        return cls(
            detector=FormatDetector(),
            normalizer=DocumentNormalizer(inference),
            binder=FieldBinder(inference),
            field_extractor=FieldExtractor(inference, config.max_workers),
            ocr_service=ocr_service,
        )

    def extract(self, template: Template, payload: DocumentPayload, mode: str = MODE_BATCH,
                ocr_result: Optional[OcrResult] = None) -> ExtractionResponse:
        """
        Extract every field of a template from a document.

        Args:
            template: Extraction template
            payload: Document as received from the client
            mode: ``batch`` (one binder call), ``per_field`` (local strategies
                and per-field vision calls; on word and excel documents it
                behaves like ``auto``) or ``auto`` (binder for ai/hybrid
                fields, local strategies for the rest)
            ocr_result: Word-level OCR output supplied by the caller

        Returns:
            Results keyed by field id in template order, plus the normalized text

        Raises:
            ValueError: If the mode is unknown
            TemplateExtractionError: On unsupported format, normalization,
                binding or inference failure
        """
        if mode not in MODES:
            raise ValueError(f"Unknown extraction mode: {mode}")

        document_type = self.detector.detect(payload.document_type, payload.file_name)
        logger.info("Extracting template '%s' from %s document (mode=%s)", template.name, document_type.value, mode)

        try:
            document = self.normalizer.normalize(document_type, payload.content, payload.file_name)
            fields = template.all_fields()

            if mode == MODE_BATCH:
                results = self.binder.bind_results(document, fields)
            elif mode == MODE_PER_FIELD and document.type in _VISION_TYPES:
                ocr = self._resolve_ocr(document, payload, ocr_result)
                results = self.field_extractor.extract_all(fields, payload.content, ocr)
            else:
                # Word and excel content is not an image; ai/hybrid fields go through the binder
                results = self._extract_auto(document, payload, fields, ocr_result)
        except TemplateExtractionError as e:
            logger.error("Extraction of template '%s' failed: %s", template.name, e.message)
            raise

        ordered = {field.id: results.get(field.id) or ExtractionResult.empty(field) for field in fields}
        return ExtractionResponse(document_type=document_type, results=ordered, raw_text=document.raw_text())

    def _extract_auto(self, document: ParsedDocument, payload: DocumentPayload, fields: List[TemplateField],
                      ocr_result: Optional[OcrResult]) -> Dict[str, ExtractionResult]:
        bound_fields = [f for f in fields if f.method in _BINDER_METHODS]
        local_fields = [f for f in fields if f.method not in _BINDER_METHODS]

        results = {}
        if bound_fields:
            results.update(self.binder.bind_results(document, bound_fields))
        if local_fields:
            ocr = self._resolve_ocr(document, payload, ocr_result)
            results.update(self.field_extractor.extract_all(local_fields, payload.content, ocr))
        return results

    def _resolve_ocr(self, document: ParsedDocument, payload: DocumentPayload,
                     ocr_result: Optional[OcrResult]) -> OcrResult:
        """Caller OCR wins; image documents may be OCRed; otherwise the normalized text stands in."""
        if ocr_result is not None:
            return ocr_result
        if self.ocr_service is not None and document.type == DocumentType.IMAGE:
            try:
                return self.ocr_service.recognize_image(strip_data_uri(payload.content))
            except Exception as e:
                logger.warning("OCR of image document failed, using normalized text: %s", e)
        return OcrResult(text=document.raw_text())
