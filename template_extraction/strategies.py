# SPDX-License-Identifier: AGPL-3.0-only

"""
Per-field extraction strategies.

Each field declares how its value is found: by asking the vision model
(``ai``/``hybrid``), by a regular expression over the OCR text, by the OCR
words inside a page rectangle, or by a keyword scan of the OCR text. A
strategy that lacks its input fails for that field only.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from .config import config
from .errors import StrategyError
from .inference import InferenceCapability
from .models import (
    Candidate,
    CandidateLocation,
    CandidateSource,
    ExtractionMethod,
    ExtractionResult,
    OcrResult,
    TemplateField,
)

logger = logging.getLogger(__name__)

REGEX_CONFIDENCE = 0.9
KEYWORD_CONFIDENCE = 0.85
KEYWORD_WINDOW = 50

_KEYWORD_SPLIT = re.compile(r"[，,、]")
_KEYWORD_VALUE = re.compile(r"[:：]\s*(.+?)(?:\n|$)")


def _select_first(candidates: List[Candidate]) -> List[Any]:
    return [candidates[0].value] if candidates else []


def _clamp(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, number))


def _require_ocr(field: TemplateField, ocr_result: Optional[OcrResult]) -> OcrResult:
    if ocr_result is None:
        raise StrategyError(field.id, f"Field '{field.name}' needs an OCR result for method '{field.method.value}'")
    return ocr_result


def extract_by_ai(field: TemplateField, document_image: str, inference: InferenceCapability) -> ExtractionResult:
    """
    Ask the vision model for one field.

    Multi-value fields request every match as an array and select all values;
    single-value fields request every plausible match and select the best one.
    """
    prompt = field.prompt or f'Extract the value of the "{field.name}" field.'
    if field.allow_multiple:
        prompt += "\nNote: this field may have several values; return all matches as an array."
    else:
        prompt += "\nIf several values could match, list every plausible match and mark the most likely one."

    reply = inference.extract_from_image(document_image, prompt, field.name)

    raw_candidates = reply.candidates or [{"value": reply.value, "confidence": reply.confidence}]
    candidates = []
    for raw in raw_candidates:
        if isinstance(raw, dict):
            value = raw.get("value")
            confidence = _clamp(raw.get("confidence"), reply.confidence)
            context = raw.get("context") or ""
        else:
            value, confidence, context = raw, reply.confidence, ""
        if value is None or value == "":
            continue
        candidates.append(Candidate(value=value, confidence=confidence, source=CandidateSource.AI,
                                    context=str(context)))
    candidates.sort(key=lambda c: c.confidence, reverse=True)

    if field.allow_multiple:
        values = reply.value if isinstance(reply.value, list) else [reply.value]
        selected = [v for v in values if v is not None and v != ""]
        if not selected:
            selected = [c.value for c in candidates]
    else:
        selected = _select_first(candidates)

    return ExtractionResult(field_id=field.id, field_name=field.name, candidates=candidates,
                            selected_values=selected)


def extract_by_regex(field: TemplateField, text: str) -> ExtractionResult:
    """Every non-overlapping match becomes a candidate; group 1 wins over the whole match."""
    pattern_text = getattr(field.extraction, "regex", "")
    if not pattern_text:
        raise StrategyError(field.id, f"Field '{field.name}' has an empty pattern")
    try:
        pattern = re.compile(pattern_text)
    except re.error as e:
        raise StrategyError(field.id, f"Invalid pattern for field '{field.name}': {e}", error=e) from e

    candidates = []
    for match in pattern.finditer(text or ""):
        value = match.group(1) if pattern.groups and match.group(1) else match.group(0)
        candidates.append(Candidate(value=value, confidence=REGEX_CONFIDENCE, source=CandidateSource.REGEX,
                                    context=match.group(0)))

    return ExtractionResult(field_id=field.id, field_name=field.name, candidates=candidates,
                            selected_values=_select_first(candidates))


def extract_by_position(field: TemplateField, ocr_result: OcrResult,
                        default_confidence: float = None) -> ExtractionResult:
    """Join the OCR words lying fully inside the field rectangle."""
    if default_confidence is None:
        default_confidence = config.default_word_confidence
    position = field.extraction.position
    area = position.bbox()

    words = [w for w in ocr_result.words if w.page == position.page and area.contains(w.bbox)]
    value = " ".join(w.text for w in words)
    if words:
        confidence = sum(
            default_confidence if w.confidence is None else w.confidence for w in words
        ) / len(words)
    else:
        confidence = 0.0

    candidate = Candidate(
        value=value,
        confidence=round(confidence, 4),
        source=CandidateSource.POSITION,
        context=value,
        position=CandidateLocation(page=position.page, bbox=area),
    )
    return ExtractionResult(field_id=field.id, field_name=field.name, candidates=[candidate],
                            selected_values=[value] if value else [])


def extract_by_keyword(field: TemplateField, ocr_result: OcrResult) -> ExtractionResult:
    """Look for ``<name>: value`` right after each fragment of the field name."""
    text = ocr_result.text or ""
    candidates = []
    for keyword in _KEYWORD_SPLIT.split(field.name):
        if not keyword:
            continue
        index = text.find(keyword)
        if index == -1:
            continue
        start = index + len(keyword)
        match = _KEYWORD_VALUE.search(text[start:start + KEYWORD_WINDOW])
        if match:
            candidates.append(Candidate(value=match.group(1).strip(), confidence=KEYWORD_CONFIDENCE,
                                        source=CandidateSource.OCR, context=match.group(0)))

    return ExtractionResult(field_id=field.id, field_name=field.name, candidates=candidates,
                            selected_values=_select_first(candidates))


class FieldExtractor:
    """Dispatches each field to the strategy its extraction spec names."""

    def __init__(self, inference: InferenceCapability, max_workers: int = None):
        """
        Initialize the field extractor.

        Args:
            inference: Vision capability used by ``ai`` and ``hybrid`` fields
            max_workers: Worker threads for ``extract_all`` (1 runs sequentially)
        """
        self.inference = inference
        self.max_workers = max(1, max_workers or config.max_workers)

    def _dispatch(self, field: TemplateField, document_image: str,
                  ocr_result: Optional[OcrResult]) -> ExtractionResult:
        method = field.method
        if method in (ExtractionMethod.AI, ExtractionMethod.HYBRID):
            return extract_by_ai(field, document_image, self.inference)
        if method == ExtractionMethod.REGEX:
            return extract_by_regex(field, _require_ocr(field, ocr_result).text)
        if method == ExtractionMethod.POSITION:
            return extract_by_position(field, _require_ocr(field, ocr_result))
        if method == ExtractionMethod.OCR:
            return extract_by_keyword(field, _require_ocr(field, ocr_result))

        logger.info("Field '%s' declares unsupported method %r; skipping", field.name,
                    getattr(field.extraction, "declared_method", None))
        return ExtractionResult.empty(field)

    def extract(self, field: TemplateField, document_image: str,
                ocr_result: Optional[OcrResult] = None) -> ExtractionResult:
        """
        Extract a single field.

        Args:
            field: Field to extract
            document_image: Base64 document image for vision calls
            ocr_result: Word-level OCR output, if available

        Returns:
            Extraction result; empty when the strategy lacks its input

        Raises:
            InferenceError: If the vision capability cannot be reached
        """
        try:
            return self._dispatch(field, document_image, ocr_result)
        except StrategyError as e:
            logger.warning("Strategy failed for field '%s': %s", field.name, e.message)
            return ExtractionResult.empty(field)

    def extract_all(self, fields: List[TemplateField], document_image: str,
                    ocr_result: Optional[OcrResult] = None) -> Dict[str, ExtractionResult]:
        """Extract fields in order, optionally on a thread pool; keyed by field id."""
        def _extract(field: TemplateField) -> ExtractionResult:
            return self.extract(field, document_image, ocr_result)

        if self.max_workers > 1 and len(fields) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                extracted = list(executor.map(_extract, fields))
        else:
            extracted = [_extract(field) for field in fields]

        return {result.field_id: result for result in extracted}
