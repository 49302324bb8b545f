# SPDX-License-Identifier: AGPL-3.0-only

"""
Batched field binding.

All requested fields are bound to values with a single text completion. The
reply must be a JSON object keyed by field name; multi-value fields are
comma-joined in that object and split back into ranked candidates here.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from .config import config
from .errors import BindingError
from .inference import InferenceCapability, parse_json_object
from .models import (
    Candidate,
    CandidateSource,
    DocumentType,
    ExtractionResult,
    FieldType,
    ParsedDocument,
    TemplateField,
)

logger = logging.getLogger(__name__)

TYPE_DESCRIPTIONS = {
    FieldType.TEXT: "text",
    FieldType.NUMBER: "number",
    FieldType.DATE: "date",
    FieldType.SELECT: "single choice",
    FieldType.MULTI_SELECT: "multiple choice",
    FieldType.ARRAY: "list of values",
}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ",".join(_as_text(v) for v in value if v is not None)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


class FieldBinder:
    """Binds template fields to document content with one inference call."""

    def __init__(self, inference: InferenceCapability, start: float = None, step: float = None,
                 floor: float = None):
        """
        Initialize the binder.

        Args:
            inference: Text completion capability
            start: Confidence of the first value of a field
            step: Confidence decrease per subsequent value
            floor: Lowest confidence a value can get
        """
        binding = config.get_binding_config()
        self.inference = inference
        self.start = binding["start"] if start is None else start
        self.step = binding["step"] if step is None else step
        self.floor = binding["floor"] if floor is None else floor

    def build_prompt(self, document_content: str, fields: Iterable[TemplateField]) -> str:
        lines = []
        for field in fields:
            line = f'- "{field.name}": {TYPE_DESCRIPTIONS.get(field.type, "text")}'
            if field.allow_multiple:
                line += " (may have several values: extract all of them, separated by English commas)"
            if field.prompt:
                line += f"\n  Extraction hint: {field.prompt}"
            lines.append(line)

        return (
            "You are a document parsing assistant. Extract the value of each template field "
            "from the parsed document below.\n\n"
            "Template fields:\n"
            + "\n".join(lines)
            + "\n\nParsed document:\n"
            + document_content
            + "\n\nRules:\n"
            "1. Analyse the document carefully and match each field precisely\n"
            "2. If a field cannot be found, its value is an empty string\n"
            "3. For fields that may have several values, return all of them separated by English commas\n"
            "4. Only return exact values that are certain; do not guess\n"
            "5. Output must be a plain JSON object keyed by the template field names\n\n"
            "Return JSON only, for example:\n"
            '{\n  "field 1": "value 1",\n  "field 2": "value 2,value 3",\n  "field 3": ""\n}'
        )

    def bind(self, document_content: str, fields: List[TemplateField]) -> Dict[str, str]:
        """
        Bind every field to a string value.

        Args:
            document_content: Serialized document (structured data or raw text)
            fields: Fields to bind

        Returns:
            Mapping of every requested field name to its value (``""`` when missing)

        Raises:
            BindingError: If the reply is not a JSON object
            InferenceError: If the capability cannot be reached
        """
        if not fields:
            return {}

        reply = self.inference.complete(self.build_prompt(document_content, fields), json_mode=True)

        try:
            data = parse_json_object(reply or "")
        except ValueError as e:
            logger.error("Could not decode binding reply: %r", (reply or "")[:200])
            raise BindingError("Binding reply is not a JSON object", details={"reply": (reply or "")[:500]}, error=e) from e

        return {field.name: _as_text(data.get(field.name)) for field in fields}

    def shape_candidates(self, value: str, source: CandidateSource) -> List[Candidate]:
        """Split a comma-joined value into candidates with decaying confidence."""
        parts = [part.strip() for part in (value or "").split(",")]
        parts = [part for part in parts if part]
        candidates = []
        for i, part in enumerate(parts):
            confidence = round(max(self.floor, self.start - self.step * i), 2)
            candidates.append(Candidate(value=part, confidence=confidence, source=source))
        return candidates

    def bind_results(self, document: ParsedDocument, fields: List[TemplateField],
                     source: Optional[CandidateSource] = None) -> Dict[str, ExtractionResult]:
        """
        Bind fields and shape the values into extraction results keyed by field id.

        The candidate source is ``ai`` for documents read by the vision model
        and ``direct`` for documents decoded locally.
        """
        if source is None:
            if document.type in (DocumentType.IMAGE, DocumentType.PDF):
                source = CandidateSource.AI
            else:
                source = CandidateSource.DIRECT

        bound = self.bind(document.binding_content(), fields)

        results = {}
        for field in fields:
            candidates = self.shape_candidates(bound.get(field.name, ""), source)
            values = [c.value for c in candidates]
            selected = values if field.allow_multiple else values[:1]
            results[field.id] = ExtractionResult(
                field_id=field.id,
                field_name=field.name,
                candidates=candidates,
                selected_values=selected,
            )
        logger.info("Bound %d field(s) from %s document", len(fields), document.type.value)
        return results
