# SPDX-License-Identifier: AGPL-3.0-only

"""
Pydantic models for the template extraction system.

This module defines the core data structures shared by the detector, the
normalizer, the field strategies and the binder: templates and their fields,
normalized documents, OCR output and per-field extraction results.
"""

import json
import time
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentType(str, Enum):
    """Canonical document formats understood by the pipeline."""
    IMAGE = "image"
    PDF = "pdf"
    WORD = "word"
    EXCEL = "excel"


class FieldType(str, Enum):
    """Semantic type of a template field."""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    MULTI_SELECT = "multi-select"
    ARRAY = "array"


class ExtractionMethod(str, Enum):
    """Declared extraction strategy of a field."""
    OCR = "ocr"
    AI = "ai"
    REGEX = "regex"
    POSITION = "position"
    HYBRID = "hybrid"
    UNSUPPORTED = "unsupported"


class CandidateSource(str, Enum):
    """Provenance tag of a candidate value."""
    AI = "ai"
    REGEX = "regex"
    POSITION = "position"
    OCR = "ocr"
    DIRECT = "direct"


class BoundingBox(BaseModel):
    """Axis-aligned rectangle in page coordinates."""
    x: float = Field(description="Left edge")
    y: float = Field(description="Top edge")
    width: float = Field(ge=0, description="Rectangle width")
    height: float = Field(ge=0, description="Rectangle height")

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, other: "BoundingBox") -> bool:
        """Inclusive containment: touching an edge still counts as inside."""
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )


class FieldPosition(BoundingBox):
    """Field rectangle plus the page it lives on (1-indexed)."""
    page: int = Field(default=1, ge=1, description="Page index")

    def bbox(self) -> BoundingBox:
        return BoundingBox(x=self.x, y=self.y, width=self.width, height=self.height)


# ── Extraction specs (tagged by method) ─────────────────────────

class _ExtractionSpecBase(BaseModel):
    prompt: Optional[str] = Field(None, description="Free-text extraction hint")


class AIExtraction(_ExtractionSpecBase):
    method: Literal["ai"] = "ai"


class HybridExtraction(_ExtractionSpecBase):
    method: Literal["hybrid"] = "hybrid"


class OCRExtraction(_ExtractionSpecBase):
    method: Literal["ocr"] = "ocr"


class RegexExtraction(_ExtractionSpecBase):
    method: Literal["regex"] = "regex"
    regex: str = Field(description="Pattern applied to the full document text")


class PositionExtraction(_ExtractionSpecBase):
    method: Literal["position"] = "position"
    position: FieldPosition = Field(description="Rectangle the value must fall inside")


class UnsupportedExtraction(_ExtractionSpecBase):
    """Placeholder for a method this system does not know; extracts nothing."""
    method: Literal["unsupported"] = "unsupported"
    declared_method: Optional[str] = Field(None, description="Method as written in the template")


ExtractionSpec = Annotated[
    Union[
        AIExtraction,
        HybridExtraction,
        OCRExtraction,
        RegexExtraction,
        PositionExtraction,
        UnsupportedExtraction,
    ],
    Field(discriminator="method"),
]

_KNOWN_METHODS = {m.value for m in ExtractionMethod} - {ExtractionMethod.UNSUPPORTED.value}


class ValidationRule(BaseModel):
    """Optional validation rule attached to a field."""
    type: str
    rule: Optional[str] = None


# ── Templates ───────────────────────────────────────────────────

class TemplateField(BaseModel):
    """A single named value to extract from a document."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Field identifier")
    name: str = Field(description="Field display name")
    type: FieldType = Field(default=FieldType.TEXT, description="Semantic type")
    required: bool = Field(default=False)
    description: Optional[str] = None
    allow_multiple: bool = Field(default=False, alias="allowMultiple")
    extraction: ExtractionSpec = Field(default_factory=AIExtraction)
    validation: Optional[ValidationRule] = None
    options: Optional[List[str]] = Field(None, description="Choices for select types")

    @field_validator("extraction", mode="before")
    @classmethod
    def tag_unknown_method(cls, v):
        """Map an unknown method onto the unsupported variant instead of failing."""
        if isinstance(v, dict):
            method = v.get("method")
            if isinstance(method, Enum):
                method = method.value
            if method != ExtractionMethod.UNSUPPORTED.value and method not in _KNOWN_METHODS:
                data = {k: val for k, val in v.items() if k == "prompt"}
                data["method"] = ExtractionMethod.UNSUPPORTED.value
                data["declared_method"] = None if method is None else str(method)
                return data
        return v

    @property
    def method(self) -> ExtractionMethod:
        return ExtractionMethod(self.extraction.method)

    @property
    def prompt(self) -> str:
        return self.extraction.prompt or ""


class Section(BaseModel):
    """Named group of fields; carries no extraction semantics."""
    id: str
    name: str
    fields: List[TemplateField] = Field(default_factory=list)


class Template(BaseModel):
    """User-authored extraction schema."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Template identifier")
    name: str = Field(min_length=1, description="Display name")
    description: Optional[str] = None
    category: str = Field(default="general")
    version: int = Field(default=1)
    sections: List[Section] = Field(default_factory=list)
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Template name must not be blank")
        return v

    def all_fields(self) -> List[TemplateField]:
        """Fields of every section, in declaration order."""
        return [f for section in self.sections for f in section.fields]


# ── Normalized documents and OCR ────────────────────────────────

class SheetData(BaseModel):
    """One spreadsheet sheet as a positional cell grid."""
    sheet_name: str = Field(alias="sheetName")
    data: List[List[Any]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class ParsedDocument(BaseModel):
    """Canonical representation of an input document for one extraction call."""
    model_config = ConfigDict(frozen=True)

    type: DocumentType
    raw_data: Union[str, Dict[str, Any]] = Field(description="Decoded text or opaque payload")
    structured_data: Optional[List[SheetData]] = Field(None, description="Richer structure, when available")

    def raw_text(self) -> str:
        if isinstance(self.raw_data, str):
            return self.raw_data
        return json.dumps(self.raw_data, ensure_ascii=False, indent=2)

    def binding_content(self) -> str:
        """Content handed to the binder: structured data wins over raw data."""
        if self.structured_data:
            payload = [sheet.model_dump(by_alias=True) for sheet in self.structured_data]
            return json.dumps(payload, ensure_ascii=False, indent=2)
        return self.raw_text()


class OcrWord(BaseModel):
    """A recognised word with its box."""
    text: str
    bbox: BoundingBox
    confidence: Optional[float] = Field(None, ge=0, le=1)
    page: int = Field(default=1, ge=1)


class OcrResult(BaseModel):
    """Word-level OCR output for a document."""
    text: str = ""
    words: List[OcrWord] = Field(default_factory=list)


# ── Results ─────────────────────────────────────────────────────

class CandidateLocation(BaseModel):
    page: int = Field(default=1, ge=1)
    bbox: BoundingBox


class Candidate(BaseModel):
    """One possible value for a field."""
    value: Any
    confidence: float = Field(ge=0, le=1)
    source: CandidateSource
    context: str = ""
    position: Optional[CandidateLocation] = None


class ExtractionResult(BaseModel):
    """Candidates and current selection for a single field."""
    model_config = ConfigDict(populate_by_name=True)

    field_id: str = Field(alias="fieldId")
    field_name: str = Field(alias="fieldName")
    candidates: List[Candidate] = Field(default_factory=list)
    selected_values: List[Any] = Field(default_factory=list, alias="selectedValues")

    @classmethod
    def empty(cls, field: TemplateField) -> "ExtractionResult":
        return cls(field_id=field.id, field_name=field.name)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)


class DocumentPayload(BaseModel):
    """A document as received from the surrounding application."""
    model_config = ConfigDict(populate_by_name=True)

    document_type: str = Field(default="image", alias="documentType",
                               description="Media type or bare type token")
    content: str = Field(alias="documentImage", description="Text-safe transport of the document bytes")
    file_name: Optional[str] = Field(None, alias="documentFileName")


class ExtractionResponse(BaseModel):
    """Outcome of a full extraction call."""
    document_type: DocumentType
    results: Dict[str, ExtractionResult] = Field(default_factory=dict)
    raw_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "data": {field_id: r.to_dict() for field_id, r in self.results.items()},
            "rawParsedData": self.raw_text,
        }


class ErrorReport(BaseModel):
    """Serializable error information for extraction failures."""
    error_type: str = Field(description="Tag of the error")
    message: str = Field(description="Human-readable message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: float = Field(default_factory=time.time, description="Error timestamp")
