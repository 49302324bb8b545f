# SPDX-License-Identifier: AGPL-3.0-only

"""
Tests for extraction models.

This module tests the Pydantic models shared by the pipeline components.
"""

import json

import pytest
from pydantic import ValidationError

from template_extraction.errors import BindingError, NormalizationError
from template_extraction.models import (
    BoundingBox,
    Candidate,
    CandidateSource,
    DocumentType,
    ExtractionMethod,
    ExtractionResponse,
    ExtractionResult,
    FieldPosition,
    ParsedDocument,
    PositionExtraction,
    RegexExtraction,
    SheetData,
    Template,
    TemplateField,
    UnsupportedExtraction,
)


class TestDocumentType:
    """Test DocumentType enum."""

    def test_document_type_values(self):
        for doc_type in ["image", "pdf", "word", "excel"]:
            assert DocumentType(doc_type) == doc_type


class TestBoundingBox:
    """Test rectangle containment."""

    def test_contains_is_inclusive(self):
        area = BoundingBox(x=0, y=0, width=100, height=50)
        assert area.contains(BoundingBox(x=0, y=0, width=100, height=50))
        assert area.contains(BoundingBox(x=10, y=10, width=5, height=5))

    def test_contains_rejects_overflow(self):
        area = BoundingBox(x=0, y=0, width=100, height=50)
        assert not area.contains(BoundingBox(x=95, y=10, width=10, height=5))
        assert not area.contains(BoundingBox(x=-1, y=10, width=10, height=5))

    def test_negative_size_rejected(self):
        with pytest.raises(ValidationError):
            BoundingBox(x=0, y=0, width=-1, height=5)


class TestTemplateField:
    """Test extraction spec variants."""

    def test_default_extraction_is_ai(self):
        field = TemplateField(id="f", name="Vendor")
        assert field.method == ExtractionMethod.AI
        assert field.prompt == ""

    def test_regex_requires_pattern(self):
        with pytest.raises(ValidationError):
            TemplateField(id="f", name="Number", extraction={"method": "regex"})

    def test_position_requires_rectangle(self):
        with pytest.raises(ValidationError):
            TemplateField(id="f", name="Total", extraction={"method": "position"})

    def test_variants_are_parsed(self):
        regex = TemplateField(id="a", name="A", extraction={"method": "regex", "regex": "x"})
        position = TemplateField(
            id="b", name="B",
            extraction={"method": "position", "position": {"x": 1, "y": 2, "width": 3, "height": 4}},
        )
        assert isinstance(regex.extraction, RegexExtraction)
        assert isinstance(position.extraction, PositionExtraction)
        assert position.extraction.position.page == 1

    def test_unknown_method_becomes_unsupported(self):
        field = TemplateField(id="f", name="X", extraction={"method": "barcode", "prompt": "scan"})
        assert isinstance(field.extraction, UnsupportedExtraction)
        assert field.extraction.declared_method == "barcode"
        assert field.method == ExtractionMethod.UNSUPPORTED
        assert field.prompt == "scan"

    def test_unsupported_survives_a_dump_roundtrip(self):
        field = TemplateField(id="f", name="X", extraction={"method": "barcode"})
        again = TemplateField.model_validate(field.model_dump(by_alias=True))
        assert again.extraction.declared_method == "barcode"

    def test_allow_multiple_alias(self):
        field = TemplateField.model_validate({"id": "f", "name": "Tags", "allowMultiple": True})
        assert field.allow_multiple is True
        assert field.model_dump(by_alias=True)["allowMultiple"] is True


class TestTemplate:
    """Test Template model."""

    def test_all_fields_in_section_order(self, template):
        assert [f.id for f in template.all_fields()] == ["invoice_number", "vendor", "products"]

    def test_sections_may_be_empty(self):
        template = Template(id="t", name="Empty")
        assert template.sections == []
        assert template.all_fields() == []

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            Template(id="t", name="   ")
        with pytest.raises(ValidationError):
            Template(id="t", name="")


class TestParsedDocument:
    """Test ParsedDocument model."""

    def test_frozen(self):
        doc = ParsedDocument(type=DocumentType.WORD, raw_data="hello")
        with pytest.raises(ValidationError):
            doc.raw_data = "changed"

    def test_binding_content_prefers_structured_data(self):
        doc = ParsedDocument(
            type=DocumentType.EXCEL,
            raw_data="工作表 1: Sheet1",
            structured_data=[SheetData(sheet_name="Sheet1", data=[["Name", "Age"]])],
        )
        payload = json.loads(doc.binding_content())
        assert payload == [{"sheetName": "Sheet1", "data": [["Name", "Age"]]}]

    def test_binding_content_falls_back_to_raw_text(self):
        doc = ParsedDocument(type=DocumentType.IMAGE, raw_data="Total: 10")
        assert doc.binding_content() == "Total: 10"

    def test_structured_raw_data_serialized_as_text(self):
        doc = ParsedDocument(type=DocumentType.PDF, raw_data={"text": "hi"})
        assert json.loads(doc.raw_text()) == {"text": "hi"}


class TestExtractionResult:
    """Test result serialization."""

    def test_empty(self):
        field = TemplateField(id="f", name="Vendor")
        result = ExtractionResult.empty(field)
        assert result.candidates == []
        assert result.selected_values == []

    def test_to_dict_uses_wire_names(self):
        result = ExtractionResult(
            field_id="f",
            field_name="Vendor",
            candidates=[Candidate(value="ACME", confidence=0.95, source=CandidateSource.AI)],
            selected_values=["ACME"],
        )
        data = result.to_dict()
        assert data["fieldId"] == "f"
        assert data["fieldName"] == "Vendor"
        assert data["selectedValues"] == ["ACME"]
        assert data["candidates"][0]["source"] == "ai"

    def test_candidate_confidence_bounds(self):
        with pytest.raises(ValidationError):
            Candidate(value="x", confidence=1.5, source=CandidateSource.REGEX)

    def test_response_to_dict(self):
        response = ExtractionResponse(
            document_type=DocumentType.WORD,
            results={"f": ExtractionResult(field_id="f", field_name="Vendor")},
            raw_text="text",
        )
        data = response.to_dict()
        assert data["success"] is True
        assert data["rawParsedData"] == "text"
        assert data["data"]["f"]["fieldName"] == "Vendor"


class TestFieldPosition:

    def test_bbox_drops_page(self):
        position = FieldPosition(x=1, y=2, width=3, height=4, page=2)
        assert position.bbox() == BoundingBox(x=1, y=2, width=3, height=4)


class TestErrorReport:

    def test_normalization_error_report(self):
        report = NormalizationError(DocumentType.PDF, "timeout").to_report()
        assert report.error_type == "normalization_error"
        assert report.message == "Failed to parse pdf document: timeout"
        assert report.details == {"document_type": "pdf"}
        assert report.timestamp > 0

    def test_report_without_details(self):
        report = BindingError("bad reply").to_report()
        assert report.error_type == "binding_error"
        assert report.details is None
