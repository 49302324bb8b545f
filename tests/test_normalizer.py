# SPDX-License-Identifier: AGPL-3.0-only

"""
Tests for document normalization.

Spreadsheets are built in memory with openpyxl; the vision model is a mock.
"""

import pytest

from template_extraction.errors import InferenceError, NormalizationError, UnsupportedFormatError
from template_extraction.models import DocumentType
from template_extraction.normalizer import DocumentNormalizer, render_sheets
from template_extraction.models import SheetData


class TestDocumentNormalizer:
    """Test suite for DocumentNormalizer."""

    @pytest.fixture
    def normalizer(self, mock_inference):
        return DocumentNormalizer(mock_inference)

    def test_image_read_by_vision_model(self, normalizer, mock_inference):
        mock_inference.read_image.return_value = "  Invoice INV-001  "
        doc = normalizer.normalize(DocumentType.IMAGE, "aW1hZ2U=")

        assert doc.type == DocumentType.IMAGE
        assert doc.raw_data == "Invoice INV-001"
        assert doc.structured_data is None
        mock_inference.read_image.assert_called_once()
        image, prompt = mock_inference.read_image.call_args[0]
        assert image == "aW1hZ2U="
        assert "image" in prompt

    def test_pdf_prompt_names_pdf(self, normalizer, mock_inference):
        normalizer.normalize(DocumentType.PDF, "cGRm")
        prompt = mock_inference.read_image.call_args[0][1]
        assert "PDF document" in prompt

    def test_vision_failure_becomes_normalization_error(self, normalizer, mock_inference):
        mock_inference.read_image.side_effect = InferenceError("connection refused")
        with pytest.raises(NormalizationError) as exc_info:
            normalizer.normalize(DocumentType.PDF, "cGRm")
        assert exc_info.value.document_type == DocumentType.PDF
        assert exc_info.value.details["document_type"] == "pdf"
        # no retry
        assert mock_inference.read_image.call_count == 1

    def test_word_base64_decoded(self, normalizer, make_text):
        doc = normalizer.normalize(DocumentType.WORD, make_text("合同编号：HT-2024-01"))
        assert doc.raw_data == "合同编号：HT-2024-01"

    def test_word_plain_text_used_verbatim(self, normalizer):
        doc = normalizer.normalize(DocumentType.WORD, "Plain text, not base64!")
        assert doc.raw_data == "Plain text, not base64!"

    def test_word_non_utf8_used_verbatim(self, normalizer):
        # "//79" decodes to 0xff 0xfe 0xfd, which is not UTF-8
        doc = normalizer.normalize(DocumentType.WORD, "//79")
        assert doc.raw_data == "//79"

    def test_excel_sheet_rendering(self, normalizer, make_workbook):
        content = make_workbook({"Sheet1": [["Name", "Age"], ["Ann", "30"]]})
        doc = normalizer.normalize(DocumentType.EXCEL, content, "people.xlsx")

        lines = doc.raw_data.splitlines()
        assert lines[0] == "工作表 1: Sheet1"
        assert "行1: Name | Age" in lines
        assert "行2: Ann | 30" in lines
        assert doc.structured_data[0].sheet_name == "Sheet1"
        assert doc.structured_data[0].data == [["Name", "Age"], ["Ann", "30"]]

    def test_excel_empty_cells_preserved(self, normalizer, make_workbook):
        content = make_workbook({"Data": [["a", None, "c"], [None, "b", None], ["x", "y", "z"]]})
        doc = normalizer.normalize(DocumentType.EXCEL, content)

        row_lines = [line for line in doc.raw_data.splitlines() if line.startswith("行")]
        assert len(row_lines) == 3
        for line in row_lines:
            segments = line.split(": ", 1)[1].split(" | ")
            assert len(segments) == 3
        assert row_lines[0] == "行1: a |  | c"
        assert doc.structured_data[0].data[1] == ["", "b", ""]

    def test_excel_empty_sheet_has_header_only(self, normalizer, make_workbook):
        content = make_workbook({"Blank": []})
        doc = normalizer.normalize(DocumentType.EXCEL, content)

        lines = [line for line in doc.raw_data.splitlines() if line]
        assert lines == ["工作表 1: Blank"]
        assert doc.structured_data[0].data == []

    def test_excel_na_like_text_kept(self, normalizer, make_workbook):
        rows = [["Country", "Code"], ["Namibia", "NA"], ["x", "N/A"], ["y", "null"], ["z", None]]
        doc = normalizer.normalize(DocumentType.EXCEL, make_workbook({"Codes": rows}))

        assert doc.structured_data[0].data == [
            ["Country", "Code"], ["Namibia", "NA"], ["x", "N/A"], ["y", "null"], ["z", ""],
        ]
        assert "行2: Namibia | NA" in doc.raw_data
        assert "行4: y | null" in doc.raw_data

    def test_word_wrapped_base64_decoded(self, normalizer, make_text):
        encoded = make_text("Contract HT-2024-01, signed by both parties on 2024-03-01")
        wrapped = "\r\n".join(encoded[i:i + 20] for i in range(0, len(encoded), 20))
        doc = normalizer.normalize(DocumentType.WORD, wrapped)
        assert doc.raw_data == "Contract HT-2024-01, signed by both parties on 2024-03-01"

    def test_excel_multiple_sheets_numbered(self, normalizer, make_workbook):
        content = make_workbook({"First": [["1"]], "Second": [["2"]]})
        doc = normalizer.normalize(DocumentType.EXCEL, content)
        assert "工作表 1: First" in doc.raw_data
        assert "工作表 2: Second" in doc.raw_data
        assert [s.sheet_name for s in doc.structured_data] == ["First", "Second"]

    def test_excel_numbers_are_native(self, normalizer, make_workbook):
        content = make_workbook({"Sheet1": [["Total", 330]]})
        doc = normalizer.normalize(DocumentType.EXCEL, content)
        assert doc.structured_data[0].data == [["Total", 330]]
        assert "行1: Total | 330" in doc.raw_data

    def test_excel_data_uri_prefix_accepted(self, normalizer, make_workbook):
        content = make_workbook({"Sheet1": [["x"]]})
        doc = normalizer.normalize(DocumentType.EXCEL, "data:application/vnd.ms-excel;base64," + content)
        assert "行1: x" in doc.raw_data

    def test_excel_invalid_base64(self, normalizer):
        with pytest.raises(NormalizationError):
            normalizer.normalize(DocumentType.EXCEL, "not base64 at all!")

    def test_excel_not_a_workbook(self, normalizer, make_text):
        with pytest.raises(NormalizationError) as exc_info:
            normalizer.normalize(DocumentType.EXCEL, make_text("just some text"))
        assert exc_info.value.document_type == DocumentType.EXCEL

    def test_unknown_type(self, normalizer):
        with pytest.raises(UnsupportedFormatError):
            normalizer.normalize("presentation", "abc")


class TestRenderSheets:

    def test_render(self):
        text = render_sheets([SheetData(sheet_name="S", data=[["a", ""], ["", "b"]])])
        assert text.splitlines()[:3] == ["工作表 1: S", "行1: a | ", "行2:  | b"]
