# SPDX-License-Identifier: AGPL-3.0-only

"""
Pytest configuration and fixtures.

This module provides shared fixtures and configuration for all tests.
"""

import base64
import io
import json

import pytest
from unittest.mock import Mock
from openpyxl import Workbook

from template_extraction.binder import FieldBinder
from template_extraction.detector import FormatDetector
from template_extraction.inference import InferenceCapability, VisionReply
from template_extraction.models import BoundingBox, OcrResult, OcrWord, Template
from template_extraction.normalizer import DocumentNormalizer
from template_extraction.pipeline import ExtractionPipeline
from template_extraction.store import InMemoryTemplateStore
from template_extraction.strategies import FieldExtractor


def workbook_b64(sheets):
    """Build an .xlsx workbook in memory and return it base64-encoded.

    ``sheets`` maps sheet name to a list of rows.
    """
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def text_b64(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@pytest.fixture
def mock_inference():
    """Inference capability double; configure return values per test."""
    inference = Mock(spec=InferenceCapability)
    inference.read_image.return_value = "Invoice INV-001\nTotal: 330.00"
    inference.extract_from_image.return_value = VisionReply(value="ACME", confidence=0.9)
    inference.complete.return_value = "{}"
    return inference


@pytest.fixture
def template_data():
    """Invoice template as the front-end sends it."""
    return {
        "id": "template_1",
        "name": "Invoice",
        "description": "Supplier invoices",
        "category": "finance",
        "version": 1,
        "sections": [
            {
                "id": "header",
                "name": "Header",
                "fields": [
                    {
                        "id": "invoice_number",
                        "name": "Invoice Number",
                        "type": "text",
                        "required": True,
                        "extraction": {"method": "regex", "regex": r"INV-(\d+)"},
                    },
                    {
                        "id": "vendor",
                        "name": "Vendor",
                        "type": "text",
                        "extraction": {"method": "ai", "prompt": "Name of the issuing company"},
                    },
                ],
            },
            {
                "id": "lines",
                "name": "Lines",
                "fields": [
                    {
                        "id": "products",
                        "name": "Products",
                        "type": "array",
                        "allowMultiple": True,
                        "extraction": {"method": "hybrid"},
                    },
                ],
            },
        ],
    }


@pytest.fixture
def template(template_data):
    return Template.model_validate(template_data)


@pytest.fixture
def sample_ocr_result():
    """OCR output with a few positioned words."""
    return OcrResult(
        text="Invoice INV-001\nVendor: Acme Corp\nTotal: 330.00",
        words=[
            OcrWord(text="Acme", bbox=BoundingBox(x=10, y=10, width=40, height=10), confidence=0.9),
            OcrWord(text="Corp", bbox=BoundingBox(x=55, y=10, width=40, height=10), confidence=0.7),
            OcrWord(text="330.00", bbox=BoundingBox(x=200, y=300, width=50, height=10)),
        ],
    )


@pytest.fixture
def binding_reply():
    """Helper turning a dict into the text a completion would return."""
    def _reply(data):
        return json.dumps(data, ensure_ascii=False)
    return _reply


@pytest.fixture
def pipeline(mock_inference):
    """Pipeline wired to the inference double, without OCR."""
    return ExtractionPipeline(
        detector=FormatDetector(),
        normalizer=DocumentNormalizer(mock_inference),
        binder=FieldBinder(mock_inference),
        field_extractor=FieldExtractor(mock_inference, max_workers=1),
    )


@pytest.fixture
def store():
    return InMemoryTemplateStore()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection."""
    # Add markers based on test names
    for item in items:
        if "integration" in item.name or "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def make_workbook():
    return workbook_b64


@pytest.fixture
def make_text():
    return text_b64
