# SPDX-License-Identifier: AGPL-3.0-only

"""
Template-driven field extraction.

Detects and normalizes a document, then extracts every field of a user-defined
template as ranked candidate values.
"""

from .binder import FieldBinder
from .detector import FormatDetector
from .errors import (
    BindingError,
    InferenceError,
    NormalizationError,
    StrategyError,
    TemplateExtractionError,
    TemplateNotFoundError,
    TemplateValidationError,
    UnsupportedFormatError,
)
from .inference import InferenceCapability, VisionReply
from .models import DocumentPayload, DocumentType, ExtractionResponse, ExtractionResult, Template
from .normalizer import DocumentNormalizer
from .pipeline import ExtractionPipeline
from .store import InMemoryTemplateStore, TemplateStore
from .strategies import FieldExtractor
