# SPDX-License-Identifier: AGPL-3.0-only

"""
Error taxonomy for the extraction pipeline.

Every failure surfaced to a caller is a tagged exception carrying a
human-readable message. Document-level errors abort the whole extraction call;
``StrategyError`` is scoped to a single field and never leaves the field
extractor.
"""

from typing import Any, Dict, Optional

from .models import DocumentType, ErrorReport


class TemplateExtractionError(Exception):
    """Base class for all tagged extraction errors."""

    tag = "extraction_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        """
        Args:
            message: Human-readable message
            details: Additional context for the caller
            error: Underlying exception, if any
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error = error

    def to_report(self) -> ErrorReport:
        return ErrorReport(error_type=self.tag, message=self.message, details=self.details or None)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


class UnsupportedFormatError(TemplateExtractionError):
    """The document type cannot be handled."""

    tag = "unsupported_format"


class NormalizationError(TemplateExtractionError):
    """Inference or decode failure while normalizing a document."""

    tag = "normalization_error"

    def __init__(self, document_type: DocumentType, message: str, error: Optional[Exception] = None):
        label = document_type.value if isinstance(document_type, DocumentType) else str(document_type)
        super().__init__(
            f"Failed to parse {label} document: {message}",
            details={"document_type": label},
            error=error,
        )
        self.document_type = document_type


class BindingError(TemplateExtractionError):
    """The batched binding reply could not be decoded as a JSON object."""

    tag = "binding_error"


class StrategyError(TemplateExtractionError):
    """A single-field strategy is missing a required input."""

    tag = "strategy_error"

    def __init__(self, field_id: str, message: str, error: Optional[Exception] = None):
        super().__init__(message, details={"field_id": field_id}, error=error)
        self.field_id = field_id


class InferenceError(TemplateExtractionError):
    """The inference capability could not be reached or answered with an error."""

    tag = "inference_error"


class TemplateNotFoundError(TemplateExtractionError):
    tag = "template_not_found"


class TemplateValidationError(TemplateExtractionError):
    tag = "template_invalid"
