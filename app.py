"""
Template extraction – pure API back-end

Endpoints
─────────
GET    /health                     → {"status": "ok"}
GET    /api/templates              → list templates (optional ?category=)
POST   /api/templates              → create template
GET    /api/templates/<id>         → fetch template
PUT    /api/templates/<id>         → update template
DELETE /api/templates/<id>         → delete template
POST   /api/templates/import       → import an exported template
POST   /api/extract                → extract template fields from a document
(no HTML rendered; UI lives in a separate front-end)
"""

# SPDX-License-Identifier: AGPL-3.0-only

# ── imports ──────────────────────────────────────────────────────
import logging
import os
import shutil
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS
from marshmallow import ValidationError
from pydantic import ValidationError as ModelValidationError

from common.llm_client import OpenAICompatibleClient
from template_extraction.config import config
from template_extraction.errors import (
    BindingError,
    TemplateExtractionError,
    TemplateNotFoundError,
    TemplateValidationError,
    UnsupportedFormatError,
)
from template_extraction.models import DocumentPayload, ErrorReport, OcrResult, Template
from template_extraction.ocr_service import OCRService
from template_extraction.pipeline import ExtractionPipeline
from template_extraction.store import InMemoryTemplateStore, TemplateStore
from validators import ExtractRequestSchema, ImportTemplateSchema, TemplateSchema, TemplateUpdateSchema

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "The AI service is busy with too many concurrent jobs, please try again later"

DEFAULT_ORIGINS = [
    "http://localhost:3000",  # Development frontend
    "http://127.0.0.1:3000",  # Alternative localhost
]


def _error(message, error_type: str, status: int, details=None):
    body = {"success": False, "error": message, "errorType": error_type}
    if details:
        body["details"] = details
    return jsonify(body), status


def _report_error(report: ErrorReport, status: int):
    body = {
        "success": False,
        "error": report.message,
        "errorType": report.error_type,
        "timestamp": report.timestamp,
    }
    if report.details:
        body["details"] = report.details
    return jsonify(body), status


def _default_ocr_service() -> Optional[OCRService]:
    """OCR is only wired in when a tesseract binary is available."""
    if config.tesseract_cmd or shutil.which("tesseract"):
        return OCRService()
    return None


def _template_json(template: Template) -> dict:
    return template.model_dump(mode="json", by_alias=True)


def create_app(pipeline: Optional[ExtractionPipeline] = None, store: Optional[TemplateStore] = None) -> Flask:
    """Build the Flask application.

    Args:
        pipeline: Extraction pipeline; built from settings when omitted
        store: Template store; a fresh in-memory store when omitted
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 100 * 1024 * 1024    # 100 MB

    if pipeline is None:
        if not config.validate_inference_config():
            logger.warning("No inference API key configured (EXTRACTION_API_KEY); extraction calls will fail")
        pipeline = ExtractionPipeline.from_inference(OpenAICompatibleClient(), ocr_service=_default_ocr_service())
    if store is None:
        store = InMemoryTemplateStore()

    app.extensions["extraction_pipeline"] = pipeline
    app.extensions["template_store"] = store

    origins = list(DEFAULT_ORIGINS)
    extra_origins = os.getenv("CORS_ORIGINS", "")
    origins.extend(o.strip() for o in extra_origins.split(",") if o.strip())
    CORS(app, resources={r"/api/*": {"origins": origins}})

    # ── error handling ───────────────────────────────────────────
    @app.errorhandler(ValidationError)
    def request_invalid(e):
        return _error("Invalid request", "validation_error", 400, details=e.messages)

    @app.errorhandler(TemplateExtractionError)
    def extraction_failed(e):
        report = e.to_report()
        if isinstance(e, TemplateValidationError):
            return _report_error(report, 400)
        if isinstance(e, TemplateNotFoundError):
            return _report_error(report, 404)
        if isinstance(e, UnsupportedFormatError):
            return _report_error(report, 415)
        if isinstance(e, BindingError):
            logger.error("Binding failed: %s", e.message)
            return _report_error(report.model_copy(update={"message": BUSY_MESSAGE}), 500)
        return _report_error(report, 500)

    @app.errorhandler(413)
    def file_too_large(e):
        return _error("File too large (max 100 MB)", "payload_too_large", 413)

    # ── routes ───────────────────────────────────────────────────
    @app.get("/health")
    def health():
        """Used by the front-end (and uptime checks) to verify API is alive."""
        return jsonify(status="ok"), 200

    @app.get("/api/templates")
    def list_templates():
        category = request.args.get("category")
        return jsonify(success=True, data=[_template_json(t) for t in store.list(category)])

    @app.post("/api/templates")
    def create_template():
        data = TemplateSchema().load(request.get_json(silent=True) or {})
        template = store.create(data)
        logger.info("Created template %s (%s)", template.id, template.name)
        return jsonify(success=True, data=_template_json(template)), 201

    @app.post("/api/templates/import")
    def import_template():
        data = ImportTemplateSchema().load(request.get_json(silent=True) or {})
        template = store.import_template(data)
        logger.info("Imported template %s (%s)", template.id, template.name)
        return jsonify(success=True, data=_template_json(template)), 201

    @app.get("/api/templates/<template_id>")
    def get_template(template_id):
        return jsonify(success=True, data=_template_json(store.require(template_id)))

    @app.put("/api/templates/<template_id>")
    def update_template(template_id):
        updates = TemplateUpdateSchema().load(request.get_json(silent=True) or {})
        template = store.update(template_id, updates)
        return jsonify(success=True, data=_template_json(template))

    @app.delete("/api/templates/<template_id>")
    def delete_template(template_id):
        store.require(template_id)
        store.delete(template_id)
        logger.info("Deleted template %s", template_id)
        return jsonify(success=True, message="Template deleted")

    @app.post("/api/extract")
    def extract():
        body = ExtractRequestSchema().load(request.get_json(silent=True) or {})

        if body.get("template"):
            try:
                template = Template.model_validate({"id": "inline", **body["template"]})
            except ModelValidationError as e:
                raise TemplateValidationError("Invalid template format",
                                              details={"errors": e.errors(include_url=False, include_context=False)}) from e
        else:
            template = store.require(body["templateId"])

        try:
            ocr_result = OcrResult.model_validate(body["ocrResult"]) if body.get("ocrResult") else None
        except ModelValidationError as e:
            return _error("Invalid OCR result", "validation_error", 400, details=e.errors(include_url=False, include_context=False))

        payload = DocumentPayload(
            document_type=body.get("documentType") or "image",
            content=body["documentImage"],
            file_name=body.get("documentFileName"),
        )
        response = pipeline.extract(template, payload, mode=body["mode"], ocr_result=ocr_result)
        return jsonify(response.to_dict())

    return app


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
