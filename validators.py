"""
Input validation schemas using Marshmallow for API endpoints.
"""
from marshmallow import Schema, fields, validate, validates_schema, ValidationError, EXCLUDE, INCLUDE

EXTRACTION_MODES = ['batch', 'per_field', 'auto']


class ExtractRequestSchema(Schema):
    """Validation schema for template extraction requests."""

    class Meta:
        unknown = EXCLUDE

    template = fields.Dict(
        required=False,
        allow_none=True,
        error_messages={'invalid': 'Template must be an object'}
    )
    templateId = fields.Str(
        required=False,
        allow_none=True,
        validate=validate.Length(min=1, max=200),
        error_messages={'invalid': 'Template id must be a string'}
    )
    documentImage = fields.Str(
        required=True,
        validate=validate.Length(min=1),
        error_messages={
            'required': 'Document content is required',
            'invalid': 'Document content must be a string'
        }
    )
    documentType = fields.Str(
        required=False,
        allow_none=True,
        load_default='image',
        validate=validate.Length(max=200),
        error_messages={'invalid': 'Document type must be a string'}
    )
    documentFileName = fields.Str(
        required=False,
        allow_none=True,
        validate=validate.Length(max=255),
        error_messages={'invalid': 'File name must be a string'}
    )
    mode = fields.Str(
        required=False,
        load_default='batch',
        validate=validate.OneOf(EXTRACTION_MODES),
        error_messages={'invalid': 'Mode must be batch, per_field, or auto'}
    )
    ocrResult = fields.Dict(
        required=False,
        allow_none=True,
        error_messages={'invalid': 'OCR result must be an object'}
    )

    @validates_schema
    def validate_template_source(self, data, **kwargs):
        if not data.get('template') and not data.get('templateId'):
            raise ValidationError('Either template or templateId is required', field_name='template')


class TemplateSchema(Schema):
    """Validation schema for creating a template; extra keys are kept."""

    class Meta:
        unknown = INCLUDE

    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=200),
        error_messages={
            'required': 'Template name is required',
            'invalid': 'Template name must be a string'
        }
    )
    description = fields.Str(required=False, allow_none=True, validate=validate.Length(max=2000))
    category = fields.Str(required=False, validate=validate.Length(max=100))
    sections = fields.List(
        fields.Dict(),
        required=False,
        load_default=list,
        error_messages={'invalid': 'Sections must be a list'}
    )


class TemplateUpdateSchema(TemplateSchema):
    """Same fields as TemplateSchema, all optional."""

    name = fields.Str(
        required=False,
        validate=validate.Length(min=1, max=200),
        error_messages={'invalid': 'Template name must be a string'}
    )
    sections = fields.List(
        fields.Dict(),
        required=False,
        error_messages={'invalid': 'Sections must be a list'}
    )


class ImportTemplateSchema(TemplateSchema):
    """An imported template must carry its sections."""

    sections = fields.List(
        fields.Dict(),
        required=True,
        error_messages={
            'required': 'Invalid template format',
            'invalid': 'Sections must be a list'
        }
    )
