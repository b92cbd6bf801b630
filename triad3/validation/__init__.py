"""Validation package: import request checks and model reply normalization."""

from triad3.validation.normalizer import (
    ExtractionSchemaError,
    MalformedExtractionPayloadError,
    NoDataExtractedError,
    NormalizationError,
    ResponseNormalizer,
)
from triad3.validation.upload import (
    ImportRequestValidator,
    InvalidFieldValueError,
    MissingRequiredFieldError,
    RequestValidationError,
    UnsupportedDocumentTypeError,
)

__all__ = [
    "ExtractionSchemaError",
    "MalformedExtractionPayloadError",
    "NoDataExtractedError",
    "NormalizationError",
    "ResponseNormalizer",
    "ImportRequestValidator",
    "InvalidFieldValueError",
    "MissingRequiredFieldError",
    "RequestValidationError",
    "UnsupportedDocumentTypeError",
]
