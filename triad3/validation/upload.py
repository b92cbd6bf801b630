"""
Import Request Validation

Checks run synchronously, before a declaration exists. Failures here are
raised to the caller; nothing is stored.
"""

from datetime import date
from pathlib import PurePath
from typing import Optional

from triad3.config import get_settings
from triad3.config.settings import AppSettings
from triad3.models.declaration import FILENAME_MAX_CHARS

PIPELINE_EXTENSIONS = frozenset({"pdf"})


class RequestValidationError(Exception):
    """Base exception for rejected import requests."""

    error_code = "invalid_request"


class MissingRequiredFieldError(RequestValidationError):
    error_code = "missing_required_field"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class InvalidFieldValueError(RequestValidationError):
    error_code = "invalid_field_value"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class UnsupportedDocumentTypeError(RequestValidationError):
    """Extension not allowed, or allowed but not handled by the import pipeline."""

    error_code = "unsupported_document_type"

    def __init__(self, extension: str, message: str):
        self.extension = extension
        super().__init__(message)


class ImportRequestValidator:
    """
    Validates the inputs of an import request.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def validate_declaration_fields(
        self,
        account_id: Optional[str],
        tax_year: Optional[int],
        filename: Optional[str],
        today: Optional[date] = None,
    ) -> None:
        """
        Account id, tax year and filename must be present; the year must be sane.

        Raises:
            MissingRequiredFieldError, InvalidFieldValueError
        """
        if account_id is None or not str(account_id).strip():
            raise MissingRequiredFieldError("account_id")
        if tax_year is None:
            raise MissingRequiredFieldError("tax_year")
        if filename is None or not filename.strip():
            raise MissingRequiredFieldError("filename")
        if len(filename.strip()) > FILENAME_MAX_CHARS:
            raise InvalidFieldValueError(
                "filename",
                f"longer than {FILENAME_MAX_CHARS} characters",
            )

        if isinstance(tax_year, bool) or not isinstance(tax_year, int):
            raise InvalidFieldValueError("tax_year", "must be an integer")
        max_year = (today or date.today()).year + 1
        if not self._settings.min_tax_year <= tax_year <= max_year:
            raise InvalidFieldValueError(
                "tax_year",
                f"{tax_year} is outside {self._settings.min_tax_year}-{max_year}",
            )

    def validate_file(self, filename: str, file_bytes: Optional[bytes]) -> str:
        """
        Check size and extension.

        Returns:
            The lowercase extension

        Raises:
            MissingRequiredFieldError, InvalidFieldValueError,
            UnsupportedDocumentTypeError
        """
        if not file_bytes:
            raise MissingRequiredFieldError("file")
        if len(file_bytes) > self._settings.max_upload_size_bytes:
            raise InvalidFieldValueError(
                "file",
                f"larger than {self._settings.max_upload_size_mb} MB",
            )

        extension = PurePath(filename).suffix.lower().lstrip(".")
        if extension not in self._settings.supported_formats_list:
            raise UnsupportedDocumentTypeError(
                extension,
                f"File type '.{extension}' is not accepted",
            )
        if extension not in PIPELINE_EXTENSIONS:
            raise UnsupportedDocumentTypeError(
                extension,
                f"File type '.{extension}' is accepted but cannot be imported automatically; upload the PDF",
            )
        return extension

    def validate(
        self,
        account_id: Optional[str],
        tax_year: Optional[int],
        filename: Optional[str],
        file_bytes: Optional[bytes],
        today: Optional[date] = None,
    ) -> str:
        self.validate_declaration_fields(account_id, tax_year, filename, today)
        return self.validate_file(filename, file_bytes)
