"""
Response Normalizer

Turns the model's raw reply into the typed ExtractedDeclaration.

DESIGN DECISION: Parsing happens in ordered passes:

PASS 1 - CLEANUP:
- Strip Markdown code fences
- Keep the text between the first "{" and the last "}"
- Replace typographic punctuation (curly quotes, ellipsis, dashes,
  non-breaking spaces) that breaks strict JSON

PASS 2 - PARSE:
- Strict json.loads
- On failure, collapse every whitespace run to one space and retry.
  This fixes raw newlines inside string values.

PASS 3 - CONTENT CHECK:
- A payload with zero items across the eight sections is rejected.
  An empty reply almost always means the model refused or gave up,
  not that the declaration had nothing in it.

PASS 4 - TYPED VALIDATION:
- model_validate into ExtractedDeclaration
"""

import json
import re
from typing import Any

from pydantic import ValidationError

from triad3.models.extraction import (
    COLLECTION_KEYS,
    ExtractedDeclaration,
    NormalizedExtraction,
)

PREVIEW_CHARS = 500

_CODE_FENCE = re.compile(r"```[a-zA-Z]*")
_WHITESPACE_RUN = re.compile(r"\s+")

TYPOGRAPHIC_REPLACEMENTS = {
    "\u201c": '"',    # left double quote
    "\u201d": '"',    # right double quote
    "\u201e": '"',    # low double quote
    "\u2018": "'",    # left single quote
    "\u2019": "'",    # right single quote
    "\u201a": "'",    # low single quote
    "\u2026": "...",  # ellipsis
    "\u2013": "-",    # en dash
    "\u2014": "-",    # em dash
    "\u00a0": " ",    # non-breaking space
}


class NormalizationError(Exception):
    """Base exception for reply normalization."""

    error_code = "normalization_error"


class MalformedExtractionPayloadError(NormalizationError):
    """The reply could not be parsed as a JSON object."""

    error_code = "malformed_payload"

    def __init__(self, message: str, preview: str):
        self.preview = preview
        super().__init__(message)


class NoDataExtractedError(NormalizationError):
    """The reply parsed but has no items in any section."""

    error_code = "no_data_extracted"


class ExtractionSchemaError(NormalizationError):
    """The reply parsed but does not fit the extraction schema."""

    error_code = "schema_mismatch"


def strip_code_fences(text: str) -> str:
    text = _CODE_FENCE.sub("", text).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start:end + 1]
    return text


def replace_typographic_punctuation(text: str) -> str:
    for glyph, replacement in TYPOGRAPHIC_REPLACEMENTS.items():
        text = text.replace(glyph, replacement)
    return text


def count_items(payload: dict[str, Any]) -> dict[str, int]:
    """Items per destination collection. Missing or non-list sections count as 0."""
    counts = {}
    for key, collection in COLLECTION_KEYS.items():
        section = payload.get(key)
        counts[collection.value] = len(section) if isinstance(section, list) else 0
    return counts


class ResponseNormalizer:
    """
    Cleans, parses and validates a model reply.
    """

    def parse(self, raw_text: str) -> tuple[dict[str, Any], bool]:
        """
        Parse the reply into a dict.

        Returns:
            (payload, used_whitespace_fallback)

        Raises:
            MalformedExtractionPayloadError: neither pass produced a JSON object
        """
        cleaned = replace_typographic_punctuation(strip_code_fences(raw_text or ""))

        used_fallback = False
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError:
            used_fallback = True
            try:
                payload = json.loads(_WHITESPACE_RUN.sub(" ", cleaned))
            except json.JSONDecodeError as e:
                raise MalformedExtractionPayloadError(
                    f"Reply is not valid JSON: {e.msg} at position {e.pos}",
                    preview=cleaned[:PREVIEW_CHARS],
                ) from e

        if not isinstance(payload, dict):
            raise MalformedExtractionPayloadError(
                f"Reply is JSON but not an object ({type(payload).__name__})",
                preview=cleaned[:PREVIEW_CHARS],
            )
        return payload, used_fallback

    def normalize(self, raw_text: str) -> NormalizedExtraction:
        """
        Run every pass and return the typed extraction.

        Raises:
            MalformedExtractionPayloadError, NoDataExtractedError, ExtractionSchemaError
        """
        payload, used_fallback = self.parse(raw_text)

        item_counts = count_items(payload)
        if sum(item_counts.values()) == 0:
            raise NoDataExtractedError("Reply contains no items in any section")

        try:
            extracted = ExtractedDeclaration.model_validate(payload)
        except ValidationError as e:
            raise ExtractionSchemaError(
                f"Reply does not match the extraction schema: {e.error_count()} errors"
            ) from e

        return NormalizedExtraction(
            extracted=extracted,
            payload=payload,
            item_counts=item_counts,
            used_whitespace_fallback=used_fallback,
        )
