"""AI agents package."""

from triad3.agents.declaration_agent import (
    DeclarationExtractionAgent,
    EmptyResponseError,
    ExtractionServiceError,
    QuotaExceededError,
    RateLimitedError,
    SYSTEM_INSTRUCTION,
    UpstreamError,
    translate_api_error,
)

__all__ = [
    "DeclarationExtractionAgent",
    "EmptyResponseError",
    "ExtractionServiceError",
    "QuotaExceededError",
    "RateLimitedError",
    "SYSTEM_INSTRUCTION",
    "UpstreamError",
    "translate_api_error",
]
