"""
Declaration Extraction Agent

Sends the declaration transcript to Gemini and returns the raw reply.

CRITICAL BOUNDARIES:
- CAN: read the transcript and fill the fixed JSON schema below
- CANNOT: decide account ownership (user_id is never part of the schema)
- CANNOT: retry. One call per import; a failed call ends the import
  with an error status and the user uploads again.

The reply is returned untouched. Cleaning and parsing it is the
normalizer's job, so the two can be tested separately.

DESIGN DECISION: Upstream failures are translated into a small exception
family here, so the pipeline maps them to statuses without knowing
anything about google-api-core.
"""

import asyncio
from typing import Any, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from triad3.config import get_settings
from triad3.config.settings import GeminiSettings


SYSTEM_INSTRUCTION = """You extract data from Brazilian personal income-tax declarations (IRPF).

The user message is the text layer of a declaration PDF produced by the Receita Federal program.
Return ONE JSON object and nothing else. No Markdown, no comments, no explanation.

Schema (every key is required; use [] for a section with no items):
{
  "declaracao": {
    "valor_pagar": number,        // imposto a pagar, 0 if none
    "valor_restituir": number,    // imposto a restituir, 0 if none
    "recibo": string | null,      // número do recibo
    "prazo_limite": "YYYY-MM-DD" | null
  },
  "rendimentos": [{
    "tipo": string,               // "tributavel", "isento", "exclusivo" ...
    "fonte_pagadora": string,
    "cnpj": string | null,
    "valor": number,
    "irrf": number,
    "decimo_terceiro": number,
    "contribuicao_previdenciaria": number,
    "ano": integer
  }],
  "bens_direitos": [{
    "codigo": string,             // two-digit group code, e.g. "01"
    "categoria": string | null,
    "discriminacao": string,
    "situacao_ano_anterior": number,
    "situacao_ano_atual": number
  }],
  "dividas_irpf": [{
    "discriminacao": string,
    "credor": string,
    "valor_ano_anterior": number,
    "valor_ano_atual": number
  }],
  "bens_imobilizados": [{
    "nome": string, "categoria": string, "descricao": string | null,
    "valor_aquisicao": number, "valor_atual": number,
    "data_aquisicao": "YYYY-MM-DD" | null, "localizacao": string | null
  }],
  "aplicacoes": [{
    "nome": string, "tipo": string, "instituicao": string,
    "valor_aplicado": number, "valor_atual": number,
    "data_aplicacao": "YYYY-MM-DD" | null, "data_vencimento": "YYYY-MM-DD" | null,
    "taxa_rentabilidade": number | null, "rentabilidade_tipo": string | null,
    "liquidez": string | null
  }],
  "planos_previdencia": [{
    "nome": string, "tipo": string, "instituicao": string,
    "valor_acumulado": number, "contribuicao_mensal": number,
    "data_inicio": "YYYY-MM-DD" | null, "idade_resgate": integer | null,
    "taxa_administracao": number | null, "rentabilidade_acumulada": number | null,
    "ativo": boolean
  }],
  "contas_bancarias": [{
    "banco": string, "agencia": string | null, "numero_conta": string | null,
    "tipo_conta": string, "saldo_atual": number, "limite_credito": number,
    "ativo": boolean
  }],
  "dividas": [{
    "nome": string, "tipo": string, "credor": string,
    "valor_original": number, "saldo_devedor": number, "valor_parcela": number,
    "numero_parcelas": integer, "parcelas_pagas": integer,
    "taxa_juros": number | null,
    "data_contratacao": "YYYY-MM-DD" | null, "data_vencimento": "YYYY-MM-DD" | null
  }]
}

Rules:
- Numbers are plain JSON numbers with a dot as decimal separator: 1234.56, never "R$ 1.234,56".
- Only report what is written in the document. Never invent values; use 0 or null when absent.
- Every asset from "Bens e Direitos" goes in "bens_direitos". Also copy it to the matching
  portfolio section: real estate and vehicles to "bens_imobilizados", investments and funds
  to "aplicacoes", pension plans (PGBL/VGBL) to "planos_previdencia", bank deposits to
  "contas_bancarias". Use the declared value for the current year as the current value.
- Every debt from "Dívidas e Ônus Reais" goes in "dividas_irpf" and also in "dividas".
"""


class ExtractionServiceError(Exception):
    """Base exception for the extraction call."""

    error_code = "extraction_service_error"


class RateLimitedError(ExtractionServiceError):
    """The model API is throttling requests."""

    error_code = "rate_limited"


class QuotaExceededError(ExtractionServiceError):
    """The account behind the API key has no credits or quota left."""

    error_code = "quota_exceeded"


class UpstreamError(ExtractionServiceError):
    """Any other failure talking to the model API, including timeouts."""

    error_code = "upstream_error"


class EmptyResponseError(ExtractionServiceError):
    """The model answered with no text."""

    error_code = "empty_response"


# "check quota" alone is the generic per-minute 429 text
_QUOTA_MARKERS = (
    "billing",
    "credit",
    "current quota",
    "insufficient",
    "payment",
    "quota exhausted",
)


def _status_code(error: Exception) -> Optional[int]:
    code = getattr(error, "code", None)
    try:
        return int(code) if code is not None else None
    except (TypeError, ValueError):
        return None


def translate_api_error(error: Exception) -> ExtractionServiceError:
    """Map a google-api-core (or transport) failure to our exception family."""
    message = str(error)
    lowered = message.lower()
    code = _status_code(error)

    if code == 402 or (
        code == 429 and any(marker in lowered for marker in _QUOTA_MARKERS)
    ):
        return QuotaExceededError(f"Gemini quota exhausted: {message}")
    if code == 429 or isinstance(
        error,
        (google_exceptions.TooManyRequests, google_exceptions.ResourceExhausted),
    ):
        return RateLimitedError(f"Gemini rate limit reached: {message}")
    if isinstance(error, google_exceptions.DeadlineExceeded):
        return UpstreamError(f"Gemini request timed out: {message}")
    return UpstreamError(f"Gemini request failed: {message}")


class DeclarationExtractionAgent:
    """
    Single-turn, non-streaming Gemini call with a fixed output schema.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[Any] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._model = model or self._build_model()

    def _build_model(self) -> genai.GenerativeModel:
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=SYSTEM_INSTRUCTION,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            },
        )

    @property
    def model_name(self) -> str:
        return self._settings.model_name

    def build_prompt(self, transcript: str, tax_year: int) -> str:
        text = transcript[: self._settings.max_transcript_chars]
        return (
            f"Declaração IRPF, ano-calendário {tax_year}.\n"
            f"Texto extraído do PDF:\n\n{text}"
        )

    async def extract(self, transcript: str, tax_year: int) -> str:
        """
        Ask the model for the declaration JSON.

        Returns:
            The raw reply text (not yet parsed)

        Raises:
            RateLimitedError, QuotaExceededError, UpstreamError, EmptyResponseError
        """
        timeout = self._settings.request_timeout_seconds
        prompt = self.build_prompt(transcript, tax_year)

        try:
            response = await asyncio.wait_for(
                self._model.generate_content_async(
                    prompt,
                    request_options={"timeout": timeout},
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamError(
                f"Gemini request timed out after {timeout:.0f}s"
            ) from e
        except google_exceptions.GoogleAPIError as e:
            raise translate_api_error(e) from e
        except (ConnectionError, OSError) as e:
            raise UpstreamError(f"Gemini request failed: {e}") from e

        try:
            text = response.text
        except ValueError as e:
            # No candidate text, e.g. the reply was blocked
            raise EmptyResponseError(f"Gemini returned no text: {e}") from e

        if not text or not text.strip():
            raise EmptyResponseError("Gemini returned an empty reply")

        return text
