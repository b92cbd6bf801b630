"""
Shared fixtures.

No real API calls in tests: Gemini is replaced by a fake model object and
storage is in memory. PDFs are generated with PyMuPDF.
"""

import json
from typing import Optional
from unittest.mock import AsyncMock

import fitz
import pytest

from triad3.agents import DeclarationExtractionAgent
from triad3.audit import AuditLogger
from triad3.config.settings import AppSettings, GeminiSettings
from triad3.orchestrator import DeclarationImportFlow
from triad3.services.storage import (
    InMemoryAuditStorage,
    InMemoryDeclarationStorage,
    InMemoryRecordStorage,
)

ACCOUNT_ID = "4f0c8a52-3b7e-4d7e-9a55-1d2c3b4a5e6f"
OTHER_ACCOUNT_ID = "a1b2c3d4-0000-4000-8000-000000000002"

DECLARATION_TEXT = (
    "DECLARACAO DE AJUSTE ANUAL - IRPF 2024\n"
    "RENDIMENTOS TRIBUTAVEIS RECEBIDOS DE PESSOA JURIDICA\n"
    "ACME LTDA  CNPJ 12.345.678/0001-90  50.000,00  IRRF 5.000,00\n"
    "DECLARACAO DE BENS E DIREITOS\n"
    "01 Apartment  200.000,00  220.000,00\n"
)

HAPPY_PATH_PAYLOAD = {
    "declaracao": {
        "valor_pagar": 0,
        "valor_restituir": 1250.5,
        "recibo": "12.34.56.78.90-12",
        "prazo_limite": "2024-05-31",
    },
    "rendimentos": [
        {
            "tipo": "tributavel",
            "fonte_pagadora": "ACME LTDA",
            "cnpj": "12.345.678/0001-90",
            "valor": 50000,
            "irrf": 5000,
        }
    ],
    "bens_direitos": [
        {
            "codigo": "01",
            "discriminacao": "Apartment",
            "situacao_ano_anterior": 200000,
            "situacao_ano_atual": 220000,
        }
    ],
    "dividas_irpf": [],
    "bens_imobilizados": [],
    "aplicacoes": [],
    "planos_previdencia": [],
    "contas_bancarias": [],
    "dividas": [],
}


def make_pdf(*pages: str) -> bytes:
    """Build an in-memory PDF with one page per text ("" = blank page)."""
    document = fitz.open()
    for text in pages:
        page = document.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=9)
    data = document.tobytes()
    document.close()
    return data


class FakeResponse:
    """Stands in for a GenerateContentResponse."""

    def __init__(self, text: Optional[str] = None, blocked: bool = False):
        self._text = text
        self._blocked = blocked

    @property
    def text(self) -> str:
        if self._blocked:
            raise ValueError("The response has no candidates")
        return self._text


def make_fake_model(reply=None, error: Optional[Exception] = None, blocked: bool = False):
    """A model whose generate_content_async returns ``reply`` or raises ``error``."""
    model = AsyncMock()
    if error is not None:
        model.generate_content_async.side_effect = error
    else:
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        model.generate_content_async.return_value = FakeResponse(reply, blocked=blocked)
    return model


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        min_transcript_chars=20,
        status_detail_max_chars=100,
        max_upload_size_mb=20,
    )


@pytest.fixture
def gemini_settings() -> GeminiSettings:
    return GeminiSettings(api_key="test-key", request_timeout_seconds=5)


@pytest.fixture
def declaration_storage() -> InMemoryDeclarationStorage:
    return InMemoryDeclarationStorage()


@pytest.fixture
def record_storage() -> InMemoryRecordStorage:
    return InMemoryRecordStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def declaration_pdf() -> bytes:
    return make_pdf(DECLARATION_TEXT, "RESUMO DA DECLARACAO\nIMPOSTO A RESTITUIR 1.250,50")


@pytest.fixture
def make_agent(gemini_settings):
    def _make(reply=None, error: Optional[Exception] = None, blocked: bool = False):
        return DeclarationExtractionAgent(
            settings=gemini_settings,
            model=make_fake_model(reply, error=error, blocked=blocked),
        )
    return _make


@pytest.fixture
def make_flow(declaration_storage, record_storage, audit_logger, app_settings):
    def _make(agent, records=None, declarations=None, runner=None):
        return DeclarationImportFlow(
            declaration_storage=declarations or declaration_storage,
            record_storage=records or record_storage,
            agent=agent,
            audit_logger=audit_logger,
            runner=runner,
            settings=app_settings,
        )
    return _make
