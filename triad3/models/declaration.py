"""
Declaration Models

A Declaration is the parent record of one import attempt. It is created
with status "Processando" before any slow work starts and ends in exactly
one terminal status.

DESIGN DECISION: Status is a tagged value (kind + step + detail), not a
free-text string. The Portuguese label shown to users is rendered from it
at the storage/presentation boundary only.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

FILENAME_MAX_CHARS = 255


# =============================================================================
# STATUS
# =============================================================================

class PipelineStep(str, Enum):
    """Steps of the background import, used to tag generic failures."""
    INITIALIZATION = "inicializacao"
    TEXT_EXTRACTION = "extracao_texto"
    AI_CALL = "chamada_ia"
    RESPONSE_PROCESSING = "processamento_resposta"
    PERSISTENCE = "persistencia"
    FINALIZATION = "finalizacao"


class ImportStatusKind(str, Enum):
    """
    Lifecycle states of a declaration.

    PROCESSING is the only non-terminal state.
    """
    PROCESSING = "processing"
    IMPORTED = "imported"
    EMPTY_RESPONSE = "empty_response"
    PARSE_ERROR = "parse_error"
    NO_DATA = "no_data"
    DATA_ERROR = "data_error"
    FAILED = "failed"


_FIXED_LABELS = {
    ImportStatusKind.PROCESSING: "Processando",
    ImportStatusKind.IMPORTED: "Importada",
    ImportStatusKind.EMPTY_RESPONSE: "Erro: Resposta vazia da IA",
    ImportStatusKind.PARSE_ERROR: "Erro ao processar resposta",
    ImportStatusKind.NO_DATA: "Erro: Nenhum dado encontrado",
    ImportStatusKind.DATA_ERROR: "Erro ao processar dados",
}


class ImportStatus(BaseModel):
    """
    Status of a declaration import.

    Only FAILED carries a step and detail; the other kinds render to a
    fixed label.
    """
    model_config = ConfigDict(frozen=True)

    kind: ImportStatusKind
    step: Optional[PipelineStep] = None
    detail: Optional[str] = None

    @classmethod
    def processing(cls) -> "ImportStatus":
        return cls(kind=ImportStatusKind.PROCESSING)

    @classmethod
    def imported(cls) -> "ImportStatus":
        return cls(kind=ImportStatusKind.IMPORTED)

    @classmethod
    def failed(cls, step: PipelineStep, detail: str) -> "ImportStatus":
        return cls(kind=ImportStatusKind.FAILED, step=step, detail=detail)

    @property
    def is_terminal(self) -> bool:
        return self.kind != ImportStatusKind.PROCESSING

    @property
    def is_error(self) -> bool:
        return self.kind not in (ImportStatusKind.PROCESSING, ImportStatusKind.IMPORTED)

    def label(self, max_detail_chars: int = 100) -> str:
        """Render the human-readable status string."""
        if self.kind in _FIXED_LABELS:
            return _FIXED_LABELS[self.kind]
        step = self.step.value if self.step else PipelineStep.FINALIZATION.value
        detail = (self.detail or "erro desconhecido")[:max_detail_chars]
        return f"Erro ({step}): {detail}"


class InvalidStatusTransitionError(Exception):
    """Raised when a declaration would leave a terminal status."""

    def __init__(self, current: ImportStatus, target: ImportStatus):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move declaration from '{current.kind.value}' "
            f"to '{target.kind.value}'"
        )


# =============================================================================
# DECLARATION
# =============================================================================

class Declaration(BaseModel):
    """
    One IRPF declaration import attempt (table ``declaracoes_irpf``).

    Never reused: a retry creates a new Declaration.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owning account id, supplied by the caller"
    )
    ano: int = Field(..., description="Tax year (ano-calendário)")
    status: ImportStatus = Field(default_factory=ImportStatus.processing)
    arquivo_original: str = Field(
        ...,
        min_length=1,
        max_length=FILENAME_MAX_CHARS,
        description="Original upload filename"
    )

    # Header fields, filled after a successful extraction
    valor_pagar: Decimal = Field(default=Decimal("0"))
    valor_restituir: Decimal = Field(default=Decimal("0"))
    recibo: Optional[str] = None
    prazo_limite: Optional[date] = None
    dados_brutos: Optional[dict[str, Any]] = Field(
        default=None,
        description="Raw extraction payload plus import summary"
    )

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def transition(self, status: ImportStatus) -> "Declaration":
        """
        Move to a new status.

        Raises:
            InvalidStatusTransitionError: if the current status is terminal,
                or the target is PROCESSING again.
        """
        if self.status.is_terminal or not status.is_terminal:
            raise InvalidStatusTransitionError(self.status, status)
        self.status = status
        self.updated_at = datetime.utcnow()
        return self

    def status_label(self, max_detail_chars: int = 100) -> str:
        return self.status.label(max_detail_chars)


class ImportAcknowledgment(BaseModel):
    """Immediate response to an import request."""

    declaration_id: UUID
    status: ImportStatus
    status_label: str
    correlation_id: UUID


class ImportOutcome(BaseModel):
    """What the background half of an import ended with."""

    declaration_id: UUID
    status: ImportStatus
    status_label: str
    summary: Optional["ImportSummary"] = None


class CollectionResult(BaseModel):
    """Insert result for one destination collection."""

    collection: str
    attempted: int = 0
    inserted: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class ImportSummary(BaseModel):
    """
    Per-collection outcome of a fan-out.

    A failed collection reports zero inserted rows and its error; the
    others are unaffected.
    """

    collections: list[CollectionResult] = Field(default_factory=list)
    header_updated: bool = False
    header_error: Optional[str] = None

    def counts(self) -> dict[str, int]:
        return {result.collection: result.inserted for result in self.collections}

    def errors(self) -> dict[str, str]:
        return {
            result.collection: result.error
            for result in self.collections
            if result.error is not None
        }

    def get(self, collection: str) -> Optional[CollectionResult]:
        for result in self.collections:
            if result.collection == collection:
                return result
        return None

    @property
    def total_inserted(self) -> int:
        return sum(result.inserted for result in self.collections)

    @property
    def failed_collections(self) -> list[str]:
        return [result.collection for result in self.collections if result.error]


ImportOutcome.model_rebuild()
