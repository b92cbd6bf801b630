"""
Destination Record Models

One model per collection the fan-out writes to. Field names match the
storage columns exactly.

CRITICAL: ``user_id`` is always set by the pipeline from the caller's
account id. Nothing in the extracted payload can reach it.

The first three collections hang off a declaration (``declaracao_id``);
the other five are the account's general portfolio.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class RecordCollection(str, Enum):
    """Destination collections, in fan-out order."""
    RENDIMENTOS = "rendimentos_irpf"
    BENS_DIREITOS = "bens_direitos_irpf"
    DIVIDAS_IRPF = "dividas_irpf"
    BENS_IMOBILIZADOS = "bens_imobilizados"
    APLICACOES = "aplicacoes"
    PLANOS_PREVIDENCIA = "planos_previdencia"
    CONTAS_BANCARIAS = "contas_bancarias"
    DIVIDAS = "dividas"

    @property
    def is_declaration_linked(self) -> bool:
        return self in DECLARATION_LINKED


DECLARATION_LINKED = frozenset({
    RecordCollection.RENDIMENTOS,
    RecordCollection.BENS_DIREITOS,
    RecordCollection.DIVIDAS_IRPF,
})

ZERO = Decimal("0")


class AccountRecord(BaseModel):
    """Base for every destination row."""
    model_config = ConfigDict(str_strip_whitespace=True)

    collection: ClassVar[RecordCollection]

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def to_row(self) -> dict:
        """Row dict for storage (python mode, Decimals kept)."""
        return self.model_dump()


class DeclarationRecord(AccountRecord):
    declaracao_id: UUID


# =============================================================================
# DECLARATION-LINKED
# =============================================================================

class RendimentoRecord(DeclarationRecord):
    """Income line (rendimentos_irpf)."""
    collection: ClassVar[RecordCollection] = RecordCollection.RENDIMENTOS

    tipo: str
    fonte_pagadora: str
    cnpj: Optional[str] = None
    valor: Decimal = ZERO
    irrf: Decimal = ZERO
    decimo_terceiro: Decimal = ZERO
    contribuicao_previdenciaria: Decimal = ZERO
    ano: int


class BemDireitoRecord(DeclarationRecord):
    """Declared asset or right (bens_direitos_irpf)."""
    collection: ClassVar[RecordCollection] = RecordCollection.BENS_DIREITOS

    codigo: str
    categoria: str
    discriminacao: str = Field(..., max_length=500)
    situacao_ano_anterior: Decimal = ZERO
    situacao_ano_atual: Decimal = ZERO


class DividaIrpfRecord(DeclarationRecord):
    """Debt as declared in the IRPF (dividas_irpf)."""
    collection: ClassVar[RecordCollection] = RecordCollection.DIVIDAS_IRPF

    discriminacao: str = Field(..., max_length=500)
    credor: str
    valor_ano_anterior: Decimal = ZERO
    valor_ano_atual: Decimal = ZERO


# =============================================================================
# ACCOUNT PORTFOLIO
# =============================================================================

class BemImobilizadoRecord(AccountRecord):
    """Fixed asset (bens_imobilizados)."""
    collection: ClassVar[RecordCollection] = RecordCollection.BENS_IMOBILIZADOS

    nome: str = Field(..., max_length=100)
    categoria: str
    descricao: Optional[str] = None
    valor_aquisicao: Decimal = ZERO
    valor_atual: Decimal = ZERO
    data_aquisicao: date
    localizacao: Optional[str] = None
    status: str = "ativo"


class AplicacaoRecord(AccountRecord):
    """Financial application (aplicacoes)."""
    collection: ClassVar[RecordCollection] = RecordCollection.APLICACOES

    nome: str = Field(..., max_length=100)
    tipo: str
    instituicao: str
    valor_aplicado: Decimal = ZERO
    valor_atual: Decimal = ZERO
    data_aplicacao: date
    data_vencimento: Optional[date] = None
    taxa_rentabilidade: Optional[Decimal] = None
    rentabilidade_tipo: Optional[str] = None
    liquidez: Optional[str] = None


class PlanoPrevidenciaRecord(AccountRecord):
    """Pension plan (planos_previdencia)."""
    collection: ClassVar[RecordCollection] = RecordCollection.PLANOS_PREVIDENCIA

    nome: str = Field(..., max_length=100)
    tipo: str
    instituicao: str
    valor_acumulado: Decimal = ZERO
    contribuicao_mensal: Decimal = ZERO
    data_inicio: date
    idade_resgate: Optional[int] = None
    taxa_administracao: Optional[Decimal] = None
    rentabilidade_acumulada: Optional[Decimal] = None
    ativo: bool = True


class ContaBancariaRecord(AccountRecord):
    """Bank account (contas_bancarias)."""
    collection: ClassVar[RecordCollection] = RecordCollection.CONTAS_BANCARIAS

    banco: str = Field(..., max_length=100)
    agencia: Optional[str] = None
    numero_conta: Optional[str] = None
    tipo_conta: str
    saldo_atual: Decimal = ZERO
    limite_credito: Decimal = ZERO
    ativo: bool = True


class DividaRecord(AccountRecord):
    """Generic debt (dividas)."""
    collection: ClassVar[RecordCollection] = RecordCollection.DIVIDAS

    nome: str = Field(..., max_length=100)
    tipo: str
    credor: str
    valor_original: Decimal = ZERO
    saldo_devedor: Decimal = ZERO
    valor_parcela: Decimal = ZERO
    numero_parcelas: int = 0
    parcelas_pagas: int = 0
    taxa_juros: Optional[Decimal] = None
    data_contratacao: date
    data_vencimento: Optional[date] = None
    status: str = "ativa"


RECORD_MODELS: dict[RecordCollection, type[AccountRecord]] = {
    model.collection: model
    for model in (
        RendimentoRecord,
        BemDireitoRecord,
        DividaIrpfRecord,
        BemImobilizadoRecord,
        AplicacaoRecord,
        PlanoPrevidenciaRecord,
        ContaBancariaRecord,
        DividaRecord,
    )
}
