"""
Typed intermediate schema for the model's extraction reply.

CRITICAL: This is PROPOSED data. Every field is optional because the model
may leave anything out; the fan-out mappers decide the stored defaults.

Values are coerced leniently (Brazilian amounts, dd/mm/yyyy dates, "Sim")
and unreadable scalars become None. Structural problems, such as an array
element that is not an object, still fail validation.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from triad3.models.coercion import (
    clean_text,
    parse_brl_amount,
    parse_loose_bool,
    parse_loose_date,
    parse_loose_int,
)
from triad3.models.records import RecordCollection

Amount = Annotated[Optional[Decimal], BeforeValidator(parse_brl_amount)]
LooseDate = Annotated[Optional[date], BeforeValidator(parse_loose_date)]
LooseInt = Annotated[Optional[int], BeforeValidator(parse_loose_int)]
LooseBool = Annotated[Optional[bool], BeforeValidator(parse_loose_bool)]
Text = Annotated[Optional[str], BeforeValidator(clean_text)]


class ExtractedItem(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ExtractedHeader(ExtractedItem):
    """Declaration-level totals."""
    valor_pagar: Amount = None
    valor_restituir: Amount = None
    recibo: Text = None
    prazo_limite: LooseDate = None


class ExtractedRendimento(ExtractedItem):
    tipo: Text = None
    fonte_pagadora: Text = None
    cnpj: Text = None
    valor: Amount = None
    irrf: Amount = None
    decimo_terceiro: Amount = None
    contribuicao_previdenciaria: Amount = None
    ano: LooseInt = None


class ExtractedBemDireito(ExtractedItem):
    codigo: Text = None
    categoria: Text = None
    discriminacao: Text = None
    situacao_ano_anterior: Amount = None
    situacao_ano_atual: Amount = None


class ExtractedDividaIrpf(ExtractedItem):
    discriminacao: Text = None
    credor: Text = None
    valor_ano_anterior: Amount = None
    valor_ano_atual: Amount = None


class ExtractedBemImobilizado(ExtractedItem):
    nome: Text = None
    categoria: Text = None
    descricao: Text = None
    valor_aquisicao: Amount = None
    valor_atual: Amount = None
    data_aquisicao: LooseDate = None
    localizacao: Text = None


class ExtractedAplicacao(ExtractedItem):
    nome: Text = None
    tipo: Text = None
    instituicao: Text = None
    valor_aplicado: Amount = None
    valor_atual: Amount = None
    data_aplicacao: LooseDate = None
    data_vencimento: LooseDate = None
    taxa_rentabilidade: Amount = None
    rentabilidade_tipo: Text = None
    liquidez: Text = None


class ExtractedPlanoPrevidencia(ExtractedItem):
    nome: Text = None
    tipo: Text = None
    instituicao: Text = None
    valor_acumulado: Amount = None
    contribuicao_mensal: Amount = None
    data_inicio: LooseDate = None
    idade_resgate: LooseInt = None
    taxa_administracao: Amount = None
    rentabilidade_acumulada: Amount = None
    ativo: LooseBool = None


class ExtractedContaBancaria(ExtractedItem):
    banco: Text = None
    agencia: Text = None
    numero_conta: Text = None
    tipo_conta: Text = None
    saldo_atual: Amount = None
    limite_credito: Amount = None
    ativo: LooseBool = None


class ExtractedDivida(ExtractedItem):
    nome: Text = None
    tipo: Text = None
    credor: Text = None
    valor_original: Amount = None
    saldo_devedor: Amount = None
    valor_parcela: Amount = None
    numero_parcelas: LooseInt = None
    parcelas_pagas: LooseInt = None
    taxa_juros: Amount = None
    data_contratacao: LooseDate = None
    data_vencimento: LooseDate = None


# Payload key -> destination collection
COLLECTION_KEYS: dict[str, RecordCollection] = {
    "rendimentos": RecordCollection.RENDIMENTOS,
    "bens_direitos": RecordCollection.BENS_DIREITOS,
    "dividas_irpf": RecordCollection.DIVIDAS_IRPF,
    "bens_imobilizados": RecordCollection.BENS_IMOBILIZADOS,
    "aplicacoes": RecordCollection.APLICACOES,
    "planos_previdencia": RecordCollection.PLANOS_PREVIDENCIA,
    "contas_bancarias": RecordCollection.CONTAS_BANCARIAS,
    "dividas": RecordCollection.DIVIDAS,
}
HEADER_KEY = "declaracao"


class ExtractedDeclaration(BaseModel):
    """
    Header plus eight ordered item lists, one per destination collection.
    """
    model_config = ConfigDict(extra="ignore")

    declaracao: ExtractedHeader = Field(default_factory=ExtractedHeader)
    rendimentos: list[ExtractedRendimento] = Field(default_factory=list)
    bens_direitos: list[ExtractedBemDireito] = Field(default_factory=list)
    dividas_irpf: list[ExtractedDividaIrpf] = Field(default_factory=list)
    bens_imobilizados: list[ExtractedBemImobilizado] = Field(default_factory=list)
    aplicacoes: list[ExtractedAplicacao] = Field(default_factory=list)
    planos_previdencia: list[ExtractedPlanoPrevidencia] = Field(default_factory=list)
    contas_bancarias: list[ExtractedContaBancaria] = Field(default_factory=list)
    dividas: list[ExtractedDivida] = Field(default_factory=list)

    @field_validator("declaracao", mode="before")
    @classmethod
    def header_must_be_object(cls, v: Any) -> Any:
        # A missing or non-object header just means no totals were found
        return v if isinstance(v, dict) else {}

    @field_validator(*COLLECTION_KEYS, mode="before")
    @classmethod
    def missing_list_is_empty(cls, v: Any) -> Any:
        return v if isinstance(v, list) else []

    def items_for(self, collection: RecordCollection) -> list[ExtractedItem]:
        for key, target in COLLECTION_KEYS.items():
            if target == collection:
                return getattr(self, key)
        raise KeyError(collection)

    def counts(self) -> dict[str, int]:
        return {
            collection.value: len(getattr(self, key))
            for key, collection in COLLECTION_KEYS.items()
        }

    @property
    def total_items(self) -> int:
        return sum(self.counts().values())


class NormalizedExtraction(BaseModel):
    """Normalizer output: the typed structure plus the parsed payload it came from."""

    extracted: ExtractedDeclaration
    payload: dict[str, Any]
    item_counts: dict[str, int]
    used_whitespace_fallback: bool = False
