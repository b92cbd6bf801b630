"""
Extraction item -> destination record mappers.

Defaulting rules, applied the same way in every mapper:
- missing amounts become 0
- missing required text becomes the nearest equivalent field on the
  same item, else the fallback text ("Não informado")
- missing "ativo" flags become True
- missing required dates become the import's "today"
- rates and optional dates stay None
- names are cut to 100 characters, discriminations to 500

``user_id`` and ``declaracao_id`` always come from the MappingContext.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from pydantic import BaseModel

from triad3.models.extraction import (
    ExtractedAplicacao,
    ExtractedBemDireito,
    ExtractedBemImobilizado,
    ExtractedContaBancaria,
    ExtractedDivida,
    ExtractedDividaIrpf,
    ExtractedItem,
    ExtractedPlanoPrevidencia,
    ExtractedRendimento,
)
from triad3.models.records import (
    AccountRecord,
    AplicacaoRecord,
    BemDireitoRecord,
    BemImobilizadoRecord,
    ContaBancariaRecord,
    DividaIrpfRecord,
    DividaRecord,
    PlanoPrevidenciaRecord,
    RecordCollection,
    RendimentoRecord,
)

NAME_MAX_CHARS = 100
DISCRIMINATION_MAX_CHARS = 500
OTHER_CATEGORY = "Outros"

# IRPF "Bens e Direitos" group codes
ASSET_CODE_CATEGORIES = {
    "01": "Imóveis",
    "02": "Veículos",
    "03": "Aeronaves e Embarcações",
    "04": "Aplicações e Investimentos",
    "05": "Créditos",
    "06": "Depósitos à Vista",
    "07": "Fundos",
    "08": "Criptoativos",
    "09": "Ações",
    "10": "Outros Bens",
}


class RecordMappingError(Exception):
    """An extracted item could not be turned into a destination record."""

    error_code = "record_mapping_error"

    def __init__(self, collection: RecordCollection, index: int, message: str):
        self.collection = collection
        self.index = index
        super().__init__(f"{collection.value}[{index}]: {message}")


class MappingContext(BaseModel):
    """Values injected into every mapped record."""

    user_id: str
    declaration_id: UUID
    tax_year: int
    today: date
    fallback_text: str = "Não informado"


def normalize_asset_code(code: Optional[str]) -> Optional[str]:
    """'1' -> '01', '01 - Imóveis' -> '01'."""
    if not code:
        return None
    head = code.strip().split()[0].strip("-.")
    if head.isdigit():
        return head.zfill(2)
    return code.strip()


def categorize_asset_code(code: Optional[str]) -> str:
    """Category name for an IRPF asset group code, 'Outros' when unknown."""
    normalized = normalize_asset_code(code)
    return ASSET_CODE_CATEGORIES.get(normalized or "", OTHER_CATEGORY)


def first_text(*values: Optional[str], fallback: str) -> str:
    for value in values:
        if value:
            return value
    return fallback


def truncate(text: str, limit: int) -> str:
    return text[:limit]


def amount(value: Optional[Decimal]) -> Decimal:
    return value if value is not None else Decimal("0")


def map_rendimento(item: ExtractedRendimento, ctx: MappingContext) -> RendimentoRecord:
    return RendimentoRecord(
        user_id=ctx.user_id,
        declaracao_id=ctx.declaration_id,
        tipo=first_text(item.tipo, fallback=ctx.fallback_text),
        fonte_pagadora=first_text(item.fonte_pagadora, item.cnpj, fallback=ctx.fallback_text),
        cnpj=item.cnpj,
        valor=amount(item.valor),
        irrf=amount(item.irrf),
        decimo_terceiro=amount(item.decimo_terceiro),
        contribuicao_previdenciaria=amount(item.contribuicao_previdenciaria),
        ano=item.ano or ctx.tax_year,
    )


def map_bem_direito(item: ExtractedBemDireito, ctx: MappingContext) -> BemDireitoRecord:
    code = normalize_asset_code(item.codigo)
    return BemDireitoRecord(
        user_id=ctx.user_id,
        declaracao_id=ctx.declaration_id,
        codigo=code or ctx.fallback_text,
        categoria=item.categoria or categorize_asset_code(code),
        discriminacao=truncate(
            first_text(item.discriminacao, item.categoria, fallback=ctx.fallback_text),
            DISCRIMINATION_MAX_CHARS,
        ),
        situacao_ano_anterior=amount(item.situacao_ano_anterior),
        situacao_ano_atual=amount(item.situacao_ano_atual),
    )


def map_divida_irpf(item: ExtractedDividaIrpf, ctx: MappingContext) -> DividaIrpfRecord:
    return DividaIrpfRecord(
        user_id=ctx.user_id,
        declaracao_id=ctx.declaration_id,
        discriminacao=truncate(
            first_text(item.discriminacao, item.credor, fallback=ctx.fallback_text),
            DISCRIMINATION_MAX_CHARS,
        ),
        credor=first_text(item.credor, fallback=ctx.fallback_text),
        valor_ano_anterior=amount(item.valor_ano_anterior),
        valor_ano_atual=amount(item.valor_ano_atual),
    )


def map_bem_imobilizado(
    item: ExtractedBemImobilizado,
    ctx: MappingContext,
) -> BemImobilizadoRecord:
    return BemImobilizadoRecord(
        user_id=ctx.user_id,
        nome=truncate(
            first_text(item.nome, item.descricao, item.categoria, fallback=ctx.fallback_text),
            NAME_MAX_CHARS,
        ),
        categoria=first_text(item.categoria, fallback=OTHER_CATEGORY),
        descricao=item.descricao,
        valor_aquisicao=amount(item.valor_aquisicao),
        valor_atual=amount(item.valor_atual),
        data_aquisicao=item.data_aquisicao or ctx.today,
        localizacao=item.localizacao,
    )


def map_aplicacao(item: ExtractedAplicacao, ctx: MappingContext) -> AplicacaoRecord:
    return AplicacaoRecord(
        user_id=ctx.user_id,
        nome=truncate(
            first_text(item.nome, item.tipo, item.instituicao, fallback=ctx.fallback_text),
            NAME_MAX_CHARS,
        ),
        tipo=first_text(item.tipo, fallback=ctx.fallback_text),
        instituicao=first_text(item.instituicao, fallback=ctx.fallback_text),
        valor_aplicado=amount(item.valor_aplicado),
        valor_atual=amount(item.valor_atual),
        data_aplicacao=item.data_aplicacao or ctx.today,
        data_vencimento=item.data_vencimento,
        taxa_rentabilidade=item.taxa_rentabilidade,
        rentabilidade_tipo=item.rentabilidade_tipo,
        liquidez=item.liquidez,
    )


def map_plano_previdencia(
    item: ExtractedPlanoPrevidencia,
    ctx: MappingContext,
) -> PlanoPrevidenciaRecord:
    return PlanoPrevidenciaRecord(
        user_id=ctx.user_id,
        nome=truncate(
            first_text(item.nome, item.tipo, item.instituicao, fallback=ctx.fallback_text),
            NAME_MAX_CHARS,
        ),
        tipo=first_text(item.tipo, fallback=ctx.fallback_text),
        instituicao=first_text(item.instituicao, fallback=ctx.fallback_text),
        valor_acumulado=amount(item.valor_acumulado),
        contribuicao_mensal=amount(item.contribuicao_mensal),
        data_inicio=item.data_inicio or ctx.today,
        idade_resgate=item.idade_resgate,
        taxa_administracao=item.taxa_administracao,
        rentabilidade_acumulada=item.rentabilidade_acumulada,
        ativo=item.ativo if item.ativo is not None else True,
    )


def map_conta_bancaria(
    item: ExtractedContaBancaria,
    ctx: MappingContext,
) -> ContaBancariaRecord:
    return ContaBancariaRecord(
        user_id=ctx.user_id,
        banco=truncate(first_text(item.banco, fallback=ctx.fallback_text), NAME_MAX_CHARS),
        agencia=item.agencia,
        numero_conta=item.numero_conta,
        tipo_conta=first_text(item.tipo_conta, fallback=ctx.fallback_text),
        saldo_atual=amount(item.saldo_atual),
        limite_credito=amount(item.limite_credito),
        ativo=item.ativo if item.ativo is not None else True,
    )


def map_divida(item: ExtractedDivida, ctx: MappingContext) -> DividaRecord:
    return DividaRecord(
        user_id=ctx.user_id,
        nome=truncate(
            first_text(item.nome, item.credor, item.tipo, fallback=ctx.fallback_text),
            NAME_MAX_CHARS,
        ),
        tipo=first_text(item.tipo, fallback=ctx.fallback_text),
        credor=first_text(item.credor, item.nome, fallback=ctx.fallback_text),
        valor_original=amount(item.valor_original),
        saldo_devedor=amount(item.saldo_devedor),
        valor_parcela=amount(item.valor_parcela),
        numero_parcelas=item.numero_parcelas or 0,
        parcelas_pagas=item.parcelas_pagas or 0,
        taxa_juros=item.taxa_juros,
        data_contratacao=item.data_contratacao or ctx.today,
        data_vencimento=item.data_vencimento,
    )


MAPPERS: dict[RecordCollection, Callable[[ExtractedItem, MappingContext], AccountRecord]] = {
    RecordCollection.RENDIMENTOS: map_rendimento,
    RecordCollection.BENS_DIREITOS: map_bem_direito,
    RecordCollection.DIVIDAS_IRPF: map_divida_irpf,
    RecordCollection.BENS_IMOBILIZADOS: map_bem_imobilizado,
    RecordCollection.APLICACOES: map_aplicacao,
    RecordCollection.PLANOS_PREVIDENCIA: map_plano_previdencia,
    RecordCollection.CONTAS_BANCARIAS: map_conta_bancaria,
    RecordCollection.DIVIDAS: map_divida,
}


def map_items(
    collection: RecordCollection,
    items: list[ExtractedItem],
    ctx: MappingContext,
) -> list[AccountRecord]:
    """
    Map every item of one collection.

    Raises:
        RecordMappingError: on the first item that cannot be mapped
    """
    mapper = MAPPERS[collection]
    records = []
    for index, item in enumerate(items):
        try:
            records.append(mapper(item, ctx))
        except (ValueError, TypeError, AttributeError) as e:
            # pydantic.ValidationError is a ValueError
            raise RecordMappingError(collection, index, str(e)) from e
    return records
