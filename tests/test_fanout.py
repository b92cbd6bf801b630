"""Tests for the fan-out mappers and persister."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from triad3.fanout import (
    FanOutPersister,
    MappingContext,
    RecordMappingError,
    categorize_asset_code,
    map_items,
)
from triad3.fanout import mappers
from triad3.models.declaration import Declaration
from triad3.models.extraction import ExtractedDeclaration
from triad3.models.records import RecordCollection
from triad3.services.storage import InMemoryRecordStorage, StorageError
from triad3.validation import ResponseNormalizer

from conftest import ACCOUNT_ID, HAPPY_PATH_PAYLOAD

TODAY = date(2024, 6, 1)


class FailingRecordStorage(InMemoryRecordStorage):
    """Rejects every insert into the given collections."""

    def __init__(self, failing: set[RecordCollection]):
        super().__init__()
        self.failing = failing
        self.calls: list[RecordCollection] = []

    async def insert_many(self, collection, rows):
        self.calls.append(collection)
        if collection in self.failing:
            raise StorageError(f"constraint violation on {collection.value}")
        return await super().insert_many(collection, rows)


@pytest.fixture
def ctx() -> MappingContext:
    return MappingContext(
        user_id=ACCOUNT_ID,
        declaration_id=uuid4(),
        tax_year=2024,
        today=TODAY,
    )


def _extracted(**sections) -> ExtractedDeclaration:
    return ExtractedDeclaration.model_validate(sections)


class TestCategorizeAssetCode:

    @pytest.mark.parametrize("code,category", [
        ("01", "Imóveis"),
        ("1", "Imóveis"),
        ("02", "Veículos"),
        ("04 - Aplicações", "Aplicações e Investimentos"),
        ("08", "Criptoativos"),
        ("10", "Outros Bens"),
        ("99", "Outros"),
        (None, "Outros"),
    ])
    def test_groups(self, code, category):
        assert categorize_asset_code(code) == category


class TestMappers:
    """Defaulting rules."""

    def test_missing_numbers_become_zero(self, ctx):
        extracted = _extracted(rendimentos=[{"fonte_pagadora": "ACME LTDA"}])
        [record] = map_items(RecordCollection.RENDIMENTOS, extracted.rendimentos, ctx)
        assert record.valor == Decimal("0")
        assert record.irrf == Decimal("0")
        assert record.decimo_terceiro == Decimal("0")
        assert record.ano == 2024

    def test_missing_text_uses_fallback(self, ctx):
        extracted = _extracted(rendimentos=[{"valor": 100}])
        [record] = map_items(RecordCollection.RENDIMENTOS, extracted.rendimentos, ctx)
        assert record.fonte_pagadora == "Não informado"
        assert record.tipo == "Não informado"

    def test_nearest_field_preferred_over_fallback(self, ctx):
        extracted = _extracted(dividas=[{"credor": "Banco X", "saldo_devedor": "10.000,00"}])
        [record] = map_items(RecordCollection.DIVIDAS, extracted.dividas, ctx)
        assert record.nome == "Banco X"
        assert record.credor == "Banco X"
        assert record.saldo_devedor == Decimal("10000.00")
        assert record.numero_parcelas == 0
        assert record.taxa_juros is None

    def test_asset_category_from_code(self, ctx):
        extracted = _extracted(bens_direitos=[{"codigo": "2", "discriminacao": "Carro"}])
        [record] = map_items(RecordCollection.BENS_DIREITOS, extracted.bens_direitos, ctx)
        assert record.codigo == "02"
        assert record.categoria == "Veículos"

    def test_truncation(self, ctx):
        extracted = _extracted(
            bens_direitos=[{"codigo": "01", "discriminacao": "x" * 800}],
            aplicacoes=[{"nome": "y" * 300}],
        )
        [bem] = map_items(RecordCollection.BENS_DIREITOS, extracted.bens_direitos, ctx)
        [aplicacao] = map_items(RecordCollection.APLICACOES, extracted.aplicacoes, ctx)
        assert len(bem.discriminacao) == 500
        assert len(aplicacao.nome) == 100

    def test_dates_and_active_flags(self, ctx):
        extracted = _extracted(
            planos_previdencia=[{"nome": "PGBL"}],
            contas_bancarias=[{"banco": "Banco Y", "ativo": "não"}],
            aplicacoes=[{"nome": "CDB", "data_aplicacao": "10/01/2023"}],
        )
        [plano] = map_items(RecordCollection.PLANOS_PREVIDENCIA, extracted.planos_previdencia, ctx)
        [conta] = map_items(RecordCollection.CONTAS_BANCARIAS, extracted.contas_bancarias, ctx)
        [aplicacao] = map_items(RecordCollection.APLICACOES, extracted.aplicacoes, ctx)
        assert plano.ativo is True
        assert plano.data_inicio == TODAY
        assert conta.ativo is False
        assert aplicacao.data_aplicacao == date(2023, 1, 10)
        assert aplicacao.data_vencimento is None

    def test_account_id_comes_from_context(self, ctx):
        """An account id inside the payload is ignored."""
        extracted = _extracted(contas_bancarias=[{"banco": "Banco Y", "user_id": "attacker"}])
        [record] = map_items(RecordCollection.CONTAS_BANCARIAS, extracted.contas_bancarias, ctx)
        assert record.user_id == ACCOUNT_ID

    def test_mapping_failure_names_item(self, ctx, monkeypatch):
        def broken(item, context):
            raise ValueError("bad item")

        monkeypatch.setitem(mappers.MAPPERS, RecordCollection.DIVIDAS, broken)
        extracted = _extracted(dividas=[{}, {}])
        with pytest.raises(RecordMappingError) as exc_info:
            map_items(RecordCollection.DIVIDAS, extracted.dividas, ctx)
        assert exc_info.value.index == 0
        assert exc_info.value.collection == RecordCollection.DIVIDAS


class TestFanOutPersister:

    def _declaration(self) -> Declaration:
        return Declaration(user_id=ACCOUNT_ID, ano=2024, arquivo_original="irpf.pdf")

    def _full_payload(self) -> dict:
        return {
            "declaracao": {"valor_pagar": "1.000,00", "recibo": "123"},
            "rendimentos": [{"fonte_pagadora": "ACME LTDA", "valor": 50000}],
            "bens_direitos": [{"codigo": "01", "discriminacao": "Apto"}],
            "dividas_irpf": [{"credor": "Banco X"}],
            "bens_imobilizados": [{"nome": "Apto", "valor_atual": 220000}],
            "aplicacoes": [{"nome": "CDB", "valor_atual": 10000}],
            "planos_previdencia": [{"nome": "PGBL", "valor_acumulado": 5000}],
            "contas_bancarias": [{"banco": "Banco Y", "saldo_atual": 1500}],
            "dividas": [{"nome": "Financiamento", "saldo_devedor": 80000}],
        }

    @pytest.mark.asyncio
    async def test_inserts_every_collection(self, declaration_storage, record_storage):
        declaration = await declaration_storage.create_declaration(self._declaration())
        persister = FanOutPersister(record_storage, declaration_storage)
        normalized = ResponseNormalizer().normalize(_json(self._full_payload()))

        summary = await persister.persist(normalized, declaration, today=TODAY)

        assert summary.counts() == {collection.value: 1 for collection in RecordCollection}
        assert summary.header_updated
        rows = await record_storage.list_records(
            RecordCollection.RENDIMENTOS, ACCOUNT_ID, declaration.id
        )
        assert rows[0]["declaracao_id"] == declaration.id

        stored = await declaration_storage.get_declaration(declaration.id)
        assert stored.valor_pagar == Decimal("1000.00")
        assert stored.recibo == "123"
        assert stored.dados_brutos["resumo"]["dividas"] == 1
        assert stored.dados_brutos["erros"] == {}

    @pytest.mark.asyncio
    async def test_one_failing_collection_is_isolated(self, declaration_storage):
        """A failed insert leaves the other seven collections untouched."""
        records = FailingRecordStorage({RecordCollection.PLANOS_PREVIDENCIA})
        declaration = await declaration_storage.create_declaration(self._declaration())
        persister = FanOutPersister(records, declaration_storage)
        normalized = ResponseNormalizer().normalize(_json(self._full_payload()))

        summary = await persister.persist(normalized, declaration, today=TODAY)

        assert summary.failed_collections == ["planos_previdencia"]
        failed = summary.get("planos_previdencia")
        assert failed.inserted == 0
        assert failed.attempted == 1
        assert "constraint violation" in failed.error
        for collection in RecordCollection:
            if collection != RecordCollection.PLANOS_PREVIDENCIA:
                assert summary.get(collection.value).inserted == 1
        assert len(records.calls) == 8

        stored = await declaration_storage.get_declaration(declaration.id)
        assert "planos_previdencia" in stored.dados_brutos["erros"]

    @pytest.mark.asyncio
    async def test_empty_collections_are_not_inserted(self, declaration_storage):
        records = FailingRecordStorage(set())
        declaration = await declaration_storage.create_declaration(self._declaration())
        persister = FanOutPersister(records, declaration_storage)
        normalized = ResponseNormalizer().normalize(_json(HAPPY_PATH_PAYLOAD))

        summary = await persister.persist(normalized, declaration, today=TODAY)

        assert records.calls == [RecordCollection.RENDIMENTOS, RecordCollection.BENS_DIREITOS]
        assert summary.get("aplicacoes").attempted == 0

    @pytest.mark.asyncio
    async def test_header_failure_keeps_rows(self, record_storage):
        """Declaration missing from storage: header update fails, rows stay."""
        from triad3.services.storage import InMemoryDeclarationStorage

        declaration = self._declaration()  # never stored
        persister = FanOutPersister(record_storage, InMemoryDeclarationStorage())
        normalized = ResponseNormalizer().normalize(_json(HAPPY_PATH_PAYLOAD))

        summary = await persister.persist(normalized, declaration, today=TODAY)

        assert not summary.header_updated
        assert "not found" in summary.header_error
        assert summary.total_inserted == 2

    @pytest.mark.asyncio
    async def test_mapping_error_inserts_nothing(
        self, declaration_storage, record_storage, monkeypatch
    ):
        def broken(item, context):
            raise ValueError("bad item")

        monkeypatch.setitem(mappers.MAPPERS, RecordCollection.DIVIDAS, broken)
        declaration = await declaration_storage.create_declaration(self._declaration())
        persister = FanOutPersister(record_storage, declaration_storage)
        normalized = ResponseNormalizer().normalize(_json(self._full_payload()))

        with pytest.raises(RecordMappingError):
            await persister.persist(normalized, declaration, today=TODAY)

        rows = await record_storage.list_records(RecordCollection.RENDIMENTOS, ACCOUNT_ID)
        assert rows == []


def _json(payload: dict) -> str:
    import json
    return json.dumps(payload)
