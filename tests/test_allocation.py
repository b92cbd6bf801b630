"""Tests for the Triad3 allocation arithmetic."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from triad3.analysis import AllocationAnalyzer, NoPortfolioDataError, compute_allocation
from triad3.analysis.allocation import percentage
from triad3.models.analysis import PortfolioTotals
from triad3.models.records import (
    AplicacaoRecord,
    BemImobilizadoRecord,
    ContaBancariaRecord,
    DividaRecord,
    PlanoPrevidenciaRecord,
)

from conftest import ACCOUNT_ID, OTHER_ACCOUNT_ID


async def _seed(record_storage, user_id=ACCOUNT_ID):
    today = date(2024, 6, 1)
    records = [
        BemImobilizadoRecord(
            user_id=user_id, nome="Apto", categoria="Imóveis",
            valor_atual=Decimal("300000"), data_aquisicao=today,
        ),
        AplicacaoRecord(
            user_id=user_id, nome="CDB", tipo="CDB", instituicao="Banco X",
            valor_atual=Decimal("50000"), data_aplicacao=today,
        ),
        PlanoPrevidenciaRecord(
            user_id=user_id, nome="PGBL", tipo="PGBL", instituicao="Seguradora",
            valor_acumulado=Decimal("40000"), data_inicio=today,
        ),
        ContaBancariaRecord(
            user_id=user_id, banco="Banco Y", tipo_conta="corrente",
            saldo_atual=Decimal("10000"),
        ),
        DividaRecord(
            user_id=user_id, nome="Financiamento", tipo="imobiliario", credor="Banco X",
            saldo_devedor=Decimal("100000"), data_contratacao=today,
        ),
    ]
    for record in records:
        await record_storage.insert_many(record.collection, [record.to_row()])


class TestComputeAllocation:

    def test_percentages_and_deviation(self):
        totals = PortfolioTotals(
            imobilizado=Decimal("300000"),
            aplicacoes=Decimal("50000"),
            previdencia=Decimal("40000"),
            contas=Decimal("10000"),
            dividas=Decimal("100000"),
        )
        analysis = compute_allocation(ACCOUNT_ID, totals, {})

        assert analysis.patrimonio_total == Decimal("400000")
        assert analysis.patrimonio_liquido == Decimal("300000")
        assert analysis.percentuais["imobilizado"] == Decimal("75.00")
        assert analysis.percentuais["liquidez"] == Decimal("25.00")
        assert analysis.percentuais["negocios"] == Decimal("0.00")
        assert analysis.desvios["imobilizado"] == Decimal("41.00")
        assert analysis.desvios["liquidez"] == Decimal("-8.00")
        assert analysis.desvios["negocios"] == Decimal("-33.00")

    def test_ideal_portfolio_has_no_deviation(self):
        """Fixed assets aim at 34%, liquidity and businesses at 33% each."""
        totals = PortfolioTotals(
            imobilizado=Decimal("34"),
            contas=Decimal("33"),
            negocios=Decimal("33"),
        )
        analysis = compute_allocation(ACCOUNT_ID, totals, {})

        assert analysis.ideal == {
            "imobilizado": Decimal("34"),
            "liquidez": Decimal("33"),
            "negocios": Decimal("33"),
        }
        assert all(deviation == 0 for deviation in analysis.desvios.values())

    def test_rounding_half_up(self):
        assert percentage(Decimal("1"), Decimal("3")) == Decimal("33.33")
        assert percentage(Decimal("2"), Decimal("3")) == Decimal("66.67")

    def test_debts_only(self):
        """Debts without assets still analyze, with zero percentages."""
        analysis = compute_allocation(ACCOUNT_ID, PortfolioTotals(dividas=Decimal("500")), {})
        assert analysis.patrimonio_liquido == Decimal("-500")
        assert analysis.percentuais["liquidez"] == Decimal("0.00")

    def test_nothing_to_analyze(self):
        with pytest.raises(NoPortfolioDataError):
            compute_allocation(ACCOUNT_ID, PortfolioTotals(), {})


class TestAllocationAnalyzer:

    @pytest.mark.asyncio
    async def test_reads_only_the_account_rows(self, record_storage, audit_logger, audit_storage):
        await _seed(record_storage)
        await _seed(record_storage, user_id=OTHER_ACCOUNT_ID)
        analyzer = AllocationAnalyzer(record_storage, audit_logger)
        correlation_id = uuid4()

        analysis = await analyzer.analyze(ACCOUNT_ID, correlation_id=correlation_id)

        assert analysis.totals.liquidez == Decimal("100000")
        assert analysis.patrimonio_total == Decimal("400000")
        assert analysis.quantidades["dividas"] == 1
        [event] = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert event.event_type.value == "allocation_computed"

    @pytest.mark.asyncio
    async def test_empty_account(self, record_storage):
        with pytest.raises(NoPortfolioDataError):
            await AllocationAnalyzer(record_storage).analyze(ACCOUNT_ID)
