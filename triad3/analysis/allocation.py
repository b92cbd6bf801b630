"""
Triad3 Allocation Analysis

Computes how an account's net worth splits across the three Triad3
buckets, from the portfolio collections the import fills:

    imobilizado = sum(bens_imobilizados.valor_atual)
    liquidez    = sum(aplicacoes.valor_atual)
                + sum(planos_previdencia.valor_acumulado)
                + sum(contas_bancarias.saldo_atual)
    negocios    = 0 (no business collection yet)
    total       = imobilizado + liquidez + negocios
    liquido     = total - sum(dividas.saldo_devedor)

Percentages are of the gross total, rounded to 2 places, and compared
with the ideal: imobilizado 34, liquidez 33, negocios 33.

Only the arithmetic lives here. Writing advice from these numbers is
not part of this package.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional
from uuid import UUID

from triad3.audit import AuditLogger
from triad3.models.analysis import IDEAL_ALLOCATION, AllocationAnalysis, PortfolioTotals
from triad3.models.records import RecordCollection
from triad3.services.storage import RecordStorageInterface

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")

# (collection, value column) summed into each PortfolioTotals field
TOTAL_SOURCES = {
    "imobilizado": (RecordCollection.BENS_IMOBILIZADOS, "valor_atual"),
    "aplicacoes": (RecordCollection.APLICACOES, "valor_atual"),
    "previdencia": (RecordCollection.PLANOS_PREVIDENCIA, "valor_acumulado"),
    "contas": (RecordCollection.CONTAS_BANCARIAS, "saldo_atual"),
    "dividas": (RecordCollection.DIVIDAS, "saldo_devedor"),
}


class NoPortfolioDataError(Exception):
    """The account has no assets and no debts to analyze."""


def _sum_column(rows: list[dict[str, Any]], column: str) -> Decimal:
    total = Decimal("0")
    for row in rows:
        value = row.get(column)
        if value is not None:
            total += Decimal(str(value))
    return total


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return Decimal("0.00")
    return (part / whole * HUNDRED).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_allocation(
    user_id: str,
    totals: PortfolioTotals,
    quantities: dict[str, int],
) -> AllocationAnalysis:
    """
    Pure computation from totals.

    Raises:
        NoPortfolioDataError: total assets and debts are both zero
    """
    if totals.total == 0 and totals.dividas == 0:
        raise NoPortfolioDataError(
            "No assets or debts registered; import a declaration or add records first"
        )

    percentuais = {
        "imobilizado": percentage(totals.imobilizado, totals.total),
        "liquidez": percentage(totals.liquidez, totals.total),
        "negocios": percentage(totals.negocios, totals.total),
    }
    desvios = {
        bucket: percentuais[bucket] - IDEAL_ALLOCATION[bucket]
        for bucket in percentuais
    }

    return AllocationAnalysis(
        user_id=user_id,
        totals=totals,
        patrimonio_total=totals.total,
        patrimonio_liquido=totals.patrimonio_liquido,
        percentuais=percentuais,
        desvios=desvios,
        quantidades=quantities,
    )


class AllocationAnalyzer:
    """
    Reads an account's portfolio collections and computes its allocation.
    """

    def __init__(
        self,
        record_storage: RecordStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._records = record_storage
        self._audit_logger = audit_logger

    async def load_totals(self, user_id: str) -> tuple[PortfolioTotals, dict[str, int]]:
        sums = {}
        quantities = {}
        for field, (collection, column) in TOTAL_SOURCES.items():
            rows = await self._records.list_records(collection, user_id)
            sums[field] = _sum_column(rows, column)
            quantities[collection.value] = len(rows)
        return PortfolioTotals(**sums), quantities

    async def analyze(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AllocationAnalysis:
        """
        Raises:
            NoPortfolioDataError: nothing to analyze
        """
        totals, quantities = await self.load_totals(user_id)
        analysis = compute_allocation(user_id, totals, quantities)

        if self._audit_logger:
            await self._audit_logger.log_allocation_computed(
                account_id=user_id,
                patrimonio_liquido=str(analysis.patrimonio_liquido),
                quantities=quantities,
                correlation_id=correlation_id,
            )
        return analysis
