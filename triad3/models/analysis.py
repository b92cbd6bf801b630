"""
Portfolio allocation models (Triad3 method).

The method splits net worth into three buckets: fixed assets (imobilizado),
liquidity (liquidez) and businesses (negocios), against an ideal of
34% fixed assets, 33% liquidity and 33% businesses.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

IDEAL_ALLOCATION = {
    "imobilizado": Decimal("34"),
    "liquidez": Decimal("33"),
    "negocios": Decimal("33"),
}


class PortfolioTotals(BaseModel):
    imobilizado: Decimal = Decimal("0")
    aplicacoes: Decimal = Decimal("0")
    previdencia: Decimal = Decimal("0")
    contas: Decimal = Decimal("0")
    dividas: Decimal = Decimal("0")
    negocios: Decimal = Decimal("0")

    @property
    def liquidez(self) -> Decimal:
        return self.aplicacoes + self.previdencia + self.contas

    @property
    def total(self) -> Decimal:
        return self.imobilizado + self.liquidez + self.negocios

    @property
    def patrimonio_liquido(self) -> Decimal:
        return self.total - self.dividas


class AllocationAnalysis(BaseModel):
    """Result of one allocation computation for an account."""

    user_id: str
    computed_at: datetime = Field(default_factory=datetime.utcnow)
    totals: PortfolioTotals
    patrimonio_total: Decimal
    patrimonio_liquido: Decimal
    percentuais: dict[str, Decimal]
    ideal: dict[str, Decimal] = Field(default_factory=lambda: dict(IDEAL_ALLOCATION))
    desvios: dict[str, Decimal]
    quantidades: dict[str, int]
