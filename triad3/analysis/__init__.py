"""Portfolio analysis package."""

from triad3.analysis.allocation import (
    AllocationAnalyzer,
    NoPortfolioDataError,
    compute_allocation,
)

__all__ = ["AllocationAnalyzer", "NoPortfolioDataError", "compute_allocation"]
