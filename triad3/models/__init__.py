"""
Data Models Package

All data flowing through the import pipeline conforms to these schemas.
"""

from triad3.models.declaration import (
    CollectionResult,
    Declaration,
    ImportAcknowledgment,
    ImportOutcome,
    ImportStatus,
    ImportStatusKind,
    ImportSummary,
    InvalidStatusTransitionError,
    PipelineStep,
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
    RECORD_MODELS,
    RecordCollection,
    RendimentoRecord,
)
from triad3.models.extraction import (
    COLLECTION_KEYS,
    ExtractedDeclaration,
    ExtractedHeader,
    NormalizedExtraction,
)
from triad3.models.analysis import (
    AllocationAnalysis,
    IDEAL_ALLOCATION,
    PortfolioTotals,
)
from triad3.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Declaration
    "CollectionResult",
    "Declaration",
    "ImportAcknowledgment",
    "ImportOutcome",
    "ImportStatus",
    "ImportStatusKind",
    "ImportSummary",
    "InvalidStatusTransitionError",
    "PipelineStep",
    # Records
    "AccountRecord",
    "AplicacaoRecord",
    "BemDireitoRecord",
    "BemImobilizadoRecord",
    "ContaBancariaRecord",
    "DividaIrpfRecord",
    "DividaRecord",
    "PlanoPrevidenciaRecord",
    "RECORD_MODELS",
    "RecordCollection",
    "RendimentoRecord",
    # Extraction
    "COLLECTION_KEYS",
    "ExtractedDeclaration",
    "ExtractedHeader",
    "NormalizedExtraction",
    # Analysis
    "AllocationAnalysis",
    "IDEAL_ALLOCATION",
    "PortfolioTotals",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
