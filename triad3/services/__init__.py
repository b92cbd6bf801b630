"""Services package."""

from triad3.services.pdf import (
    DocumentReadError,
    PDFTextExtractor,
    PDFTranscript,
    UnreadableDocumentError,
)
from triad3.services.storage import (
    AuditStorageInterface,
    DeclarationStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDeclarationStorage,
    GoogleSheetsRecordStorage,
    InMemoryAuditStorage,
    InMemoryDeclarationStorage,
    InMemoryRecordStorage,
    NotFoundError,
    RecordStorageInterface,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # PDF
    "DocumentReadError",
    "PDFTextExtractor",
    "PDFTranscript",
    "UnreadableDocumentError",
    # Storage
    "AuditStorageInterface",
    "DeclarationStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDeclarationStorage",
    "GoogleSheetsRecordStorage",
    "InMemoryAuditStorage",
    "InMemoryDeclarationStorage",
    "InMemoryRecordStorage",
    "NotFoundError",
    "RecordStorageInterface",
    "StorageConnectionError",
    "StorageError",
]
