"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
Google Sheets for deployments, in-memory for tests and local runs.
"""

from triad3.services.storage.interface import (
    AuditStorageInterface,
    DeclarationStorageInterface,
    NotFoundError,
    RecordStorageInterface,
    StorageConnectionError,
    StorageError,
)
from triad3.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDeclarationStorage,
    GoogleSheetsRecordStorage,
)
from triad3.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDeclarationStorage,
    InMemoryRecordStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DeclarationStorageInterface",
    "RecordStorageInterface",
    # Exceptions
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDeclarationStorage",
    "GoogleSheetsRecordStorage",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDeclarationStorage",
    "InMemoryRecordStorage",
]
