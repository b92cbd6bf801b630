"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the import pipeline decoupled from storage implementation

The pipeline needs very little: create/get/update one declaration, and
insert many rows into a collection. Nothing here updates or deletes
collection rows.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from triad3.models.audit import AuditEvent
from triad3.models.declaration import Declaration
from triad3.models.records import RecordCollection


class DeclarationStorageInterface(ABC):
    """
    Abstract interface for declaration storage.
    """

    @abstractmethod
    async def create_declaration(self, declaration: Declaration) -> Declaration:
        """
        Insert a new declaration.

        Returns:
            The stored declaration

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def get_declaration(self, declaration_id: UUID) -> Optional[Declaration]:
        """
        Retrieve a declaration by its ID.

        Returns:
            The declaration if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_declaration(
        self,
        declaration_id: UUID,
        changes: dict[str, Any],
    ) -> Declaration:
        """
        Apply field changes to one declaration.

        Args:
            declaration_id: The declaration to update
            changes: Field name -> new value (Declaration field names)

        Returns:
            The updated declaration

        Raises:
            NotFoundError: If the declaration doesn't exist
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def list_declarations(
        self,
        user_id: str,
        tax_year: Optional[int] = None,
    ) -> list[Declaration]:
        """
        List an account's declarations, newest first.
        """
        pass


class RecordStorageInterface(ABC):
    """
    Abstract interface for the eight destination collections.

    Inserts are append-only and all-or-nothing per call.
    """

    @abstractmethod
    async def insert_many(
        self,
        collection: RecordCollection,
        rows: list[dict[str, Any]],
    ) -> int:
        """
        Insert rows into one collection in a single bulk operation.

        Returns:
            Number of rows inserted

        Raises:
            StorageError: If the insert fails (no rows are kept)
        """
        pass

    @abstractmethod
    async def list_records(
        self,
        collection: RecordCollection,
        user_id: str,
        declaration_id: Optional[UUID] = None,
    ) -> list[dict[str, Any]]:
        """
        List an account's rows in a collection, optionally for one declaration.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (one import).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
