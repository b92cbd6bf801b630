"""
In-memory storage backends.

Used by the tests and by ``create_app_components(use_storage=False)``.
A lock guards each store because imports run on the background runner's
thread while callers read from their own.
"""

import copy
import threading
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from triad3.models.audit import AuditEvent
from triad3.models.declaration import Declaration
from triad3.models.records import RecordCollection
from triad3.services.storage.interface import (
    AuditStorageInterface,
    DeclarationStorageInterface,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
)


class InMemoryDeclarationStorage(DeclarationStorageInterface):

    def __init__(self):
        self._lock = threading.Lock()
        self._declarations: dict[UUID, Declaration] = {}

    async def create_declaration(self, declaration: Declaration) -> Declaration:
        with self._lock:
            if declaration.id in self._declarations:
                raise StorageError(f"Declaration already exists: {declaration.id}")
            self._declarations[declaration.id] = declaration.model_copy(deep=True)
        return declaration

    async def get_declaration(self, declaration_id: UUID) -> Optional[Declaration]:
        with self._lock:
            stored = self._declarations.get(declaration_id)
            return stored.model_copy(deep=True) if stored else None

    async def update_declaration(
        self,
        declaration_id: UUID,
        changes: dict[str, Any],
    ) -> Declaration:
        with self._lock:
            stored = self._declarations.get(declaration_id)
            if stored is None:
                raise NotFoundError(f"Declaration not found: {declaration_id}")
            data = stored.model_dump()
            data["updated_at"] = datetime.utcnow()
            data.update(changes)
            updated = Declaration.model_validate(data)
            self._declarations[declaration_id] = updated
            return updated.model_copy(deep=True)

    async def list_declarations(
        self,
        user_id: str,
        tax_year: Optional[int] = None,
    ) -> list[Declaration]:
        with self._lock:
            declarations = [
                d.model_copy(deep=True)
                for d in self._declarations.values()
                if d.user_id == user_id and (tax_year is None or d.ano == tax_year)
            ]
        declarations.sort(key=lambda d: d.created_at, reverse=True)
        return declarations


class InMemoryRecordStorage(RecordStorageInterface):

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: dict[RecordCollection, list[dict[str, Any]]] = {
            collection: [] for collection in RecordCollection
        }

    async def insert_many(
        self,
        collection: RecordCollection,
        rows: list[dict[str, Any]],
    ) -> int:
        for row in rows:
            if not row.get("user_id"):
                raise StorageError(f"Row without user_id for {collection.value}")
        with self._lock:
            self._rows[collection].extend(copy.deepcopy(rows))
        return len(rows)

    async def list_records(
        self,
        collection: RecordCollection,
        user_id: str,
        declaration_id: Optional[UUID] = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(row)
                for row in self._rows[collection]
                if row["user_id"] == user_id
                and (declaration_id is None or row.get("declaracao_id") == declaration_id)
            ]


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        with self._lock:
            events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        with self._lock:
            events = [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        return sorted(events, key=lambda e: e.timestamp)
