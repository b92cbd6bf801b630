"""
Fan-out Persister

Writes one normalized extraction into the eight destination collections
and the declaration header.

DESIGN DECISION: Two phases.

PHASE 1 - MAP:
All eight collections are mapped before anything is written. A mapping
failure raises RecordMappingError and nothing is inserted.

PHASE 2 - WRITE:
One bulk insert per non-empty collection, in fixed order. Each insert
fails on its own: the error is recorded on that collection's result and
the next collection is still written. Then the header totals and the
raw payload are written onto the declaration. A failed header update is
logged and recorded; inserted rows are kept.

There is no deduplication against earlier imports. Importing the same
PDF twice creates two declarations with two full sets of rows.
"""

from datetime import date
from typing import Any, Optional
from uuid import UUID

import structlog

from triad3.audit import AuditLogger, create_correlation_id
from triad3.fanout.mappers import MappingContext, map_items
from triad3.models.declaration import CollectionResult, Declaration, ImportSummary
from triad3.models.extraction import ExtractedDeclaration, NormalizedExtraction
from triad3.models.records import RecordCollection
from triad3.services.storage import DeclarationStorageInterface, RecordStorageInterface

logger = structlog.get_logger(__name__)


class FanOutPersister:
    """
    Maps and inserts extracted items, collection by collection.
    """

    def __init__(
        self,
        record_storage: RecordStorageInterface,
        declaration_storage: DeclarationStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        fallback_text: str = "Não informado",
    ):
        self._records = record_storage
        self._declarations = declaration_storage
        self._audit_logger = audit_logger
        self._fallback_text = fallback_text

    def build_rows(
        self,
        extracted: ExtractedDeclaration,
        declaration: Declaration,
        today: date,
    ) -> dict[RecordCollection, list[dict[str, Any]]]:
        """
        Map every collection to storage rows.

        Raises:
            RecordMappingError: nothing should be inserted
        """
        ctx = MappingContext(
            user_id=declaration.user_id,
            declaration_id=declaration.id,
            tax_year=declaration.ano,
            today=today,
            fallback_text=self._fallback_text,
        )
        return {
            collection: [
                record.to_row()
                for record in map_items(collection, extracted.items_for(collection), ctx)
            ]
            for collection in RecordCollection
        }

    async def _insert_collection(
        self,
        collection: RecordCollection,
        rows: list[dict[str, Any]],
        declaration_id: UUID,
        correlation_id: UUID,
    ) -> CollectionResult:
        result = CollectionResult(collection=collection.value, attempted=len(rows))
        if not rows:
            return result

        try:
            result.inserted = await self._records.insert_many(collection, rows)
        except Exception as e:
            # One collection failing must not stop the others
            result.inserted = 0
            result.error = str(e) or type(e).__name__
            logger.warning(
                "collection_insert_failed",
                collection=collection.value,
                declaration_id=str(declaration_id),
                attempted=len(rows),
                error=result.error,
            )
            if self._audit_logger:
                await self._audit_logger.log_collection_insert_failed(
                    declaration_id=declaration_id,
                    collection=collection.value,
                    attempted=len(rows),
                    error_message=result.error,
                    correlation_id=correlation_id,
                )
            return result

        if self._audit_logger:
            await self._audit_logger.log_collection_inserted(
                declaration_id=declaration_id,
                collection=collection.value,
                inserted=result.inserted,
                correlation_id=correlation_id,
            )
        return result

    def header_changes(
        self,
        normalized: NormalizedExtraction,
        summary: ImportSummary,
    ) -> dict[str, Any]:
        """Declaration fields written after the inserts."""
        header = normalized.extracted.declaracao
        return {
            "valor_pagar": header.valor_pagar or 0,
            "valor_restituir": header.valor_restituir or 0,
            "recibo": header.recibo,
            "prazo_limite": header.prazo_limite,
            "dados_brutos": {
                "extraido": normalized.payload,
                "resumo": summary.counts(),
                "erros": summary.errors(),
            },
        }

    async def persist(
        self,
        normalized: NormalizedExtraction,
        declaration: Declaration,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ImportSummary:
        """
        Map, insert every collection, then update the declaration header.

        Returns:
            Per-collection results. Insert and header failures are reported
            here, not raised.

        Raises:
            RecordMappingError: mapping failed, nothing was written
        """
        correlation_id = correlation_id or create_correlation_id()
        rows_by_collection = self.build_rows(
            normalized.extracted,
            declaration,
            today or date.today(),
        )

        summary = ImportSummary()
        for collection, rows in rows_by_collection.items():
            summary.collections.append(
                await self._insert_collection(collection, rows, declaration.id, correlation_id)
            )

        try:
            await self._declarations.update_declaration(
                declaration.id,
                self.header_changes(normalized, summary),
            )
            summary.header_updated = True
        except Exception as e:
            summary.header_error = str(e) or type(e).__name__
            logger.error(
                "declaration_header_update_failed",
                declaration_id=str(declaration.id),
                error=summary.header_error,
            )
            if self._audit_logger:
                await self._audit_logger.log_header_update_failed(
                    declaration_id=declaration.id,
                    error_message=summary.header_error,
                    correlation_id=correlation_id,
                )
        else:
            if self._audit_logger:
                await self._audit_logger.log_header_updated(
                    declaration_id=declaration.id,
                    correlation_id=correlation_id,
                )

        logger.info(
            "fanout_completed",
            declaration_id=str(declaration.id),
            counts=summary.counts(),
            failed=summary.failed_collections,
        )
        return summary
