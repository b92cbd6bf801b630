"""
Audit Logger

DESIGN DECISION: Every step of an import is logged.
The background half of an import has no caller to report to, so this
trail (plus the declaration status) is the only way to see what
happened to a given upload.

The audit logger:
- Is async to match the pipeline
- Never raises: a failing audit sink must not fail an import
- Supports correlation IDs to trace all events of one import
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from triad3.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from triad3.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug: bool = False) -> None:
    """Route structlog output through the stdlib root logger."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("triad3.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_declaration_created(
        self,
        declaration_id: UUID,
        account_id: str,
        tax_year: int,
        filename: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.declaration_created(
            declaration_id=declaration_id,
            account_id=account_id,
            tax_year=tax_year,
            filename=filename,
            correlation_id=correlation_id,
        ))

    async def log_request_rejected(
        self,
        account_id: Optional[str],
        filename: Optional[str],
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_request_rejected(
            account_id=account_id,
            filename=filename,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_import_dispatched(
        self,
        declaration_id: UUID,
        file_size: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_dispatched(
            declaration_id=declaration_id,
            file_size=file_size,
            correlation_id=correlation_id,
        ))

    async def log_import_refused(
        self,
        declaration_id: UUID,
        current_status: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_refused(
            declaration_id=declaration_id,
            current_status=current_status,
            correlation_id=correlation_id,
        ))

    async def log_text_extracted(
        self,
        declaration_id: UUID,
        page_count: int,
        char_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.text_extracted(
            declaration_id=declaration_id,
            page_count=page_count,
            char_count=char_count,
            correlation_id=correlation_id,
        ))

    async def log_document_unreadable(
        self,
        declaration_id: UUID,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.document_unreadable(
            declaration_id=declaration_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_extraction_requested(
        self,
        declaration_id: UUID,
        model_name: str,
        transcript_chars: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_requested(
            declaration_id=declaration_id,
            model_name=model_name,
            transcript_chars=transcript_chars,
            correlation_id=correlation_id,
        ))

    async def log_extraction_completed(
        self,
        declaration_id: UUID,
        item_counts: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_completed(
            declaration_id=declaration_id,
            item_counts=item_counts,
            correlation_id=correlation_id,
        ))

    async def log_extraction_rejected(
        self,
        declaration_id: UUID,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
        preview: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_rejected(
            declaration_id=declaration_id,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
            preview=preview,
        ))

    async def log_collection_inserted(
        self,
        declaration_id: UUID,
        collection: str,
        inserted: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.collection_inserted(
            declaration_id=declaration_id,
            collection=collection,
            inserted=inserted,
            correlation_id=correlation_id,
        ))

    async def log_collection_insert_failed(
        self,
        declaration_id: UUID,
        collection: str,
        attempted: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.collection_insert_failed(
            declaration_id=declaration_id,
            collection=collection,
            attempted=attempted,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_header_updated(
        self,
        declaration_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.header_updated(
            declaration_id=declaration_id,
            correlation_id=correlation_id,
        ))

    async def log_header_update_failed(
        self,
        declaration_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.header_update_failed(
            declaration_id=declaration_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_status_changed(
        self,
        declaration_id: UUID,
        status_kind: str,
        status_label: str,
        step: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.status_changed(
            declaration_id=declaration_id,
            status_kind=status_kind,
            status_label=status_label,
            step=step,
            correlation_id=correlation_id,
        ))

    async def log_allocation_computed(
        self,
        account_id: str,
        patrimonio_liquido: str,
        quantities: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.allocation_computed(
            account_id=account_id,
            patrimonio_liquido=patrimonio_liquido,
            quantities=quantities,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an import request and pass it
    through all subsequent operations.
    """
    return uuid4()
