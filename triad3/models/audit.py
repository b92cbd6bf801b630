"""
Audit Models for the IRPF import pipeline

Every step of an import is logged for audit purposes. Because the
background half of an import has no caller to report to, the audit
trail (together with the declaration status) is how failures are seen.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the import pipeline has its own event type.
    """
    # Request
    DECLARATION_CREATED = "declaration_created"
    IMPORT_REQUEST_REJECTED = "import_request_rejected"
    IMPORT_DISPATCHED = "import_dispatched"
    IMPORT_REFUSED = "import_refused"

    # Text extraction
    TEXT_EXTRACTED = "text_extracted"
    DOCUMENT_UNREADABLE = "document_unreadable"

    # AI extraction
    EXTRACTION_REQUESTED = "extraction_requested"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_REJECTED = "extraction_rejected"

    # Persistence
    COLLECTION_INSERTED = "collection_inserted"
    COLLECTION_INSERT_FAILED = "collection_insert_failed"
    DECLARATION_HEADER_UPDATED = "declaration_header_updated"
    DECLARATION_HEADER_UPDATE_FAILED = "declaration_header_update_failed"

    # Lifecycle
    STATUS_CHANGED = "status_changed"

    # Analysis
    ALLOCATION_COMPUTED = "allocation_computed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'declaration', 'collection')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    account_id: Optional[str] = Field(
        default=None,
        description="Account the event belongs to"
    )

    # Correlation - all events of one import share it
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "account_id": self.account_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Column order matches AUDIT_COLUMNS in the Sheets backend.
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            self.account_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _short(message: str, limit: int = 500) -> str:
    return message[:limit]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.declaration_created(declaration_id, ...)
        event = AuditEventBuilder.status_changed(declaration_id, ...)
    """

    @staticmethod
    def declaration_created(
        declaration_id: UUID,
        account_id: str,
        tax_year: int,
        filename: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DECLARATION_CREATED,
            entity_type="declaration",
            entity_id=declaration_id,
            account_id=account_id,
            correlation_id=correlation_id,
            description=_short(f"Declaration {tax_year} created from {filename}"),
            details={
                "tax_year": tax_year,
                "filename": filename,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_request_rejected(
        account_id: Optional[str],
        filename: Optional[str],
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REQUEST_REJECTED,
            severity=AuditSeverity.WARNING,
            account_id=account_id,
            correlation_id=correlation_id,
            description=_short(f"Import request rejected: {error_code}"),
            details={"filename": filename},
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def import_dispatched(
        declaration_id: UUID,
        file_size: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_DISPATCHED,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description="Import dispatched to background runner",
            details={"file_size_bytes": file_size},
        )

    @staticmethod
    def import_refused(
        declaration_id: UUID,
        current_status: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REFUSED,
            severity=AuditSeverity.WARNING,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description=_short(f"Import refused, declaration is {current_status}"),
            details={"current_status": current_status},
        )

    @staticmethod
    def text_extracted(
        declaration_id: UUID,
        page_count: int,
        char_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEXT_EXTRACTED,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description=f"Extracted {char_count} characters from {page_count} pages",
            details={
                "page_count": page_count,
                "char_count": char_count,
            },
        )

    @staticmethod
    def document_unreadable(
        declaration_id: UUID,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_UNREADABLE,
            severity=AuditSeverity.WARNING,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description="Declaration document could not be read",
            error_code="unreadable_document",
            error_message=reason,
        )

    @staticmethod
    def extraction_requested(
        declaration_id: UUID,
        model_name: str,
        transcript_chars: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_REQUESTED,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description=f"Extraction requested from {model_name}",
            details={
                "model_name": model_name,
                "transcript_chars": transcript_chars,
            },
        )

    @staticmethod
    def extraction_completed(
        declaration_id: UUID,
        item_counts: dict[str, int],
        correlation_id: UUID,
    ) -> AuditEvent:
        total = sum(item_counts.values())
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description=f"Extraction produced {total} items",
            details={"item_counts": item_counts},
        )

    @staticmethod
    def extraction_rejected(
        declaration_id: UUID,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
        preview: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description=_short(f"Extraction reply rejected: {error_code}"),
            details={"preview": preview} if preview is not None else {},
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def collection_inserted(
        declaration_id: UUID,
        collection: str,
        inserted: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_INSERTED,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description=f"Inserted {inserted} rows into {collection}",
            details={
                "collection": collection,
                "inserted": inserted,
            },
        )

    @staticmethod
    def collection_insert_failed(
        declaration_id: UUID,
        collection: str,
        attempted: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_INSERT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description=f"Insert into {collection} failed ({attempted} rows)",
            details={
                "collection": collection,
                "attempted": attempted,
            },
            error_message=error_message,
        )

    @staticmethod
    def header_updated(
        declaration_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DECLARATION_HEADER_UPDATED,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description="Declaration header totals written",
        )

    @staticmethod
    def header_update_failed(
        declaration_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DECLARATION_HEADER_UPDATE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description="Declaration header update failed",
            error_message=error_message,
        )

    @staticmethod
    def status_changed(
        declaration_id: UUID,
        status_kind: str,
        status_label: str,
        step: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        failed = status_kind not in ("processing", "imported")
        return AuditEvent(
            event_type=AuditEventType.STATUS_CHANGED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="declaration",
            entity_id=declaration_id,
            correlation_id=correlation_id,
            description=_short(f"Status set to: {status_label}"),
            details={
                "status_kind": status_kind,
                "step": step,
            },
        )

    @staticmethod
    def allocation_computed(
        account_id: str,
        patrimonio_liquido: str,
        quantities: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_COMPUTED,
            entity_type="allocation",
            account_id=account_id,
            correlation_id=correlation_id,
            description=f"Allocation computed, net worth R$ {patrimonio_liquido}",
            details={"quantities": quantities},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=_short(f"System error: {error_type}"),
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_code=error_code,
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
