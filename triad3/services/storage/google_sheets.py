"""
Google Sheets Storage Implementation

DESIGN DECISION: Each collection is one worksheet in the configured
spreadsheet, with a header row equal to the collection's columns.
Worksheets are created on first use.

TRADEOFFS:
- No transactions. ``append_rows`` is a single API call, so one
  collection's bulk insert lands completely or not at all, which is
  all the fan-out needs.
- Limited query capabilities (we filter in Python)

Only connection setup and audit appends are retried. Collection inserts
are not: a retried append after a timeout could duplicate rows.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from triad3.config import get_settings
from triad3.config.settings import GoogleSheetsSettings
from triad3.models.audit import AuditEvent, AuditEventType, AuditSeverity
from triad3.models.declaration import (
    Declaration,
    ImportStatus,
    ImportStatusKind,
    PipelineStep,
)
from triad3.models.records import RECORD_MODELS, RecordCollection
from triad3.services.storage.interface import (
    AuditStorageInterface,
    DeclarationStorageInterface,
    NotFoundError,
    RecordStorageInterface,
    StorageConnectionError,
    StorageError,
)

logger = structlog.get_logger(__name__)

DECLARATION_COLUMNS = [
    "id",
    "user_id",
    "ano",
    "status",
    "status_kind",
    "status_step",
    "status_detail",
    "arquivo_original",
    "dados_brutos",
    "valor_pagar",
    "valor_restituir",
    "recibo",
    "prazo_limite",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "account_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
    "is_user_action",
]


def record_columns(collection: RecordCollection) -> list[str]:
    """Column order of a collection worksheet."""
    return list(RECORD_MODELS[collection].model_fields)


def to_cell(value: Any) -> Any:
    """Convert a Python value to a spreadsheet cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (int, float, str)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet lookup, with retry on both.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound as e:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet whose first row is ``columns``."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        self._worksheets[title] = sheet
        return sheet

    def get_declarations_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.declarations_sheet_name,
            DECLARATION_COLUMNS,
        )

    def get_collection_sheet(self, collection: RecordCollection) -> gspread.Worksheet:
        return self.get_worksheet(collection.value, record_columns(collection))

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,
        )


def _safe_getter(row: list):
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


class GoogleSheetsDeclarationStorage(DeclarationStorageInterface):
    """
    Declarations, one per row.

    The rendered status label is stored next to its tagged parts so the
    sheet stays readable while the parts stay the source of truth.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        status_detail_max_chars: int = 100,
    ):
        self._client = client or GoogleSheetsClient()
        self._status_detail_max_chars = status_detail_max_chars

    def _declaration_to_row(self, declaration: Declaration) -> list:
        status = declaration.status
        return [
            str(declaration.id),
            declaration.user_id,
            declaration.ano,
            status.label(self._status_detail_max_chars),
            status.kind.value,
            status.step.value if status.step else "",
            status.detail or "",
            declaration.arquivo_original,
            to_cell(declaration.dados_brutos),
            str(declaration.valor_pagar),
            str(declaration.valor_restituir),
            declaration.recibo or "",
            to_cell(declaration.prazo_limite),
            declaration.created_at.isoformat(),
            declaration.updated_at.isoformat(),
        ]

    def _row_to_declaration(self, row: list) -> Declaration:
        safe_get = _safe_getter(row)

        status = ImportStatus(
            kind=ImportStatusKind(safe_get(4, ImportStatusKind.PROCESSING.value)),
            step=PipelineStep(safe_get(5)) if safe_get(5) else None,
            detail=safe_get(6) or None,
        )
        return Declaration(
            id=UUID(safe_get(0)),
            user_id=safe_get(1),
            ano=int(safe_get(2)),
            status=status,
            arquivo_original=safe_get(7),
            dados_brutos=json.loads(safe_get(8)) if safe_get(8) else None,
            valor_pagar=Decimal(safe_get(9, "0")),
            valor_restituir=Decimal(safe_get(10, "0")),
            recibo=safe_get(11) or None,
            prazo_limite=date.fromisoformat(safe_get(12)) if safe_get(12) else None,
            created_at=datetime.fromisoformat(safe_get(13)),
            updated_at=datetime.fromisoformat(safe_get(14)),
        )

    def _find_row(self, sheet: gspread.Worksheet, declaration_id: UUID):
        """Return (sheet_row_number, row) or (None, None)."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # row 1 is header
            if row and row[0] == str(declaration_id):
                return idx, row
        return None, None

    async def create_declaration(self, declaration: Declaration) -> Declaration:
        try:
            sheet = self._client.get_declarations_sheet()
            sheet.append_row(
                self._declaration_to_row(declaration),
                value_input_option="RAW",
            )
            return declaration
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create declaration: {e}") from e

    async def get_declaration(self, declaration_id: UUID) -> Optional[Declaration]:
        try:
            sheet = self._client.get_declarations_sheet()
            _, row = self._find_row(sheet, declaration_id)
            return self._row_to_declaration(row) if row else None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get declaration: {e}") from e

    async def update_declaration(
        self,
        declaration_id: UUID,
        changes: dict[str, Any],
    ) -> Declaration:
        try:
            sheet = self._client.get_declarations_sheet()
            idx, row = self._find_row(sheet, declaration_id)
            if row is None:
                raise NotFoundError(f"Declaration not found: {declaration_id}")

            data = self._row_to_declaration(row).model_dump()
            data["updated_at"] = datetime.utcnow()
            data.update(changes)
            updated = Declaration.model_validate(data)

            sheet.update(
                range_name=f"A{idx}",
                values=[self._declaration_to_row(updated)],
                value_input_option="RAW",
            )
            return updated
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update declaration: {e}") from e

    async def list_declarations(
        self,
        user_id: str,
        tax_year: Optional[int] = None,
    ) -> list[Declaration]:
        try:
            sheet = self._client.get_declarations_sheet()
            all_rows = sheet.get_all_values()[1:]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list declarations: {e}") from e

        declarations = []
        for row in all_rows:
            if not row or len(row) < 3 or row[1] != user_id:
                continue
            try:
                declaration = self._row_to_declaration(row)
            except (ValueError, TypeError) as e:
                logger.warning("declaration_row_skipped", row_id=row[0], error=str(e))
                continue
            if tax_year is not None and declaration.ano != tax_year:
                continue
            declarations.append(declaration)

        declarations.sort(key=lambda d: d.created_at, reverse=True)
        return declarations


class GoogleSheetsRecordStorage(RecordStorageInterface):
    """
    The eight destination collections, one worksheet each.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def insert_many(
        self,
        collection: RecordCollection,
        rows: list[dict[str, Any]],
    ) -> int:
        if not rows:
            return 0
        columns = record_columns(collection)
        values = [[to_cell(row.get(column)) for column in columns] for row in rows]
        try:
            sheet = self._client.get_collection_sheet(collection)
            sheet.append_rows(values, value_input_option="RAW")
            return len(values)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {collection.value}: {e}") from e

    async def list_records(
        self,
        collection: RecordCollection,
        user_id: str,
        declaration_id: Optional[UUID] = None,
    ) -> list[dict[str, Any]]:
        try:
            sheet = self._client.get_collection_sheet(collection)
            all_rows = sheet.get_all_values()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {collection.value}: {e}") from e

        if not all_rows:
            return []
        header, body = all_rows[0], all_rows[1:]
        model = RECORD_MODELS[collection]

        records = []
        for row in body:
            data = {name: (value if value != "" else None) for name, value in zip(header, row)}
            if data.get("user_id") != user_id:
                continue
            if declaration_id is not None and data.get("declaracao_id") != str(declaration_id):
                continue
            data = {key: value for key, value in data.items() if value is not None}
            try:
                records.append(model.model_validate(data).to_row())
            except ValueError as e:
                logger.warning(
                    "record_row_skipped",
                    collection=collection.value,
                    error=str(e),
                )
        return records


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        safe_get = _safe_getter(row)

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            account_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_code=safe_get(10) or None,
            error_message=safe_get(11) or None,
            is_user_action=safe_get(12).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, row: list) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Never raises."""
        try:
            self._append_row(event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging must not break the import
            logger.warning(
                "audit_append_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    def _load_events(self, matches) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = []
        for row in all_rows:
            if not row or not matches(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return self._load_events(
            lambda row: len(row) > 7 and row[7] == str(correlation_id)
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return self._load_events(
            lambda row: len(row) > 5 and row[4] == entity_type and row[5] == str(entity_id)
        )
