"""
Main Orchestrator for the IRPF import pipeline

This module ties together all the components and defines the
end-to-end import flow:

    request -> validate -> create declaration ("Processando") -> acknowledge
            -> [background] PDF text -> Gemini -> normalize -> fan-out
            -> terminal status

DESIGN DECISION: The flow is split in two halves.
- The first half is awaited by the caller and only does fast work.
  Its errors are raised to the caller; no declaration exists yet.
- The second half runs on the BackgroundRunner. Its errors are never
  raised: each one becomes a terminal status on the declaration plus an
  audit event. Callers observe the outcome by reading the declaration.

Every step is audited under one correlation id.
"""

import asyncio
from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from triad3.agents import (
    DeclarationExtractionAgent,
    EmptyResponseError,
    ExtractionServiceError,
)
from triad3.analysis import AllocationAnalyzer
from triad3.audit import AuditLogger, configure_logging, create_correlation_id
from triad3.config import get_settings
from triad3.config.settings import AppSettings
from triad3.fanout import FanOutPersister, RecordMappingError
from triad3.models.declaration import (
    Declaration,
    ImportAcknowledgment,
    ImportOutcome,
    ImportStatus,
    ImportStatusKind,
    ImportSummary,
    PipelineStep,
)
from triad3.services.pdf import PDFTextExtractor, UnreadableDocumentError
from triad3.services.storage import (
    DeclarationStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDeclarationStorage,
    GoogleSheetsRecordStorage,
    InMemoryDeclarationStorage,
    InMemoryRecordStorage,
    NotFoundError,
    RecordStorageInterface,
)
from triad3.tasks import BackgroundRunner
from triad3.validation import (
    ExtractionSchemaError,
    ImportRequestValidator,
    MalformedExtractionPayloadError,
    NoDataExtractedError,
    RequestValidationError,
    ResponseNormalizer,
)

logger = structlog.get_logger(__name__)


class DeclarationImportFlow:
    """
    Orchestrates the declaration import.

    Flow:
    1. Validate → account id, tax year, filename, size, extension
    2. Create → Declaration with status "Processando"
    3. Acknowledge → return the declaration id immediately
    4. Extract text → PDF text layer (background from here on)
    5. Call AI → one Gemini request, no retries
    6. Normalize → clean and parse the reply into the typed schema
    7. Fan out → eight collections, each failing on its own
    8. Report → exactly one terminal status
    """

    def __init__(
        self,
        declaration_storage: DeclarationStorageInterface,
        record_storage: RecordStorageInterface,
        agent: Optional[DeclarationExtractionAgent] = None,
        text_extractor: Optional[PDFTextExtractor] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        persister: Optional[FanOutPersister] = None,
        request_validator: Optional[ImportRequestValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        runner: Optional[BackgroundRunner] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._settings = settings or get_settings().app
        self._declarations = declaration_storage
        self._records = record_storage
        self._audit_logger = audit_logger
        # Created on first use so a missing Gemini key fails the import, not startup
        self._agent = agent
        self._text_extractor = text_extractor or PDFTextExtractor()
        self._normalizer = normalizer or ResponseNormalizer()
        self._persister = persister or FanOutPersister(
            record_storage=record_storage,
            declaration_storage=declaration_storage,
            audit_logger=audit_logger,
            fallback_text=self._settings.fallback_text,
        )
        self._validator = request_validator or ImportRequestValidator(self._settings)
        self._runner = runner

    @property
    def agent(self) -> DeclarationExtractionAgent:
        if self._agent is None:
            self._agent = DeclarationExtractionAgent()
        return self._agent

    @property
    def runner(self) -> BackgroundRunner:
        if self._runner is None:
            self._runner = BackgroundRunner()
        return self._runner

    # -------------------------------------------------------------------------
    # Synchronous half
    # -------------------------------------------------------------------------

    async def create_declaration(
        self,
        account_id: str,
        tax_year: int,
        filename: str,
        correlation_id: Optional[UUID] = None,
    ) -> Declaration:
        """
        Validate the request fields and insert a "Processando" declaration.

        Raises:
            MissingRequiredFieldError, InvalidFieldValueError, StorageError
        """
        correlation_id = correlation_id or create_correlation_id()
        self._validator.validate_declaration_fields(account_id, tax_year, filename)

        declaration = Declaration(
            user_id=account_id,
            ano=tax_year,
            arquivo_original=filename,
        )
        declaration = await self._declarations.create_declaration(declaration)

        logger.info(
            "declaration_created",
            declaration_id=str(declaration.id),
            tax_year=tax_year,
        )
        if self._audit_logger:
            await self._audit_logger.log_declaration_created(
                declaration_id=declaration.id,
                account_id=account_id,
                tax_year=tax_year,
                filename=filename,
                correlation_id=correlation_id,
            )
        return declaration

    async def start_import(
        self,
        account_id: str,
        tax_year: int,
        filename: str,
        file_bytes: bytes,
        correlation_id: Optional[UUID] = None,
    ) -> ImportAcknowledgment:
        """
        Accept an upload and dispatch the import.

        Returns as soon as the declaration exists; the rest runs on the
        background runner.

        Raises:
            RequestValidationError: bad input, nothing was stored
            StorageError: the declaration could not be created
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            self._validator.validate(account_id, tax_year, filename, file_bytes)
        except RequestValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_request_rejected(
                    account_id=account_id,
                    filename=filename,
                    error_code=e.error_code,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        declaration = await self.create_declaration(
            account_id=account_id,
            tax_year=tax_year,
            filename=filename,
            correlation_id=correlation_id,
        )

        self.runner.submit(
            self.run_import(declaration, file_bytes, correlation_id),
            name=f"import-{declaration.id}",
        )
        if self._audit_logger:
            await self._audit_logger.log_import_dispatched(
                declaration_id=declaration.id,
                file_size=len(file_bytes),
                correlation_id=correlation_id,
            )

        return ImportAcknowledgment(
            declaration_id=declaration.id,
            status=declaration.status,
            status_label=declaration.status_label(self._settings.status_detail_max_chars),
            correlation_id=correlation_id,
        )

    # -------------------------------------------------------------------------
    # Background half
    # -------------------------------------------------------------------------

    async def run_import(
        self,
        declaration: Declaration,
        file_bytes: bytes,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> ImportOutcome:
        """
        Run extraction through fan-out and write the terminal status.

        Never raises. Every failure ends as a terminal status.
        """
        correlation_id = correlation_id or create_correlation_id()
        log = logger.bind(
            declaration_id=str(declaration.id),
            correlation_id=str(correlation_id),
        )
        max_detail = self._settings.status_detail_max_chars

        # Only a declaration still "Processando" may be imported into
        try:
            current = await self._declarations.get_declaration(declaration.id)
        except Exception as e:
            log.error("declaration_read_failed", error=str(e))
            current = None
        if current is None or current.status.kind != ImportStatusKind.PROCESSING:
            status = (
                current.status if current is not None
                else ImportStatus.failed(PipelineStep.INITIALIZATION, "Declaration not found")
            )
            log.warning("import_refused", status=status.kind.value)
            if self._audit_logger:
                await self._audit_logger.log_import_refused(
                    declaration_id=declaration.id,
                    current_status=status.label(max_detail),
                    correlation_id=correlation_id,
                )
            return ImportOutcome(
                declaration_id=declaration.id,
                status=status,
                status_label=status.label(max_detail),
            )
        declaration = current

        summary: Optional[ImportSummary] = None
        step = PipelineStep.TEXT_EXTRACTION

        try:
            transcript = await asyncio.to_thread(self._text_extractor.extract, file_bytes)
            if transcript.char_count < self._settings.min_transcript_chars:
                raise UnreadableDocumentError(
                    f"PDF text too short ({transcript.char_count} characters)",
                    reason="too_short",
                )
            log.info("text_extracted", pages=transcript.page_count, chars=transcript.char_count)
            if self._audit_logger:
                await self._audit_logger.log_text_extracted(
                    declaration_id=declaration.id,
                    page_count=transcript.page_count,
                    char_count=transcript.char_count,
                    correlation_id=correlation_id,
                )

            step = PipelineStep.AI_CALL
            agent = self.agent
            if self._audit_logger:
                await self._audit_logger.log_extraction_requested(
                    declaration_id=declaration.id,
                    model_name=agent.model_name,
                    transcript_chars=transcript.char_count,
                    correlation_id=correlation_id,
                )
            raw_reply = await agent.extract(transcript.text, declaration.ano)

            step = PipelineStep.RESPONSE_PROCESSING
            normalized = self._normalizer.normalize(raw_reply)
            log.info("extraction_normalized", counts=normalized.item_counts)
            if self._audit_logger:
                await self._audit_logger.log_extraction_completed(
                    declaration_id=declaration.id,
                    item_counts=normalized.item_counts,
                    correlation_id=correlation_id,
                )

            step = PipelineStep.PERSISTENCE
            summary = await self._persister.persist(
                normalized,
                declaration,
                today=today,
                correlation_id=correlation_id,
            )

            step = PipelineStep.FINALIZATION
            status = ImportStatus.imported()

        except EmptyResponseError as e:
            status = ImportStatus(kind=ImportStatusKind.EMPTY_RESPONSE)
            await self._audit_rejection(declaration.id, e, correlation_id)
        except MalformedExtractionPayloadError as e:
            status = ImportStatus(kind=ImportStatusKind.PARSE_ERROR)
            await self._audit_rejection(declaration.id, e, correlation_id, preview=e.preview)
        except NoDataExtractedError as e:
            status = ImportStatus(kind=ImportStatusKind.NO_DATA)
            await self._audit_rejection(declaration.id, e, correlation_id)
        except (ExtractionSchemaError, RecordMappingError) as e:
            status = ImportStatus(kind=ImportStatusKind.DATA_ERROR)
            await self._audit_rejection(declaration.id, e, correlation_id)
        except UnreadableDocumentError as e:
            status = ImportStatus.failed(step, str(e)[:max_detail])
            log.warning("document_unreadable", reason=e.reason, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_document_unreadable(
                    declaration_id=declaration.id,
                    reason=str(e),
                    correlation_id=correlation_id,
                )
        except ExtractionServiceError as e:
            # Rate limit, quota and upstream failures: not retried
            status = ImportStatus.failed(step, str(e)[:max_detail])
            log.error("extraction_service_failed", error_code=e.error_code, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_code=e.error_code,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            status = ImportStatus.failed(step, message[:max_detail])
            log.exception("import_failed", step=step.value)
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"declaration_id": str(declaration.id), "step": step.value},
                    correlation_id=correlation_id,
                )

        try:
            await self._report_status(declaration.id, status, correlation_id)
        except Exception as e:
            log.error("status_update_failed", status=status.kind.value, error=str(e))

        return ImportOutcome(
            declaration_id=declaration.id,
            status=status,
            status_label=status.label(max_detail),
            summary=summary,
        )

    async def _audit_rejection(
        self,
        declaration_id: UUID,
        error: Exception,
        correlation_id: UUID,
        preview: Optional[str] = None,
    ) -> None:
        error_code = getattr(error, "error_code", type(error).__name__)
        logger.warning(
            "extraction_rejected",
            declaration_id=str(declaration_id),
            error_code=error_code,
            error=str(error),
        )
        if self._audit_logger:
            await self._audit_logger.log_extraction_rejected(
                declaration_id=declaration_id,
                error_code=error_code,
                error_message=str(error),
                correlation_id=correlation_id,
                preview=preview,
            )

    async def _report_status(
        self,
        declaration_id: UUID,
        status: ImportStatus,
        correlation_id: UUID,
    ) -> Declaration:
        """
        Write a terminal status, checked against the stored one.

        Raises:
            NotFoundError: the declaration is gone
            InvalidStatusTransitionError: it already has a terminal status
        """
        current = await self._declarations.get_declaration(declaration_id)
        if current is None:
            raise NotFoundError(f"Declaration not found: {declaration_id}")

        current.transition(status)
        updated = await self._declarations.update_declaration(
            declaration_id,
            {"status": current.status, "updated_at": current.updated_at},
        )

        label = status.label(self._settings.status_detail_max_chars)
        logger.info(
            "declaration_status_changed",
            declaration_id=str(declaration_id),
            status=label,
        )
        if self._audit_logger:
            await self._audit_logger.log_status_changed(
                declaration_id=declaration_id,
                status_kind=status.kind.value,
                status_label=label,
                step=status.step.value if status.step else None,
                correlation_id=correlation_id,
            )
        return updated

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_declaration(self, declaration_id: UUID) -> Optional[Declaration]:
        """Current state of a declaration, for polling."""
        return await self._declarations.get_declaration(declaration_id)

    async def list_declarations(
        self,
        account_id: str,
        tax_year: Optional[int] = None,
    ) -> list[Declaration]:
        return await self._declarations.list_declarations(account_id, tax_year)


def create_app_components(
    use_storage: bool = True,
) -> tuple[DeclarationImportFlow, AllocationAnalyzer, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.

    Returns:
        (import_flow, allocation_analyzer, sheets_client)
    """
    sheets_client = None
    declaration_storage: DeclarationStorageInterface
    record_storage: RecordStorageInterface
    app_settings = get_settings().app
    configure_logging(app_settings.debug_mode)

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            declaration_storage = GoogleSheetsDeclarationStorage(
                sheets_client,
                status_detail_max_chars=app_settings.status_detail_max_chars,
            )
            record_storage = GoogleSheetsRecordStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            use_storage = False

    if not use_storage:
        declaration_storage = InMemoryDeclarationStorage()
        record_storage = InMemoryRecordStorage()
        audit_logger = AuditLogger()  # Local-only logging

    import_flow = DeclarationImportFlow(
        declaration_storage=declaration_storage,
        record_storage=record_storage,
        audit_logger=audit_logger,
        settings=app_settings,
    )
    allocation_analyzer = AllocationAnalyzer(
        record_storage=record_storage,
        audit_logger=audit_logger,
    )

    return import_flow, allocation_analyzer, sheets_client
