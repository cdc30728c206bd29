"""API router for judicial-core.

All endpoints are registered here and included in main.py under the /api/v1
prefix. Routes are thin; all business logic lives in the service layer.

Endpoints:
- POST/GET    /decisions                   — Draft / list decisions
- GET/PATCH   /decisions/{id}              — Read / edit a decision
- DELETE      /decisions/{id}              — Delete a draft
- POST        /decisions/{id}/prepare      — Move a draft to READY_TO_SIGN
- POST        /decisions/{id}/sign         — Sign a decision
- GET         /decisions/{id}/verify       — Re-hash the signed artifact
- GET         /decisions/{id}/history      — Pre-image history
- GET         /decisions/{id}/artifact     — Download the signed artifact
- POST        /decisions/{id}/void         — Void an unsigned decision (administrators)
- GET         /cases/{id}                  — Case view
- POST        /cases/{id}/reassign         — Reassign a case (administrators)
- GET         /documents/{id}              — Signed document metadata
- GET         /documents/{id}/content      — Download a signed document
- GET         /audit/events                — Query the audit log
- GET         /audit/verify                — Verify the audit hash chain
- GET         /audit/statistics            — Audit counts by outcome
- GET         /audit/export                — CSV export of the audit log
"""

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from judicial_core.adapters.artifacts import FilesystemArtifactStore, JsonArtifactRenderer
from judicial_core.adapters.database import get_db_session
from judicial_core.adapters.repositories import (
    CaseRepository,
    CaseTimelineRepository,
    DecisionHistoryRepository,
    DecisionRepository,
    DocumentRepository,
    PseudonymRepository,
    SubjectRepository,
)
from judicial_core.adapters.signing import Ed25519KeyDirectorySigner
from judicial_core.api.schemas import (
    AuditChainReportResponse,
    AuditEventListResponse,
    AuditEventResponse,
    AuditStatisticsResponse,
    CaseReassignRequest,
    CaseResponse,
    DecisionCreateRequest,
    DecisionHistoryResponse,
    DecisionListResponse,
    DecisionResponse,
    DecisionUpdateRequest,
    DecisionVoidRequest,
    DocumentResponse,
    IntegrityReportResponse,
)
from judicial_core.auth import Caller, get_current_caller
from judicial_core.core.audit import AuditFilters, AuditLog
from judicial_core.core.authorization import (
    CaseDescriptor,
    DecisionDescriptor,
    DocumentDescriptor,
    OwnershipGuard,
)
from judicial_core.core.cases import CaseService
from judicial_core.core.decisions import DecisionService
from judicial_core.core.documents import DocumentService
from judicial_core.core.models import SubjectRole
from judicial_core.core.pseudonyms import PseudonymDirectory
from judicial_core.errors import ForbiddenError
from judicial_core.observability import get_logger
from judicial_core.settings import Settings

logger = get_logger(__name__)

router = APIRouter(tags=["judicial-core"])

AUDIT_READER_ROLES = frozenset({SubjectRole.ADMINISTRATOR, SubjectRole.AUDITOR})


# ---------------------------------------------------------------------------
# Dependency factories: wire repositories, services and adapters together
# ---------------------------------------------------------------------------


def get_audit_log(request: Request) -> AuditLog:
    """Return the process-wide AuditLog created in the lifespan handler."""
    return request.app.state.audit_log


def get_settings(request: Request) -> Settings:
    """Return the Settings resolved at startup."""
    return request.app.state.settings


def build_guard(session: AsyncSession, audit_log: AuditLog) -> OwnershipGuard:
    """Construct an OwnershipGuard with descriptors for every resource kind."""
    case_repo = CaseRepository(session)
    return OwnershipGuard(
        descriptors=[
            CaseDescriptor(case_repo),
            DecisionDescriptor(DecisionRepository(session)),
            DocumentDescriptor(DocumentRepository(session), case_repo),
        ],
        audit_log=audit_log,
    )


def build_pseudonym_directory(session: AsyncSession, audit_log: AuditLog, settings: Settings) -> PseudonymDirectory:
    """Construct a PseudonymDirectory keyed with the configured HMAC secret."""
    return PseudonymDirectory(
        mapping_repo=PseudonymRepository(session),
        hmac_key=settings.pseudonym_hmac_secret.get_secret_value().encode("utf-8"),
        audit_log=audit_log,
        prefix=settings.pseudonym_prefix,
        max_attempts=settings.pseudonym_max_attempts,
    )


def build_decision_service(session: AsyncSession, audit_log: AuditLog, settings: Settings) -> DecisionService:
    """Construct a fully wired DecisionService for one session."""
    return DecisionService(
        session=session,
        decision_repo=DecisionRepository(session),
        case_repo=CaseRepository(session),
        history_repo=DecisionHistoryRepository(session),
        document_repo=DocumentRepository(session),
        timeline_repo=CaseTimelineRepository(session),
        guard=build_guard(session, audit_log),
        pseudonyms=build_pseudonym_directory(session, audit_log, settings),
        signer=Ed25519KeyDirectorySigner(settings.signing_keys_path),
        renderer=JsonArtifactRenderer(),
        artifact_store=FilesystemArtifactStore(settings.artifact_storage_path),
        audit_log=audit_log,
        minimum_draft_length=settings.minimum_draft_length,
    )


def build_case_service(session: AsyncSession, audit_log: AuditLog, settings: Settings) -> CaseService:
    """Construct a fully wired CaseService for one session."""
    return CaseService(
        session=session,
        case_repo=CaseRepository(session),
        subject_repo=SubjectRepository(session),
        timeline_repo=CaseTimelineRepository(session),
        guard=build_guard(session, audit_log),
        pseudonyms=build_pseudonym_directory(session, audit_log, settings),
        audit_log=audit_log,
    )


def build_document_service(session: AsyncSession, audit_log: AuditLog, settings: Settings) -> DocumentService:
    """Construct a DocumentService for one session."""
    return DocumentService(
        document_repo=DocumentRepository(session),
        guard=build_guard(session, audit_log),
        artifact_store=FilesystemArtifactStore(settings.artifact_storage_path),
        audit_log=audit_log,
    )


def get_decision_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    audit_log: Annotated[AuditLog, Depends(get_audit_log)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DecisionService:
    return build_decision_service(session, audit_log, settings)


def get_case_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    audit_log: Annotated[AuditLog, Depends(get_audit_log)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CaseService:
    return build_case_service(session, audit_log, settings)


def get_document_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    audit_log: Annotated[AuditLog, Depends(get_audit_log)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DocumentService:
    return build_document_service(session, audit_log, settings)


def require_audit_reader(caller: Annotated[Caller, Depends(get_current_caller)]) -> Caller:
    """Allow only administrators and auditors through to audit endpoints."""
    if caller.role not in AUDIT_READER_ROLES:
        raise ForbiddenError("Audit log access requires the ADMINISTRATOR or AUDITOR role")
    return caller


CallerDep = Annotated[Caller, Depends(get_current_caller)]
DecisionServiceDep = Annotated[DecisionService, Depends(get_decision_service)]
CaseServiceDep = Annotated[CaseService, Depends(get_case_service)]
DocumentServiceDep = Annotated[DocumentService, Depends(get_document_service)]


# ---------------------------------------------------------------------------
# Decision endpoints
# ---------------------------------------------------------------------------


@router.post("/decisions", response_model=DecisionResponse, status_code=status.HTTP_201_CREATED)
async def create_decision(
    request: DecisionCreateRequest,
    caller: CallerDep,
    service: DecisionServiceDep,
) -> DecisionResponse:
    """Draft a new decision on a case assigned to the caller."""
    return await service.create(
        case_id=request.case_id,
        caller=caller,
        decision_type=request.decision_type,
        title=request.title,
        draft_content=request.draft_content,
    )


@router.get("/decisions", response_model=DecisionListResponse)
async def list_decisions(
    caller: CallerDep,
    service: DecisionServiceDep,
    case_id: uuid.UUID | None = Query(default=None, description="Filter by case"),
    author_judge_id: uuid.UUID | None = Query(default=None, description="Filter by author"),
    decision_type: str | None = Query(default=None, description="Filter by type"),
    state: str | None = Query(default=None, description="Filter by state"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> DecisionListResponse:
    """List decisions. Judges only see their own."""
    return await service.list_decisions(
        caller=caller,
        case_id=case_id,
        author_judge_id=author_judge_id,
        decision_type=decision_type,
        state=state,
        page=page,
        page_size=page_size,
    )


@router.get("/decisions/{decision_id}", response_model=DecisionResponse)
async def get_decision(decision_id: uuid.UUID, caller: CallerDep, service: DecisionServiceDep) -> DecisionResponse:
    """Get a decision by ID."""
    return await service.get(decision_id, caller)


@router.patch("/decisions/{decision_id}", response_model=DecisionResponse)
async def update_decision(
    decision_id: uuid.UUID,
    request: DecisionUpdateRequest,
    caller: CallerDep,
    service: DecisionServiceDep,
) -> DecisionResponse:
    """Edit a DRAFT decision."""
    return await service.update(
        decision_id,
        caller,
        title=request.title,
        draft_content=request.draft_content,
        change_reason=request.change_reason,
    )


@router.delete("/decisions/{decision_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_decision(decision_id: uuid.UUID, caller: CallerDep, service: DecisionServiceDep) -> Response:
    """Delete a DRAFT decision."""
    await service.delete(decision_id, caller)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/decisions/{decision_id}/prepare", response_model=DecisionResponse)
async def prepare_decision(decision_id: uuid.UUID, caller: CallerDep, service: DecisionServiceDep) -> DecisionResponse:
    """Move a DRAFT decision to READY_TO_SIGN."""
    return await service.prepare_for_signature(decision_id, caller)


@router.post("/decisions/{decision_id}/sign", response_model=DecisionResponse)
async def sign_decision(decision_id: uuid.UUID, caller: CallerDep, service: DecisionServiceDep) -> DecisionResponse:
    """Sign a decision."""
    return await service.sign(decision_id, caller)


@router.get("/decisions/{decision_id}/verify", response_model=IntegrityReportResponse)
async def verify_decision(
    decision_id: uuid.UUID, caller: CallerDep, service: DecisionServiceDep
) -> IntegrityReportResponse:
    """Re-hash a signed decision's artifact and compare it with the recorded hash."""
    return await service.verify_integrity(decision_id, caller)


@router.get("/decisions/{decision_id}/history", response_model=DecisionHistoryResponse)
async def get_decision_history(
    decision_id: uuid.UUID, caller: CallerDep, service: DecisionServiceDep
) -> DecisionHistoryResponse:
    """Return the decision's pre-image history, newest first."""
    return await service.get_history(decision_id, caller)


@router.get("/decisions/{decision_id}/artifact")
async def get_decision_artifact(decision_id: uuid.UUID, caller: CallerDep, service: DecisionServiceDep) -> Response:
    """Download the signed artifact after an integrity check."""
    data = await service.get_signed_artifact(decision_id, caller)
    return Response(
        content=data,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="decision-{decision_id}.json"'},
    )


@router.post("/decisions/{decision_id}/void", response_model=DecisionResponse)
async def void_decision(
    decision_id: uuid.UUID,
    request: DecisionVoidRequest,
    caller: CallerDep,
    service: DecisionServiceDep,
) -> DecisionResponse:
    """Void an unsigned decision. Administrators only."""
    return await service.void(decision_id, caller, request.reason)


# ---------------------------------------------------------------------------
# Case endpoints
# ---------------------------------------------------------------------------


@router.get("/cases/{case_id}", response_model=CaseResponse)
async def get_case(case_id: uuid.UUID, caller: CallerDep, service: CaseServiceDep) -> CaseResponse:
    """Get a case by ID."""
    return await service.get_case(case_id, caller)


@router.post("/cases/{case_id}/reassign", response_model=CaseResponse)
async def reassign_case(
    case_id: uuid.UUID,
    request: CaseReassignRequest,
    caller: CallerDep,
    service: CaseServiceDep,
) -> CaseResponse:
    """Reassign a case to another judge. Administrators only."""
    return await service.reassign(case_id, request.new_judge_id, caller, request.reason)


# ---------------------------------------------------------------------------
# Document endpoints
# ---------------------------------------------------------------------------


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: uuid.UUID, caller: CallerDep, service: DocumentServiceDep) -> DocumentResponse:
    """Get signed document metadata."""
    return await service.get_document(document_id, caller)


@router.get("/documents/{document_id}/content")
async def get_document_content(document_id: uuid.UUID, caller: CallerDep, service: DocumentServiceDep) -> Response:
    """Download a signed document after an integrity check."""
    data = await service.get_document_content(document_id, caller)
    return Response(
        content=data,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="document-{document_id}.json"'},
    )


# ---------------------------------------------------------------------------
# Audit endpoints
# ---------------------------------------------------------------------------


@router.get("/audit/events", response_model=AuditEventListResponse)
async def query_audit_events(
    caller: Annotated[Caller, Depends(require_audit_reader)],
    audit_log: Annotated[AuditLog, Depends(get_audit_log)],
    actor_id: uuid.UUID | None = Query(default=None),
    event_type: str | None = Query(default=None),
    severity: str | None = Query(default=None),
    module: str | None = Query(default=None),
    case_reference: str | None = Query(default=None),
    start_time: datetime | None = Query(default=None),
    end_time: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
) -> AuditEventListResponse:
    """Query the audit log, newest first."""
    filters = AuditFilters(
        actor_id=actor_id,
        event_type=event_type,
        severity=severity,
        module=module,
        case_reference=case_reference,
        start_time=start_time,
        end_time=end_time,
    )
    rows, total = await audit_log.query(filters, page=page, page_size=page_size)
    return AuditEventListResponse(
        items=[AuditEventResponse.model_validate(row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/audit/verify", response_model=AuditChainReportResponse)
async def verify_audit_chain(
    caller: Annotated[Caller, Depends(require_audit_reader)],
    audit_log: Annotated[AuditLog, Depends(get_audit_log)],
    start_time: datetime | None = Query(default=None),
    end_time: datetime | None = Query(default=None),
) -> AuditChainReportResponse:
    """Recompute hashes and chain links for the audit log."""
    report = await audit_log.verify(start_time, end_time)
    logger.info("Audit chain verification requested", requested_by=str(caller.subject_id), intact=report.intact)
    return AuditChainReportResponse(
        intact=report.intact,
        total_rows=report.total_rows,
        valid_rows=report.valid_rows,
        tampered_ids=report.tampered_ids,
        broken_link_ids=report.broken_link_ids,
        first_error_id=report.first_error_id,
    )


@router.get("/audit/statistics", response_model=AuditStatisticsResponse)
async def audit_statistics(
    caller: Annotated[Caller, Depends(require_audit_reader)],
    audit_log: Annotated[AuditLog, Depends(get_audit_log)],
    module: str | None = Query(default=None),
    start_time: datetime | None = Query(default=None),
    end_time: datetime | None = Query(default=None),
) -> AuditStatisticsResponse:
    """Audit event counts by outcome."""
    stats = await audit_log.statistics(AuditFilters(module=module, start_time=start_time, end_time=end_time))
    return AuditStatisticsResponse(
        total=stats.total,
        denied=stats.denied,
        failed=stats.failed,
        succeeded=stats.succeeded,
    )


@router.get("/audit/export")
async def export_audit_events(
    caller: Annotated[Caller, Depends(require_audit_reader)],
    audit_log: Annotated[AuditLog, Depends(get_audit_log)],
    event_type: str | None = Query(default=None),
    severity: str | None = Query(default=None),
    module: str | None = Query(default=None),
    start_time: datetime | None = Query(default=None),
    end_time: datetime | None = Query(default=None),
) -> Response:
    """Export matching audit events as CSV."""
    csv_text = await audit_log.export_csv(
        AuditFilters(
            event_type=event_type,
            severity=severity,
            module=module,
            start_time=start_time,
            end_time=end_time,
        )
    )
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="audit-events.csv"'},
    )
