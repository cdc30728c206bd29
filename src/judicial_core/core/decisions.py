"""Decision lifecycle management.

State machine:

    DRAFT --update--> DRAFT
    DRAFT --prepare_for_signature--> READY_TO_SIGN --sign--> SIGNED
    DRAFT --delete--> (removed)
    DRAFT | READY_TO_SIGN --void (administrator)--> VOIDED

SIGNED and VOIDED are terminal: every mutation is rejected with
InvalidStateError before anything is written.

Signing runs in two phases. Preparation (read, validate, render, call the
signing provider, store the artifact) holds no lock. The commit phase locks
the decision row, re-validates it, registers the Document and flips the
decision to SIGNED with one UPDATE guarded by the expected version, so of two
concurrent signers exactly one wins. Any failure before commit rolls back the
transaction and discards the stored artifact.
"""

import hashlib
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from judicial_core.api.schemas import (
    DecisionHistoryEntryResponse,
    DecisionHistoryResponse,
    DecisionListResponse,
    DecisionResponse,
    DecisionSummaryResponse,
    IntegrityReportResponse,
)
from judicial_core.auth import Caller
from judicial_core.core.audit import AuditLog, AuditRecord
from judicial_core.core.authorization import OwnershipGuard
from judicial_core.core.interfaces import (
    IArtifactRenderer,
    IArtifactStore,
    ICaseRepository,
    ICaseTimelineRepository,
    IDecisionHistoryRepository,
    IDecisionRepository,
    IDocumentRepository,
    ISigningProvider,
)
from judicial_core.core.models import (
    SIGNABLE_STATES,
    Decision,
    DecisionState,
    DecisionType,
    ProceduralState,
    Severity,
    SubjectRole,
    utcnow,
)
from judicial_core.core.pseudonyms import PseudonymDirectory
from judicial_core.errors import (
    CredentialError,
    ForbiddenError,
    IntegrityMismatchError,
    InvalidStateError,
    NotFoundError,
    ValidationFailedError,
)
from judicial_core.observability import get_logger

logger = get_logger(__name__)

MODULE = "decisions"

LISTING_ROLES = frozenset({SubjectRole.ADMINISTRATOR, SubjectRole.JUDGE, SubjectRole.CLERK})

_TYPE_LABELS = {
    DecisionType.INTERLOCUTORY_ORDER: "INTERLOCUTORY ORDER",
    DecisionType.PROCEDURAL_ORDER: "PROCEDURAL ORDER",
    DecisionType.JUDGMENT: "JUDGMENT",
}

_RULE = "-" * 72


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def render_final_content(
    case_number: str,
    decision_type: str,
    title: str,
    draft_content: str,
    signer_pseudonym: str,
    signed_at: datetime,
) -> str:
    """Build the text that is actually signed.

    The signer is identified by pseudonym only; real names never enter the
    signed text.
    """
    label = _TYPE_LABELS.get(DecisionType(decision_type), decision_type)
    return "\n".join(
        [
            "JUDICIAL DECISION",
            f"CASE: {case_number}",
            f"DECISION TYPE: {label}",
            _RULE,
            title.upper(),
            _RULE,
            f"Date: {signed_at.date().isoformat()}",
            "",
            draft_content,
            "",
            _RULE,
            "ELECTRONIC SIGNATURE",
            f"Signed electronically by judge {signer_pseudonym}",
            _RULE,
        ]
    )


def _to_response(decision: Decision, include_content: bool = True) -> DecisionResponse:
    return DecisionResponse(
        id=decision.id,
        case_id=decision.case_id,
        author_pseudonym=decision.author_pseudonym,
        decision_type=decision.decision_type,
        title=decision.title,
        draft_content=decision.draft_content if include_content else None,
        state=decision.state,
        version=decision.version,
        content_hash=decision.content_hash,
        signer_pseudonym=decision.signer_pseudonym,
        signature_algorithm=decision.signature_algorithm,
        certificate_serial=decision.certificate_serial,
        signed_at=decision.signed_at,
        document_id=decision.document_id,
        void_reason=decision.void_reason,
        created_at=decision.created_at,
        updated_at=decision.updated_at,
    )


def _to_summary(decision: Decision) -> DecisionSummaryResponse:
    return DecisionSummaryResponse(
        id=decision.id,
        case_id=decision.case_id,
        author_pseudonym=decision.author_pseudonym,
        decision_type=decision.decision_type,
        title=decision.title,
        state=decision.state,
        version=decision.version,
        signed_at=decision.signed_at,
        created_at=decision.created_at,
    )


class DecisionService:
    """Judicial decision lifecycle.

    Owns its transaction boundaries: every mutation commits before its audit
    event is recorded, so an audited change is always a durable one.

    Args:
        session: Primary DB session shared by the repositories below.
        decision_repo: Decision persistence.
        case_repo: Case persistence.
        history_repo: Decision pre-image persistence.
        document_repo: Signed document registry.
        timeline_repo: Public case timeline.
        guard: Ownership guard for case and decision access.
        pseudonyms: Judge pseudonym directory.
        signer: External signing provider.
        renderer: Signed artifact renderer.
        artifact_store: Signed artifact storage.
        audit_log: Audit log.
        minimum_draft_length: Minimum stripped draft length to prepare for signature.
    """

    def __init__(
        self,
        session: AsyncSession,
        decision_repo: IDecisionRepository,
        case_repo: ICaseRepository,
        history_repo: IDecisionHistoryRepository,
        document_repo: IDocumentRepository,
        timeline_repo: ICaseTimelineRepository,
        guard: OwnershipGuard,
        pseudonyms: PseudonymDirectory,
        signer: ISigningProvider,
        renderer: IArtifactRenderer,
        artifact_store: IArtifactStore,
        audit_log: AuditLog,
        minimum_draft_length: int = 50,
    ) -> None:
        self._session = session
        self._decision_repo = decision_repo
        self._case_repo = case_repo
        self._history_repo = history_repo
        self._document_repo = document_repo
        self._timeline_repo = timeline_repo
        self._guard = guard
        self._pseudonyms = pseudonyms
        self._signer = signer
        self._renderer = renderer
        self._artifact_store = artifact_store
        self._audit_log = audit_log
        self._minimum_draft_length = minimum_draft_length

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _audit(
        self,
        caller: Caller,
        event_type: str,
        severity: Severity,
        description: str,
        details: dict[str, Any],
        case_reference: str | None = None,
    ) -> None:
        await self._audit_log.record(
            AuditRecord(
                event_type=event_type,
                severity=severity,
                module=MODULE,
                description=description,
                actor_id=caller.subject_id,
                actor_role=caller.role,
                details=details,
                case_reference=case_reference,
                source_ip=caller.source_ip,
            )
        )

    async def _load_for_author(self, decision_id: uuid.UUID, caller: Caller, denied_event: str) -> Decision:
        """Authorize the caller on the decision and require them to be its author."""
        await self._guard.authorize("decision", decision_id, caller)
        decision = await self._decision_repo.get_or_none(decision_id)
        if decision is None:
            raise NotFoundError(resource="decision", resource_id=str(decision_id))

        if decision.author_judge_id != caller.subject_id:
            await self._audit(
                caller,
                denied_event,
                Severity.HIGH,
                "Only the authoring judge may perform this operation",
                {"decision_id": str(decision_id), "reason": "not_author"},
            )
            raise ForbiddenError(
                "Only the authoring judge may perform this operation",
                resource="decision",
                resource_id=str(decision_id),
            )
        return decision

    async def _reload(self, decision_id: uuid.UUID) -> Decision:
        decision = await self._decision_repo.get_or_none(decision_id)
        if decision is None:
            raise NotFoundError(resource="decision", resource_id=str(decision_id))
        return decision

    async def _authorize_read(self, decision_id: uuid.UUID, caller: Caller) -> Decision:
        """Authors read through the decision guard; everyone else through the case guard."""
        decision = await self._decision_repo.get_or_none(decision_id)
        if decision is None:
            await self._guard.authorize("decision", decision_id, caller)
            raise NotFoundError(resource="decision", resource_id=str(decision_id))

        if decision.author_judge_id == caller.subject_id:
            await self._guard.authorize("decision", decision_id, caller)
        else:
            await self._guard.authorize("case", decision.case_id, caller)
        return decision

    async def _append_timeline(
        self,
        case_id: uuid.UUID,
        event_type: str,
        description: str,
        reference_id: uuid.UUID,
    ) -> None:
        """Add a timeline entry inside a savepoint; a failure rolls back only the entry."""
        try:
            async with self._session.begin_nested():
                await self._timeline_repo.add_entry(
                    case_id=case_id,
                    event_type=event_type,
                    description=description,
                    reference_id=reference_id,
                )
        except SQLAlchemyError:
            logger.warning(
                "Timeline entry skipped",
                case_id=str(case_id),
                event_type=event_type,
                exc_info=True,
            )

    def _reject_terminal(self, decision: Decision) -> None:
        if decision.state in (DecisionState.SIGNED, DecisionState.VOIDED):
            raise InvalidStateError(
                f"Decision is {decision.state} and can no longer be modified",
                current_state=decision.state,
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(
        self,
        case_id: uuid.UUID,
        caller: Caller,
        decision_type: DecisionType,
        title: str,
        draft_content: str = "",
    ) -> DecisionResponse:
        """Draft a new decision on a case assigned to the caller.

        Args:
            case_id: Case the decision belongs to.
            caller: Authenticated caller; must be the case's assigned judge.
            decision_type: Decision type.
            title: Decision title.
            draft_content: Initial draft text.

        Returns:
            The new DRAFT decision at version 1.

        Raises:
            NotFoundError: If the case does not exist.
            ForbiddenError: If the caller is not a judge assigned to the case.
        """
        grant = await self._guard.authorize("case", case_id, caller)
        if caller.role != SubjectRole.JUDGE:
            await self._audit(
                caller,
                "DECISION_CREATE_DENIED",
                Severity.HIGH,
                "Only judges may draft decisions",
                {"case_id": str(case_id), "role": str(caller.role)},
                case_reference=grant.resource.case_reference,
            )
            raise ForbiddenError("Only judges may draft decisions", resource="case", resource_id=str(case_id))

        issue = await self._pseudonyms.issue(caller.subject_id)
        decision = await self._decision_repo.create(
            case_id=case_id,
            author_judge_id=caller.subject_id,
            author_pseudonym=issue.code,
            decision_type=str(decision_type),
            title=title,
            draft_content=draft_content,
        )
        await self._session.commit()
        await self._pseudonyms.record_issued(issue, issued_by=caller.subject_id)

        logger.info("Decision drafted", decision_id=str(decision.id), case_id=str(case_id))
        await self._audit(
            caller,
            "DECISION_CREATED",
            Severity.MEDIUM,
            f"Decision drafted: {title}",
            {"decision_id": str(decision.id), "decision_type": str(decision_type)},
            case_reference=grant.resource.case_reference,
        )
        return _to_response(decision)

    async def update(
        self,
        decision_id: uuid.UUID,
        caller: Caller,
        title: str | None = None,
        draft_content: str | None = None,
        change_reason: str | None = None,
    ) -> DecisionResponse:
        """Edit a DRAFT decision.

        The pre-image is written to history and the version incremented. A
        patch that changes nothing returns the decision untouched.

        Raises:
            ForbiddenError: If the caller is not the author.
            InvalidStateError: If the decision is not a DRAFT, or changed concurrently.
        """
        decision = await self._load_for_author(decision_id, caller, "DECISION_UPDATE_DENIED")
        if decision.state != DecisionState.DRAFT:
            await self._audit(
                caller,
                "DECISION_UPDATE_DENIED",
                Severity.MEDIUM,
                "Update rejected for a decision that is no longer a draft",
                {"decision_id": str(decision_id), "state": decision.state},
            )
            raise InvalidStateError("Only DRAFT decisions can be edited", current_state=decision.state)

        values: dict[str, Any] = {}
        if title is not None and title != decision.title:
            values["title"] = title
        if draft_content is not None and draft_content != decision.draft_content:
            values["draft_content"] = draft_content
        if not values:
            return _to_response(decision)

        expected_version = decision.version
        await self._history_repo.snapshot(decision, modified_by_id=caller.subject_id, change_reason=change_reason)
        values["version"] = expected_version + 1
        updated = await self._decision_repo.conditional_update(
            decision_id, expected_version, [DecisionState.DRAFT], values
        )
        if updated != 1:
            await self._session.rollback()
            raise InvalidStateError("Decision was modified concurrently")
        await self._session.commit()

        decision = await self._reload(decision_id)
        logger.info("Decision updated", decision_id=str(decision_id), version=decision.version)
        await self._audit(
            caller,
            "DECISION_UPDATED",
            Severity.LOW,
            "Decision draft updated",
            {
                "decision_id": str(decision_id),
                "changed_fields": sorted(k for k in values if k != "version"),
                "previous_version": expected_version,
                "new_version": decision.version,
                "change_reason": change_reason,
            },
        )
        return _to_response(decision)

    async def prepare_for_signature(self, decision_id: uuid.UUID, caller: Caller) -> DecisionResponse:
        """Move a DRAFT to READY_TO_SIGN.

        Raises:
            InvalidStateError: If the decision is not a DRAFT.
            ValidationFailedError: If the draft is shorter than the minimum length.
            CredentialError: If the author holds no valid signing credential.
        """
        decision = await self._load_for_author(decision_id, caller, "DECISION_UPDATE_DENIED")
        if decision.state != DecisionState.DRAFT:
            raise InvalidStateError("Only DRAFT decisions can be prepared for signature", current_state=decision.state)

        if len(decision.draft_content.strip()) < self._minimum_draft_length:
            raise ValidationFailedError(
                f"Draft content must be at least {self._minimum_draft_length} characters",
                field="draft_content",
            )

        if not await self._signer.has_valid_credential(caller.subject_id):
            raise CredentialError()

        updated = await self._decision_repo.conditional_update(
            decision_id,
            decision.version,
            [DecisionState.DRAFT],
            {"state": DecisionState.READY_TO_SIGN},
        )
        if updated != 1:
            await self._session.rollback()
            raise InvalidStateError("Decision was modified concurrently")
        await self._session.commit()

        decision = await self._reload(decision_id)
        await self._audit(
            caller,
            "DECISION_READY_TO_SIGN",
            Severity.MEDIUM,
            "Decision prepared for signature",
            {"decision_id": str(decision_id), "version": decision.version},
        )
        return _to_response(decision)

    async def sign(self, decision_id: uuid.UUID, caller: Caller) -> DecisionResponse:
        """Sign a decision and register its signed artifact.

        Args:
            decision_id: Decision to sign.
            caller: Authenticated caller; must be the author.

        Returns:
            The SIGNED decision.

        Raises:
            ForbiddenError: If the caller is not the author.
            InvalidStateError: If the decision is not signable, or another
                signer committed first.
            CredentialError: If the signing provider rejects the request.
        """
        # Phase 1: preparation, no lock held
        decision = await self._load_for_author(decision_id, caller, "SIGNATURE_DENIED")
        if decision.state not in SIGNABLE_STATES:
            await self._audit(
                caller,
                "SIGNATURE_DENIED",
                Severity.MEDIUM,
                "Signing rejected for a decision in a terminal state",
                {"decision_id": str(decision_id), "state": decision.state},
            )
            message = "Decision is already signed" if decision.state == DecisionState.SIGNED else "Decision is void"
            raise InvalidStateError(message, current_state=decision.state)

        case = await self._case_repo.get_by_id(decision.case_id)
        case_id = case.id
        case_number = case.case_number
        decision_type = decision.decision_type
        expected_version = decision.version
        issue = await self._pseudonyms.issue(caller.subject_id)
        signer_pseudonym = issue.code

        # Close the read transaction before calling out to the signing provider
        await self._session.commit()
        await self._pseudonyms.record_issued(issue, issued_by=caller.subject_id)

        signed_at = utcnow()
        final_content = render_final_content(
            case_number=case_number,
            decision_type=decision_type,
            title=decision.title,
            draft_content=decision.draft_content,
            signer_pseudonym=signer_pseudonym,
            signed_at=signed_at,
        )
        final_bytes = final_content.encode("utf-8")
        pre_signature_hash = sha256_hex(final_bytes)

        try:
            metadata = await self._signer.sign(caller.subject_id, final_bytes)
        except CredentialError:
            await self._audit(
                caller,
                "SIGNATURE_FAILED",
                Severity.HIGH,
                "Signing provider rejected the request",
                {"decision_id": str(decision_id)},
                case_reference=case_number,
            )
            raise

        artifact = self._renderer.render(final_content, metadata)
        content_hash = sha256_hex(artifact)
        path = (
            f"{case_id}/{decision_type.lower()}_{decision_id}_"
            f"{int(signed_at.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}.json"
        )
        location = await self._artifact_store.save(artifact, path)

        # Phase 2: commit under the row lock
        try:
            locked = await self._decision_repo.get_for_update(decision_id)
            if locked is None:
                raise NotFoundError(resource="decision", resource_id=str(decision_id))
            if locked.author_judge_id != caller.subject_id:
                raise ForbiddenError(resource="decision", resource_id=str(decision_id))
            if locked.state not in SIGNABLE_STATES or locked.version != expected_version:
                raise InvalidStateError(
                    "Decision was signed or modified while signing was in progress",
                    current_state=locked.state,
                )

            try:
                document = await self._document_repo.create(
                    case_id=case_id,
                    bound_decision_id=decision_id,
                    document_type=decision_type,
                    path=location,
                    content_hash=content_hash,
                    size_bytes=len(artifact),
                    created_by_id=caller.subject_id,
                )
            except IntegrityError as exc:
                # bound_decision_id is unique: another signer registered first
                raise InvalidStateError("Decision was signed while signing was in progress") from exc
            updated = await self._decision_repo.conditional_update(
                decision_id,
                expected_version,
                SIGNABLE_STATES,
                {
                    "state": DecisionState.SIGNED,
                    "document_id": document.id,
                    "artifact_path": location,
                    "content_hash": content_hash,
                    "pre_signature_hash": pre_signature_hash,
                    "signer_pseudonym": signer_pseudonym,
                    "signature_algorithm": metadata.algorithm,
                    "certificate_serial": metadata.certificate_serial,
                    "signature_b64": metadata.signature_b64,
                    "signed_at": signed_at,
                },
            )
            if updated != 1:
                raise InvalidStateError("Decision was signed or modified while signing was in progress")

            if decision_type == DecisionType.JUDGMENT:
                await self._case_repo.update_procedural_state(case_id, ProceduralState.RESOLVED)

            await self._append_timeline(
                case_id,
                "DECISION_SIGNED",
                f"Decision signed by judge {signer_pseudonym}",
                decision_id,
            )
            await self._session.commit()
        except Exception as exc:
            await self._session.rollback()
            await self._artifact_store.discard(location)
            if isinstance(exc, InvalidStateError):
                await self._audit(
                    caller,
                    "SIGNATURE_DENIED",
                    Severity.MEDIUM,
                    "Signing lost a concurrent race",
                    {"decision_id": str(decision_id), "reason": "concurrent_modification"},
                    case_reference=case_number,
                )
            raise

        signed = await self._reload(decision_id)
        logger.info(
            "Decision signed",
            decision_id=str(decision_id),
            document_id=str(signed.document_id),
            algorithm=metadata.algorithm,
        )
        await self._audit(
            caller,
            "DECISION_SIGNED",
            Severity.CRITICAL,
            "Decision electronically signed",
            {
                "decision_id": str(decision_id),
                "document_id": str(signed.document_id),
                "content_hash": content_hash,
                "pre_signature_hash": pre_signature_hash,
                "algorithm": metadata.algorithm,
                "certificate_serial": metadata.certificate_serial,
                "case_resolved": decision_type == DecisionType.JUDGMENT,
            },
            case_reference=case_number,
        )
        return _to_response(signed)

    async def delete(self, decision_id: uuid.UUID, caller: Caller) -> None:
        """Hard-delete a DRAFT decision.

        Raises:
            ForbiddenError: If the caller is not the author.
            InvalidStateError: If the decision is not a DRAFT.
        """
        decision = await self._load_for_author(decision_id, caller, "DECISION_DELETE_DENIED")
        if decision.state != DecisionState.DRAFT:
            raise InvalidStateError("Only DRAFT decisions can be deleted", current_state=decision.state)

        title = decision.title
        deleted = await self._decision_repo.delete_draft(decision_id)
        if deleted != 1:
            await self._session.rollback()
            raise InvalidStateError("Decision was modified concurrently")
        await self._session.commit()

        await self._audit(
            caller,
            "DECISION_DELETED",
            Severity.MEDIUM,
            f"Draft decision deleted: {title}",
            {"decision_id": str(decision_id)},
        )

    async def void(self, decision_id: uuid.UUID, caller: Caller, reason: str) -> DecisionResponse:
        """Void an unsigned decision. Administrators only.

        Raises:
            ForbiddenError: If the caller is not an administrator.
            InvalidStateError: If the decision is SIGNED or already VOIDED.
        """
        if not caller.is_administrator:
            await self._audit(
                caller,
                "DECISION_VOID_DENIED",
                Severity.HIGH,
                "Only administrators may void decisions",
                {"decision_id": str(decision_id)},
            )
            raise ForbiddenError("Only administrators may void decisions", resource="decision", resource_id=str(decision_id))

        await self._guard.authorize("decision", decision_id, caller)
        decision = await self._decision_repo.get_or_none(decision_id)
        if decision is None:
            raise NotFoundError(resource="decision", resource_id=str(decision_id))
        self._reject_terminal(decision)

        expected_version = decision.version
        case_id = decision.case_id
        await self._history_repo.snapshot(decision, modified_by_id=caller.subject_id, change_reason=reason)
        updated = await self._decision_repo.conditional_update(
            decision_id,
            expected_version,
            SIGNABLE_STATES,
            {"state": DecisionState.VOIDED, "void_reason": reason},
        )
        if updated != 1:
            await self._session.rollback()
            raise InvalidStateError("Decision was modified concurrently")

        await self._append_timeline(case_id, "DECISION_VOIDED", "Decision voided", decision_id)
        await self._session.commit()

        decision = await self._reload(decision_id)
        logger.warning("Decision voided", decision_id=str(decision_id))
        await self._audit(
            caller,
            "DECISION_VOIDED",
            Severity.HIGH,
            "Decision voided by administrator",
            {"decision_id": str(decision_id), "reason": reason, "previous_version": expected_version},
        )
        return _to_response(decision)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, decision_id: uuid.UUID, caller: Caller) -> DecisionResponse:
        """Return a decision. Judges other than the author get the draft redacted."""
        decision = await self._authorize_read(decision_id, caller)
        redact = caller.role == SubjectRole.JUDGE and decision.author_judge_id != caller.subject_id
        return _to_response(decision, include_content=not redact)

    async def list_decisions(
        self,
        caller: Caller,
        case_id: uuid.UUID | None = None,
        author_judge_id: uuid.UUID | None = None,
        decision_type: str | None = None,
        state: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> DecisionListResponse:
        """List decisions. Judges only ever see their own.

        Listing is open to administrators, judges and clerks. Every query,
        refused or answered, is audited with its filters.

        Raises:
            ForbiddenError: If the caller is inactive or holds another role.
        """
        if caller.role == SubjectRole.JUDGE:
            author_judge_id = caller.subject_id
        filters = {
            "case_id": str(case_id) if case_id else None,
            "author_judge_id": str(author_judge_id) if author_judge_id else None,
            "decision_type": decision_type,
            "state": state,
            "page": page,
            "page_size": page_size,
        }

        if not caller.is_active or caller.role not in LISTING_ROLES:
            await self._audit(
                caller,
                "DECISION_LIST_DENIED",
                Severity.HIGH,
                "Decision listing refused",
                {**filters, "role": str(caller.role), "caller_active": caller.is_active},
            )
            raise ForbiddenError("Listing decisions is not permitted for this role", resource="decision")

        decisions, total = await self._decision_repo.list_filtered(
            case_id=case_id,
            author_judge_id=author_judge_id,
            decision_type=decision_type,
            state=state,
            page=page,
            page_size=page_size,
        )
        await self._audit(
            caller,
            "DECISION_LIST_QUERIED",
            Severity.LOW,
            "Decisions listed",
            {**filters, "results": len(decisions), "total": total},
        )
        return DecisionListResponse(
            items=[_to_summary(d) for d in decisions],
            total=total,
            page=page,
            page_size=page_size,
        )

    async def get_history(self, decision_id: uuid.UUID, caller: Caller) -> DecisionHistoryResponse:
        """Return the decision's pre-image history, newest first."""
        await self._guard.authorize("decision", decision_id, caller)
        entries = await self._history_repo.list_for_decision(decision_id)
        return DecisionHistoryResponse(
            decision_id=decision_id,
            entries=[
                DecisionHistoryEntryResponse(
                    id=entry.id,
                    previous_version=entry.previous_version,
                    previous_title=entry.previous_title,
                    previous_content=entry.previous_content,
                    previous_state=entry.previous_state,
                    change_reason=entry.change_reason,
                    created_at=entry.created_at,
                )
                for entry in entries
            ],
        )

    async def verify_integrity(self, decision_id: uuid.UUID, caller: Caller) -> IntegrityReportResponse:
        """Re-hash the stored artifact and compare with the recorded hash.

        An unreadable artifact is reported as a mismatch with an error note.

        Raises:
            InvalidStateError: If the decision is not SIGNED.
        """
        decision = await self._authorize_read(decision_id, caller)
        if decision.state != DecisionState.SIGNED or not decision.artifact_path:
            raise InvalidStateError("Only SIGNED decisions can be verified", current_state=decision.state)

        actual_hash: str | None = None
        signature_valid: bool | None = None
        error: str | None = None
        try:
            data = await self._artifact_store.read(decision.artifact_path)
        except OSError:
            logger.warning("Signed artifact unreadable", decision_id=str(decision_id), exc_info=True)
            error = "Signed artifact could not be read"
        else:
            actual_hash = sha256_hex(data)
            signature_valid = await self._check_signature(decision, data)

        matches = actual_hash is not None and actual_hash == decision.content_hash
        await self._audit(
            caller,
            "SIGNATURE_VERIFIED",
            Severity.LOW if matches else Severity.HIGH,
            "Signed artifact verified" if matches else "Signed artifact failed verification",
            {
                "decision_id": str(decision_id),
                "matches": matches,
                "stored_hash": decision.content_hash,
                "actual_hash": actual_hash,
                "signature_valid": signature_valid,
            },
        )
        return IntegrityReportResponse(
            decision_id=decision_id,
            matches=matches,
            stored_hash=decision.content_hash,
            actual_hash=actual_hash,
            signature_valid=signature_valid,
            signer_pseudonym=decision.signer_pseudonym,
            signature_algorithm=decision.signature_algorithm,
            certificate_serial=decision.certificate_serial,
            signed_at=decision.signed_at,
            error=error,
        )

    async def _check_signature(self, decision: Decision, artifact: bytes) -> bool | None:
        content = self._renderer.extract_content(artifact)
        if content is None or not decision.signature_b64:
            return None
        try:
            return await self._signer.verify(decision.author_judge_id, content.encode("utf-8"), decision.signature_b64)
        except CredentialError:
            return None

    async def get_signed_artifact(self, decision_id: uuid.UUID, caller: Caller) -> bytes:
        """Return the signed artifact bytes after checking them against the recorded hash.

        Raises:
            InvalidStateError: If the decision is not SIGNED.
            IntegrityMismatchError: If the artifact is unreadable or its hash diverged.
        """
        decision = await self._authorize_read(decision_id, caller)
        if decision.state != DecisionState.SIGNED or not decision.artifact_path:
            raise InvalidStateError("Only SIGNED decisions have an artifact", current_state=decision.state)

        try:
            data = await self._artifact_store.read(decision.artifact_path)
        except OSError as exc:
            raise IntegrityMismatchError("Signed artifact could not be read", stored_hash=decision.content_hash) from exc

        actual_hash = sha256_hex(data)
        if actual_hash != decision.content_hash:
            logger.error("Signed artifact hash mismatch", decision_id=str(decision_id))
            await self._audit(
                caller,
                "ARTIFACT_INTEGRITY_FAILED",
                Severity.CRITICAL,
                "Signed artifact no longer matches its recorded hash",
                {"decision_id": str(decision_id), "stored_hash": decision.content_hash, "actual_hash": actual_hash},
            )
            raise IntegrityMismatchError(
                "Signed artifact no longer matches its recorded hash",
                stored_hash=decision.content_hash,
                actual_hash=actual_hash,
            )
        return data
