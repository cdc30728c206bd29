"""Case views and judge reassignment."""

import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from judicial_core.api.schemas import CaseResponse
from judicial_core.auth import Caller
from judicial_core.core.audit import AuditLog, AuditRecord
from judicial_core.core.authorization import OwnershipGuard
from judicial_core.core.interfaces import ICaseRepository, ICaseTimelineRepository, ISubjectRepository
from judicial_core.core.models import Case, Severity, SubjectRole, SubjectStatus
from judicial_core.core.pseudonyms import PseudonymDirectory
from judicial_core.errors import ForbiddenError, ValidationFailedError
from judicial_core.observability import get_logger

logger = get_logger(__name__)

MODULE = "cases"


def _to_response(case: Case, include_judge_id: bool) -> CaseResponse:
    return CaseResponse(
        id=case.id,
        case_number=case.case_number,
        assigned_judge_pseudonym=case.assigned_judge_pseudonym,
        assigned_judge_id=case.assigned_judge_id if include_judge_id else None,
        procedural_state=case.procedural_state,
        judicial_unit=case.judicial_unit,
        subject_matter=case.subject_matter,
    )


class CaseService:
    """Case read access and administrator-driven reassignment.

    Args:
        session: Primary DB session shared by the repositories below.
        case_repo: Case persistence.
        subject_repo: Subject reads.
        timeline_repo: Public case timeline.
        guard: Ownership guard.
        pseudonyms: Judge pseudonym directory.
        audit_log: Audit log.
    """

    def __init__(
        self,
        session: AsyncSession,
        case_repo: ICaseRepository,
        subject_repo: ISubjectRepository,
        timeline_repo: ICaseTimelineRepository,
        guard: OwnershipGuard,
        pseudonyms: PseudonymDirectory,
        audit_log: AuditLog,
    ) -> None:
        self._session = session
        self._case_repo = case_repo
        self._subject_repo = subject_repo
        self._timeline_repo = timeline_repo
        self._guard = guard
        self._pseudonyms = pseudonyms
        self._audit_log = audit_log

    async def get_case(self, case_id: uuid.UUID, caller: Caller) -> CaseResponse:
        """Return a case. The real judge id is only included for administrators."""
        await self._guard.authorize("case", case_id, caller)
        case = await self._case_repo.get_by_id(case_id)
        return _to_response(case, include_judge_id=caller.is_administrator)

    async def reassign(
        self,
        case_id: uuid.UUID,
        new_judge_id: uuid.UUID,
        caller: Caller,
        reason: str,
    ) -> CaseResponse:
        """Assign a case to another judge.

        Args:
            case_id: Case to reassign.
            new_judge_id: Subject id of the incoming judge.
            caller: Authenticated caller; must be an administrator.
            reason: Why the case is reassigned.

        Returns:
            The updated case.

        Raises:
            ForbiddenError: If the caller is not an administrator.
            NotFoundError: If the case does not exist.
            ValidationFailedError: If the new subject is not an active judge,
                or is already assigned.
        """
        if not caller.is_administrator:
            await self._audit_log.record(
                AuditRecord(
                    event_type="CASE_REASSIGN_DENIED",
                    severity=Severity.HIGH,
                    module=MODULE,
                    description="Only administrators may reassign cases",
                    actor_id=caller.subject_id,
                    actor_role=caller.role,
                    details={"case_id": str(case_id)},
                    source_ip=caller.source_ip,
                )
            )
            raise ForbiddenError("Only administrators may reassign cases", resource="case", resource_id=str(case_id))

        grant = await self._guard.authorize("case", case_id, caller)
        case = await self._case_repo.get_by_id(case_id)
        previous_judge_id = case.assigned_judge_id
        previous_pseudonym = case.assigned_judge_pseudonym

        judge = await self._subject_repo.get_or_none(new_judge_id)
        if judge is None or judge.role != SubjectRole.JUDGE or judge.status != SubjectStatus.ACTIVE:
            raise ValidationFailedError("The new assignee must be an active judge", field="new_judge_id")
        if previous_judge_id == new_judge_id:
            raise ValidationFailedError("The case is already assigned to this judge", field="new_judge_id")

        issue = await self._pseudonyms.issue(new_judge_id)
        pseudonym = issue.code
        case = await self._case_repo.update_assignment(case_id, new_judge_id, pseudonym)

        try:
            async with self._session.begin_nested():
                await self._timeline_repo.add_entry(
                    case_id=case_id,
                    event_type="CASE_REASSIGNED",
                    description=f"Case reassigned from judge {previous_pseudonym} to judge {pseudonym}",
                )
        except SQLAlchemyError:
            logger.warning("Timeline entry skipped", case_id=str(case_id), exc_info=True)
        await self._session.commit()
        await self._pseudonyms.record_issued(issue, issued_by=caller.subject_id)

        logger.info("Case reassigned", case_id=str(case_id))
        await self._audit_log.record(
            AuditRecord(
                event_type="CASE_REASSIGNED",
                severity=Severity.HIGH,
                module=MODULE,
                description=f"Case reassigned: {reason}",
                actor_id=caller.subject_id,
                actor_role=caller.role,
                details={
                    "case_id": str(case_id),
                    "previous_judge_id": str(previous_judge_id),
                    "new_judge_id": str(new_judge_id),
                    "reason": reason,
                },
                case_reference=grant.resource.case_reference,
                source_ip=caller.source_ip,
            )
        )
        return _to_response(case, include_judge_id=True)
