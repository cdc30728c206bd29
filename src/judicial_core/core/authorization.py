"""Ownership guard for cases, decisions and documents.

Every resource kind is described by a ResourceDescriptor that reads the owner
fresh from the store. OwnershipGuard applies one rule set to all kinds:

- inactive subjects are denied
- ADMINISTRATOR is allowed on everything
- a role with a role-specific owner attribute (CLERK -> the case's creating
  clerk) is compared against that attribute
- every other role is compared against the resource's owner (the judge)

Every decision is audited: grants LOW, denials HIGH, missing resources MEDIUM.
Nothing is cached.
"""

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from judicial_core.auth import Caller
from judicial_core.core.audit import AuditLog, AuditRecord
from judicial_core.core.interfaces import ICaseRepository, IDecisionRepository, IDocumentRepository
from judicial_core.core.models import Severity, SubjectRole
from judicial_core.errors import ForbiddenError, NotFoundError
from judicial_core.observability import get_logger

logger = get_logger(__name__)

MODULE = "authorization"

BYPASS_ROLES = frozenset({SubjectRole.ADMINISTRATOR})


@dataclass(frozen=True)
class OwnedResource:
    """Ownership view of one resource.

    Attributes:
        kind: Resource kind, e.g. "case".
        resource_id: The resource UUID.
        owner_id: Owning judge.
        role_owners: Role-specific owner attributes overriding owner_id for that role.
        snapshot: Current field values returned to the caller on a grant.
        case_reference: Case number for audit correlation.
    """

    kind: str
    resource_id: uuid.UUID
    owner_id: uuid.UUID | None
    role_owners: Mapping[SubjectRole, uuid.UUID | None] = field(default_factory=dict)
    snapshot: Mapping[str, Any] = field(default_factory=dict)
    case_reference: str | None = None


@dataclass(frozen=True)
class AccessGrant:
    """Proof that authorize() allowed the caller, carrying the fresh snapshot."""

    resource: OwnedResource

    @property
    def snapshot(self) -> Mapping[str, Any]:
        return self.resource.snapshot


class ResourceDescriptor(Protocol):
    """Reads the owner of one resource kind."""

    kind: str

    async def fetch_owner(self, resource_id: uuid.UUID) -> OwnedResource | None:
        """Return the resource's ownership view, or None if it does not exist."""
        ...


class CaseDescriptor:
    kind = "case"

    def __init__(self, case_repo: ICaseRepository) -> None:
        self._case_repo = case_repo

    async def fetch_owner(self, resource_id: uuid.UUID) -> OwnedResource | None:
        case = await self._case_repo.get_or_none(resource_id)
        if case is None:
            return None
        return OwnedResource(
            kind=self.kind,
            resource_id=case.id,
            owner_id=case.assigned_judge_id,
            role_owners={SubjectRole.CLERK: case.created_by_clerk_id},
            snapshot={
                "case_number": case.case_number,
                "procedural_state": case.procedural_state,
                "assigned_judge_pseudonym": case.assigned_judge_pseudonym,
            },
            case_reference=case.case_number,
        )


class DecisionDescriptor:
    """Decisions are owned by their author."""

    kind = "decision"

    def __init__(self, decision_repo: IDecisionRepository) -> None:
        self._decision_repo = decision_repo

    async def fetch_owner(self, resource_id: uuid.UUID) -> OwnedResource | None:
        decision = await self._decision_repo.get_or_none(resource_id)
        if decision is None:
            return None
        return OwnedResource(
            kind=self.kind,
            resource_id=decision.id,
            owner_id=decision.author_judge_id,
            snapshot={
                "case_id": decision.case_id,
                "state": decision.state,
                "version": decision.version,
            },
        )


class DocumentDescriptor:
    """Documents are owned through their case."""

    kind = "document"

    def __init__(self, document_repo: IDocumentRepository, case_repo: ICaseRepository) -> None:
        self._document_repo = document_repo
        self._case_repo = case_repo

    async def fetch_owner(self, resource_id: uuid.UUID) -> OwnedResource | None:
        document = await self._document_repo.get_or_none(resource_id)
        if document is None:
            return None
        case = await self._case_repo.get_or_none(document.case_id)
        return OwnedResource(
            kind=self.kind,
            resource_id=document.id,
            owner_id=case.assigned_judge_id if case else None,
            role_owners={SubjectRole.CLERK: case.created_by_clerk_id if case else None},
            snapshot={
                "case_id": document.case_id,
                "bound_decision_id": document.bound_decision_id,
                "content_hash": document.content_hash,
            },
            case_reference=case.case_number if case else None,
        )


def owner_for_role(resource: OwnedResource, role: SubjectRole) -> uuid.UUID | None:
    """Return the owner attribute a caller with this role is compared against."""
    if role in resource.role_owners:
        return resource.role_owners[role]
    return resource.owner_id


def is_allowed(resource: OwnedResource, caller: Caller) -> bool:
    """Pure ownership rule shared by every resource kind."""
    if not caller.is_active:
        return False
    if caller.role in BYPASS_ROLES:
        return True
    owner = owner_for_role(resource, caller.role)
    return owner is not None and owner == caller.subject_id


class OwnershipGuard:
    """Authorizes callers against resource ownership.

    Args:
        descriptors: One descriptor per resource kind.
        audit_log: Audit log receiving every access decision.
    """

    def __init__(self, descriptors: Iterable[ResourceDescriptor], audit_log: AuditLog) -> None:
        self._descriptors = {descriptor.kind: descriptor for descriptor in descriptors}
        self._audit_log = audit_log

    async def authorize(self, kind: str, resource_id: uuid.UUID, caller: Caller) -> AccessGrant:
        """Check that the caller may act on a resource.

        Args:
            kind: Resource kind registered with this guard.
            resource_id: The resource UUID.
            caller: The authenticated caller.

        Returns:
            AccessGrant carrying a fresh snapshot of the resource.

        Raises:
            NotFoundError: If the resource does not exist.
            ForbiddenError: If the caller does not own the resource.
            KeyError: If no descriptor is registered for kind.
        """
        descriptor = self._descriptors[kind]
        resource = await descriptor.fetch_owner(resource_id)

        if resource is None:
            await self._audit_log.record(
                AuditRecord(
                    event_type="RESOURCE_NOT_FOUND",
                    severity=Severity.MEDIUM,
                    module=MODULE,
                    description=f"Access attempt on missing {kind}",
                    actor_id=caller.subject_id,
                    actor_role=caller.role,
                    details={"resource_kind": kind, "resource_id": str(resource_id)},
                    source_ip=caller.source_ip,
                )
            )
            raise NotFoundError(resource=kind, resource_id=str(resource_id))

        if not is_allowed(resource, caller):
            checked_owner = owner_for_role(resource, caller.role)
            logger.warning(
                "Access denied",
                resource_kind=kind,
                resource_id=str(resource_id),
                caller_id=str(caller.subject_id),
                role=str(caller.role),
            )
            await self._audit_log.record(
                AuditRecord(
                    event_type="RESOURCE_ACCESS_DENIED",
                    severity=Severity.HIGH,
                    module=MODULE,
                    description=f"Access denied to {kind} owned by another subject",
                    actor_id=caller.subject_id,
                    actor_role=caller.role,
                    details={
                        "resource_kind": kind,
                        "resource_id": str(resource_id),
                        "real_owner_id": str(checked_owner) if checked_owner else None,
                        "role_specific_owner": caller.role in resource.role_owners,
                        "intruder_id": str(caller.subject_id),
                        "intruder_email": caller.email,
                        "caller_active": caller.is_active,
                    },
                    case_reference=resource.case_reference,
                    source_ip=caller.source_ip,
                )
            )
            raise ForbiddenError(resource=kind, resource_id=str(resource_id))

        await self._audit_log.record(
            AuditRecord(
                event_type="RESOURCE_ACCESS_GRANTED",
                severity=Severity.LOW,
                module=MODULE,
                description=f"Access granted to {kind}",
                actor_id=caller.subject_id,
                actor_role=caller.role,
                details={
                    "resource_kind": kind,
                    "resource_id": str(resource_id),
                    "bypass": caller.role in BYPASS_ROLES,
                },
                case_reference=resource.case_reference,
                source_ip=caller.source_ip,
            )
        )
        return AccessGrant(resource=resource)
