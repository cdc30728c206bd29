"""Judge pseudonym directory.

Public codes look like JUD-3FA9C01B: the prefix plus the first eight upper-case
hex characters of an HMAC-SHA256 over the subject id, the current time in
milliseconds and a random nonce. The mapping is forward-only; there is no
function anywhere that turns a public code back into a subject id.
"""

import hashlib
import hmac
import secrets
import time
import uuid
from dataclasses import dataclass

from judicial_core.core.audit import AuditLog, AuditRecord
from judicial_core.core.interfaces import IPseudonymRepository
from judicial_core.core.models import Severity
from judicial_core.errors import PseudonymExhaustedError
from judicial_core.observability import get_logger

logger = get_logger(__name__)

MODULE = "pseudonyms"


@dataclass(frozen=True)
class PseudonymIssue:
    """Outcome of PseudonymDirectory.issue().

    Attributes:
        code: The subject's public code.
        issued: True when this call created the mapping.
        attempts: Candidates generated before a free code was found.
    """

    code: str
    issued: bool = False
    attempts: int = 0


class PseudonymDirectory:
    """Issues and resolves judge pseudonyms.

    The HMAC key is resolved once at startup and passed in explicitly.

    Args:
        mapping_repo: Forward-only mapping repository.
        hmac_key: Secret HMAC-SHA256 key. Must not be empty.
        audit_log: Audit log receiving PSEUDONYM_ISSUED events from record_issued().
        prefix: Public code prefix.
        max_attempts: Collision retries before giving up.
    """

    def __init__(
        self,
        mapping_repo: IPseudonymRepository,
        hmac_key: bytes,
        audit_log: AuditLog,
        prefix: str = "JUD",
        max_attempts: int = 10,
    ) -> None:
        if not hmac_key:
            raise ValueError("Pseudonym HMAC key must not be empty")
        self._mapping_repo = mapping_repo
        self._hmac_key = hmac_key
        self._audit_log = audit_log
        self._prefix = prefix
        self._max_attempts = max_attempts

    def _candidate(self, subject_id: uuid.UUID) -> str:
        message = f"{subject_id}-{time.time_ns() // 1_000_000}-{secrets.token_hex(8)}"
        digest = hmac.new(self._hmac_key, message.encode("utf-8"), hashlib.sha256).hexdigest()
        return f"{self._prefix}-{digest[:8].upper()}"

    async def issue(self, subject_id: uuid.UUID) -> PseudonymIssue:
        """Return the subject's pseudonym, creating it on first use.

        Idempotent: a subject that already has a code gets it back unchanged.
        The new mapping is flushed in the caller's transaction; once that
        transaction commits, the caller passes the result to record_issued().

        Args:
            subject_id: Real subject id.

        Returns:
            The public code and whether it was created by this call.

        Raises:
            PseudonymExhaustedError: If no unique code was found within max_attempts.
        """
        existing = await self._mapping_repo.get_by_subject(subject_id)
        if existing is not None:
            return PseudonymIssue(code=existing.public_code)

        for attempt in range(1, self._max_attempts + 1):
            candidate = self._candidate(subject_id)
            if await self._mapping_repo.code_exists(candidate):
                logger.warning("Pseudonym collision, regenerating", attempt=attempt)
                continue

            await self._mapping_repo.insert(subject_id, candidate)
            logger.info("Pseudonym issued", attempt=attempt)
            return PseudonymIssue(code=candidate, issued=True, attempts=attempt)

        logger.error("Pseudonym issuance exhausted", max_attempts=self._max_attempts)
        raise PseudonymExhaustedError(self._max_attempts)

    async def record_issued(self, issue: PseudonymIssue, issued_by: uuid.UUID | None = None) -> None:
        """Audit a committed issuance. Does nothing for a code that already existed.

        The event says that a code was issued, never which code or to whom.
        """
        if not issue.issued:
            return
        await self._audit_log.record(
            AuditRecord(
                event_type="PSEUDONYM_ISSUED",
                severity=Severity.MEDIUM,
                module=MODULE,
                description="New judge pseudonym issued",
                actor_id=issued_by,
                details={"pseudonym_issued": True, "attempts": issue.attempts},
            )
        )

    async def resolve(self, subject_id: uuid.UUID) -> str | None:
        """Return the subject's existing pseudonym without creating one."""
        mapping = await self._mapping_repo.get_by_subject(subject_id)
        return mapping.public_code if mapping is not None else None

    async def has_pseudonym(self, subject_id: uuid.UUID) -> bool:
        return await self.resolve(subject_id) is not None

    async def count(self) -> int:
        return await self._mapping_repo.count()
