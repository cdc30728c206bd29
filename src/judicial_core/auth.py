"""Caller identity for judicial-core requests.

The identity service issues bearer JWTs carrying the subject id in `sub`.
Role and status are never trusted from the token: they are re-read from the
Subject table on every request so suspensions and role changes apply at once.
"""

import uuid
from dataclasses import dataclass
from typing import Annotated

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from judicial_core.adapters.database import get_db_session
from judicial_core.adapters.repositories import SubjectRepository
from judicial_core.core.models import SubjectRole, SubjectStatus
from judicial_core.errors import AuthenticationError
from judicial_core.observability import get_logger

logger = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """Authenticated subject performing a request.

    Attributes:
        subject_id: Real subject id. Never exposed publicly.
        role: Current role, read from the store.
        status: Current account status, read from the store.
        email: Login email, used only in audit details.
        source_ip: Client address of the request, when known.
    """

    subject_id: uuid.UUID
    role: SubjectRole
    status: SubjectStatus = SubjectStatus.ACTIVE
    email: str | None = None
    source_ip: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == SubjectStatus.ACTIVE

    @property
    def is_administrator(self) -> bool:
        return self.role == SubjectRole.ADMINISTRATOR


def decode_subject_id(token: str, secret: str, algorithm: str) -> uuid.UUID:
    """Verify a bearer token and return the subject id it carries.

    Args:
        token: Encoded JWT.
        secret: Verification key.
        algorithm: Expected signature algorithm.

    Returns:
        The subject UUID from the `sub` claim.

    Raises:
        AuthenticationError: If the token is invalid, expired or has no usable `sub`.
    """
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm], options={"require": ["sub"]})
    except jwt.PyJWTError as exc:
        logger.info("Bearer token rejected", reason=type(exc).__name__)
        raise AuthenticationError("Invalid or expired token") from exc

    try:
        return uuid.UUID(str(claims["sub"]))
    except ValueError as exc:
        raise AuthenticationError("Invalid token subject") from exc


async def get_current_caller(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db_session)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)] = None,
) -> Caller:
    """FastAPI dependency resolving the authenticated caller.

    Raises:
        AuthenticationError: If the token is missing or invalid, or the subject
            no longer exists or is not ACTIVE.
    """
    if credentials is None:
        raise AuthenticationError()

    settings = request.app.state.settings
    subject_id = decode_subject_id(
        credentials.credentials,
        settings.jwt_secret.get_secret_value(),
        settings.jwt_algorithm,
    )

    subject = await SubjectRepository(session).get_or_none(subject_id)
    if subject is None or subject.status != SubjectStatus.ACTIVE:
        logger.info("Caller rejected", subject_id=str(subject_id))
        raise AuthenticationError("Subject is not active")

    return Caller(
        subject_id=subject.id,
        role=SubjectRole(subject.role),
        status=SubjectStatus(subject.status),
        email=subject.email,
        source_ip=request.client.host if request.client else None,
    )
