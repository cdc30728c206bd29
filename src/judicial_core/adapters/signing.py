"""Ed25519 signing provider backed by a key directory.

Each judge's credential is two files in the key directory:

    <subject_id>.key   hex-encoded 32-byte Ed25519 seed
    <subject_id>.json  {"serial", "key_id", "valid_from", "valid_until"}

Provider failures are logged with their cause and surfaced to callers as a
generic CredentialError. Key material never reaches a log line.
"""

import asyncio
import base64
import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey

from judicial_core.core.interfaces import SignatureMetadata
from judicial_core.core.models import utcnow
from judicial_core.errors import CredentialError
from judicial_core.observability import get_logger

logger = get_logger(__name__)

ALGORITHM = "Ed25519"


@dataclass(frozen=True)
class Credential:
    """A loaded signing credential."""

    signing_key: SigningKey
    serial: str
    key_id: str
    valid_from: datetime
    valid_until: datetime

    def is_valid_at(self, moment: datetime) -> bool:
        return self.valid_from <= moment <= self.valid_until


def provision_credential(
    key_directory: str | Path,
    subject_id: uuid.UUID,
    serial: str,
    valid_days: int = 365,
    valid_from: datetime | None = None,
) -> str:
    """Generate and write a fresh Ed25519 credential for a subject.

    Args:
        key_directory: Directory holding credentials.
        subject_id: Subject the credential belongs to.
        serial: Credential serial number.
        valid_days: Validity window length.
        valid_from: Start of the validity window (defaults to now).

    Returns:
        The base64 public verify key.
    """
    directory = Path(key_directory)
    directory.mkdir(parents=True, exist_ok=True)

    signing_key = SigningKey.generate()
    start = valid_from or utcnow()
    verify_key_b64 = base64.b64encode(bytes(signing_key.verify_key)).decode("ascii")
    descriptor = {
        "serial": serial,
        "key_id": f"kid:{hashlib.sha256(bytes(signing_key.verify_key)).hexdigest()[:16]}",
        "valid_from": start.isoformat(),
        "valid_until": (start + timedelta(days=valid_days)).isoformat(),
        "public_key": verify_key_b64,
    }

    key_path = directory / f"{subject_id}.key"
    key_path.write_text(bytes(signing_key).hex())
    key_path.chmod(0o600)
    (directory / f"{subject_id}.json").write_text(json.dumps(descriptor, indent=2))

    logger.info("Signing credential provisioned", subject_id=str(subject_id), serial=serial)
    return verify_key_b64


class Ed25519KeyDirectorySigner:
    """Signing provider reading per-subject Ed25519 credentials from disk.

    Args:
        key_directory: Directory holding <subject_id>.key and <subject_id>.json.
    """

    def __init__(self, key_directory: str | Path) -> None:
        self._key_directory = Path(key_directory)

    def _load(self, subject_id: uuid.UUID) -> Credential:
        key_path = self._key_directory / f"{subject_id}.key"
        descriptor_path = self._key_directory / f"{subject_id}.json"
        descriptor = json.loads(descriptor_path.read_text())
        return Credential(
            signing_key=SigningKey(bytes.fromhex(key_path.read_text().strip())),
            serial=descriptor["serial"],
            key_id=descriptor["key_id"],
            valid_from=datetime.fromisoformat(descriptor["valid_from"]),
            valid_until=datetime.fromisoformat(descriptor["valid_until"]),
        )

    async def _load_credential(self, subject_id: uuid.UUID) -> Credential:
        try:
            return await asyncio.to_thread(self._load, subject_id)
        except (OSError, ValueError, KeyError, CryptoError) as exc:
            logger.warning(
                "Signing credential unavailable",
                subject_id=str(subject_id),
                reason=type(exc).__name__,
            )
            raise CredentialError() from exc

    async def has_valid_credential(self, subject_id: uuid.UUID) -> bool:
        """Return True if the subject holds a credential valid right now."""
        try:
            credential = await self._load_credential(subject_id)
        except CredentialError:
            return False
        return credential.is_valid_at(utcnow())

    async def sign(self, subject_id: uuid.UUID, content: bytes) -> SignatureMetadata:
        """Sign content with the subject's key.

        Raises:
            CredentialError: If the credential is missing, malformed or outside
                its validity window.
        """
        credential = await self._load_credential(subject_id)
        now = utcnow()
        if not credential.is_valid_at(now):
            logger.warning(
                "Signing credential outside validity window",
                subject_id=str(subject_id),
                serial=credential.serial,
            )
            raise CredentialError()

        signature = credential.signing_key.sign(content).signature
        logger.info("Content signed", subject_id=str(subject_id), key_id=credential.key_id)
        return SignatureMetadata(
            algorithm=ALGORITHM,
            certificate_serial=credential.serial,
            key_id=credential.key_id,
            signature_b64=base64.b64encode(signature).decode("ascii"),
            content_hash=hashlib.sha256(content).hexdigest(),
            signed_at=now,
        )

    async def verify(self, subject_id: uuid.UUID, content: bytes, signature_b64: str) -> bool:
        """Return True if signature_b64 is a valid signature over content by the subject's key.

        Raises:
            CredentialError: If the subject's credential cannot be loaded.
        """
        credential = await self._load_credential(subject_id)
        try:
            credential.signing_key.verify_key.verify(content, base64.b64decode(signature_b64))
        except (BadSignatureError, ValueError):
            return False
        return True
