"""Signed artifact rendering and filesystem storage.

JsonArtifactRenderer produces a canonical JSON envelope holding the signed
text and its signature block. Rendering to a print layout happens downstream
and is not part of this service.

FilesystemArtifactStore keeps artifacts under a root directory. Blocking file
I/O runs in a worker thread.
"""

import asyncio
import json
from pathlib import Path

from judicial_core.core.interfaces import SignatureMetadata
from judicial_core.core.models import utcnow
from judicial_core.observability import get_logger

logger = get_logger(__name__)

ENVELOPE_VERSION = "1.0"
ENVELOPE_TYPE = "SignedJudicialDecision"


class JsonArtifactRenderer:
    """Renders signed decisions as canonical JSON envelopes."""

    def render(self, content: str, metadata: SignatureMetadata) -> bytes:
        envelope = {
            "version": ENVELOPE_VERSION,
            "type": ENVELOPE_TYPE,
            "content": content,
            "signature": {
                "algorithm": metadata.algorithm,
                "certificate_serial": metadata.certificate_serial,
                "key_id": metadata.key_id,
                "signed_at": metadata.signed_at.isoformat(),
                "content_hash": metadata.content_hash,
                "signature_b64": metadata.signature_b64,
            },
            "generated_at": utcnow().isoformat(),
        }
        return json.dumps(envelope, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    def extract_content(self, data: bytes) -> str | None:
        try:
            envelope = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        if not isinstance(envelope, dict) or envelope.get("type") != ENVELOPE_TYPE:
            return None
        content = envelope.get("content")
        return content if isinstance(content, str) else None


class FilesystemArtifactStore:
    """Stores artifacts as files under a root directory.

    Locations returned by save() are paths relative to the root, so the root
    can move without rewriting stored references.

    Args:
        root: Storage root directory; created on first save.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def _resolve(self, location: str) -> Path:
        target = (self._root / location).resolve()
        if not target.is_relative_to(self._root):
            raise PermissionError(f"Artifact location escapes storage root: {location}")
        return target

    def _write(self, data: bytes, path: str) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    async def save(self, data: bytes, path: str) -> str:
        location = await asyncio.to_thread(self._write, data, path)
        logger.info("Artifact stored", location=location, size_bytes=len(data))
        return location

    async def read(self, location: str) -> bytes:
        return await asyncio.to_thread(self._resolve(location).read_bytes)

    async def discard(self, location: str) -> None:
        try:
            await asyncio.to_thread(self._resolve(location).unlink, True)
        except OSError:
            logger.warning("Artifact could not be discarded", location=location, exc_info=True)
        else:
            logger.info("Artifact discarded", location=location)
