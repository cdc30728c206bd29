"""Tests for the JSON artifact renderer and the filesystem artifact store."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from judicial_core.adapters.artifacts import ENVELOPE_TYPE, FilesystemArtifactStore, JsonArtifactRenderer
from judicial_core.core.interfaces import SignatureMetadata

METADATA = SignatureMetadata(
    algorithm="Ed25519",
    certificate_serial="SN-0001",
    key_id="kid:0123456789abcdef",
    signature_b64="c2lnbmF0dXJl",
    content_hash="a" * 64,
    signed_at=datetime(2026, 5, 4, 10, 0, tzinfo=UTC),
)


class TestJsonArtifactRenderer:
    """Tests for render() and extract_content()."""

    def test_render_embeds_content_and_signature(self) -> None:
        renderer = JsonArtifactRenderer()

        data = renderer.render("Signed electronically by judge JUD-0A1B2C3D", METADATA)

        envelope = json.loads(data)
        assert envelope["type"] == ENVELOPE_TYPE
        assert envelope["signature"]["certificate_serial"] == "SN-0001"
        assert envelope["signature"]["signed_at"] == "2026-05-04T10:00:00+00:00"
        assert renderer.extract_content(data) == "Signed electronically by judge JUD-0A1B2C3D"

    def test_non_ascii_content_survives(self) -> None:
        """Accented text is stored as UTF-8 and extracted unchanged."""
        renderer = JsonArtifactRenderer()
        content = "Decisão sobre a admissibilidade do recurso"

        data = renderer.render(content, METADATA)

        assert content.encode("utf-8") in data
        assert renderer.extract_content(data) == content

    @pytest.mark.parametrize(
        "data",
        [
            b"\xff\xfe not utf-8",
            b"{not json",
            b"[1, 2, 3]",
            json.dumps({"type": "SomethingElse", "content": "text"}).encode(),
            json.dumps({"type": ENVELOPE_TYPE, "content": 42}).encode(),
        ],
    )
    def test_extract_content_rejects_junk(self, data: bytes) -> None:
        assert JsonArtifactRenderer().extract_content(data) is None


class TestFilesystemArtifactStore:
    """Tests for save(), read() and discard()."""

    @pytest.mark.asyncio()
    async def test_save_returns_relative_location(self, tmp_path: Path) -> None:
        """Locations are relative to the root and nested directories are created."""
        store = FilesystemArtifactStore(tmp_path / "artifacts")

        location = await store.save(b"payload", "case-1/judgment_1.json")

        assert location == "case-1/judgment_1.json"
        assert (tmp_path / "artifacts" / "case-1" / "judgment_1.json").read_bytes() == b"payload"
        assert await store.read(location) == b"payload"

    @pytest.mark.asyncio()
    async def test_discard_removes_and_tolerates_missing(self, tmp_path: Path) -> None:
        store = FilesystemArtifactStore(tmp_path)
        location = await store.save(b"payload", "case-1/order.json")

        await store.discard(location)
        await store.discard(location)

        assert not (tmp_path / location).exists()

    @pytest.mark.asyncio()
    async def test_read_missing_raises_os_error(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            await FilesystemArtifactStore(tmp_path).read("case-1/missing.json")

    @pytest.mark.parametrize("location", ["../outside.json", "case-1/../../outside.json", "/etc/passwd"])
    @pytest.mark.asyncio()
    async def test_locations_cannot_escape_root(self, tmp_path: Path, location: str) -> None:
        """Paths resolving outside the storage root are refused."""
        store = FilesystemArtifactStore(tmp_path / "artifacts")

        with pytest.raises(PermissionError):
            await store.save(b"payload", location)
        with pytest.raises(PermissionError):
            await store.read(location)
        assert not (tmp_path / "outside.json").exists()
