import hashlib
from datetime import datetime, timezone

import pytest

from docseal.database.models import DocumentVersionRecord, SignatureRecord
from docseal.exceptions import NotFoundError
from docseal.verification.disclosure import owner_view, signer_views
from docseal.verification.integrity import IntegrityVerifier, compare, content_hash
from docseal.verification.models import IntegrityOutcome


def _version(signed_hash: str | None) -> DocumentVersionRecord:
    return DocumentVersionRecord(
        id="v-1",
        document_id="doc-1",
        uploader_id="owner-1",
        storage_ref="signed-documents/owner-1/a.pdf",
        source_hash="0" * 64,
        signed_hash=signed_hash,
    )


def _signature(signer_id: str, status: str, signed_at: datetime | None = None) -> SignatureRecord:
    return SignatureRecord(
        id=f"sig-{signer_id}-{status}",
        document_version_id="v-1",
        signer_id=signer_id,
        status=status,
        page_number=1,
        position_x=0.1,
        position_y=0.1,
        width=0.2,
        height=0.1,
        image_ref="data:image/png;base64,AAAA",
        ip_address="10.0.0.1",
        signed_at=signed_at,
    )


class TestContentHash:
    def test_is_sha256_hex(self) -> None:
        assert content_hash(b"abc") == hashlib.sha256(b"abc").hexdigest()


class TestCompare:
    def test_identical_bytes_are_valid(self) -> None:
        data = b"%PDF-1.7 sealed"

        result = compare(content_hash(data), data)

        assert result.outcome is IntegrityOutcome.VALID
        assert result.is_valid
        assert result.stored_hash == result.recalculated_hash

    def test_single_byte_change_is_invalid(self) -> None:
        data = b"%PDF-1.7 sealed"
        tampered = data[:-1] + b"D"

        result = compare(content_hash(data), tampered)

        assert result.outcome is IntegrityOutcome.INVALID
        assert not result.is_valid
        assert result.recalculated_hash == content_hash(tampered)

    def test_stored_hash_case_is_ignored(self) -> None:
        data = b"bytes"

        assert compare(content_hash(data).upper(), data).is_valid

    def test_missing_stored_hash_is_not_finalized(self) -> None:
        result = compare(None, b"bytes")

        assert result.outcome is IntegrityOutcome.NOT_FINALIZED
        assert result.stored_hash is None
        assert result.recalculated_hash == content_hash(b"bytes")


class TestIntegrityVerifier:
    def test_verify_version_loads_from_repository(self, versions) -> None:
        data = b"sealed artifact"
        versions.put(_version(content_hash(data)))

        result = IntegrityVerifier(versions).verify_version("v-1", data)

        assert result.outcome is IntegrityOutcome.VALID

    def test_unsealed_version_is_not_finalized(self, versions) -> None:
        versions.put(_version(None))

        result = IntegrityVerifier(versions).verify_version("v-1", b"anything")

        assert result.outcome is IntegrityOutcome.NOT_FINALIZED

    def test_unknown_version_raises(self, versions) -> None:
        with pytest.raises(NotFoundError):
            IntegrityVerifier(versions).verify_version("missing", b"anything")


class TestDisclosure:
    def test_owner_view(self, users) -> None:
        view = owner_view(users, "owner-1")

        assert view.name == "Olena Owner"
        assert view.email == "owner@example.com"

    def test_unknown_owner_has_no_identity(self, users) -> None:
        view = owner_view(users, "ghost")

        assert view.name is None
        assert view.email is None

    def test_signer_views_skip_drafts_and_keep_order(self, users) -> None:
        signed_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        records = [
            _signature("signer-b", "final", signed_at),
            _signature("signer-a", "draft"),
            _signature("signer-a", "final", signed_at),
        ]

        views = signer_views(users, records)

        assert [view.email for view in views] == ["b@example.com", "a@example.com"]
        assert views[0].signed_at == signed_at
        assert views[0].ip_address == "10.0.0.1"
