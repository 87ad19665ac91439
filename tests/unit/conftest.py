from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from docseal.audit.audit_log import AuditTrail
from docseal.audit.base import AuditEntry, BaseAuditSink
from docseal.database.models import (
    ASSIGNMENT_PENDING,
    ASSIGNMENT_SIGNED,
    DOCUMENT_COMPLETED,
    SIGNATURE_DRAFT,
    SIGNATURE_FINAL,
    DocumentRecord,
    DocumentVersionRecord,
    GroupMemberRecord,
    PackageDocumentRecord,
    PackageRecord,
    PinAttemptState,
    SignatureRecord,
    SignerAssignmentRecord,
    UserRecord,
)
from docseal.database.repositories.base import (
    BaseDocumentRepository,
    BaseGroupMemberRepository,
    BasePackageRepository,
    BaseSignatureRepository,
    BaseSignerAssignmentRepository,
    BaseUserRepository,
    BaseVersionRepository,
)
from docseal.exceptions import NotFoundError
from docseal.storage.local_adapter import LocalBlobStore


class FakeSignerAssignmentRepository(BaseSignerAssignmentRepository):
    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], SignerAssignmentRecord] = {}

    def create_assignments(self, document_id: str, user_ids: Iterable[str]) -> int:
        created = 0
        for user_id in user_ids:
            if (document_id, user_id) not in self.rows:
                self.rows[(document_id, user_id)] = SignerAssignmentRecord(
                    document_id=document_id, user_id=user_id, status=ASSIGNMENT_PENDING
                )
                created += 1
        return created

    def find_pending(self, document_id: str, user_id: str) -> SignerAssignmentRecord | None:
        row = self.rows.get((document_id, user_id))
        if row is None or row.status != ASSIGNMENT_PENDING:
            return None
        return row

    def find_all_by_document_id(self, document_id: str) -> list[SignerAssignmentRecord]:
        return [row for key, row in self.rows.items() if key[0] == document_id]

    def mark_signed(self, document_id: str, user_id: str, signature_id: str) -> bool:
        if self.find_pending(document_id, user_id) is None:
            return False
        self.rows[(document_id, user_id)] = SignerAssignmentRecord(
            document_id=document_id,
            user_id=user_id,
            status=ASSIGNMENT_SIGNED,
            signature_id=signature_id,
        )
        return True

    def count_pending(self, document_id: str) -> int:
        return sum(
            1
            for row in self.find_all_by_document_id(document_id)
            if row.status == ASSIGNMENT_PENDING
        )

    def reset_signers(self, document_id: str) -> int:
        reset = 0
        for key, row in list(self.rows.items()):
            if key[0] == document_id:
                self.rows[key] = replace(row, status=ASSIGNMENT_PENDING, signature_id=None)
                reset += 1
        return reset


class FakeVersionRepository(BaseVersionRepository):
    """Mirrors the conditional UPDATE semantics of the PostgreSQL repository."""

    def __init__(self) -> None:
        self.rows: dict[str, DocumentVersionRecord] = {}
        self._created = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def put(self, version: DocumentVersionRecord) -> DocumentVersionRecord:
        self.rows[version.id] = version
        return version

    def find_by_id(self, version_id: str) -> DocumentVersionRecord:
        if version_id not in self.rows:
            raise NotFoundError(f"Version {version_id} not found")
        return self.rows[version_id]

    def find_all_by_document_id(self, document_id: str) -> list[DocumentVersionRecord]:
        return [row for row in self.rows.values() if row.document_id == document_id]

    def find_by_uploader_and_source_hash(
        self, uploader_id: str, source_hash: str
    ) -> DocumentVersionRecord | None:
        for row in self.rows.values():
            if row.uploader_id == uploader_id and row.source_hash == source_hash:
                return row
        return None

    def create(self, version: DocumentVersionRecord) -> DocumentVersionRecord:
        self._created += timedelta(seconds=1)
        return self.put(replace(version, created_at=self._created))

    def register_failed_attempt(
        self,
        version_id: str,
        *,
        max_attempts: int,
        lockout_minutes: int,
    ) -> PinAttemptState | None:
        row = self.find_by_id(version_id)
        now = datetime.now(timezone.utc)
        if row.is_time_locked(now):
            return None

        if row.locked_until is not None:
            retry_count = 1
        else:
            retry_count = min(row.retry_count + 1, max_attempts)
        locked_until = None
        if retry_count >= max_attempts:
            locked_until = now + timedelta(minutes=lockout_minutes)

        self.rows[version_id] = replace(row, retry_count=retry_count, locked_until=locked_until)
        return PinAttemptState(retry_count=retry_count, locked_until=locked_until)

    def reset_attempts(self, version_id: str) -> None:
        row = self.find_by_id(version_id)
        self.rows[version_id] = replace(row, retry_count=0, locked_until=None)


class FakeDocumentRepository(BaseDocumentRepository):
    def __init__(
        self,
        versions: FakeVersionRepository,
        assignments: FakeSignerAssignmentRepository,
        signatures: "FakeSignatureRepository",
    ) -> None:
        self.rows: dict[str, DocumentRecord] = {}
        self._versions = versions
        self._assignments = assignments
        self._signatures = signatures

    def put(self, document: DocumentRecord) -> DocumentRecord:
        self.rows[document.id] = document
        return document

    def find_by_id(self, document_id: str) -> DocumentRecord:
        if document_id not in self.rows:
            raise NotFoundError(f"Document {document_id} not found")
        return self.rows[document_id]

    def create_with_first_version(
        self,
        document: DocumentRecord,
        version: DocumentVersionRecord,
    ) -> DocumentRecord:
        created = self._versions.create(version)
        return self.put(replace(document, current_version_id=created.id))

    def update_pointer(
        self,
        document_id: str,
        *,
        current_version_id: str,
        status: str,
        signed_file_ref: str | None,
    ) -> DocumentRecord:
        row = self.find_by_id(document_id)
        return self.put(
            replace(
                row,
                current_version_id=current_version_id,
                status=status,
                signed_file_ref=signed_file_ref,
            )
        )

    def record_signed_version(
        self,
        version: DocumentVersionRecord,
        signatures: Sequence[SignatureRecord],
        *,
        status: str,
        signed_file_ref: str,
    ) -> tuple[DocumentRecord, DocumentVersionRecord]:
        self.find_by_id(version.document_id)
        created = self._versions.create(version)
        for signature in signatures:
            self._signatures.rows[signature.id] = replace(
                signature, document_version_id=created.id
            )
        document = self.update_pointer(
            version.document_id,
            current_version_id=created.id,
            status=status,
            signed_file_ref=signed_file_ref,
        )
        return document, created

    def set_status(self, document_id: str, status: str) -> None:
        self.put(replace(self.find_by_id(document_id), status=status))

    def claim_finalization(self, document_id: str) -> bool:
        row = self.find_by_id(document_id)
        if row.status == DOCUMENT_COMPLETED or row.finalizing:
            return False
        if self._assignments.count_pending(document_id):
            return False
        self.put(replace(row, finalizing=True))
        return True

    def complete_finalization(
        self,
        document_id: str,
        *,
        current_version_id: str,
        signed_file_ref: str,
    ) -> DocumentRecord:
        row = self.find_by_id(document_id)
        return self.put(
            replace(
                row,
                current_version_id=current_version_id,
                status=DOCUMENT_COMPLETED,
                signed_file_ref=signed_file_ref,
                finalizing=False,
            )
        )

    def release_finalization(self, document_id: str) -> None:
        self.put(replace(self.find_by_id(document_id), finalizing=False))


class FakeSignatureRepository(BaseSignatureRepository):
    def __init__(self, assignments: FakeSignerAssignmentRepository) -> None:
        self.rows: dict[str, SignatureRecord] = {}
        self._assignments = assignments

    def find_by_id(self, signature_id: str) -> SignatureRecord | None:
        return self.rows.get(signature_id)

    def find_by_signer_and_version(
        self, signer_id: str, version_id: str
    ) -> SignatureRecord | None:
        matches = [
            row
            for row in self.rows.values()
            if row.signer_id == signer_id and row.document_version_id == version_id
        ]
        matches.sort(key=lambda row: row.status != SIGNATURE_DRAFT)
        return matches[0] if matches else None

    def find_all_by_version_id(self, version_id: str) -> list[SignatureRecord]:
        return [row for row in self.rows.values() if row.document_version_id == version_id]

    def create(self, signature: SignatureRecord) -> SignatureRecord:
        if signature.status == SIGNATURE_DRAFT:
            existing = self.find_by_signer_and_version(
                signature.signer_id, signature.document_version_id
            )
            if existing is not None and existing.status == SIGNATURE_DRAFT:
                merged = replace(
                    existing,
                    page_number=signature.page_number,
                    position_x=signature.position_x,
                    position_y=signature.position_y,
                    width=signature.width,
                    height=signature.height,
                    image_ref=signature.image_ref,
                )
                self.rows[existing.id] = merged
                return merged
        self.rows[signature.id] = signature
        return signature

    def update_draft(
        self,
        signature_id: str,
        *,
        page_number: int,
        position_x: float,
        position_y: float,
        width: float,
        height: float,
        image_ref: str | None = None,
    ) -> SignatureRecord | None:
        row = self.rows.get(signature_id)
        if row is None or row.status != SIGNATURE_DRAFT:
            return None
        updated = replace(
            row,
            page_number=page_number,
            position_x=position_x,
            position_y=position_y,
            width=width,
            height=height,
            image_ref=image_ref if image_ref is not None else row.image_ref,
        )
        self.rows[signature_id] = updated
        return updated

    def finalize_with_assignment(
        self,
        signature_id: str,
        document_id: str,
        *,
        ip_address: str | None,
        user_agent: str | None,
        signed_at: datetime,
    ) -> SignatureRecord | None:
        row = self.rows.get(signature_id)
        if row is None or row.status != SIGNATURE_DRAFT:
            return None
        if self._assignments.find_pending(document_id, row.signer_id) is None:
            return None
        final = replace(
            row,
            status=SIGNATURE_FINAL,
            ip_address=ip_address,
            user_agent=user_agent,
            signed_at=signed_at,
        )
        self.rows[signature_id] = final
        self._assignments.mark_signed(document_id, row.signer_id, signature_id)
        return final

    def delete_draft(self, signature_id: str) -> bool:
        row = self.rows.get(signature_id)
        if row is None or row.status != SIGNATURE_DRAFT:
            return False
        del self.rows[signature_id]
        return True

    def delete_by_version(self, version_id: str) -> int:
        doomed = [key for key, row in self.rows.items() if row.document_version_id == version_id]
        for key in doomed:
            del self.rows[key]
        return len(doomed)


class FakePackageRepository(BasePackageRepository):
    def __init__(
        self,
        documents: FakeDocumentRepository,
        versions: FakeVersionRepository,
    ) -> None:
        self.rows: dict[str, PackageRecord] = {}
        self.entries: dict[str, PackageDocumentRecord] = {}
        self._documents = documents
        self._versions = versions

    def create_with_documents(
        self, package: PackageRecord, version_ids: Sequence[str]
    ) -> PackageRecord:
        self.rows[package.id] = package
        for position, version_id in enumerate(version_ids):
            entry_id = f"{package.id}-entry-{position}"
            self.entries[entry_id] = PackageDocumentRecord(
                id=entry_id,
                package_id=package.id,
                document_version_id=version_id,
                document_id=self._versions.find_by_id(version_id).document_id,
                position=position,
            )
        return package

    def find_by_id(self, package_id: str, owner_id: str) -> PackageRecord:
        row = self.rows.get(package_id)
        if row is None or row.owner_id != owner_id:
            raise NotFoundError(f"Package {package_id} not found")
        return row

    def find_documents(self, package_id: str) -> list[PackageDocumentRecord]:
        entries = [e for e in self.entries.values() if e.package_id == package_id]
        return sorted(entries, key=lambda entry: entry.position)

    def find_document_by_version(self, version_id: str) -> PackageDocumentRecord | None:
        for entry in self.entries.values():
            if entry.document_version_id == version_id:
                return entry
        return None

    def record_signed_document(
        self,
        package_document_id: str,
        version: DocumentVersionRecord,
        signatures: Sequence[SignatureRecord],
        *,
        signed_file_ref: str,
    ) -> tuple[DocumentRecord, DocumentVersionRecord]:
        entry = self.entries[package_document_id]
        document, created = self._documents.record_signed_version(
            version, signatures, status=DOCUMENT_COMPLETED, signed_file_ref=signed_file_ref
        )
        self.entries[package_document_id] = replace(entry, document_version_id=created.id)
        return document, created

    def update_status(self, package_id: str, status: str) -> None:
        self.rows[package_id] = replace(self.rows[package_id], status=status)


class FakeGroupMemberRepository(BaseGroupMemberRepository):
    def __init__(self) -> None:
        self.rows: dict[tuple[int, str], GroupMemberRecord] = {}

    def add(self, group_id: int, user_id: str, role: str) -> None:
        self.rows[(group_id, user_id)] = GroupMemberRecord(
            group_id=group_id, user_id=user_id, role=role
        )

    def find_by_group_and_user(self, group_id: int, user_id: str) -> GroupMemberRecord | None:
        return self.rows.get((group_id, user_id))


class FakeUserRepository(BaseUserRepository):
    def __init__(self) -> None:
        self.rows: dict[str, UserRecord] = {}

    def add(self, user_id: str, name: str, email: str) -> None:
        self.rows[user_id] = UserRecord(id=user_id, name=name, email=email)

    def find_by_ids(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        return {user_id: self.rows[user_id] for user_id in user_ids if user_id in self.rows}


class RecordingAuditSink(BaseAuditSink):
    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def log(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    @property
    def actions(self) -> list[str]:
        return [entry.action for entry in self.entries]


@pytest.fixture
def assignments() -> FakeSignerAssignmentRepository:
    return FakeSignerAssignmentRepository()


@pytest.fixture
def versions() -> FakeVersionRepository:
    return FakeVersionRepository()


@pytest.fixture
def documents(
    versions: FakeVersionRepository,
    assignments: FakeSignerAssignmentRepository,
    signatures: FakeSignatureRepository,
) -> FakeDocumentRepository:
    return FakeDocumentRepository(versions, assignments, signatures)


@pytest.fixture
def signatures(assignments: FakeSignerAssignmentRepository) -> FakeSignatureRepository:
    return FakeSignatureRepository(assignments)


@pytest.fixture
def members() -> FakeGroupMemberRepository:
    return FakeGroupMemberRepository()


@pytest.fixture
def users() -> FakeUserRepository:
    repo = FakeUserRepository()
    repo.add("owner-1", "Olena Owner", "owner@example.com")
    repo.add("signer-a", "Andrii A", "a@example.com")
    repo.add("signer-b", "Bohdana B", "b@example.com")
    repo.add("admin-1", "Ada Admin", "admin@example.com")
    return repo


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def audit(audit_sink: RecordingAuditSink) -> AuditTrail:
    return AuditTrail(audit_sink)


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "files")


@pytest.fixture
def packages(
    documents: FakeDocumentRepository, versions: FakeVersionRepository
) -> FakePackageRepository:
    return FakePackageRepository(documents, versions)
