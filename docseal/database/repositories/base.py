from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import datetime

from docseal.database.models import (
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


class BaseDocumentRepository(ABC):
    """Contract for document persistence."""

    @abstractmethod
    def find_by_id(self, document_id: str) -> DocumentRecord:
        """Raises NotFoundError if no document with this ID exists."""

    @abstractmethod
    def create_with_first_version(
        self,
        document: DocumentRecord,
        version: DocumentVersionRecord,
    ) -> DocumentRecord:
        """Insert the document and its original version in one transaction."""

    @abstractmethod
    def update_pointer(
        self,
        document_id: str,
        *,
        current_version_id: str,
        status: str,
        signed_file_ref: str | None,
    ) -> DocumentRecord:
        """Move the current-version pointer together with the derived status."""

    @abstractmethod
    def record_signed_version(
        self,
        version: DocumentVersionRecord,
        signatures: Sequence[SignatureRecord],
        *,
        status: str,
        signed_file_ref: str,
    ) -> tuple[DocumentRecord, DocumentVersionRecord]:
        """Insert a sealed version with its final signatures and move the pointer.

        All writes happen in one transaction; on failure nothing is kept.
        """

    @abstractmethod
    def set_status(self, document_id: str, status: str) -> None:
        """Set the derived status without moving the pointer."""

    @abstractmethod
    def claim_finalization(self, document_id: str) -> bool:
        """Atomically claim a group document for finalization.

        Succeeds only if the document is not completed, no other claim is in
        flight and no signer assignment is still pending.
        """

    @abstractmethod
    def complete_finalization(
        self,
        document_id: str,
        *,
        current_version_id: str,
        signed_file_ref: str,
    ) -> DocumentRecord:
        """Release the claim and mark the document completed."""

    @abstractmethod
    def release_finalization(self, document_id: str) -> None:
        """Release a claim after a failed finalization."""


class BaseVersionRepository(ABC):
    """Contract for document version persistence."""

    @abstractmethod
    def find_by_id(self, version_id: str) -> DocumentVersionRecord:
        """Raises NotFoundError if no version with this ID exists."""

    @abstractmethod
    def find_all_by_document_id(self, document_id: str) -> list[DocumentVersionRecord]:
        """Return all versions of a document, oldest first."""

    @abstractmethod
    def find_by_uploader_and_source_hash(
        self, uploader_id: str, source_hash: str
    ) -> DocumentVersionRecord | None:
        """Find an existing upload of the same bytes by the same user."""

    @abstractmethod
    def create(self, version: DocumentVersionRecord) -> DocumentVersionRecord:
        """Insert a new version. signed_hash, if set, is final."""

    @abstractmethod
    def register_failed_attempt(
        self,
        version_id: str,
        *,
        max_attempts: int,
        lockout_minutes: int,
    ) -> PinAttemptState | None:
        """Atomically count a wrong PIN and lock when max_attempts is reached.

        Returns None when the version is currently time-locked, in which case
        nothing is written.
        """

    @abstractmethod
    def reset_attempts(self, version_id: str) -> None:
        """Clear retry_count and locked_until after a correct PIN."""


class BaseSignatureRepository(ABC):
    """Contract for signature record persistence."""

    @abstractmethod
    def find_by_id(self, signature_id: str) -> SignatureRecord | None:
        """Return the record or None."""

    @abstractmethod
    def find_by_signer_and_version(
        self, signer_id: str, version_id: str
    ) -> SignatureRecord | None:
        """Return the signer's record on a version, draft rows first."""

    @abstractmethod
    def find_all_by_version_id(self, version_id: str) -> list[SignatureRecord]:
        """Return every record tied to a version."""

    @abstractmethod
    def create(self, signature: SignatureRecord) -> SignatureRecord:
        """Insert a record; a second draft for the same pair collapses onto the first."""

    @abstractmethod
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
        """Update a draft in place. Returns None if the row is not a draft."""

    @abstractmethod
    def finalize_with_assignment(
        self,
        signature_id: str,
        document_id: str,
        *,
        ip_address: str | None,
        user_agent: str | None,
        signed_at: datetime,
    ) -> SignatureRecord | None:
        """Promote a draft to final and mark the signer's pending assignment signed.

        Both writes happen atomically. Returns None, writing nothing, if the
        row is not a draft or the assignment is not pending.
        """

    @abstractmethod
    def delete_draft(self, signature_id: str) -> bool:
        """Delete a draft row. Final rows are never deleted here."""

    @abstractmethod
    def delete_by_version(self, version_id: str) -> int:
        """Delete every record tied to a version, for all signers."""


class BaseSignerAssignmentRepository(ABC):
    """Contract for group signer checklist persistence."""

    @abstractmethod
    def create_assignments(self, document_id: str, user_ids: Iterable[str]) -> int:
        """Create pending rows, skipping users that are already assigned."""

    @abstractmethod
    def find_pending(self, document_id: str, user_id: str) -> SignerAssignmentRecord | None:
        """Return the user's assignment only if it is still pending."""

    @abstractmethod
    def find_all_by_document_id(self, document_id: str) -> list[SignerAssignmentRecord]:
        """Return every assignment of a document."""

    @abstractmethod
    def count_pending(self, document_id: str) -> int:
        """Count assignments still pending."""

    @abstractmethod
    def reset_signers(self, document_id: str) -> int:
        """Move every assignment of the document back to pending."""


class BaseGroupMemberRepository(ABC):
    """Contract for group membership lookups."""

    @abstractmethod
    def find_by_group_and_user(self, group_id: int, user_id: str) -> GroupMemberRecord | None:
        """Return the membership row or None."""


class BaseUserRepository(ABC):
    """Contract for user identity lookups."""

    @abstractmethod
    def find_by_ids(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        """Return users keyed by id; unknown ids are absent."""


class BasePackageRepository(ABC):
    """Contract for signing package persistence."""

    @abstractmethod
    def create_with_documents(
        self, package: PackageRecord, version_ids: Sequence[str]
    ) -> PackageRecord:
        """Insert the package and one entry per version, in order, in one transaction."""

    @abstractmethod
    def find_by_id(self, package_id: str, owner_id: str) -> PackageRecord:
        """Raises NotFoundError unless the package exists and belongs to owner_id."""

    @abstractmethod
    def find_documents(self, package_id: str) -> list[PackageDocumentRecord]:
        """Return the package entries in their original order."""

    @abstractmethod
    def find_document_by_version(self, version_id: str) -> PackageDocumentRecord | None:
        """Return the entry currently pointing at a version, if any."""

    @abstractmethod
    def record_signed_document(
        self,
        package_document_id: str,
        version: DocumentVersionRecord,
        signatures: Sequence[SignatureRecord],
        *,
        signed_file_ref: str,
    ) -> tuple[DocumentRecord, DocumentVersionRecord]:
        """Store a sealed version for one entry and complete its document.

        The version, its signatures, the document pointer and the entry's
        version are written in one transaction.
        """

    @abstractmethod
    def update_status(self, package_id: str, status: str) -> None:
        """Set the package status after a signing run."""
