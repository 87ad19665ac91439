import re

from docseal.audit.audit_log import AuditTrail
from docseal.audit.base import ROLLBACK_VERSION
from docseal.database.models import (
    DOCUMENT_COMPLETED,
    DOCUMENT_PENDING,
    DocumentRecord,
    DocumentVersionRecord,
)
from docseal.database.repositories.base import (
    BaseDocumentRepository,
    BaseGroupMemberRepository,
    BaseSignatureRepository,
    BaseSignerAssignmentRepository,
    BaseVersionRepository,
)
from docseal.documents.access import can_manage
from docseal.exceptions import PermissionDeniedError, ValidationError
from docseal.logging.logger import Log
from docseal.storage.base import BaseBlobStore

_UNSAFE_FILENAME_CHARS = re.compile(r'[\s/\\?%*:|"<>]')


def download_filename(title: str, version_number: int) -> str:
    """Build ``signed-{title}-v{n}.pdf`` with filesystem-unsafe characters replaced."""
    stem = re.sub(r"\.pdf$", "", title, flags=re.IGNORECASE)
    return f"signed-{_UNSAFE_FILENAME_CHARS.sub('_', stem)}-v{version_number}.pdf"


class VersionStateMachine:
    """Owns the current-version pointer and the status derived from it.

    Rolling back to the original (earliest) version discards every signature
    on it and re-opens all group assignments. Rolling back to any later
    version restores it as-is: completed if it is sealed, pending otherwise.
    """

    def __init__(
        self,
        *,
        documents: BaseDocumentRepository,
        versions: BaseVersionRepository,
        signatures: BaseSignatureRepository,
        assignments: BaseSignerAssignmentRepository,
        members: BaseGroupMemberRepository,
        blob_store: BaseBlobStore,
        audit: AuditTrail,
        signed_url_ttl_seconds: int = 60,
    ) -> None:
        self._documents = documents
        self._versions = versions
        self._signatures = signatures
        self._assignments = assignments
        self._members = members
        self._blob_store = blob_store
        self._audit = audit
        self._signed_url_ttl_seconds = signed_url_ttl_seconds

    def rollback(self, document_id: str, version_id: str, actor_id: str) -> DocumentRecord:
        """Make version_id the current version of the document.

        Raises:
            NotFoundError: if the document or version does not exist.
            PermissionDeniedError: if the actor is neither owner nor group admin.
            ValidationError: if the version belongs to another document.
        """
        document = self._documents.find_by_id(document_id)
        if not can_manage(self._members, document, actor_id):
            raise PermissionDeniedError(
                f"User {actor_id} may not roll back document {document_id}"
            )

        version = self._versions.find_by_id(version_id)
        if version.document_id != document_id:
            raise ValidationError(
                f"Version {version_id} does not belong to document {document_id}"
            )

        history = self._versions.find_all_by_document_id(document_id)
        is_original = bool(history) and history[0].id == version_id

        if is_original:
            deleted = self._signatures.delete_by_version(version_id)
            if document.group_id is not None:
                self._assignments.reset_signers(document_id)
            status, signed_file_ref = DOCUMENT_PENDING, None
            Log.info(
                f"Rollback of document {document_id} to original version: "
                f"{deleted} signatures purged"
            )
        elif version.is_sealed:
            status, signed_file_ref = DOCUMENT_COMPLETED, version.storage_ref
        else:
            status, signed_file_ref = DOCUMENT_PENDING, None

        updated = self._documents.update_pointer(
            document_id,
            current_version_id=version_id,
            status=status,
            signed_file_ref=signed_file_ref,
        )
        self._audit.record(
            ROLLBACK_VERSION,
            f"Document {document_id} rolled back to version {version_id} ({status})",
            actor_id=actor_id,
            target_id=document_id,
        )
        return updated

    def version_file_url(
        self, document_id: str, version_id: str, download: bool = False
    ) -> str:
        """Issue a short-lived URL for a version's file.

        Raises:
            NotFoundError: if the document or version does not exist.
            ValidationError: if the version belongs to another document.
        """
        document = self._documents.find_by_id(document_id)
        version = self._versions.find_by_id(version_id)
        if version.document_id != document_id:
            raise ValidationError(
                f"Version {version_id} does not belong to document {document_id}"
            )

        filename = None
        if download:
            filename = download_filename(document.title, self._version_number(version))
        return self._blob_store.signed_url(
            version.storage_ref, self._signed_url_ttl_seconds, filename
        )

    def _version_number(self, version: DocumentVersionRecord) -> int:
        history = self._versions.find_all_by_document_id(version.document_id)
        for index, candidate in enumerate(history, start=1):
            if candidate.id == version.id:
                return index
        return 1
