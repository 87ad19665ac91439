import uuid
from collections.abc import Iterable

from docseal.audit.audit_log import AuditTrail
from docseal.audit.base import UPLOAD_DOCUMENT
from docseal.database.models import (
    DOCUMENT_COMPLETED,
    DOCUMENT_DRAFT,
    DOCUMENT_PENDING,
    DocumentRecord,
    DocumentVersionRecord,
)
from docseal.database.repositories.base import (
    BaseDocumentRepository,
    BaseSignerAssignmentRepository,
    BaseVersionRepository,
)
from docseal.documents.exceptions import AlreadyCompletedError, DuplicateDocumentError
from docseal.exceptions import ValidationError
from docseal.logging.logger import Log
from docseal.pdf.exceptions import InvalidPdfError
from docseal.pdf.inspection import ensure_not_encrypted, page_count
from docseal.storage.base import BaseBlobStore
from docseal.verification.integrity import content_hash

PDF_MAGIC = b"%PDF-"


class DocumentIntake:
    """Creates documents from uploaded source PDFs."""

    def __init__(
        self,
        *,
        documents: BaseDocumentRepository,
        versions: BaseVersionRepository,
        assignments: BaseSignerAssignmentRepository,
        blob_store: BaseBlobStore,
        audit: AuditTrail,
    ) -> None:
        self._documents = documents
        self._versions = versions
        self._assignments = assignments
        self._blob_store = blob_store
        self._audit = audit

    def upload_document(
        self,
        owner_id: str,
        title: str,
        pdf_bytes: bytes,
        group_id: int | None = None,
        signer_ids: Iterable[str] = (),
    ) -> DocumentRecord:
        """Store a source PDF and create the document with its original version.

        Raises:
            ValidationError: if the title is empty or the bytes are not a PDF.
            SourceEncryptedError: if the PDF is password-protected.
            DuplicateDocumentError: if the owner already uploaded the same bytes.
            StorageError: if the upload fails.
        """
        if not title or not title.strip():
            raise ValidationError("Document title is required")
        self._validate_pdf(pdf_bytes)

        source_hash = content_hash(pdf_bytes)
        if self._versions.find_by_uploader_and_source_hash(owner_id, source_hash) is not None:
            raise DuplicateDocumentError(f"User {owner_id} already uploaded this file")

        signer_ids = list(dict.fromkeys(signer_ids))
        storage_ref = self._blob_store.upload(
            f"documents/{owner_id}/{uuid.uuid4().hex}.pdf", pdf_bytes
        )

        document_id = str(uuid.uuid4())
        document = self._documents.create_with_first_version(
            DocumentRecord(
                id=document_id,
                title=title.strip(),
                status=DOCUMENT_PENDING if signer_ids else DOCUMENT_DRAFT,
                owner_id=owner_id,
                group_id=group_id,
            ),
            DocumentVersionRecord(
                id=str(uuid.uuid4()),
                document_id=document_id,
                uploader_id=owner_id,
                storage_ref=storage_ref,
                source_hash=source_hash,
            ),
        )
        if signer_ids:
            self._assignments.create_assignments(document_id, signer_ids)

        Log.info(f"Document {document_id} uploaded by {owner_id} ({len(pdf_bytes)} bytes)")
        self._audit.record(
            UPLOAD_DOCUMENT,
            f"Uploaded '{document.title}'",
            actor_id=owner_id,
            target_id=document_id,
        )
        return document

    def assign_signers(self, document_id: str, signer_ids: Iterable[str]) -> int:
        """Distribute a group document to signers.

        Raises:
            NotFoundError: if the document does not exist.
            ValidationError: if the document is not a group document.
            AlreadyCompletedError: if the document is already completed.
        """
        document = self._documents.find_by_id(document_id)
        if document.group_id is None:
            raise ValidationError(f"Document {document_id} is not a group document")
        if document.status == DOCUMENT_COMPLETED:
            raise AlreadyCompletedError(f"Document {document_id} is already completed")

        created = self._assignments.create_assignments(document_id, signer_ids)
        if created and document.status == DOCUMENT_DRAFT:
            self._documents.set_status(document_id, DOCUMENT_PENDING)
        return created

    @staticmethod
    def _validate_pdf(pdf_bytes: bytes) -> None:
        if not pdf_bytes or not pdf_bytes.lstrip()[:5].startswith(PDF_MAGIC):
            raise ValidationError("Uploaded file is not a PDF")
        try:
            ensure_not_encrypted(pdf_bytes)
            pages = page_count(pdf_bytes)
        except InvalidPdfError as exc:
            raise ValidationError(f"Uploaded file is not a readable PDF: {exc}") from exc
        if pages < 1:
            raise ValidationError("Uploaded PDF has no pages")
