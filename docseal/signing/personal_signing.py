import uuid
from datetime import datetime, timezone

from docseal.audit.audit_log import AuditTrail
from docseal.audit.base import SIGN_DOCUMENT_PERSONAL
from docseal.database.models import (
    DOCUMENT_COMPLETED,
    SIGNATURE_FINAL,
    DocumentVersionRecord,
    SignatureRecord,
)
from docseal.database.repositories.base import (
    BaseDocumentRepository,
    BaseSignatureRepository,
    BaseUserRepository,
    BaseVersionRepository,
)
from docseal.documents.exceptions import AlreadyCompletedError
from docseal.exceptions import PermissionDeniedError
from docseal.signing.models import (
    PersonalSigningResult,
    RequestMeta,
    SignaturePlacement,
)
from docseal.signing.sealing_service import SealingService
from docseal.verification.integrity import IntegrityVerifier
from docseal.verification.models import VerificationReport
from docseal.verification.signature_reports import SignatureReports


class PersonalSigningService:
    """Single-signer flow: the owner signs their own document."""

    def __init__(
        self,
        *,
        documents: BaseDocumentRepository,
        versions: BaseVersionRepository,
        signatures: BaseSignatureRepository,
        users: BaseUserRepository,
        sealing: SealingService,
        verifier: IntegrityVerifier,
        audit: AuditTrail,
        verification_base_url: str,
    ) -> None:
        self._documents = documents
        self._versions = versions
        self._sealing = sealing
        self._audit = audit
        self._reports = SignatureReports(
            documents=documents,
            versions=versions,
            signatures=signatures,
            users=users,
            verifier=verifier,
            audit=audit,
        )
        self._verification_base_url = verification_base_url.rstrip("/")

    def sign(
        self,
        user_id: str,
        version_id: str,
        placement: SignaturePlacement,
        request_meta: RequestMeta,
        display_qr_code: bool = True,
    ) -> PersonalSigningResult:
        """Seal the version with the owner's signature as a new, completed version.

        Nothing is written to the database until the sealed artifact is
        uploaded. The new version, its signature and the document pointer are
        then written in one transaction.

        Raises:
            NotFoundError: if the version or its document does not exist.
            PermissionDeniedError: if the user does not own the document.
            AlreadyCompletedError: if the document is already completed.
        """
        source = self._versions.find_by_id(version_id)
        document = self._documents.find_by_id(source.document_id)
        if document.owner_id != user_id:
            raise PermissionDeniedError(f"User {user_id} does not own document {document.id}")
        if document.status == DOCUMENT_COMPLETED:
            raise AlreadyCompletedError(f"Document {document.id} is already completed")

        signature_id = str(uuid.uuid4())
        verification_url = None
        if display_qr_code:
            verification_url = f"{self._verification_base_url}/verify/{signature_id}"

        artifact = self._sealing.seal(source.storage_ref, user_id, [placement], verification_url)

        new_version_id = str(uuid.uuid4())
        signature = SignatureRecord(
            id=signature_id,
            document_version_id=new_version_id,
            signer_id=user_id,
            status=SIGNATURE_FINAL,
            page_number=placement.page_number,
            position_x=placement.position_x,
            position_y=placement.position_y,
            width=placement.width,
            height=placement.height,
            image_ref=placement.image_ref,
            ip_address=request_meta.ip_address,
            user_agent=request_meta.user_agent,
            signed_at=datetime.now(timezone.utc),
        )
        document, version = self._documents.record_signed_version(
            DocumentVersionRecord(
                id=new_version_id,
                document_id=document.id,
                uploader_id=user_id,
                storage_ref=artifact.storage_ref,
                source_hash=artifact.signed_hash,
                signed_hash=artifact.signed_hash,
                parent_version_id=source.id,
            ),
            [signature],
            status=DOCUMENT_COMPLETED,
            signed_file_ref=artifact.storage_ref,
        )

        self._audit.record(
            SIGN_DOCUMENT_PERSONAL,
            f"Signed '{document.title}' as version {version.id}",
            actor_id=user_id,
            target_id=document.id,
            ip_address=request_meta.ip_address,
            user_agent=request_meta.user_agent,
        )
        return PersonalSigningResult(
            document=document, version=version, signature=signature, artifact=artifact
        )

    def get_verification_details(self, signature_id: str) -> VerificationReport:
        """Public view behind the QR code: confirms the signature is registered.

        Raises:
            NotFoundError: if the signature does not exist.
        """
        return self._reports.details(signature_id)

    def verify_uploaded_file(self, signature_id: str, candidate: bytes) -> VerificationReport:
        """Compare an uploaded file with the sealed artifact of this signature.

        Raises:
            NotFoundError: if the signature does not exist.
        """
        return self._reports.verify_upload(signature_id, candidate)
