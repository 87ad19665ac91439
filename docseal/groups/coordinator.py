import uuid
from datetime import datetime, timezone

from docseal.audit.audit_log import AuditTrail
from docseal.audit.base import (
    FINALIZE_GROUP_DOCUMENT,
    SIGN_DOCUMENT_GROUP,
    UNLOCK_VERSION,
    VERIFY_UPLOAD,
)
from docseal.database.models import (
    DOCUMENT_COMPLETED,
    SIGNATURE_DRAFT,
    DocumentRecord,
    DocumentVersionRecord,
    SignatureRecord,
)
from docseal.database.repositories.base import (
    BaseDocumentRepository,
    BaseGroupMemberRepository,
    BaseSignatureRepository,
    BaseSignerAssignmentRepository,
    BaseUserRepository,
    BaseVersionRepository,
)
from docseal.documents.access import is_group_admin
from docseal.documents.exceptions import AlreadyCompletedError
from docseal.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from docseal.groups.exceptions import (
    FinalizationBlockedError,
    PinError,
    SignatureFinalizedError,
    SignerNotPendingError,
)
from docseal.groups.models import SigningReceipt
from docseal.groups.pin_guard import MAX_PIN_LENGTH, PinGuard, validate_pin_input
from docseal.logging.logger import Log
from docseal.signing.models import DraftPosition, RequestMeta, SignaturePlacement
from docseal.signing.sealing_service import SealingService
from docseal.verification.disclosure import owner_view, signer_views
from docseal.verification.integrity import IntegrityVerifier
from docseal.verification.models import (
    IntegrityOutcome,
    SignerView,
    VerificationReport,
    VerificationStatus,
)


class GroupSigningCoordinator:
    """Multi-party signing of a group document.

    Each assigned signer places a draft, then finalizes it. Once no
    assignment is pending, a group admin merges all final signatures into
    one sealed version, optionally protected by an access code that gates
    disclosure of signer identities.
    """

    def __init__(
        self,
        *,
        documents: BaseDocumentRepository,
        versions: BaseVersionRepository,
        signatures: BaseSignatureRepository,
        assignments: BaseSignerAssignmentRepository,
        members: BaseGroupMemberRepository,
        users: BaseUserRepository,
        sealing: SealingService,
        verifier: IntegrityVerifier,
        pin_guard: PinGuard,
        audit: AuditTrail,
        verification_base_url: str,
    ) -> None:
        self._documents = documents
        self._versions = versions
        self._signatures = signatures
        self._assignments = assignments
        self._members = members
        self._users = users
        self._sealing = sealing
        self._verifier = verifier
        self._pin_guard = pin_guard
        self._audit = audit
        self._verification_base_url = verification_base_url.rstrip("/")

    # Drafts

    def save_draft(
        self,
        signer_id: str,
        document_id: str,
        placement: SignaturePlacement,
        client_signature_id: str | None = None,
    ) -> SignatureRecord:
        """Create or update the signer's single draft on the current version.

        An existing draft is updated in place, whatever client id is supplied.

        Raises:
            NotFoundError: if the document does not exist.
            AlreadyCompletedError: if the document is completed.
            SignatureFinalizedError: if the signer's record is already final.
        """
        document = self._open_document(document_id)
        version_id = document.current_version_id
        existing = self._signatures.find_by_signer_and_version(signer_id, version_id)  # type: ignore[arg-type]

        if existing is not None:
            if existing.is_final:
                raise SignatureFinalizedError(
                    f"Signer {signer_id} already signed version {version_id}"
                )
            updated = self._signatures.update_draft(
                existing.id,
                page_number=placement.page_number,
                position_x=placement.position_x,
                position_y=placement.position_y,
                width=placement.width,
                height=placement.height,
                image_ref=placement.image_ref,
            )
            if updated is None:
                raise SignatureFinalizedError(f"Signature {existing.id} is no longer a draft")
            return updated

        return self._signatures.create(
            SignatureRecord(
                id=client_signature_id or str(uuid.uuid4()),
                document_version_id=version_id,  # type: ignore[arg-type]
                signer_id=signer_id,
                status=SIGNATURE_DRAFT,
                page_number=placement.page_number,
                position_x=placement.position_x,
                position_y=placement.position_y,
                width=placement.width,
                height=placement.height,
                image_ref=placement.image_ref,
            )
        )

    def update_draft_position(self, signature_id: str, position: DraftPosition) -> SignatureRecord:
        """Move or resize a draft without changing its identity.

        Raises:
            NotFoundError: if the signature does not exist.
            SignatureFinalizedError: if the signature is final.
        """
        self._require_draft(signature_id)
        updated = self._signatures.update_draft(
            signature_id,
            page_number=position.page_number,
            position_x=position.position_x,
            position_y=position.position_y,
            width=position.width,
            height=position.height,
        )
        if updated is None:
            raise SignatureFinalizedError(f"Signature {signature_id} is no longer a draft")
        return updated

    def delete_draft(self, signature_id: str) -> None:
        """Raises NotFoundError or SignatureFinalizedError."""
        self._require_draft(signature_id)
        if not self._signatures.delete_draft(signature_id):
            raise SignatureFinalizedError(f"Signature {signature_id} is no longer a draft")

    # Signing

    def sign_document(
        self,
        signer_id: str,
        document_id: str,
        placement: SignaturePlacement,
        request_meta: RequestMeta,
    ) -> SigningReceipt:
        """Finalize the signer's signature and tick their assignment.

        The draft is promoted and the assignment ticked in one transaction,
        so a signer is never counted as signed without a final record.

        Raises:
            NotFoundError: if the document does not exist.
            SignerNotPendingError: if the signer is unassigned or already signed.
            SignatureFinalizedError: if the signer's record is already final.
        """
        document = self._open_document(document_id)
        if self._assignments.find_pending(document_id, signer_id) is None:
            raise SignerNotPendingError(
                f"User {signer_id} has no pending assignment on document {document_id}"
            )

        draft = self.save_draft(signer_id, document_id, placement)
        signature = self._signatures.finalize_with_assignment(
            draft.id,
            document_id,
            ip_address=request_meta.ip_address,
            user_agent=request_meta.user_agent,
            signed_at=datetime.now(timezone.utc),
        )
        if signature is None:
            raise SignerNotPendingError(
                f"User {signer_id} is no longer pending on document {document_id}"
            )

        remaining = self._assignments.count_pending(document_id)
        self._audit.record(
            SIGN_DOCUMENT_GROUP,
            f"Signed group document '{document.title}' ({remaining} signer(s) pending)",
            actor_id=signer_id,
            target_id=document_id,
            ip_address=request_meta.ip_address,
            user_agent=request_meta.user_agent,
        )
        return SigningReceipt(signature=signature, remaining_signers=remaining)

    def finalize_group_document(
        self,
        document_id: str,
        admin_id: str,
        access_code: str | None = None,
        display_qr_code: bool = False,
    ) -> DocumentRecord:
        """Merge every final signature into one sealed version.

        Raises:
            NotFoundError: if the document does not exist.
            ValidationError: if the document is not a group document, the access
                code is malformed, or no final signature exists.
            PermissionDeniedError: if the actor is not a group admin.
            FinalizationBlockedError: if signers are pending, the document is
                completed, or another finalization is running.
        """
        document = self._documents.find_by_id(document_id)
        if document.group_id is None:
            raise ValidationError(f"Document {document_id} is not a group document")
        if not is_group_admin(self._members, document.group_id, admin_id):
            raise PermissionDeniedError(
                f"User {admin_id} is not an admin of group {document.group_id}"
            )
        if access_code is not None and (
            not isinstance(access_code, str) or not access_code or len(access_code) > MAX_PIN_LENGTH
        ):
            raise ValidationError("Access code must be a non-empty string of at most 64 characters")

        if not self._documents.claim_finalization(document_id):
            pending = self._assignments.count_pending(document_id)
            raise FinalizationBlockedError(
                f"Document {document_id} cannot be finalized: {pending} signer(s) pending",
                pending_count=pending,
            )

        try:
            completed = self._seal_group_version(document, admin_id, access_code, display_qr_code)
        except Exception:
            self._documents.release_finalization(document_id)
            raise

        self._audit.record(
            FINALIZE_GROUP_DOCUMENT,
            f"Finalized group document '{document.title}' as version {completed.current_version_id}",
            actor_id=admin_id,
            target_id=document_id,
        )
        return completed

    def _seal_group_version(
        self,
        document: DocumentRecord,
        admin_id: str,
        access_code: str | None,
        display_qr_code: bool,
    ) -> DocumentRecord:
        source = self._versions.find_by_id(document.current_version_id)  # type: ignore[arg-type]
        finals = [
            signature
            for signature in self._signatures.find_all_by_version_id(source.id)
            if signature.is_final
        ]
        if not finals:
            raise ValidationError(f"Document {document.id} has no final signatures to seal")

        version_id = str(uuid.uuid4())
        verification_url = None
        if display_qr_code:
            verification_url = f"{self._verification_base_url}/verify/{version_id}"

        artifact = self._sealing.seal(
            source.storage_ref,
            document.owner_id,
            [SignaturePlacement.from_record(signature) for signature in finals],
            verification_url,
        )
        version = self._versions.create(
            DocumentVersionRecord(
                id=version_id,
                document_id=document.id,
                uploader_id=admin_id,
                storage_ref=artifact.storage_ref,
                source_hash=artifact.signed_hash,
                signed_hash=artifact.signed_hash,
                access_code=access_code,
                parent_version_id=source.id,
            )
        )
        Log.info(f"Group document {document.id} sealed with {len(finals)} signature(s)")
        return self._documents.complete_finalization(
            document.id,
            current_version_id=version.id,
            signed_file_ref=artifact.storage_ref,
        )

    # Verification

    def unlock(self, version_id: str, input_code: object) -> VerificationReport:
        """Check the access code and confirm registration without disclosing signers.

        Raises:
            ValidationError: if the input is malformed or the version has no code.
            NotFoundError: if the version does not exist.
            LockoutError: if the version is or becomes time-locked.
            InvalidPinError: on a wrong code with attempts remaining.
        """
        validate_pin_input(input_code)
        version = self._versions.find_by_id(version_id)
        document = self._documents.find_by_id(version.document_id)
        self._pin_guard.check(version, input_code)  # type: ignore[arg-type]

        self._audit.record(
            UNLOCK_VERSION,
            f"Access code accepted for version {version_id}",
            target_id=version_id,
        )
        return VerificationReport(
            status=VerificationStatus.REGISTERED,
            message="Access code accepted. Upload the file to reveal signer details.",
            document_title=document.title,
            stored_hash=version.signed_hash,
            require_upload=True,
        )

    def verify_uploaded_file(
        self,
        version_id: str,
        candidate: bytes,
        access_code: str | None = None,
    ) -> VerificationReport:
        """Check an uploaded file against the document's sealed version.

        A protected version answers LOCKED unless the correct access code is
        presented. A wrong code counts as a failed attempt.

        Raises:
            NotFoundError: if the version or its document does not exist.
            ValidationError: if the access code is malformed.
        """
        version = self._versions.find_by_id(version_id)
        document = self._documents.find_by_id(version.document_id)

        if version.access_code:
            if access_code is None or version.is_time_locked():
                return self._locked_report(version)
            try:
                self._pin_guard.check(version, access_code)
            except PinError as exc:
                Log.info(f"Upload verification on version {version_id} refused: {exc}")
                return self._locked_report(self._versions.find_by_id(version_id))

        if document.status != DOCUMENT_COMPLETED or document.current_version_id is None:
            return VerificationReport(
                status=VerificationStatus.NOT_FINALIZED,
                message="Group document has not been finalized by an admin.",
                document_title=document.title,
            )

        sealed = self._versions.find_by_id(document.current_version_id)
        result = self._verifier.verify(sealed, candidate)
        self._audit.record(
            VERIFY_UPLOAD,
            f"Upload check on version {version_id}: {result.outcome.value}",
            target_id=version_id,
        )
        if result.outcome is IntegrityOutcome.NOT_FINALIZED:
            return VerificationReport(
                status=VerificationStatus.NOT_FINALIZED,
                message="Group document has no sealed artifact.",
                document_title=document.title,
                recalculated_hash=result.recalculated_hash,
            )

        valid = result.outcome is IntegrityOutcome.VALID
        owner, signers = self._disclose(document, sealed)
        return VerificationReport(
            status=VerificationStatus.VALID if valid else VerificationStatus.INVALID,
            message="File matches the sealed document." if valid
            else "File does not match the sealed document.",
            document_title=document.title,
            owner=owner,
            signers=signers,
            stored_hash=result.stored_hash,
            recalculated_hash=result.recalculated_hash,
        )

    def get_verification_details(self, version_id: str) -> VerificationReport:
        """Public view behind the QR code.

        Raises:
            NotFoundError: if the version or its document does not exist.
        """
        version = self._versions.find_by_id(version_id)
        document = self._documents.find_by_id(version.document_id)
        if version.access_code:
            return self._locked_report(version)
        if not version.is_sealed:
            return VerificationReport(
                status=VerificationStatus.NOT_FINALIZED,
                message="Group document has not been finalized by an admin.",
                document_title=document.title,
            )

        owner, signers = self._disclose(document, version)
        return VerificationReport(
            status=VerificationStatus.REGISTERED,
            message="Signatures are registered. Upload the file to check its integrity.",
            document_title=document.title,
            owner=owner,
            signers=signers,
            stored_hash=version.signed_hash,
        )

    # Helpers

    def _open_document(self, document_id: str) -> DocumentRecord:
        document = self._documents.find_by_id(document_id)
        if document.status == DOCUMENT_COMPLETED:
            raise AlreadyCompletedError(f"Document {document_id} is already completed")
        if document.current_version_id is None:
            raise NotFoundError(f"Document {document_id} has no current version")
        return document

    def _require_draft(self, signature_id: str) -> SignatureRecord:
        signature = self._signatures.find_by_id(signature_id)
        if signature is None:
            raise NotFoundError(f"Signature {signature_id} not found")
        if signature.is_final:
            raise SignatureFinalizedError(f"Signature {signature_id} is final")
        return signature

    def _disclose(
        self, document: DocumentRecord, version: DocumentVersionRecord
    ) -> tuple[SignerView, tuple[SignerView, ...]]:
        """Owner identity plus every final signer of the sealed version.

        Signers' records live on the version the artifact was sealed from.
        """
        records = self._signatures.find_all_by_version_id(version.id)
        if version.parent_version_id is not None:
            records += self._signatures.find_all_by_version_id(version.parent_version_id)
        return owner_view(self._users, document.owner_id), signer_views(self._users, records)

    @staticmethod
    def _locked_report(version: DocumentVersionRecord) -> VerificationReport:
        return VerificationReport(
            status=VerificationStatus.LOCKED,
            message="Document is protected by an access code.",
            locked_until=version.locked_until if version.is_time_locked() else None,
        )
