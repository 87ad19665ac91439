from docseal.audit.audit_log import AuditTrail
from docseal.audit.base import VERIFY_UPLOAD
from docseal.database.models import DocumentVersionRecord, SignatureRecord
from docseal.database.repositories.base import (
    BaseDocumentRepository,
    BaseSignatureRepository,
    BaseUserRepository,
    BaseVersionRepository,
)
from docseal.exceptions import NotFoundError
from docseal.logging.logger import Log
from docseal.verification.disclosure import signer_views
from docseal.verification.integrity import IntegrityVerifier
from docseal.verification.models import (
    IntegrityOutcome,
    VerificationReport,
    VerificationStatus,
)


class SignatureReports:
    """Verification views keyed by a signature id, the target of a QR code."""

    def __init__(
        self,
        *,
        documents: BaseDocumentRepository,
        versions: BaseVersionRepository,
        signatures: BaseSignatureRepository,
        users: BaseUserRepository,
        verifier: IntegrityVerifier,
        audit: AuditTrail,
    ) -> None:
        self._documents = documents
        self._versions = versions
        self._signatures = signatures
        self._users = users
        self._verifier = verifier
        self._audit = audit

    def details(self, signature_id: str) -> VerificationReport:
        """Confirm the signature is registered without checking any file.

        Raises:
            NotFoundError: if the signature does not exist.
        """
        signature, version, title = self.load(signature_id)
        if not version.is_sealed:
            return VerificationReport(
                status=VerificationStatus.NOT_FINALIZED,
                message="Document has not been sealed yet.",
                document_title=title,
            )

        views = signer_views(self._users, [signature])
        return VerificationReport(
            status=VerificationStatus.REGISTERED,
            message="Signature is registered. Upload the file to check its integrity.",
            document_title=title,
            owner=views[0] if views else None,
            signers=views,
            stored_hash=version.signed_hash,
        )

    def verify_upload(self, signature_id: str, candidate: bytes) -> VerificationReport:
        """Compare an uploaded file with the sealed artifact of this signature.

        Raises:
            NotFoundError: if the signature does not exist.
        """
        signature, version, title = self.load(signature_id)
        result = self._verifier.verify(version, candidate)
        self._audit.record(
            VERIFY_UPLOAD,
            f"Upload check on signature {signature_id}: {result.outcome.value}",
            target_id=signature_id,
        )

        if result.outcome is IntegrityOutcome.NOT_FINALIZED:
            return VerificationReport(
                status=VerificationStatus.NOT_FINALIZED,
                message="Document has not been sealed yet.",
                document_title=title,
                recalculated_hash=result.recalculated_hash,
            )

        views = signer_views(self._users, [signature])
        valid = result.outcome is IntegrityOutcome.VALID
        return VerificationReport(
            status=VerificationStatus.VALID if valid else VerificationStatus.INVALID,
            message="File matches the sealed document." if valid
            else "File does not match the sealed document.",
            document_title=title,
            owner=views[0] if views else None,
            signers=views,
            stored_hash=result.stored_hash,
            recalculated_hash=result.recalculated_hash,
        )

    def load(self, signature_id: str) -> tuple[SignatureRecord, DocumentVersionRecord, str]:
        signature = self._signatures.find_by_id(signature_id)
        if signature is None:
            raise NotFoundError(f"Signature {signature_id} not found")
        version = self._versions.find_by_id(signature.document_version_id)
        document = self._documents.find_by_id(version.document_id)
        Log.debug(f"Loaded signature {signature_id} on version {version.id}")
        return signature, version, document.title
