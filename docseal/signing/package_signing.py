import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

from docseal.audit.audit_log import AuditTrail
from docseal.audit.base import CREATE_PACKAGE, SIGN_PACKAGE
from docseal.database.models import (
    DOCUMENT_COMPLETED,
    PACKAGE_COMPLETED,
    PACKAGE_DRAFT,
    PACKAGE_PARTIAL_FAILURE,
    SIGNATURE_FINAL,
    DocumentVersionRecord,
    PackageDocumentRecord,
    PackageRecord,
    SignatureRecord,
)
from docseal.database.repositories.base import (
    BaseDocumentRepository,
    BasePackageRepository,
    BaseSignatureRepository,
    BaseUserRepository,
    BaseVersionRepository,
)
from docseal.documents.exceptions import AlreadyCompletedError
from docseal.exceptions import NotFoundError, ValidationError
from docseal.logging.logger import Log
from docseal.signing.models import (
    PackageDetails,
    PackageFailure,
    PackagePlacement,
    PackageSigningResult,
    RequestMeta,
)
from docseal.signing.sealing_service import SealingService
from docseal.storage.base import BaseBlobStore
from docseal.storage.exceptions import StorageError
from docseal.verification.integrity import IntegrityVerifier
from docseal.verification.models import VerificationReport
from docseal.verification.signature_reports import SignatureReports


class PackageSigningService:
    """Batch flow: an owner seals several of their own documents in one run.

    Every entry is sealed and recorded on its own. A failing entry is reported
    in the result and leaves no version, signature or uploaded artifact
    behind, while the remaining entries still complete.
    """

    def __init__(
        self,
        *,
        packages: BasePackageRepository,
        documents: BaseDocumentRepository,
        versions: BaseVersionRepository,
        signatures: BaseSignatureRepository,
        users: BaseUserRepository,
        sealing: SealingService,
        blob_store: BaseBlobStore,
        verifier: IntegrityVerifier,
        audit: AuditTrail,
        verification_base_url: str,
    ) -> None:
        self._packages = packages
        self._documents = documents
        self._versions = versions
        self._signatures = signatures
        self._sealing = sealing
        self._blob_store = blob_store
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

    def create_package(
        self, user_id: str, title: str, document_ids: Sequence[str]
    ) -> PackageDetails:
        """Bundle the current versions of the user's documents.

        Raises:
            ValidationError: if the title or document list is empty, or a
                document has no current version.
            NotFoundError: if a document is unknown or owned by someone else.
            AlreadyCompletedError: if a document is already completed.
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Package title is required")
        if not document_ids:
            raise ValidationError("A package needs at least one document")

        version_ids: list[str] = []
        for document_id in dict.fromkeys(document_ids):
            document = self._documents.find_by_id(document_id)
            if document.owner_id != user_id:
                raise NotFoundError(f"Document {document_id} not found")
            if document.current_version_id is None:
                raise ValidationError(f"Document {document_id} has no current version")
            if document.status == DOCUMENT_COMPLETED:
                raise AlreadyCompletedError(
                    f"Document '{document.title}' is completed and cannot join a package"
                )
            version_ids.append(document.current_version_id)

        package = self._packages.create_with_documents(
            PackageRecord(
                id=str(uuid.uuid4()),
                owner_id=user_id,
                title=title,
                status=PACKAGE_DRAFT,
            ),
            version_ids,
        )
        self._audit.record(
            CREATE_PACKAGE,
            f"Created package '{title}' with {len(version_ids)} documents",
            actor_id=user_id,
            target_id=package.id,
        )
        return self.get_package_details(package.id, user_id)

    def get_package_details(self, package_id: str, user_id: str) -> PackageDetails:
        """Raises NotFoundError unless the user owns the package."""
        package = self._packages.find_by_id(package_id, user_id)
        return PackageDetails(
            package=package,
            documents=tuple(self._packages.find_documents(package_id)),
        )

    def sign_package(
        self,
        package_id: str,
        user_id: str,
        placements: Sequence[PackagePlacement],
        request_meta: RequestMeta,
    ) -> PackageSigningResult:
        """Seal every entry of the package with the owner's placements.

        Entries sealed by an earlier partial run are kept as they are and
        reported as succeeded.

        Raises:
            NotFoundError: if the user does not own the package.
            AlreadyCompletedError: if the package is already completed.
        """
        package = self._packages.find_by_id(package_id, user_id)
        if package.status == PACKAGE_COMPLETED:
            raise AlreadyCompletedError(f"Package {package_id} is already completed")

        succeeded: list[str] = []
        failed: list[PackageFailure] = []
        for entry in self._packages.find_documents(package_id):
            own = [p for p in placements if p.package_document_id == entry.id]
            try:
                self._sign_entry(entry, own, user_id, request_meta)
            except Exception as exc:
                Log.error(f"Package {package_id}: document {entry.document_id} failed: {exc}")
                failed.append(PackageFailure(document_id=entry.document_id, error=str(exc)))
            else:
                succeeded.append(entry.document_id)

        status = PACKAGE_PARTIAL_FAILURE if failed else PACKAGE_COMPLETED
        self._packages.update_status(package_id, status)
        self._audit.record(
            SIGN_PACKAGE,
            f"Signed package '{package.title}': {len(succeeded)} sealed, {len(failed)} failed",
            actor_id=user_id,
            target_id=package_id,
            ip_address=request_meta.ip_address,
            user_agent=request_meta.user_agent,
        )
        return PackageSigningResult(
            package_id=package_id,
            status=status,
            succeeded=tuple(succeeded),
            failed=tuple(failed),
        )

    def get_verification_details(self, signature_id: str) -> VerificationReport:
        """Public view behind a package document's QR code.

        Raises:
            NotFoundError: if the signature is unknown or not part of a package.
        """
        self._require_package_signature(signature_id)
        return self._reports.details(signature_id)

    def verify_uploaded_file(self, signature_id: str, candidate: bytes) -> VerificationReport:
        """Compare an uploaded file with the sealed package document.

        Raises:
            NotFoundError: if the signature is unknown or not part of a package.
        """
        self._require_package_signature(signature_id)
        return self._reports.verify_upload(signature_id, candidate)

    def _sign_entry(
        self,
        entry: PackageDocumentRecord,
        placements: Sequence[PackagePlacement],
        user_id: str,
        request_meta: RequestMeta,
    ) -> None:
        if not placements:
            raise ValidationError("No signature placement for this document")

        source = self._versions.find_by_id(entry.document_version_id)
        if source.is_sealed:
            Log.info(f"Package entry {entry.id} was sealed in an earlier run")
            return
        document = self._documents.find_by_id(entry.document_id)
        if document.status == DOCUMENT_COMPLETED:
            raise AlreadyCompletedError(f"Document {document.id} is already completed")

        signature_ids = [str(uuid.uuid4()) for _ in placements]
        verification_url = None
        if placements[0].display_qr_code:
            verification_url = f"{self._verification_base_url}/verify/{signature_ids[0]}"

        artifact = self._sealing.seal(
            source.storage_ref,
            user_id,
            [p.placement for p in placements],
            verification_url,
        )

        new_version_id = str(uuid.uuid4())
        signed_at = datetime.now(timezone.utc)
        signatures = [
            SignatureRecord(
                id=signature_id,
                document_version_id=new_version_id,
                signer_id=user_id,
                status=SIGNATURE_FINAL,
                page_number=p.placement.page_number,
                position_x=p.placement.position_x,
                position_y=p.placement.position_y,
                width=p.placement.width,
                height=p.placement.height,
                image_ref=p.placement.image_ref,
                ip_address=request_meta.ip_address,
                user_agent=request_meta.user_agent,
                signed_at=signed_at,
            )
            for signature_id, p in zip(signature_ids, placements)
        ]
        try:
            self._packages.record_signed_document(
                entry.id,
                DocumentVersionRecord(
                    id=new_version_id,
                    document_id=document.id,
                    uploader_id=user_id,
                    storage_ref=artifact.storage_ref,
                    source_hash=artifact.signed_hash,
                    signed_hash=artifact.signed_hash,
                    parent_version_id=source.id,
                ),
                signatures,
                signed_file_ref=artifact.storage_ref,
            )
        except Exception:
            self._discard(artifact.storage_ref)
            raise

    def _discard(self, storage_ref: str) -> None:
        try:
            self._blob_store.delete(storage_ref)
        except StorageError as exc:
            Log.warning(f"Could not remove orphaned artifact {storage_ref}: {exc}")

    def _require_package_signature(self, signature_id: str) -> None:
        signature = self._signatures.find_by_id(signature_id)
        if signature is None or (
            self._packages.find_document_by_version(signature.document_version_id) is None
        ):
            raise NotFoundError(f"Package signature {signature_id} not found")
