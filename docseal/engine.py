from dataclasses import dataclass

from docseal.audit.audit_log import AuditSinkFactory, AuditTrail
from docseal.config.settings import Settings
from docseal.database.repositories.assignment_repository import SignerAssignmentRepository
from docseal.database.repositories.document_repository import DocumentRepository
from docseal.database.repositories.group_member_repository import GroupMemberRepository
from docseal.database.repositories.package_repository import PackageRepository
from docseal.database.repositories.signature_repository import SignatureRepository
from docseal.database.repositories.user_repository import UserRepository
from docseal.database.repositories.version_repository import VersionRepository
from docseal.documents.intake import DocumentIntake
from docseal.documents.version_state_machine import VersionStateMachine
from docseal.groups.coordinator import GroupSigningCoordinator
from docseal.groups.pin_guard import PinGuard
from docseal.pdf.certificate_signer import CertificateSigner
from docseal.pdf.compositor import StampCompositor
from docseal.pdf.credentials import SigningCredentials
from docseal.pdf.qr import QrCodeGenerator
from docseal.signing.package_signing import PackageSigningService
from docseal.signing.personal_signing import PersonalSigningService
from docseal.signing.sealing_service import SealingService
from docseal.storage.base import BaseBlobStore
from docseal.storage.factory import BlobStoreFactory
from docseal.verification.integrity import IntegrityVerifier


@dataclass(frozen=True)
class SigningEngine:
    """The services an application layer calls into."""

    intake: DocumentIntake
    versions: VersionStateMachine
    personal: PersonalSigningService
    packages: PackageSigningService
    groups: GroupSigningCoordinator
    verifier: IntegrityVerifier
    blob_store: BaseBlobStore


def build_engine(settings: Settings, blob_store: BaseBlobStore | None = None) -> SigningEngine:
    """Build the engine with PostgreSQL repositories and configured adapters.

    The connection pool must already be initialized.
    """
    documents = DocumentRepository()
    versions = VersionRepository()
    signatures = SignatureRepository()
    assignments = SignerAssignmentRepository()
    members = GroupMemberRepository()
    users = UserRepository()
    packages = PackageRepository()

    store = blob_store or BlobStoreFactory.create(settings)
    audit = AuditTrail(AuditSinkFactory.create(settings))
    verifier = IntegrityVerifier(versions)

    compositor = StampCompositor(
        QrCodeGenerator(),
        qr_anchor_x=settings.qr_anchor_x,
        qr_anchor_y=settings.qr_anchor_y,
        qr_size=settings.qr_size,
    )
    signer = CertificateSigner(
        SigningCredentials.from_settings(settings),
        owner_password=settings.pdf_owner_password,
        reason=settings.signature_reason,
        location=settings.signature_location,
        contact_info=settings.signature_contact_info,
        name=settings.signature_name,
        reserved_bytes=settings.signature_reserved_bytes,
    )
    sealing = SealingService(blob_store=store, compositor=compositor, signer=signer)

    return SigningEngine(
        intake=DocumentIntake(
            documents=documents,
            versions=versions,
            assignments=assignments,
            blob_store=store,
            audit=audit,
        ),
        versions=VersionStateMachine(
            documents=documents,
            versions=versions,
            signatures=signatures,
            assignments=assignments,
            members=members,
            blob_store=store,
            audit=audit,
            signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
        ),
        personal=PersonalSigningService(
            documents=documents,
            versions=versions,
            signatures=signatures,
            users=users,
            sealing=sealing,
            verifier=verifier,
            audit=audit,
            verification_base_url=settings.verification_base_url,
        ),
        packages=PackageSigningService(
            packages=packages,
            documents=documents,
            versions=versions,
            signatures=signatures,
            users=users,
            sealing=sealing,
            blob_store=store,
            verifier=verifier,
            audit=audit,
            verification_base_url=settings.verification_base_url,
        ),
        groups=GroupSigningCoordinator(
            documents=documents,
            versions=versions,
            signatures=signatures,
            assignments=assignments,
            members=members,
            users=users,
            sealing=sealing,
            verifier=verifier,
            pin_guard=PinGuard(
                versions,
                max_attempts=settings.pin_max_attempts,
                lockout_minutes=settings.pin_lockout_minutes,
            ),
            audit=audit,
            verification_base_url=settings.verification_base_url,
        ),
        verifier=verifier,
        blob_store=store,
    )
