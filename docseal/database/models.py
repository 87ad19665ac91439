from dataclasses import dataclass
from datetime import datetime, timezone

DOCUMENT_DRAFT = "draft"
DOCUMENT_PENDING = "pending"
DOCUMENT_COMPLETED = "completed"

SIGNATURE_DRAFT = "draft"
SIGNATURE_FINAL = "final"

ASSIGNMENT_PENDING = "pending"
ASSIGNMENT_SIGNED = "signed"

ROLE_GROUP_ADMIN = "admin_group"

PACKAGE_DRAFT = "draft"
PACKAGE_COMPLETED = "completed"
PACKAGE_PARTIAL_FAILURE = "partial_failure"


@dataclass
class DocumentRecord:
    """Represents a row from the documents table."""

    id: str
    title: str
    status: str
    owner_id: str
    current_version_id: str | None = None
    group_id: int | None = None
    signed_file_ref: str | None = None
    finalizing: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class DocumentVersionRecord:
    """Represents a row from the document_versions table."""

    id: str
    document_id: str
    uploader_id: str
    storage_ref: str
    source_hash: str
    signed_hash: str | None = None
    access_code: str | None = None
    retry_count: int = 0
    locked_until: datetime | None = None
    parent_version_id: str | None = None
    created_at: datetime | None = None

    @property
    def is_sealed(self) -> bool:
        return self.signed_hash is not None

    def is_time_locked(self, now: datetime | None = None) -> bool:
        if self.locked_until is None:
            return False
        current = now or datetime.now(timezone.utc)
        return current < self.locked_until


@dataclass
class SignatureRecord:
    """Represents a row from the signatures table."""

    id: str
    document_version_id: str
    signer_id: str
    status: str
    page_number: int
    position_x: float
    position_y: float
    width: float
    height: float
    image_ref: str
    ip_address: str | None = None
    user_agent: str | None = None
    signed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_final(self) -> bool:
        return self.status == SIGNATURE_FINAL


@dataclass
class SignerAssignmentRecord:
    """Represents a row from the group_signer_assignments table."""

    document_id: str
    user_id: str
    status: str
    signature_id: str | None = None


@dataclass(frozen=True)
class GroupMemberRecord:
    """Represents a row from the group_members table."""

    group_id: int
    user_id: str
    role: str


@dataclass(frozen=True)
class UserRecord:
    """Subset of the users table needed for verification disclosure."""

    id: str
    name: str
    email: str


@dataclass(frozen=True)
class PinAttemptState:
    """Counter state returned by an atomic failed-attempt update."""

    retry_count: int
    locked_until: datetime | None = None


@dataclass
class PackageRecord:
    """Represents a row from the signing_packages table."""

    id: str
    owner_id: str
    title: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class PackageDocumentRecord:
    """A package entry joined with the document its version belongs to.

    document_version_id moves to the sealed version once the entry is signed.
    """

    id: str
    package_id: str
    document_version_id: str
    document_id: str
    position: int
