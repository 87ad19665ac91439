from dataclasses import dataclass

from docseal.database.models import (
    DocumentRecord,
    DocumentVersionRecord,
    PackageDocumentRecord,
    PackageRecord,
    SignatureRecord,
)
from docseal.exceptions import ValidationError


def _validate_box(page_number: object, **fractions: object) -> None:
    if isinstance(page_number, bool) or not isinstance(page_number, int) or page_number < 1:
        raise ValidationError(f"page_number must be a positive integer, got {page_number!r}")
    for name, value in fractions.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
            raise ValidationError(f"{name} must lie in [0, 1], got {value!r}")


@dataclass(frozen=True)
class DraftPosition:
    """A drag/resize update for a draft signature, in page fractions."""

    page_number: int
    position_x: float
    position_y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        _validate_box(
            self.page_number,
            position_x=self.position_x,
            position_y=self.position_y,
            width=self.width,
            height=self.height,
        )


@dataclass(frozen=True)
class SignaturePlacement:
    """Where a signer's image goes, in page fractions (top-left origin).

    image_ref is either a ``data:image/...;base64,`` URL or a blob store
    reference.
    """

    page_number: int
    position_x: float
    position_y: float
    width: float
    height: float
    image_ref: str

    def __post_init__(self) -> None:
        _validate_box(
            self.page_number,
            position_x=self.position_x,
            position_y=self.position_y,
            width=self.width,
            height=self.height,
        )
        if not self.image_ref or not isinstance(self.image_ref, str):
            raise ValidationError("image_ref is required")

    @classmethod
    def from_record(cls, record: SignatureRecord) -> "SignaturePlacement":
        return cls(
            page_number=record.page_number,
            position_x=record.position_x,
            position_y=record.position_y,
            width=record.width,
            height=record.height,
            image_ref=record.image_ref,
        )


@dataclass(frozen=True)
class RequestMeta:
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class SignedArtifact:
    """A sealed PDF after upload, with its canonical hash."""

    storage_ref: str
    signed_bytes: bytes
    signed_hash: str


@dataclass(frozen=True)
class PersonalSigningResult:
    document: DocumentRecord
    version: DocumentVersionRecord
    signature: SignatureRecord
    artifact: SignedArtifact


@dataclass(frozen=True)
class PackagePlacement:
    """A signature placement aimed at one package entry.

    display_qr_code is read from the first placement of each entry.
    """

    package_document_id: str
    placement: SignaturePlacement
    display_qr_code: bool = True


@dataclass(frozen=True)
class PackageFailure:
    document_id: str
    error: str


@dataclass(frozen=True)
class PackageSigningResult:
    """Outcome of one package run; every entry lands in exactly one list."""

    package_id: str
    status: str
    succeeded: tuple[str, ...]
    failed: tuple[PackageFailure, ...]

    @property
    def is_complete(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class PackageDetails:
    package: PackageRecord
    documents: tuple[PackageDocumentRecord, ...]
