from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class IntegrityOutcome(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    NOT_FINALIZED = "NOT_FINALIZED"


@dataclass(frozen=True)
class IntegrityResult:
    """Outcome of comparing a candidate file with a sealed artifact.

    A mismatch is a normal result (INVALID), not an error.
    """

    outcome: IntegrityOutcome
    stored_hash: str | None
    recalculated_hash: str

    @property
    def is_valid(self) -> bool:
        return self.outcome is IntegrityOutcome.VALID


class VerificationStatus(str, Enum):
    REGISTERED = "REGISTERED"
    VALID = "VALID"
    INVALID = "INVALID"
    LOCKED = "LOCKED"
    NOT_FINALIZED = "NOT_FINALIZED"


@dataclass(frozen=True)
class SignerView:
    """Identity of one signer as disclosed to a verifier."""

    name: str | None
    email: str | None
    signed_at: datetime | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class VerificationReport:
    status: VerificationStatus
    message: str
    document_title: str | None = None
    owner: SignerView | None = None
    signers: tuple[SignerView, ...] = ()
    stored_hash: str | None = None
    recalculated_hash: str | None = None
    locked_until: datetime | None = None
    require_upload: bool = False

    @property
    def is_locked(self) -> bool:
        return self.status is VerificationStatus.LOCKED
