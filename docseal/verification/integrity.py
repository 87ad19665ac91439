import hashlib
import hmac

from docseal.database.models import DocumentVersionRecord
from docseal.database.repositories.base import BaseVersionRepository
from docseal.logging.logger import Log
from docseal.verification.models import IntegrityOutcome, IntegrityResult


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of the exact bytes."""
    return hashlib.sha256(data).hexdigest()


def compare(stored_hash: str | None, candidate: bytes) -> IntegrityResult:
    """Compare candidate bytes against a stored signed hash."""
    recalculated = content_hash(candidate)
    if stored_hash is None:
        return IntegrityResult(
            outcome=IntegrityOutcome.NOT_FINALIZED,
            stored_hash=None,
            recalculated_hash=recalculated,
        )

    matches = hmac.compare_digest(stored_hash.lower(), recalculated)
    return IntegrityResult(
        outcome=IntegrityOutcome.VALID if matches else IntegrityOutcome.INVALID,
        stored_hash=stored_hash,
        recalculated_hash=recalculated,
    )


class IntegrityVerifier:
    """Checks candidate files against the signed hash stored on a version."""

    def __init__(self, versions: BaseVersionRepository) -> None:
        self._versions = versions

    def verify(self, version: DocumentVersionRecord, candidate: bytes) -> IntegrityResult:
        result = compare(version.signed_hash, candidate)
        Log.info(f"Integrity check on version {version.id}: {result.outcome.value}")
        return result

    def verify_version(self, version_id: str, candidate: bytes) -> IntegrityResult:
        """Load the version and compare.

        Raises:
            NotFoundError: if the version does not exist.
        """
        version = self._versions.find_by_id(version_id)
        return self.verify(version, candidate)
