from docseal.exceptions import DocSealError


class GroupSigningError(DocSealError):
    """Base exception for group signing preconditions."""


class SignerNotPendingError(GroupSigningError):
    """Raised when the signer has no pending assignment (unassigned or already signed)."""


class SignatureFinalizedError(GroupSigningError):
    """Raised when a final signature record would be modified."""


class FinalizationBlockedError(GroupSigningError):
    """Raised when a group document cannot be finalized yet."""

    def __init__(self, message: str, pending_count: int) -> None:
        super().__init__(message)
        self.pending_count = pending_count


class PinError(GroupSigningError):
    """Base exception for access-code rejections."""


class InvalidPinError(PinError):
    """Raised on a wrong access code while attempts remain."""

    def __init__(self, remaining_attempts: int) -> None:
        super().__init__(f"Wrong access code. {remaining_attempts} attempt(s) left.")
        self.remaining_attempts = remaining_attempts


class LockoutError(PinError):
    """Raised when the version is time-locked after too many wrong codes."""

    def __init__(self, remaining_minutes: int) -> None:
        super().__init__(f"Too many wrong attempts. Try again in {remaining_minutes} minute(s).")
        self.remaining_minutes = remaining_minutes
