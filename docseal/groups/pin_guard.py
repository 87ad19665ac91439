import hmac
import math
from datetime import datetime, timezone

from docseal.database.models import DocumentVersionRecord
from docseal.database.repositories.base import BaseVersionRepository
from docseal.exceptions import ValidationError
from docseal.groups.exceptions import InvalidPinError, LockoutError
from docseal.logging.logger import Log

MAX_PIN_LENGTH = 64


def validate_pin_input(input_code: object) -> None:
    """Reject inputs that are not a PIN at all. None counts as an attempt."""
    if input_code is None:
        return
    if not isinstance(input_code, str) or len(input_code) > MAX_PIN_LENGTH:
        raise ValidationError("Access code must be a string of at most 64 characters")


def remaining_minutes(locked_until: datetime, now: datetime | None = None) -> int:
    current = now or datetime.now(timezone.utc)
    return max(1, math.ceil((locked_until - current).total_seconds() / 60))


class PinGuard:
    """Rate-limited access-code check for a sealed version.

    States: LOCKED (code present), TIME_LOCKED (locked_until in the future),
    UNLOCKED (correct code presented). The counter is changed only through
    the repository's atomic operations.
    """

    def __init__(
        self,
        versions: BaseVersionRepository,
        *,
        max_attempts: int = 3,
        lockout_minutes: int = 30,
    ) -> None:
        self._versions = versions
        self._max_attempts = max_attempts
        self._lockout_minutes = lockout_minutes

    def check(self, version: DocumentVersionRecord, input_code: str | None) -> None:
        """Accept the code or raise.

        A correct code clears any retry count and lockout.

        Raises:
            ValidationError: if the input is malformed or the version has no code.
            LockoutError: if the version is time-locked, or this attempt locks it.
            InvalidPinError: on a wrong code with attempts remaining.
        """
        validate_pin_input(input_code)
        if not version.access_code:
            raise ValidationError(f"Version {version.id} is not protected by an access code")

        if version.is_time_locked():
            raise LockoutError(remaining_minutes(version.locked_until))  # type: ignore[arg-type]

        if not self._matches(version.access_code, input_code):
            self._register_failure(version.id)

        if version.retry_count or version.locked_until is not None:
            self._versions.reset_attempts(version.id)
        Log.info(f"Access code accepted for version {version.id}")

    def _register_failure(self, version_id: str) -> None:
        state = self._versions.register_failed_attempt(
            version_id,
            max_attempts=self._max_attempts,
            lockout_minutes=self._lockout_minutes,
        )
        if state is None:
            # A concurrent request locked the version first.
            current = self._versions.find_by_id(version_id)
            minutes = (
                remaining_minutes(current.locked_until)
                if current.locked_until is not None
                else self._lockout_minutes
            )
            raise LockoutError(minutes)

        if state.locked_until is not None:
            Log.warning(f"Version {version_id} locked for {self._lockout_minutes} minutes")
            raise LockoutError(remaining_minutes(state.locked_until))
        raise InvalidPinError(self._max_attempts - state.retry_count)

    @staticmethod
    def _matches(access_code: str, input_code: str | None) -> bool:
        if not input_code:
            return False
        return hmac.compare_digest(access_code.encode("utf-8"), input_code.encode("utf-8"))
