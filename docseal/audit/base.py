from abc import ABC, abstractmethod
from dataclasses import dataclass

ROLLBACK_VERSION = "ROLLBACK_VERSION"
SIGN_DOCUMENT_GROUP = "SIGN_DOCUMENT_GROUP"
SIGN_DOCUMENT_PERSONAL = "SIGN_DOCUMENT_PERSONAL"
FINALIZE_GROUP_DOCUMENT = "FINALIZE_GROUP_DOCUMENT"
UPLOAD_DOCUMENT = "UPLOAD_DOCUMENT"
CREATE_PACKAGE = "CREATE_PACKAGE"
SIGN_PACKAGE = "SIGN_PACKAGE"
UNLOCK_VERSION = "UNLOCK_VERSION"
VERIFY_UPLOAD = "VERIFY_UPLOAD"


@dataclass(frozen=True)
class AuditEntry:
    action: str
    description: str
    actor_id: str | None = None
    target_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class BaseAuditSink(ABC):
    """Contract for audit log destinations."""

    @abstractmethod
    def log(self, entry: AuditEntry) -> None:
        """Persist an audit entry. May raise; callers go through AuditTrail."""
