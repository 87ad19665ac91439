class DocSealError(Exception):
    """Base exception for all signing-engine errors."""


class ValidationError(DocSealError):
    """Raised when caller input is rejected before any state is touched."""


class NotFoundError(DocSealError):
    """Raised when a document, version or signature id is unknown."""


class PermissionDeniedError(DocSealError):
    """Raised when the acting user may not perform the operation."""
