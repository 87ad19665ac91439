from docseal.exceptions import DocSealError


class DuplicateDocumentError(DocSealError):
    """Raised when the same user uploads byte-identical content twice."""


class AlreadyCompletedError(DocSealError):
    """Raised when signing a document whose current version is already sealed."""
