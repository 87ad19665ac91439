from docseal.exceptions import DocSealError


class StorageError(DocSealError):
    """Raised when the blob store cannot complete an upload, download or URL request."""


class BlobNotFoundError(StorageError):
    """Raised when a referenced blob does not exist."""
