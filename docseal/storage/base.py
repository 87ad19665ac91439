from abc import ABC, abstractmethod


class BaseBlobStore(ABC):
    """Contract for all blob storage adapters."""

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        """Store bytes under a path.

        Returns:
            The storage reference to persist alongside the version.

        Raises:
            StorageError: if the upload fails.
        """

    @abstractmethod
    def download(self, ref: str) -> bytes:
        """Fetch the bytes behind a storage reference.

        Raises:
            BlobNotFoundError: if nothing is stored under the reference.
            StorageError: if the download fails for any other reason.
        """

    @abstractmethod
    def signed_url(self, ref: str, ttl_seconds: int, filename: str | None = None) -> str:
        """Issue a time-limited URL for the blob, optionally forcing a download filename."""

    @abstractmethod
    def delete(self, ref: str) -> None:
        """Remove a blob. Deleting a missing blob is not an error."""
