from pathlib import Path
from urllib.parse import quote

from docseal.storage.base import BaseBlobStore
from docseal.storage.exceptions import BlobNotFoundError, StorageError


class LocalBlobStore(BaseBlobStore):
    """Stores blobs as files under a root directory.

    References are paths relative to the root, e.g.
    ``signed-documents/{owner_id}/{name}.pdf``.
    """

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        target = self._resolve_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Local upload of {path} failed: {exc}") from exc
        return path

    def download(self, ref: str) -> bytes:
        """Read blob bytes from disk.

        Raises:
            BlobNotFoundError: if the file does not exist at the resolved path.
            StorageError: if the file cannot be read.
        """
        target = self._resolve_path(ref)
        if not target.exists():
            raise BlobNotFoundError(f"File not found: {target}")
        try:
            return target.read_bytes()
        except OSError as exc:
            raise StorageError(f"Local download of {ref} failed: {exc}") from exc

    def signed_url(self, ref: str, ttl_seconds: int, filename: str | None = None) -> str:
        # Local files have no expiry; ttl is accepted for interface parity.
        target = self._resolve_path(ref)
        if not target.exists():
            raise BlobNotFoundError(f"File not found: {target}")
        url = target.resolve().as_uri()
        if filename:
            url = f"{url}?download={quote(filename)}"
        return url

    def delete(self, ref: str) -> None:
        self._resolve_path(ref).unlink(missing_ok=True)

    def _resolve_path(self, ref: str) -> Path:
        root = self._files_root.resolve()
        target = (root / ref).resolve()
        if not target.is_relative_to(root):
            raise StorageError(f"Reference '{ref}' escapes the storage root")
        return target
