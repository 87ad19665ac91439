from urllib.parse import quote

import httpx

from docseal.logging.logger import Log
from docseal.storage.base import BaseBlobStore
from docseal.storage.exceptions import BlobNotFoundError, StorageError


class SupabaseBlobStore(BaseBlobStore):
    """Blob store adapter for the Supabase Storage REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        service_key: str,
        bucket: str,
        timeout_seconds: int,
        max_retries: int = 1,
        client: httpx.Client | None = None,
    ) -> None:
        if not base_url or not service_key:
            raise ValueError("Supabase storage requires both a URL and a service key")
        self._bucket = bucket
        self._max_retries = max_retries
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            base_url=f"{self._base_url}/storage/v1",
            timeout=timeout_seconds,
            headers={
                "Authorization": f"Bearer {service_key}",
                "apikey": service_key,
            },
        )

    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        """Create the object at path, refusing to overwrite an existing one.

        A retry may follow a first attempt that stored the object before the
        response was lost, so retries are sent with upsert enabled.
        """
        headers = {"Content-Type": content_type, "x-upsert": "false"}
        self._request(
            "POST",
            f"/object/{self._bucket}/{path}",
            content=data,
            headers=headers,
            retry_headers={**headers, "x-upsert": "true"},
        )
        return path

    def download(self, ref: str) -> bytes:
        response = self._request("GET", f"/object/{self._bucket}/{ref}")
        return response.content

    def signed_url(self, ref: str, ttl_seconds: int, filename: str | None = None) -> str:
        response = self._request(
            "POST",
            f"/object/sign/{self._bucket}/{ref}",
            json={"expiresIn": ttl_seconds},
        )
        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise StorageError(f"Supabase returned no signed URL for {ref}")

        url = f"{self._base_url}/storage/v1{signed_path}"
        if filename:
            url = f"{url}&download={quote(filename)}"
        return url

    def delete(self, ref: str) -> None:
        self._request("DELETE", f"/object/{self._bucket}", json={"prefixes": [ref]})

    def _request(
        self,
        method: str,
        url: str,
        retry_headers: dict[str, str] | None = None,
        **kwargs: object,
    ) -> httpx.Response:
        """Send a request, retrying transport errors and 5xx responses.

        retry_headers, when given, replace the request headers on every
        attempt after the first.

        Raises:
            BlobNotFoundError: on a 404 response.
            StorageError: when retries are exhausted or the API rejects the call.
        """
        attempts = self._max_retries + 1
        for attempt in range(1, attempts + 1):
            if attempt > 1 and retry_headers is not None:
                kwargs["headers"] = retry_headers
            try:
                response = self._client.request(method, url, **kwargs)  # type: ignore[arg-type]
            except httpx.TransportError as exc:
                if attempt < attempts:
                    Log.warning(f"Storage {method} {url} failed ({exc}), retrying")
                    continue
                raise StorageError(f"Storage {method} {url} failed: {exc}") from exc

            if response.status_code >= 500 and attempt < attempts:
                Log.warning(f"Storage {method} {url} returned {response.status_code}, retrying")
                continue
            if response.status_code == 404:
                raise BlobNotFoundError(f"Blob not found: {url}")
            if response.is_error:
                raise StorageError(
                    f"Storage {method} {url} returned {response.status_code}: {response.text}"
                )
            return response

        raise StorageError(f"Storage {method} {url} failed after {attempts} attempts")
