from pathlib import Path

from docseal.config.settings import Settings
from docseal.storage.base import BaseBlobStore
from docseal.storage.local_adapter import LocalBlobStore
from docseal.storage.supabase_adapter import SupabaseBlobStore


class BlobStoreFactory:
    """Creates the configured blob store adapter."""

    ADAPTERS: dict[str, type[BaseBlobStore]] = {
        "local": LocalBlobStore,
        "supabase": SupabaseBlobStore,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseBlobStore:
        backend = settings.storage_backend.lower()
        if backend not in cls.ADAPTERS:
            raise ValueError(
                f"Unknown storage backend '{backend}'. Choose from: {list(cls.ADAPTERS)}"
            )
        if backend == "supabase":
            return SupabaseBlobStore(
                base_url=settings.supabase_url,
                service_key=settings.supabase_service_key,
                bucket=settings.supabase_bucket,
                timeout_seconds=settings.storage_timeout_seconds,
                max_retries=settings.storage_max_retries,
            )
        return LocalBlobStore(Path(settings.storage_local_root))
