import base64
import binascii
import uuid
from collections.abc import Sequence

from docseal.exceptions import ValidationError
from docseal.logging.logger import Log
from docseal.pdf.certificate_signer import CertificateSigner
from docseal.pdf.compositor import StampCompositor
from docseal.pdf.inspection import ensure_not_encrypted
from docseal.pdf.models import StampPlacement
from docseal.signing.models import SignaturePlacement, SignedArtifact
from docseal.storage.base import BaseBlobStore
from docseal.storage.exceptions import StorageError
from docseal.verification.integrity import content_hash

DATA_URL_PREFIX = "data:"


class SealingService:
    """Turns a source version plus signature placements into a sealed artifact.

    Order: download, encryption check, compose, lock and sign, upload, hash.
    Nothing is uploaded unless signing succeeds.
    """

    def __init__(
        self,
        *,
        blob_store: BaseBlobStore,
        compositor: StampCompositor,
        signer: CertificateSigner,
    ) -> None:
        self._blob_store = blob_store
        self._compositor = compositor
        self._signer = signer

    def seal(
        self,
        source_ref: str,
        owner_id: str,
        placements: Sequence[SignaturePlacement],
        verification_url: str | None = None,
    ) -> SignedArtifact:
        """Produce, upload and hash a sealed PDF.

        Raises:
            ValidationError: if no placements are given.
            SourceEncryptedError: if the source PDF is encrypted.
            ConfigurationError: if signing credentials are missing.
            SigningError: if the signer library fails.
            StorageError: if the source download or artifact upload fails.
        """
        if not placements:
            raise ValidationError("At least one signature placement is required")

        source = self._blob_store.download(source_ref)
        ensure_not_encrypted(source)

        stamps = [self._to_stamp(placement) for placement in placements]
        composite = self._compositor.compose(source, stamps, verification_url)
        sealed = self._signer.sign(composite.pdf_bytes)

        storage_ref = self._blob_store.upload(
            f"signed-documents/{owner_id}/{uuid.uuid4().hex}.pdf", sealed.pdf_bytes
        )
        signed_hash = content_hash(sealed.pdf_bytes)
        Log.info(
            f"Sealed {source_ref} -> {storage_ref} "
            f"({composite.stamps_drawn} stamps, sha256={signed_hash[:12]})"
        )
        return SignedArtifact(
            storage_ref=storage_ref,
            signed_bytes=sealed.pdf_bytes,
            signed_hash=signed_hash,
        )

    def _to_stamp(self, placement: SignaturePlacement) -> StampPlacement:
        return StampPlacement(
            page_number=placement.page_number,
            position_x=placement.position_x,
            position_y=placement.position_y,
            width=placement.width,
            height=placement.height,
            image_bytes=self._resolve_image(placement.image_ref),
        )

    def _resolve_image(self, image_ref: str) -> bytes | None:
        """Decode a data URL or fetch the image from the blob store.

        Unresolvable images yield None so the compositor skips that stamp.
        """
        if image_ref.startswith(DATA_URL_PREFIX):
            _, _, payload = image_ref.partition(",")
            try:
                return base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError) as exc:
                Log.warning(f"Signature image data URL is not valid base64: {exc}")
                return None

        try:
            return self._blob_store.download(image_ref)
        except StorageError as exc:
            Log.warning(f"Signature image {image_ref} could not be fetched: {exc}")
            return None
