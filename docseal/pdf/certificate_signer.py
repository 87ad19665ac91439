import asyncio
from datetime import datetime, timezone
from io import BytesIO

from asn1crypto import keys, x509
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)
from pyhanko.pdf_utils.crypt.permissions import StandardPermissions
from pyhanko.pdf_utils.incremental_writer import IncrementalPdfFileWriter
from pyhanko.pdf_utils.reader import PdfFileReader
from pyhanko.pdf_utils.writer import copy_into_new_writer
from pyhanko.sign import signers
from pyhanko.sign.signers.pdf_cms import PdfCMSSignedAttributes
from pyhanko_certvalidator.registry import SimpleCertificateStore

from docseal.logging.logger import Log
from docseal.pdf.credentials import SigningCredentials
from docseal.pdf.exceptions import ConfigurationError, SigningError, SourceEncryptedError
from docseal.pdf.inspection import is_encrypted
from docseal.pdf.models import LockedDocument, PlaceholderedDocument, SealedDocument

SIGNATURE_FIELD_NAME = "Signature1"

# Printing (including high resolution) and accessibility extraction only.
# No ISO 32004 MAC is written, so the handler must not demand one.
LOCKED_PERMISSIONS = (
    StandardPermissions.ALLOW_PRINTING
    | StandardPermissions.ALLOW_HIGH_QUALITY_PRINTING
    | StandardPermissions.ALLOW_ASSISTIVE_TECHNOLOGY
    | StandardPermissions.TOLERATE_MISSING_PDF_MAC
)


def load_simple_signer(pkcs12_bytes: bytes, passphrase: str) -> signers.SimpleSigner:
    """Build a pyHanko signer from PKCS#12 bytes.

    Raises:
        SigningError: if the bundle cannot be decrypted or holds no key/cert.
    """
    try:
        private_key, certificate, extra_certs = pkcs12.load_key_and_certificates(
            pkcs12_bytes, passphrase.encode("utf-8")
        )
    except Exception as exc:
        raise SigningError(f"Cannot load PKCS#12 credential: {exc}") from exc

    if private_key is None or certificate is None:
        raise SigningError("PKCS#12 credential holds no private key or certificate")

    signing_cert = x509.Certificate.load(certificate.public_bytes(Encoding.DER))
    signing_key = keys.PrivateKeyInfo.load(
        private_key.private_bytes(Encoding.DER, PrivateFormat.PKCS8, NoEncryption())
    )
    chain = [x509.Certificate.load(cert.public_bytes(Encoding.DER)) for cert in extra_certs or []]
    return signers.SimpleSigner(
        signing_cert=signing_cert,
        signing_key=signing_key,
        cert_registry=SimpleCertificateStore.from_certs([signing_cert, *chain]),
    )


class CertificateSigner:
    """Locks a composited PDF and seals it with a detached CMS signature.

    The steps are typed so they can only run in order:
    lock() -> prepare() -> seal(). sign() runs all three.
    """

    def __init__(
        self,
        credentials: SigningCredentials,
        *,
        owner_password: str,
        reason: str,
        location: str = "",
        contact_info: str = "",
        name: str = "",
        reserved_bytes: int = 32768,
    ) -> None:
        self._credentials = credentials
        self._owner_password = owner_password
        self._reason = reason
        self._location = location
        self._contact_info = contact_info
        self._name = name
        self._reserved_bytes = reserved_bytes

    def sign(self, composited: bytes) -> SealedDocument:
        """Run lock, placeholder and seal on composited PDF bytes."""
        locked = self.lock(composited)
        placeholdered = self.prepare(locked)
        return self.seal(placeholdered)

    def lock(self, composited: bytes) -> LockedDocument:
        """Re-save with AES-256 permission encryption and an empty user password.

        The encryption dictionary is written as an indirect object, which the
        incremental signature update in prepare() requires.

        Raises:
            ConfigurationError: if no owner password or credential is configured.
            SourceEncryptedError: if the input is already encrypted.
            SigningError: if the PDF cannot be re-saved.
        """
        self._check_configuration()
        if is_encrypted(composited):
            raise SourceEncryptedError("Refusing to lock an already encrypted PDF")

        try:
            writer = copy_into_new_writer(PdfFileReader(BytesIO(composited), strict=False))
            writer.encrypt(
                self._owner_password,
                "",
                perms=LOCKED_PERMISSIONS,
                pdf_mac=False,
            )
            output = BytesIO()
            writer.write(output)
        except Exception as exc:
            raise SigningError(f"PDF lock failed: {exc}") from exc

        return LockedDocument(pdf_bytes=output.getvalue())

    def prepare(self, locked: LockedDocument) -> PlaceholderedDocument:
        """Insert the signature field and byte-range placeholder.

        Credential bytes are read here, once per signing call.

        Raises:
            ConfigurationError: if the credential is missing.
            SigningError: if pyHanko cannot prepare the document.
        """
        if not isinstance(locked, LockedDocument):
            raise TypeError("prepare() requires a LockedDocument")
        self._check_configuration()
        simple_signer = load_simple_signer(
            self._credentials.load_bytes(), self._credentials.passphrase
        )

        try:
            prepared_digest, tbs_document, output = asyncio.run(
                self._digest_for_signing(locked.pdf_bytes, simple_signer)
            )
        except Exception as exc:
            raise SigningError(f"Signature placeholder failed: {exc}") from exc

        return PlaceholderedDocument(
            prepared_digest=prepared_digest,
            tbs_document=tbs_document,
            output=output,
        )

    def seal(self, placeholdered: PlaceholderedDocument) -> SealedDocument:
        """Compute the CMS signature and splice it into the placeholder.

        Raises:
            SigningError: if the signature cannot be computed or embedded.
        """
        if not isinstance(placeholdered, PlaceholderedDocument):
            raise TypeError("seal() requires a PlaceholderedDocument")

        try:
            signed = asyncio.run(self._finish_signing(placeholdered))
        except Exception as exc:
            raise SigningError(f"Certificate signing failed: {exc}") from exc

        Log.info(f"Sealed PDF ({len(signed)} bytes)")
        return SealedDocument(pdf_bytes=signed)

    async def _digest_for_signing(
        self, locked_bytes: bytes, simple_signer: signers.SimpleSigner
    ) -> tuple:
        writer = IncrementalPdfFileWriter(BytesIO(locked_bytes))
        writer.encrypt(self._owner_password)

        pdf_signer = signers.PdfSigner(
            signers.PdfSignatureMetadata(
                field_name=SIGNATURE_FIELD_NAME,
                reason=self._reason,
                location=self._location or None,
                contact_info=self._contact_info or None,
                name=self._name or None,
                md_algorithm="sha256",
            ),
            signer=simple_signer,
        )
        return await pdf_signer.async_digest_doc_for_signing(
            writer,
            bytes_reserved=self._reserved_bytes,
            output=BytesIO(),
        )

    @staticmethod
    async def _finish_signing(placeholdered: PlaceholderedDocument) -> bytes:
        tbs_document = placeholdered.tbs_document
        post_sign = await tbs_document.perform_signature(
            document_digest=placeholdered.prepared_digest.document_digest,
            pdf_cms_signed_attrs=PdfCMSSignedAttributes(
                signing_time=datetime.now(timezone.utc),
            ),
        )
        await post_sign.post_signature_processing(placeholdered.output)
        return placeholdered.output.getvalue()

    def _check_configuration(self) -> None:
        if not self._owner_password:
            Log.error("PDF owner password is not configured")
            raise ConfigurationError("PDF owner password is not configured")
        self._credentials.validate()
