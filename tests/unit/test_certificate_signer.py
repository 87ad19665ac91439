import base64
from io import BytesIO

import pymupdf
import pytest
from pyhanko.pdf_utils.generic import IndirectObject
from pyhanko.pdf_utils.reader import PdfFileReader

from docseal.pdf.certificate_signer import CertificateSigner, load_simple_signer
from docseal.pdf.credentials import SigningCredentials
from docseal.pdf.exceptions import ConfigurationError, SigningError, SourceEncryptedError
from docseal.pdf.inspection import is_encrypted
from docseal.pdf.models import LockedDocument


def _signer(
    pkcs12_bytes: bytes,
    passphrase: str,
    owner_password: str = "owner-secret",
) -> CertificateSigner:
    credentials = SigningCredentials(
        source=base64.b64encode(pkcs12_bytes).decode("ascii"),
        passphrase=passphrase,
    )
    return CertificateSigner(
        credentials,
        owner_password=owner_password,
        reason="Digitally signed",
        location="Kyiv",
        name="docseal",
    )


class TestLoadSimpleSigner:
    def test_loads_certificate(self, pkcs12_bytes: bytes, cert_passphrase: str) -> None:
        simple_signer = load_simple_signer(pkcs12_bytes, cert_passphrase)

        assert simple_signer.signing_cert.subject.native["common_name"] == "docseal test signer"

    def test_wrong_passphrase_raises_signing_error(self, pkcs12_bytes: bytes) -> None:
        with pytest.raises(SigningError, match="Cannot load PKCS#12"):
            load_simple_signer(pkcs12_bytes, "wrong")


class TestLock:
    def test_locked_pdf_opens_without_password(
        self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        locked = _signer(pkcs12_bytes, cert_passphrase).lock(sample_pdf_bytes)

        assert is_encrypted(locked.pdf_bytes)
        with pymupdf.open(stream=locked.pdf_bytes, filetype="pdf") as doc:
            assert not doc.needs_pass
            assert doc.page_count == 1

    def test_locked_pdf_forbids_editing(
        self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        locked = _signer(pkcs12_bytes, cert_passphrase).lock(sample_pdf_bytes)

        with pymupdf.open(stream=locked.pdf_bytes, filetype="pdf") as doc:
            assert doc.permissions & pymupdf.PDF_PERM_PRINT
            assert not doc.permissions & pymupdf.PDF_PERM_MODIFY

    def test_encryption_dictionary_is_indirect(
        self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        locked = _signer(pkcs12_bytes, cert_passphrase).lock(sample_pdf_bytes)

        reader = PdfFileReader(BytesIO(locked.pdf_bytes))
        assert isinstance(reader.trailer.raw_get("/Encrypt"), IndirectObject)

    def test_rejects_encrypted_input(
        self, encrypted_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        with pytest.raises(SourceEncryptedError):
            _signer(pkcs12_bytes, cert_passphrase).lock(encrypted_pdf_bytes)

    def test_missing_owner_password_raises(
        self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        with pytest.raises(ConfigurationError, match="owner password"):
            _signer(pkcs12_bytes, cert_passphrase, owner_password="").lock(sample_pdf_bytes)

    def test_missing_passphrase_raises(self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes) -> None:
        with pytest.raises(ConfigurationError, match="passphrase"):
            _signer(pkcs12_bytes, "").lock(sample_pdf_bytes)


class TestSign:
    def test_seal_appends_signature_to_locked_bytes(
        self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        signer = _signer(pkcs12_bytes, cert_passphrase)

        locked = signer.lock(sample_pdf_bytes)
        sealed = signer.seal(signer.prepare(locked))

        assert sealed.pdf_bytes.startswith(locked.pdf_bytes)
        assert len(sealed.pdf_bytes) > len(locked.pdf_bytes)
        assert b"/ByteRange" in sealed.pdf_bytes[len(locked.pdf_bytes):]

    def test_sign_output_is_locked_and_readable(
        self, multi_page_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        sealed = _signer(pkcs12_bytes, cert_passphrase).sign(multi_page_pdf_bytes)

        assert is_encrypted(sealed.pdf_bytes)
        with pymupdf.open(stream=sealed.pdf_bytes, filetype="pdf") as doc:
            assert doc.page_count == 2

    def test_sealed_pdf_carries_one_embedded_signature(
        self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        sealed = _signer(pkcs12_bytes, cert_passphrase).sign(sample_pdf_bytes)

        reader = PdfFileReader(BytesIO(sealed.pdf_bytes))
        reader.decrypt("")
        signatures = reader.embedded_signatures
        assert len(signatures) == 1
        assert signatures[0].field_name == "Signature1"

    def test_wrong_passphrase_fails_before_sealing(
        self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes
    ) -> None:
        signer = _signer(pkcs12_bytes, "wrong")

        with pytest.raises(SigningError):
            signer.sign(sample_pdf_bytes)

    def test_prepare_requires_locked_document(
        self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        with pytest.raises(TypeError):
            _signer(pkcs12_bytes, cert_passphrase).prepare(sample_pdf_bytes)  # type: ignore[arg-type]

    def test_seal_requires_placeholdered_document(
        self, sample_pdf_bytes: bytes, pkcs12_bytes: bytes, cert_passphrase: str
    ) -> None:
        with pytest.raises(TypeError):
            _signer(pkcs12_bytes, cert_passphrase).seal(
                LockedDocument(pdf_bytes=sample_pdf_bytes)  # type: ignore[arg-type]
            )
