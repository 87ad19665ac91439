import io
from datetime import datetime, timedelta, timezone

import pymupdf
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, pkcs12
from cryptography.x509.oid import NameOID
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

CERT_PASSPHRASE = "test-passphrase"


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with known text content."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Hello PDF World")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with known text on each page."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Page one content")
    c.showPage()
    c.drawString(72, 720, "Page two content")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def encrypted_pdf_bytes(sample_pdf_bytes: bytes) -> bytes:
    """The sample PDF re-saved with a user password."""
    with pymupdf.open(stream=sample_pdf_bytes, filetype="pdf") as doc:
        return doc.tobytes(
            encryption=pymupdf.PDF_ENCRYPT_AES_256,
            owner_pw="owner",
            user_pw="user",
        )


@pytest.fixture()
def signature_png_bytes() -> bytes:
    """A 200x100 opaque PNG, i.e. a 2:1 signature image."""
    pixmap = pymupdf.Pixmap(pymupdf.csRGB, pymupdf.IRect(0, 0, 200, 100), False)
    pixmap.clear_with(0)
    return pixmap.tobytes("png")


@pytest.fixture(scope="session")
def pkcs12_bytes() -> bytes:
    """Self-signed signing credential protected by CERT_PASSPHRASE."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "docseal test signer")])
    now = datetime.now(timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return pkcs12.serialize_key_and_certificates(
        b"signer",
        key,
        certificate,
        None,
        BestAvailableEncryption(CERT_PASSPHRASE.encode("utf-8")),
    )


@pytest.fixture(scope="session")
def cert_passphrase() -> str:
    return CERT_PASSPHRASE
