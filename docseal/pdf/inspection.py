import pymupdf

from docseal.pdf.exceptions import InvalidPdfError, SourceEncryptedError


def is_encrypted(pdf_bytes: bytes) -> bool:
    """Return True if the PDF carries any encryption dictionary.

    Permission-only encryption (empty user password) counts: such a file
    cannot be re-locked or signed by us.

    Raises:
        InvalidPdfError: if the bytes are not a readable PDF.
    """
    try:
        with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
            return bool(doc.needs_pass or doc.is_encrypted or doc.metadata.get("encryption"))
    except Exception as exc:
        raise InvalidPdfError(f"Cannot open PDF: {exc}") from exc


def ensure_not_encrypted(pdf_bytes: bytes) -> None:
    """Raises SourceEncryptedError if the source PDF is password-protected."""
    if is_encrypted(pdf_bytes):
        raise SourceEncryptedError("Source PDF is encrypted or password-protected")


def page_count(pdf_bytes: bytes) -> int:
    try:
        with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
            return doc.page_count
    except Exception as exc:
        raise InvalidPdfError(f"Cannot open PDF: {exc}") from exc
