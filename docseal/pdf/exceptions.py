from docseal.exceptions import DocSealError


class PdfError(DocSealError):
    """Base exception for all PDF compositing and sealing errors."""


class InvalidPdfError(PdfError):
    """Raised when bytes cannot be opened as a PDF document."""


class SourceEncryptedError(PdfError):
    """Raised when a source PDF is already password-protected."""


class ConfigurationError(PdfError):
    """Raised when certificate, passphrase or owner password is not configured."""


class SigningError(PdfError):
    """Raised when the signing library fails to produce a sealed artifact."""
