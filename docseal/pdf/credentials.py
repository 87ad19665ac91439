import base64
import binascii
import os
from dataclasses import dataclass
from pathlib import Path

from docseal.config.settings import Settings
from docseal.logging.logger import Log
from docseal.pdf.exceptions import ConfigurationError


@dataclass(frozen=True)
class SigningCredentials:
    """PKCS#12 material and its passphrase.

    source is either a filesystem path or a base64-encoded PKCS#12 blob. A
    path that does not exist on disk is treated as base64.
    """

    source: str
    passphrase: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "SigningCredentials":
        """Prefer the certificate file when it exists, else the base64 blob."""
        if settings.cert_file_path and os.path.isfile(settings.cert_file_path):
            source = settings.cert_file_path
        else:
            source = settings.cert_base64
        return cls(source=source, passphrase=settings.cert_password)

    def validate(self) -> None:
        """Raises ConfigurationError if the source or passphrase is missing."""
        if not self.passphrase:
            Log.error("Certificate passphrase is not configured")
            raise ConfigurationError("Certificate passphrase is not configured")
        if not self.source:
            Log.error("Certificate is not configured (no file and no base64 blob)")
            raise ConfigurationError("Certificate is not configured")

    def load_bytes(self) -> bytes:
        """Read the PKCS#12 bytes.

        Raises:
            ConfigurationError: if the credential is missing or not decodable.
        """
        self.validate()
        # os.path.isfile tolerates base64 blobs that are too long to be a path.
        if os.path.isfile(self.source):
            return Path(self.source).read_bytes()

        try:
            return base64.b64decode("".join(self.source.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            Log.error("Certificate file not found and base64 blob is not decodable")
            raise ConfigurationError(
                f"Certificate not found at '{self.source}' and not valid base64"
            ) from exc
