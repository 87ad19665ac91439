from dataclasses import dataclass

from docseal.database.models import SignatureRecord


@dataclass(frozen=True)
class SigningReceipt:
    """Result of one signer finalizing their signature."""

    signature: SignatureRecord
    remaining_signers: int

    @property
    def ready_to_finalize(self) -> bool:
        return self.remaining_signers == 0
