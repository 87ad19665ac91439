from collections.abc import Iterable

from docseal.database.models import SignatureRecord, UserRecord
from docseal.database.repositories.base import BaseUserRepository
from docseal.verification.models import SignerView


def owner_view(users: BaseUserRepository, owner_id: str) -> SignerView:
    user = users.find_by_ids([owner_id]).get(owner_id)
    if user is None:
        return SignerView(name=None, email=None)
    return SignerView(name=user.name, email=user.email)


def signer_views(
    users: BaseUserRepository, signatures: Iterable[SignatureRecord]
) -> tuple[SignerView, ...]:
    """Disclose every final signature, in the order given."""
    finals = [signature for signature in signatures if signature.is_final]
    known: dict[str, UserRecord] = users.find_by_ids(s.signer_id for s in finals)
    views = []
    for signature in finals:
        user = known.get(signature.signer_id)
        views.append(
            SignerView(
                name=user.name if user else None,
                email=user.email if user else None,
                signed_at=signature.signed_at or signature.created_at,
                ip_address=signature.ip_address,
            )
        )
    return tuple(views)
