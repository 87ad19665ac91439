from docseal.database.models import ROLE_GROUP_ADMIN, DocumentRecord
from docseal.database.repositories.base import BaseGroupMemberRepository


def is_group_admin(
    members: BaseGroupMemberRepository, group_id: int | None, user_id: str
) -> bool:
    if group_id is None:
        return False
    member = members.find_by_group_and_user(group_id, user_id)
    return member is not None and member.role == ROLE_GROUP_ADMIN


def can_manage(
    members: BaseGroupMemberRepository, document: DocumentRecord, user_id: str
) -> bool:
    """Owner, or an admin_group member of the document's group."""
    if document.owner_id == user_id:
        return True
    return is_group_admin(members, document.group_id, user_id)
