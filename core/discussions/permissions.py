"""
Who may edit, delete, like or reply to a discussion message.

Admins moderate, they do not impersonate authorship: an admin may delete
anyone's message but only the author may edit its content.
"""
import os
from typing import Any, List, Optional

from models.discussion_model import CurrentUser, MessagePermissionsOut, ROLE_ADMIN


def _admin_ids() -> List[str]:
    ids = os.getenv("ADMIN_USER_IDS", "").split(",")
    return [i.strip() for i in ids if i.strip()]


def is_admin(user: Optional[CurrentUser]) -> bool:
    """
    Admin if:
      - the token role is 'admin'
      - or the user id is listed in ADMIN_USER_IDS
    """
    if user is None:
        return False
    if user.role == ROLE_ADMIN:
        return True
    return user.id in _admin_ids()


def is_author(message: Any, user: Optional[CurrentUser]) -> bool:
    return user is not None and message.author_id == user.id


def can_modify(message: Any, user: Optional[CurrentUser]) -> bool:
    """Base rule: admin OR author"""
    return is_admin(user) or is_author(message, user)


def can_edit(message: Any, user: Optional[CurrentUser]) -> bool:
    return is_author(message, user) and not message.deleted


def can_delete(message: Any, user: Optional[CurrentUser]) -> bool:
    return can_modify(message, user)


def can_offer_delete(message: Any, user: Optional[CurrentUser], live_replies: bool = False) -> bool:
    """
    Delete as offered in the UI: live messages, or a tombstone whose replies
    are still live (deleting it again cascades to them).
    """
    return can_delete(message, user) and (not message.deleted or live_replies)


def can_like(message: Any, user: Optional[CurrentUser]) -> bool:
    return user is not None and not message.deleted


# Same rule as liking: any signed-in user, live messages only
can_reply = can_like


def permissions_for(message: Any, user: Optional[CurrentUser]) -> MessagePermissionsOut:
    return MessagePermissionsOut(
        owned=is_author(message, user),
        can_edit=can_edit(message, user),
        can_delete=can_delete(message, user),
    )
