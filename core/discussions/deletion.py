"""
Cascade deletion policy

Deletion never removes a message from storage: the message becomes a
tombstone (content cleared, deleted flag set) and keeps its id and parent so
the tree survives. The caller picks whether replies go with it.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Hashable, List, Sequence, Set

from core.discussions.thread_tree import collect_descendants, has_replies


class DeletePolicy(str, Enum):
    TOMBSTONE = "tombstone"  # only the message itself
    CASCADE = "cascade"      # the message and every transitive reply

    @classmethod
    def from_flag(cls, cascade: bool) -> "DeletePolicy":
        return cls.CASCADE if cascade else cls.TOMBSTONE


CONFIRM_DELETE = "Are you sure you want to delete this message?"
CONFIRM_DELETE_WITH_REPLIES = (
    "This message has replies. Delete only this message, or this message "
    "and all of its replies?"
)
CONFIRM_DELETE_REPLIES = "This message was already deleted. Delete all of its replies?"


def confirmation_prompt(messages: Sequence[Any], message_id: Hashable) -> str:
    """Copy shown before deleting; replies get a distinct warning"""
    target = next((m for m in messages if m.id == message_id), None)
    if target is not None and target.deleted:
        return CONFIRM_DELETE_REPLIES
    if has_replies(messages, message_id):
        return CONFIRM_DELETE_WITH_REPLIES
    return CONFIRM_DELETE


def targets_for_delete(messages: Sequence[Any], message_id: Hashable, policy: DeletePolicy) -> Set[Hashable]:
    targets = {message_id}
    if policy == DeletePolicy.CASCADE:
        targets |= collect_descendants(messages, message_id)
    return targets


def apply_delete(messages: Sequence[Any], message_id: Hashable, policy: DeletePolicy, now: datetime) -> List[Any]:
    """
    Return a new list with every target tombstoned.
    Messages must be pydantic models; untouched ones are returned as-is.
    Already-deleted targets keep their original deletedAt.
    """
    targets = targets_for_delete(messages, message_id, policy)
    out = []
    for m in messages:
        if m.id in targets and not m.deleted:
            m = m.model_copy(update={"deleted": True, "deleted_at": now, "content": ""})
        out.append(m)
    return out
