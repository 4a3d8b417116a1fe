"""
Discussion message store

One MongoDB document per (itemType, itemId) holding a flat, append-only
array of messages. Every operation returns the whole discussion re-read from
the database with authors resolved, so callers can replace their state
wholesale instead of patching it.

Posting is a single atomic $push. Edit, delete and like are read-modify-write
cycles guarded by the document `version` (compare-and-swap, retried).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from core.discussions.deletion import DeletePolicy, apply_delete
from core.discussions.errors import Conflict, Forbidden, InvalidParent, NotFound, ValidationError
from core.discussions.permissions import can_delete, can_edit, is_admin, permissions_for
from models.discussion_model import (
    ITEM_MODELS,
    MAX_MESSAGE_LENGTH,
    Author,
    CurrentUser,
    DiscussionOut,
    DiscussionSummary,
    Message,
    MessagePermissionsOut,
    StoredMessage,
)

logger = logging.getLogger(__name__)

MAX_WRITE_RETRIES = 5
USER_PROJECTION = {"fullName": 1, "name": 1, "email": 1, "role": 1}

Mutation = Callable[[List[StoredMessage], StoredMessage], List[StoredMessage]]


# ================== Helpers ==================

def parse_oid(value: Any, what: str) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or len(value) != 24 or not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {what}")
    return ObjectId(value)


def utcnow() -> datetime:
    # Mongo keeps millisecond precision
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def display_name(user_doc: Optional[Dict[str, Any]]) -> str:
    if not user_doc:
        return "Anonymous"
    for key in ("fullName", "name"):
        if user_doc.get(key):
            return user_doc[key]
    if user_doc.get("email"):
        return user_doc["email"].split("@")[0]
    return "Anonymous"


def clean_content(content: Optional[str]) -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message content is too long (max {MAX_MESSAGE_LENGTH} characters)")
    return text


def validate_item(item_type: str, item_id: str) -> ObjectId:
    if item_type not in ITEM_MODELS:
        raise ValidationError("Invalid item type")
    return parse_oid(item_id, "item ID")


def _toggle(message: StoredMessage, user_id: str) -> StoredMessage:
    if user_id in message.likes:
        likes = [u for u in message.likes if u != user_id]
    else:
        likes = message.likes + [user_id]
    return message.model_copy(update={"likes": likes})


def _replace(messages: List[StoredMessage], updated: StoredMessage) -> List[StoredMessage]:
    return [updated if m.id == updated.id else m for m in messages]


# ================== Service ==================

class DiscussionService:
    def __init__(self, discussions_col, users_col):
        self.discussions = discussions_col
        self.users = users_col

    async def ensure_indexes(self):
        await self.discussions.create_index([("itemType", 1), ("itemId", 1)], unique=True)
        await self.discussions.create_index([("participants", 1)])
        await self.discussions.create_index([("lastActivityAt", -1)])

    # ---------- reads ----------

    async def get_discussion(self, item_type: str, item_id: str) -> DiscussionOut:
        """Missing discussions read as empty (null _id); nothing is created here"""
        item_oid = validate_item(item_type, item_id)
        doc = await self.discussions.find_one({"itemType": item_type, "itemId": item_oid})
        if not doc:
            return DiscussionOut(id=None, item_type=item_type, item_id=str(item_oid), messages=[])
        return await self._to_out(doc)

    async def get_discussion_by_id(self, discussion_id: str) -> DiscussionOut:
        doc = await self._load(parse_oid(discussion_id, "discussion ID"))
        return await self._to_out(doc)

    async def get_permissions(self, discussion_id: str, message_id: str, user: CurrentUser) -> MessagePermissionsOut:
        doc = await self._load(parse_oid(discussion_id, "discussion ID"))
        target = self._find(self._stored(doc), parse_oid(message_id, "message ID"))
        return permissions_for(target, user)

    async def list_user_discussions(self, user: CurrentUser, limit: int = 10) -> List[DiscussionSummary]:
        cursor = self.discussions.find(
            {"participants": user.id},
            {"itemType": 1, "itemId": 1, "messageCount": 1, "participants": 1, "lastActivityAt": 1},
            sort=[("lastActivityAt", -1)],
            limit=limit,
        )

        items: List[DiscussionSummary] = []
        for d in await cursor.to_list(length=limit):
            items.append(DiscussionSummary(
                id=str(d["_id"]),
                item_type=d["itemType"],
                item_id=str(d["itemId"]),
                message_count=int(d.get("messageCount", 0)),
                participant_count=len(d.get("participants") or []),
                last_activity_at=d.get("lastActivityAt"),
            ))
        return items

    # ---------- writes ----------

    async def post_message(
        self,
        item_type: str,
        item_id: str,
        user: CurrentUser,
        content: str,
        parent_message_id: Optional[str] = None,
    ) -> DiscussionOut:
        item_oid = validate_item(item_type, item_id)
        text = clean_content(content)
        parent_oid = parse_oid(parent_message_id, "parent message ID") if parent_message_id else None

        if parent_oid is None:
            discussion = await self._get_or_create(item_type, item_oid)
        else:
            # Replies never create the discussion
            discussion = await self.discussions.find_one({"itemType": item_type, "itemId": item_oid})
            if not discussion:
                raise InvalidParent("Parent message not found in this discussion")
            parent = next((m for m in discussion.get("messages", []) if m.get("_id") == parent_oid), None)
            if parent is None:
                raise InvalidParent("Parent message not found in this discussion")
            if parent.get("deleted"):
                raise InvalidParent("Cannot reply to a deleted message")

        now = utcnow()
        message = StoredMessage(
            user_id=user.id,
            user_role=user.role,
            content=text,
            timestamp=now,
            parent_message_id=parent_oid,
        )

        # Independent append; the filter re-checks the parent in the same write
        query: Dict[str, Any] = {"_id": discussion["_id"]}
        if parent_oid is not None:
            query["messages._id"] = parent_oid
        res = await self.discussions.update_one(
            query,
            {
                "$push": {"messages": message.to_doc()},
                "$inc": {"messageCount": 1, "version": 1},
                "$set": {"lastActivityAt": now},
                "$addToSet": {"participants": user.id},
            },
        )
        if res.matched_count == 0:
            raise InvalidParent("Parent message not found in this discussion")

        logger.info(f"Message {message.id} posted to discussion {discussion['_id']} by {user.id}")
        return await self.get_discussion_by_id(str(discussion["_id"]))

    async def edit_message(self, discussion_id: str, message_id: str, user: CurrentUser, content: str) -> DiscussionOut:
        text = clean_content(content)

        def edit(messages: List[StoredMessage], target: StoredMessage) -> List[StoredMessage]:
            if target.deleted:
                raise NotFound("Message has been deleted")
            if not can_edit(target, user):
                logger.warning(f"User {user.id} tried to edit message {target.id} of {target.user_id}")
                raise Forbidden("You do not have permission to edit this message")
            updated = target.model_copy(update={"content": text, "edited": True, "edited_at": utcnow()})
            return _replace(messages, updated)

        return await self._mutate(discussion_id, message_id, edit)

    async def delete_message(
        self,
        discussion_id: str,
        message_id: str,
        user: CurrentUser,
        cascade: bool = False,
    ) -> DiscussionOut:
        policy = DeletePolicy.from_flag(cascade)

        def delete(messages: List[StoredMessage], target: StoredMessage) -> List[StoredMessage]:
            if not can_delete(target, user):
                logger.warning(f"User {user.id} tried to delete message {target.id} of {target.user_id}")
                raise Forbidden("You do not have permission to delete this message")
            if is_admin(user) and target.user_id != user.id:
                logger.info(f"Admin {user.id} moderating message {target.id} ({policy.value})")
            return apply_delete(messages, target.id, policy, utcnow())

        return await self._mutate(discussion_id, message_id, delete)

    async def toggle_like(self, discussion_id: str, message_id: str, user: CurrentUser) -> DiscussionOut:
        def like(messages: List[StoredMessage], target: StoredMessage) -> List[StoredMessage]:
            if target.deleted:
                raise NotFound("Message has been deleted")
            return _replace(messages, _toggle(target, user.id))

        return await self._mutate(discussion_id, message_id, like)

    # ---------- internals ----------

    async def _get_or_create(self, item_type: str, item_oid: ObjectId) -> Dict[str, Any]:
        now = utcnow()
        try:
            return await self.discussions.find_one_and_update(
                {"itemType": item_type, "itemId": item_oid},
                {
                    "$setOnInsert": {
                        "itemModel": ITEM_MODELS[item_type],
                        "messages": [],
                        "participants": [],
                        "messageCount": 0,
                        "version": 0,
                        "createdAt": now,
                        "lastActivityAt": now,
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Lost the creation race to a concurrent first post
            return await self.discussions.find_one({"itemType": item_type, "itemId": item_oid})

    async def _load(self, discussion_oid: ObjectId) -> Dict[str, Any]:
        doc = await self.discussions.find_one({"_id": discussion_oid})
        if not doc:
            raise NotFound("Discussion not found")
        return doc

    @staticmethod
    def _stored(doc: Dict[str, Any]) -> List[StoredMessage]:
        return [StoredMessage.model_validate(m) for m in doc.get("messages") or []]

    @staticmethod
    def _find(messages: List[StoredMessage], message_oid: ObjectId) -> StoredMessage:
        target = next((m for m in messages if m.id == message_oid), None)
        if target is None:
            raise NotFound("Message not found")
        return target

    async def _mutate(self, discussion_id: str, message_id: str, mutation: Mutation) -> DiscussionOut:
        discussion_oid = parse_oid(discussion_id, "discussion ID")
        message_oid = parse_oid(message_id, "message ID")

        for attempt in range(MAX_WRITE_RETRIES):
            doc = await self._load(discussion_oid)
            messages = self._stored(doc)
            updated = mutation(messages, self._find(messages, message_oid))

            res = await self.discussions.update_one(
                {"_id": discussion_oid, "version": doc.get("version")},
                {"$set": {"messages": [m.to_doc() for m in updated]}, "$inc": {"version": 1}},
            )
            if res.matched_count:
                return await self._to_out(await self._load(discussion_oid))
            logger.info(f"Discussion {discussion_oid} changed underneath us, retrying ({attempt + 1})")

        raise Conflict("Discussion is busy, please try again")

    async def _resolve_authors(self, messages: List[StoredMessage]) -> Dict[str, Dict[str, Any]]:
        oids = [ObjectId(uid) for uid in {m.user_id for m in messages} if ObjectId.is_valid(uid) and len(uid) == 24]
        if not oids:
            return {}
        users = await self.users.find({"_id": {"$in": oids}}, USER_PROJECTION).to_list(length=None)
        return {str(u["_id"]): u for u in users}

    async def _to_out(self, doc: Dict[str, Any]) -> DiscussionOut:
        messages = sorted(self._stored(doc), key=lambda m: m.timestamp)
        users = await self._resolve_authors(messages)
        discussion_id = str(doc["_id"])

        out: List[Message] = []
        for m in messages:
            user_doc = users.get(m.user_id)
            author = Author(
                id=m.user_id,
                display_name=display_name(user_doc),
                role=(user_doc.get("role") if user_doc else None) or m.user_role,
            )
            out.append(Message(
                id=str(m.id),
                discussion_id=discussion_id,
                author=author,
                content=m.content,
                parent_message_id=str(m.parent_message_id) if m.parent_message_id else None,
                timestamp=m.timestamp,
                edited=m.edited,
                edited_at=m.edited_at,
                likes=list(m.likes),
                like_count=len(m.likes),
                deleted=m.deleted,
                deleted_at=m.deleted_at,
            ))

        return DiscussionOut(
            id=discussion_id,
            item_type=doc["itemType"],
            item_id=str(doc["itemId"]),
            messages=out,
        )
