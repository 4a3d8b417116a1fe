# discussion_model.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime, timezone
from bson import ObjectId

ItemType = Literal["question", "resource"]
ITEM_MODELS = {"question": "Question", "resource": "Resource"}

ROLE_USER = "user"
ROLE_ADMIN = "admin"

MAX_MESSAGE_LENGTH = 5000
DELETED_PLACEHOLDER = "[This message was deleted]"


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    # Mongo hands back naive UTC datetimes
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class CurrentUser(BaseModel):
    """Identity carried by the bearer token"""
    id: str
    role: str = ROLE_USER


# ================== Requests ==================

class MessageIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str
    parent_message_id: Optional[str] = Field(None, alias="parentMessageId")


class MessageEdit(BaseModel):
    content: str


# ================== Storage ==================

class StoredMessage(BaseModel):
    """Message as embedded in the discussion document"""
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    user_id: str = Field(alias="userId")
    user_role: str = Field(ROLE_USER, alias="userRole")
    content: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    parent_message_id: Optional[ObjectId] = Field(None, alias="parentMessageId")
    likes: List[str] = Field(default_factory=list)
    edited: bool = False
    edited_at: Optional[datetime] = Field(None, alias="editedAt")
    deleted: bool = False
    deleted_at: Optional[datetime] = Field(None, alias="deletedAt")

    @field_validator("timestamp", "edited_at", "deleted_at")
    @classmethod
    def normalize_utc(cls, v):
        return _as_utc(v)

    @property
    def author_id(self) -> str:
        return self.user_id

    def to_doc(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# ================== Responses ==================

class Author(BaseModel):
    """Resolved author projection, always populated by the store"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    display_name: str = Field("Anonymous", alias="displayName")
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    discussion_id: str = Field(alias="discussionId")
    author: Author
    content: str = ""
    parent_message_id: Optional[str] = Field(None, alias="parentMessageId")
    timestamp: datetime
    edited: bool = False
    edited_at: Optional[datetime] = Field(None, alias="editedAt")
    likes: List[str] = Field(default_factory=list)
    like_count: int = Field(0, alias="likeCount")
    deleted: bool = False
    deleted_at: Optional[datetime] = Field(None, alias="deletedAt")

    @field_validator("timestamp", "edited_at", "deleted_at")
    @classmethod
    def normalize_utc(cls, v):
        return _as_utc(v)

    @property
    def author_id(self) -> str:
        return self.author.id


class DiscussionOut(BaseModel):
    """
    One discussion with its flat message list.
    `_id` is null while nobody has posted yet (discussions are created lazily).
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(None, alias="_id")
    item_type: str = Field(alias="itemType")
    item_id: str = Field(alias="itemId")
    messages: List[Message] = Field(default_factory=list)


class DiscussionSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    item_type: str = Field(alias="itemType")
    item_id: str = Field(alias="itemId")
    message_count: int = Field(0, alias="messageCount")
    participant_count: int = Field(0, alias="participantCount")
    last_activity_at: Optional[datetime] = Field(None, alias="lastActivityAt")


class MessagePermissionsOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    owned: bool
    can_edit: bool = Field(alias="canEdit")
    can_delete: bool = Field(alias="canDelete")
