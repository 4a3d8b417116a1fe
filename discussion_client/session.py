"""
View state of one open discussion, kept in step with the server.

After every mutation the whole message list is replaced by the list the
server returns; nothing is patched locally. Composer state (reply target,
drafts) never leaves the client except as the parentMessageId of a new post.

A response that comes back after close(), or after the session was reopened,
is dropped instead of being applied. So is any response to a request sent
before the one whose result is already on screen.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from core.discussions import permissions
from core.discussions.deletion import confirmation_prompt
from core.discussions.errors import (
    AuthenticationError,
    Conflict,
    DiscussionError,
    Forbidden,
    NetworkError,
    NotFound,
    ValidationError,
)
from core.discussions.thread_tree import ThreadNode, build_thread, collect_descendants
from discussion_client.api import DiscussionAPI
from discussion_client.render import MessageRow, first_name, render_thread
from models.discussion_model import CurrentUser, DiscussionOut, Message

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "This message is no longer available."

Action = Callable[[], Awaitable[bool]]


@dataclass
class ErrorNotice:
    kind: str
    message: str
    retryable: bool = False


def _kind(error: DiscussionError) -> str:
    if isinstance(error, ValidationError):
        return "validation"
    if isinstance(error, Forbidden):
        return "forbidden"
    if isinstance(error, AuthenticationError):
        return "auth"
    if isinstance(error, Conflict):
        return "conflict"
    return "network"


class DiscussionSession:
    def __init__(self, api: DiscussionAPI, item_type: str, item_id: str, current_user: CurrentUser):
        self.api = api
        self.item_type = item_type
        self.item_id = item_id
        self.current_user = current_user

        self.messages: List[Message] = []
        self.discussion_id: Optional[str] = None
        self.loading = False
        self.busy = False
        self.error: Optional[ErrorNotice] = None
        self.notice: Optional[str] = None

        self.replying_to: Optional[Message] = None
        self.draft = ""
        self.editing: Optional[Message] = None
        self.edit_draft = ""

        self._alive = False
        self._generation = 0
        self._seq = 0
        self._applied_seq = 0
        self._retry: Optional[Action] = None

    # ---------- lifecycle ----------

    @property
    def is_open(self) -> bool:
        return self._alive

    async def open(self) -> bool:
        self._alive = True
        self._generation += 1
        self.busy = False
        return await self.refresh()

    def close(self) -> None:
        """Abandon in-flight requests; their responses will be discarded"""
        self._alive = False
        self._generation += 1
        self.busy = False
        self.loading = False
        self.error = None
        self.notice = None
        self._retry = None
        self.cancel_reply()
        self.cancel_edit()

    def _is_current(self, generation: int) -> bool:
        return self._alive and generation == self._generation

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _is_stale(self, seq: int) -> bool:
        return seq < self._applied_seq

    # ---------- reads ----------

    async def refresh(self) -> bool:
        if not self._alive:
            return False
        generation, seq = self._generation, self._next_seq()
        self.loading = True
        try:
            discussion = await self.api.get_discussion(self.item_type, self.item_id)
        except DiscussionError as e:
            if self._is_current(generation):
                self.loading = False
                if not self._is_stale(seq):
                    self._show_error(e, self.refresh)
            return False

        if not self._is_current(generation):
            logger.debug(f"Dropping stale discussion response for {self.item_type}/{self.item_id}")
            return False
        self.loading = False
        if self._is_stale(seq):
            logger.debug(f"Dropping discussion read {seq} older than applied {self._applied_seq}")
            return False
        self._apply(discussion, seq)
        return True

    def thread(self) -> List[ThreadNode]:
        return build_thread(self.messages)

    def rows(self, now: Optional[datetime] = None) -> List[MessageRow]:
        return render_thread(self.thread(), self.current_user, now)

    def find(self, message_id: str) -> Optional[Message]:
        return next((m for m in self.messages if m.id == message_id), None)

    # ---------- authority (client-side first check) ----------

    def can_edit(self, message: Message) -> bool:
        return permissions.can_edit(message, self.current_user)

    def can_delete(self, message: Message) -> bool:
        return permissions.can_offer_delete(message, self.current_user, self._has_live_replies(message))

    def _has_live_replies(self, message: Message) -> bool:
        below = collect_descendants(self.messages, message.id)
        return any(m.id in below and not m.deleted for m in self.messages)

    def can_reply(self, message: Message) -> bool:
        return permissions.can_reply(message, self.current_user)

    def liked_by_me(self, message: Message) -> bool:
        return self.current_user.id in message.likes

    # ---------- composer ----------

    def start_reply(self, message: Message) -> bool:
        if not self.can_reply(message):
            return False
        self.cancel_edit()
        self.replying_to = message
        self.draft = f"@{first_name(message.author)} "
        return True

    def cancel_reply(self) -> None:
        self.replying_to = None
        self.draft = ""

    async def submit(self) -> bool:
        content = self.draft.strip()
        if not content:
            self.error = ErrorNotice("validation", "Message content cannot be empty")
            return False
        parent_id = self.replying_to.id if self.replying_to else None

        ok = await self._mutate(
            lambda: self.api.post_message(self.item_type, self.item_id, content, parent_id),
            retry=self.submit,
        )
        if ok:
            self.cancel_reply()
        return ok

    def start_edit(self, message: Message) -> bool:
        if not self.can_edit(message):
            return False
        self.cancel_reply()
        self.editing = message
        self.edit_draft = message.content
        return True

    def cancel_edit(self) -> None:
        self.editing = None
        self.edit_draft = ""

    async def submit_edit(self) -> bool:
        if self.editing is None or self.discussion_id is None:
            return False
        content = self.edit_draft.strip()
        if not content:
            self.error = ErrorNotice("validation", "Message content cannot be empty")
            return False
        discussion_id, message_id = self.discussion_id, self.editing.id

        ok = await self._mutate(
            lambda: self.api.edit_message(discussion_id, message_id, content),
            retry=self.submit_edit,
        )
        if ok:
            self.cancel_edit()
        return ok

    # ---------- other mutations ----------

    def delete_prompt(self, message: Message) -> str:
        """Confirmation copy; distinct when the message has replies"""
        return confirmation_prompt(self.messages, message.id)

    async def delete(self, message: Message, cascade: bool = False) -> bool:
        """A tombstone can only be deleted again to take its replies with it"""
        if self.discussion_id is None:
            return False
        cascade = cascade or message.deleted
        if not self.can_delete(message):
            self.error = ErrorNotice("forbidden", "You do not have permission to delete this message")
            return False
        discussion_id = self.discussion_id

        async def retry() -> bool:
            return await self.delete(message, cascade)

        return await self._mutate(
            lambda: self.api.delete_message(discussion_id, message.id, cascade=cascade),
            retry=retry,
        )

    async def toggle_like(self, message: Message) -> bool:
        if self.discussion_id is None or message.deleted:
            return False
        discussion_id = self.discussion_id

        async def retry() -> bool:
            return await self.toggle_like(message)

        return await self._mutate(
            lambda: self.api.toggle_like(discussion_id, message.id),
            retry=retry,
        )

    # ---------- errors ----------

    async def retry(self) -> bool:
        """Re-run the last action that failed with a retryable error; never automatic"""
        action, self._retry = self._retry, None
        if action is None:
            return False
        self.error = None
        return await action()

    def dismiss_error(self) -> None:
        self.error = None
        self._retry = None

    def dismiss_notice(self) -> None:
        self.notice = None

    # ---------- internals ----------

    async def _mutate(self, call: Callable[[], Awaitable[DiscussionOut]], retry: Action) -> bool:
        if not self._alive:
            return False
        if self.busy:
            logger.debug("Ignoring mutation while another request is in flight")
            return False

        generation, seq = self._generation, self._next_seq()
        self.busy = True
        self.error = None
        failure: Optional[DiscussionError] = None
        discussion: Optional[DiscussionOut] = None
        try:
            discussion = await call()
        except DiscussionError as e:
            failure = e
        finally:
            if self._is_current(generation):
                self.busy = False

        if not self._is_current(generation):
            logger.debug("Dropping response for a closed discussion view")
            return False

        if failure is not None:
            await self._on_failure(failure, retry)
            return False

        self._retry = None
        if not self._is_stale(seq):
            self._apply(discussion, seq)
        return True

    async def _on_failure(self, error: DiscussionError, retry: Action) -> None:
        if isinstance(error, NotFound):
            self.notice = NOT_AVAILABLE
            await self.refresh()
            return
        self._show_error(error, retry)

    def _show_error(self, error: DiscussionError, retry: Action) -> None:
        retryable = isinstance(error, (NetworkError, Conflict))
        self.error = ErrorNotice(_kind(error), error.detail, retryable=retryable)
        self._retry = retry if retryable else None

    def _apply(self, discussion: DiscussionOut, seq: int) -> None:
        """Replace local state wholesale with the server's copy"""
        self._applied_seq = seq
        self.messages = list(discussion.messages)
        self.discussion_id = discussion.id

        # Composer targets point at the fresh objects, or go away with their message
        if self.replying_to is not None:
            fresh = self.find(self.replying_to.id)
            if fresh is None or fresh.deleted:
                self.cancel_reply()
            else:
                self.replying_to = fresh
        if self.editing is not None:
            fresh = self.find(self.editing.id)
            if fresh is None or not self.can_edit(fresh):
                self.cancel_edit()
            else:
                self.editing = fresh
