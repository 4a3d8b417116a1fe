"""
Turn a reconstructed thread into display rows.

Content is HTML-escaped before any markup is added; links and @mentions are
the only markup produced. Rows come out in pre-order through an explicit
stack, so very deep threads render without recursion.
"""
import html
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from core.discussions import permissions
from core.discussions.thread_tree import ThreadNode, walk_thread, with_live_replies
from models.discussion_model import DELETED_PLACEHOLDER, Author, CurrentUser, Message

MAX_INDENT = 5
_TOKEN_RE = re.compile(r"(https?://[^\s<]+)|@(\w+)")


@dataclass
class MessageRow:
    id: str
    depth: int
    indent: int
    author_name: str
    author_initial: str
    author_is_admin: bool
    html: str
    time_label: str
    edited: bool
    deleted: bool
    like_count: int
    liked: bool
    reply_count: int
    can_reply: bool
    can_like: bool
    can_edit: bool
    can_delete: bool


def display_name(author: Optional[Author]) -> str:
    if author is None or not author.display_name:
        return "Anonymous"
    return author.display_name


def first_name(author: Optional[Author]) -> str:
    return display_name(author).split(" ")[0]


def format_content(content: str) -> str:
    if not content:
        return ""
    escaped = html.escape(content, quote=True)

    def markup(match: "re.Match[str]") -> str:
        url, mention = match.group(1), match.group(2)
        if url:
            return f'<a href="{url}" target="_blank" rel="noopener noreferrer">{url}</a>'
        return f'<span class="mention">@{mention}</span>'

    return _TOKEN_RE.sub(markup, escaped)


def format_relative_time(ts: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    minutes = int((now - ts).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return f"{ts.strftime('%b')} {ts.day}, {ts.year}"


def render_message(message: Message, depth: int, reply_count: int,
                   user: Optional[CurrentUser], now: Optional[datetime] = None,
                   live_replies: bool = False) -> MessageRow:
    name = display_name(message.author)
    return MessageRow(
        id=message.id,
        depth=depth,
        indent=min(depth, MAX_INDENT),
        author_name=name,
        author_initial=name[:1] or "?",
        author_is_admin=message.author.is_admin,
        html=DELETED_PLACEHOLDER if message.deleted else format_content(message.content),
        time_label=format_relative_time(message.timestamp, now),
        edited=message.edited and not message.deleted,
        deleted=message.deleted,
        like_count=len(message.likes),
        liked=user is not None and user.id in message.likes,
        reply_count=reply_count,
        can_reply=permissions.can_reply(message, user),
        can_like=permissions.can_like(message, user),
        # A tombstone only offers delete, and only while replies below it are live
        can_edit=permissions.can_edit(message, user),
        can_delete=permissions.can_offer_delete(message, user, live_replies),
    )


def render_thread(nodes: Sequence[ThreadNode], user: Optional[CurrentUser],
                  now: Optional[datetime] = None) -> List[MessageRow]:
    live = with_live_replies(nodes)
    return [
        render_message(node.message, depth, len(node.replies), user, now, node.id in live)
        for node, depth in walk_thread(nodes)
    ]


def render_text(rows: Sequence[MessageRow]) -> str:
    """Plain-text view, two spaces per indent level"""
    lines = []
    for row in rows:
        pad = "  " * row.indent
        badge = " [admin]" if row.author_is_admin else ""
        edited = " (edited)" if row.edited else ""
        likes = f" ♥{row.like_count}" if row.like_count else ""
        lines.append(f"{pad}{row.author_name}{badge} · {row.time_label}{edited}{likes}")
        lines.append(f"{pad}  {html.unescape(re.sub(r'<[^>]+>', '', row.html))}")
    return "\n".join(lines)
