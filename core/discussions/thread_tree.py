"""
Thread reconstruction for flat discussion messages

Messages are stored flat and the reply tree is rebuilt on every read.
Works on anything exposing `id`, `parent_message_id` and `timestamp`
(StoredMessage on the server, Message on the client).

Every walk here uses an explicit stack or queue: thread depth is unbounded.
"""
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Sequence, Set, Tuple


@dataclass(eq=False)
class ThreadNode:
    message: Any
    replies: List["ThreadNode"] = field(default_factory=list)

    @property
    def id(self) -> Hashable:
        return self.message.id


def _by_timestamp(node: ThreadNode):
    return node.message.timestamp


def _break_cycles(roots: List[ThreadNode], index: Dict[Hashable, ThreadNode],
                  order: List[Hashable], parent_of: Dict[Hashable, Hashable]) -> None:
    """
    Nodes not reachable from any root hang on a parent cycle. Lift one node
    of each cycle to top level; everything below it stays nested.
    """
    reached: Set[Hashable] = {node.id for node, _depth in walk_thread(roots)}
    for msg_id in order:
        if msg_id in reached:
            continue
        # Climb parents until one repeats: that one is on the cycle
        seen: Set[Hashable] = set()
        current = msg_id
        while current not in seen:
            seen.add(current)
            current = parent_of[current]
        node = index[current]
        index[parent_of[current]].replies.remove(node)
        roots.append(node)
        reached.update(n.id for n, _depth in walk_thread([node]))


def build_thread(messages: Iterable[Any]) -> List[ThreadNode]:
    """
    Rebuild the reply forest from a flat message list (any order).

    - a message whose parent exists in the list becomes one of its replies
    - a dangling parent reference degrades to top-level, it is never dropped
    - top-level nodes and every replies list are sorted by timestamp
      (stable, equal timestamps keep encounter order)
    """
    messages = list(messages)
    if not messages:
        return []

    index: Dict[Hashable, ThreadNode] = {}
    for msg in messages:
        index[msg.id] = ThreadNode(msg)

    roots: List[ThreadNode] = []
    order: List[Hashable] = []
    parent_of: Dict[Hashable, Hashable] = {}
    for msg in messages:
        node = index[msg.id]
        order.append(msg.id)
        parent_id = msg.parent_message_id
        if parent_id is not None and parent_id in index and parent_id != msg.id:
            index[parent_id].replies.append(node)
            parent_of[msg.id] = parent_id
        else:
            roots.append(node)

    # Cycles can't come out of the API, break them here anyway
    _break_cycles(roots, index, order, parent_of)

    roots.sort(key=_by_timestamp)
    for node, _depth in walk_thread(roots):
        node.replies.sort(key=_by_timestamp)
    return roots


def walk_thread(nodes: Sequence[ThreadNode]) -> Iterator[Tuple[ThreadNode, int]]:
    """Pre-order (node, depth) walk, depth 0 for top-level messages"""
    stack: List[Tuple[ThreadNode, int]] = [(n, 0) for n in reversed(nodes)]
    while stack:
        node, depth = stack.pop()
        yield node, depth
        for child in reversed(node.replies):
            stack.append((child, depth + 1))


def flatten_thread(nodes: Sequence[ThreadNode]) -> List[Any]:
    """Pre-order list of the messages in a forest"""
    return [node.message for node, _depth in walk_thread(nodes)]


def has_replies(messages: Iterable[Any], message_id: Hashable) -> bool:
    return any(m.parent_message_id == message_id for m in messages)


def with_live_replies(nodes: Sequence[ThreadNode]) -> Set[Hashable]:
    """Ids of nodes with at least one non-deleted message anywhere below them"""
    live: Set[Hashable] = set()
    # Reversed pre-order visits every child before its parent
    for node, _depth in reversed(list(walk_thread(nodes))):
        if any(not child.message.deleted or child.id in live for child in node.replies):
            live.add(node.id)
    return live


def collect_descendants(messages: Iterable[Any], root_id: Hashable) -> Set[Hashable]:
    """Ids of every transitive reply to root_id (root_id itself excluded)"""
    children: Dict[Hashable, List[Hashable]] = {}
    for m in messages:
        if m.parent_message_id is not None:
            children.setdefault(m.parent_message_id, []).append(m.id)

    found: Set[Hashable] = set()
    queue = deque(children.get(root_id, []))
    while queue:
        current = queue.popleft()
        if current in found or current == root_id:
            continue
        found.add(current)
        queue.extend(children.get(current, []))
    return found
