"""
Context assembly: the ordered message list sent to the completion endpoint.

Recent history is trimmed oldest-first so the most recent turns always win
the token budget. Messages are dropped whole, never cut mid-content.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


def history_cost(messages: Sequence[Message], estimator) -> int:
    return sum(estimator.message_cost(m) for m in messages)


def trim_history(history: Sequence[Message], limit: int, estimator) -> List[Message]:
    """Keep the longest suffix of history whose total cost fits in limit.

    The newest message is always kept, even when it alone exceeds the limit.
    """
    if not history:
        return []
    total = 0
    start = len(history)
    for i in range(len(history) - 1, -1, -1):
        total += estimator.message_cost(history[i])
        if total > limit and i < len(history) - 1:
            break
        start = i
        if total > limit:
            # Lone newest message over budget; nothing older can fit.
            break
    return list(history[start:])


def build_messages(
    system: str,
    history: Sequence[Message],
    prompt: str,
    budget: int,
    estimator,
) -> List[Message]:
    """System message, then trimmed history, then the new user prompt.

    budget is the window left after the response reservation; the system
    message's own cost comes out of it before history is trimmed.
    """
    system_msg = Message("system", system)
    limit = max(budget - estimator.message_cost(system_msg), 0)
    return [
        system_msg,
        *trim_history(history, limit, estimator),
        Message("user", prompt),
    ]
