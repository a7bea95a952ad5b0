"""
Per-day conversation log.

One JSON file per calendar day (local clock), holding the day's turns in
append order. Turns are never edited; the only destructive operation is
clear(), which removes every day.
"""

import logging
import shutil
import threading
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from context import Message
from errors import PersistenceError
from storage import read_json_file, write_json_file

logger = logging.getLogger(__name__)

DAY_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class ConversationTurn:
    timestamp: datetime
    request: str
    response: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "request": self.request,
            "response": self.response,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ConversationTurn":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            request=str(data["request"]),
            response=str(data["response"]),
        )


def turns_to_messages(turns: List[ConversationTurn]) -> List[Message]:
    """Alternating user/assistant messages in log order."""
    messages: List[Message] = []
    for turn in turns:
        messages.append(Message("user", turn.request))
        messages.append(Message("assistant", turn.response))
    return messages


class ConversationLog:
    def __init__(self, log_dir: Path, clock: Callable[[], datetime] = datetime.now):
        self.log_dir = log_dir
        self.clock = clock
        self._lock = threading.Lock()

    def today(self) -> date:
        return self.clock().date()

    def path_for(self, day: date) -> Path:
        return self.log_dir / f"{day.strftime(DAY_FORMAT)}.json"

    def read(self, day: Optional[date] = None) -> List[ConversationTurn]:
        """Turns logged on day (default today). A missing day is an empty list."""
        path = self.path_for(day or self.today())
        raw = read_json_file(path, [])
        if not isinstance(raw, list):
            logger.warning("Ignoring malformed log file %s", path)
            return []
        turns = []
        for entry in raw:
            try:
                turns.append(ConversationTurn.from_dict(entry))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed entry in %s", path)
        return turns

    def append(self, request: str, response: str) -> ConversationTurn:
        """Add a turn to today's file. Raises PersistenceError on write failure."""
        now = self.clock()
        path = self.path_for(now.date())
        turn = ConversationTurn(timestamp=now, request=request, response=response)
        with self._lock:
            turns = self.read(now.date())
            turns.append(turn)
            write_json_file(path, [t.to_dict() for t in turns])
        return turn

    def history(self) -> List[Message]:
        """Today's turns as chat messages; earlier days are not included."""
        return turns_to_messages(self.read())

    def days(self) -> List[date]:
        """Every day that has a log file, oldest first."""
        if not self.log_dir.exists():
            return []
        found = []
        for path in self.log_dir.glob("*.json"):
            try:
                found.append(datetime.strptime(path.stem, DAY_FORMAT).date())
            except ValueError:
                continue
        return sorted(found)

    def clear(self) -> None:
        """Delete all days. Irreversible."""
        try:
            with self._lock:
                if self.log_dir.exists():
                    shutil.rmtree(self.log_dir)
                self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not clear {self.log_dir}: {e}") from e
