import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .registry import Identity


@dataclass
class Ticket:
    key: str
    sid: str
    identity: Optional[Identity] = None
    issued_at: float = field(default_factory=time.time)


def ticket_key(sid: str, identity: Optional[Identity]) -> str:
    # Anonymous requesters are only ever the same requester on the same connection
    return f"user:{identity.id}" if identity is not None else f"anon:{sid}"


class MatchmakingQueue:
    """Global FIFO pairing find-opponent requests into a fresh room id."""

    def __init__(self, send: Callable[[str, str, dict], None], is_open: Callable[[str], bool],
                 mint_room_id: Callable[[], str], logger: Optional[logging.Logger] = None) -> None:
        self._send = send
        self._is_open = is_open
        self._mint_room_id = mint_room_id
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._tickets: List[Ticket] = []

    def request_match(self, sid: str, identity: Optional[Identity] = None) -> Optional[str]:
        """Pair the requester with the first viable waiting ticket.

        Returns the minted room id when a pair was made, otherwise None (the
        requester is queued, or its existing ticket now points at ``sid``).
        """
        key = ticket_key(sid, identity)
        with self._lock:
            for ticket in self._tickets:
                if ticket.key == key:
                    ticket.sid = sid
                    self._logger.info(f"[match-requeue] key={key} sid={sid}")
                    return None

            opponent = None
            while self._tickets:
                candidate = self._tickets.pop(0)
                if self._is_open(candidate.sid):
                    opponent = candidate
                    break
                self._logger.info(f"[match-skip] key={candidate.key} sid={candidate.sid} closed")

            if opponent is None:
                self._tickets.append(Ticket(key=key, sid=sid, identity=identity))
                self._logger.info(f"[match-wait] key={key} sid={sid} queued={len(self._tickets)}")
                return None

            room_id = self._mint_room_id()
            self._logger.info(f"[match-found] room={room_id} a={opponent.key} b={key}")
            for target in (sid, opponent.sid):
                try:
                    self._send(target, 'match_found', {'roomId': room_id})
                except Exception as exc:
                    self._logger.warning(f"[match-send-failed] sid={target}: {exc}")
            return room_id

    def cancel(self, sid: str) -> bool:
        with self._lock:
            before = len(self._tickets)
            self._tickets = [t for t in self._tickets if t.sid != sid]
            return len(self._tickets) != before

    def waiting(self) -> List[Ticket]:
        with self._lock:
            return list(self._tickets)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tickets)
