import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Set


@dataclass(frozen=True)
class Identity:
    id: int
    username: str

    def to_dict(self):
        return {'id': self.id, 'username': self.username}


@dataclass
class Binding:
    sid: str
    namespace: str
    identity: Optional[Identity] = None
    room_id: Optional[str] = None


class ConnectionRegistry:
    """Live connections and the identity bound to each.

    Lets the invite relay find every open connection of a user without
    scanning rooms. In-memory only; clients re-bind when they reconnect.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bindings: Dict[str, Binding] = {}
        self._by_user: Dict[int, Set[str]] = {}

    def bind(self, sid: str, namespace: str, identity: Optional[Identity] = None) -> Binding:
        binding = Binding(sid=sid, namespace=namespace, identity=identity)
        with self._lock:
            self._bindings[sid] = binding
            if identity is not None:
                self._by_user.setdefault(identity.id, set()).add(sid)
        return binding

    def unbind(self, sid: str) -> Optional[Binding]:
        """Remove a connection. Returns None if it was already gone."""
        with self._lock:
            binding = self._bindings.pop(sid, None)
            if binding is None or binding.identity is None:
                return binding
            sids = self._by_user.get(binding.identity.id)
            if sids is not None:
                sids.discard(sid)
                if not sids:
                    del self._by_user[binding.identity.id]
            return binding

    def attach_room(self, sid: str, room_id: Optional[str]) -> Optional[str]:
        """Record the room a connection joined; returns the previous one."""
        with self._lock:
            binding = self._bindings.get(sid)
            if binding is None:
                return None
            previous = binding.room_id
            binding.room_id = room_id
            return previous

    def get(self, sid: str) -> Optional[Binding]:
        with self._lock:
            return self._bindings.get(sid)

    def is_open(self, sid: str) -> bool:
        with self._lock:
            return sid in self._bindings

    def connections_for(self, user_id: int) -> List[Binding]:
        with self._lock:
            return [self._bindings[s] for s in self._by_user.get(user_id, ()) if s in self._bindings]

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)
