"""Connection registry — which account is online, and on which socket.

Presence is derived from this table alone: a user is online exactly when
at least one connection is registered for them. Events for a user are
routed to their most recent connection only; when that one goes away the
next most recent takes over, and the user goes offline with the last one.

Single event loop, no awaits inside methods — no locking needed.
"""

from typing import Optional


class ConnectionRegistry:
    """In-memory user_id <-> sid mapping for one server process."""

    def __init__(self):
        # user_id -> sids, oldest first; the last one receives events
        self._by_user: dict[str, list[str]] = {}
        self._by_sid: dict[str, str] = {}

    def register(self, user_id: str, sid: str) -> bool:
        """Bind `sid` to `user_id`. Returns True if the user just came online.

        The caller must unregister a sid before binding it to another user.
        """
        sids = self._by_user.setdefault(user_id, [])
        came_online = not sids
        if sid in sids:
            sids.remove(sid)
        sids.append(sid)
        self._by_sid[sid] = user_id
        return came_online

    def unregister(self, sid: str) -> Optional[str]:
        """Forget `sid`. Returns the user id if that user is now offline."""
        user_id = self._by_sid.pop(sid, None)
        if user_id is None:
            return None

        sids = self._by_user.get(user_id, [])
        if sid in sids:
            sids.remove(sid)
        if sids:
            return None
        self._by_user.pop(user_id, None)
        return user_id

    def sid_for(self, user_id: str) -> Optional[str]:
        sids = self._by_user.get(user_id)
        return sids[-1] if sids else None

    def user_for(self, sid: str) -> Optional[str]:
        return self._by_sid.get(sid)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._by_user

    def online_user_ids(self) -> list[str]:
        return list(self._by_user)

    def clear(self) -> None:
        self._by_user.clear()
        self._by_sid.clear()

    def __len__(self) -> int:
        return len(self._by_user)
