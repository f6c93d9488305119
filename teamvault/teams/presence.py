"""
In-memory presence: which users are currently active in which team.

Process-wide and not persisted.  Empty teams are dropped from the map.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Set

logger = logging.getLogger("teamvault.teams.presence")


class PresenceRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._active: Dict[int, Set[str]] = {}

    def join(self, team_id: int, username: str) -> None:
        with self._lock:
            self._active.setdefault(team_id, set()).add(username)
        logger.debug(f"'{username}' joined team {team_id}")

    def leave(self, team_id: int, username: str) -> None:
        with self._lock:
            users = self._active.get(team_id)
            if users is None:
                return
            users.discard(username)
            if not users:
                del self._active[team_id]

    def disconnect(self, username: str) -> List[int]:
        """Remove ``username`` from every team; returns the teams it left."""
        left = []
        with self._lock:
            for team_id in list(self._active):
                users = self._active[team_id]
                if username in users:
                    users.discard(username)
                    left.append(team_id)
                    if not users:
                        del self._active[team_id]
        return left

    def active_users(self, team_id: int) -> Set[str]:
        """Snapshot of the active users of a team."""
        with self._lock:
            return set(self._active.get(team_id, ()))

    def active_teams(self) -> List[int]:
        with self._lock:
            return sorted(self._active)
