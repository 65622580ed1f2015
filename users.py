import threading
from typing import Callable, Dict, List, Optional

from geo import distance
from schemas import Position, User
from utils import new_id, now_utc


class UserStore:
    """Known users with their last position. Users are never deleted, only
    marked inactive."""

    def __init__(self, default_radius: float = 2.0, clock: Callable = now_utc):
        self.default_radius = default_radius
        self.clock = clock
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def get(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def create(
        self,
        username: str,
        position: Optional[Position] = None,
        radius: Optional[float] = None,
        user_id: Optional[str] = None,
    ) -> User:
        now = self.clock()
        user = User(
            id=user_id or new_id(),
            username=username,
            latitude=position.latitude if position else None,
            longitude=position.longitude if position else None,
            radius=self.default_radius if radius is None else radius,
            created_at=now,
            last_seen=now,
        )
        with self._lock:
            self._users[user.id] = user
        return user.model_copy()

    def join(self, user_id: str, position: Optional[Position], radius: float) -> User:
        """Create the user on first sight, otherwise refresh it and mark it active."""
        now = self.clock()
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                user = User(id=user_id, username=user_id, radius=radius, created_at=now, last_seen=now)
                self._users[user_id] = user
            if position is not None:
                user.latitude = position.latitude
                user.longitude = position.longitude
            user.radius = radius
            user.is_active = True
            user.last_seen = now
            return user.model_copy()

    def update_location(self, user_id: str, position: Position) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user.latitude = position.latitude
            user.longitude = position.longitude
            user.last_seen = self.clock()
            return True

    def update_radius(self, user_id: str, radius: float) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user.radius = radius
            return True

    def rename(self, user_id: str, username: str) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None or not username:
                return False
            user.username = username
            return True

    def mark_inactive(self, user_id: str) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user.is_active = False
            user.last_seen = self.clock()
            return True

    def nearby(self, origin: Position, radius: float) -> List[User]:
        with self._lock:
            snapshot = [u.model_copy() for u in self._users.values()]
        return [
            u for u in snapshot
            if u.is_active and u.position is not None and distance(origin, u.position) <= radius
        ]
