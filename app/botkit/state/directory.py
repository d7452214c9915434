"""In-memory user/channel directory, refreshed from the platform on demand."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class User:
    id: str
    name: str


@dataclass(frozen=True)
class Channel:
    id: str
    name: str


@dataclass
class DirectorySnapshot:
    """What the platform reports about the workspace at one instant.

    *ims* maps a direct-message channel ID to the ID of the user on the
    other end.
    """

    self_id: str = ""
    users: list[User] = field(default_factory=list)
    channels: list[Channel] = field(default_factory=list)
    ims: dict[str, str] = field(default_factory=dict)


class Directory:
    """Thread-safe lookup tables built from the latest snapshot."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._self_id = ""
        self._users: dict[str, User] = {}
        self._channels: dict[str, Channel] = {}
        self._ims: dict[str, User] = {}

    def update(self, snapshot: DirectorySnapshot) -> None:
        users = {u.id: u for u in snapshot.users}
        channels = {c.id: c for c in snapshot.channels}
        ims: dict[str, User] = {}
        for im_id, user_id in snapshot.ims.items():
            user = users.get(user_id)
            if user is None:
                logger.debug("IM %s points at unknown user %s", im_id, user_id)
                continue
            ims[im_id] = user
        with self._lock:
            self._self_id = snapshot.self_id
            self._users = users
            self._channels = channels
            self._ims = ims
        logger.info(
            "Directory refreshed: %d user(s), %d channel(s), %d IM(s)",
            len(users), len(channels), len(ims),
        )

    @property
    def self_id(self) -> str:
        return self._self_id

    def users(self) -> list[User]:
        with self._lock:
            return list(self._users.values())

    def user(self, user_id: str) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    def user_by_name(self, name: str) -> User | None:
        with self._lock:
            return next((u for u in self._users.values() if u.name == name), None)

    def user_for_im(self, channel_id: str) -> User | None:
        with self._lock:
            return self._ims.get(channel_id)

    def channel(self, channel_id: str) -> Channel | None:
        with self._lock:
            return self._channels.get(channel_id)

    def im_channel_for(self, user_name: str) -> str:
        """Channel to post direct messages to *user_name* on.

        Falls back to the ``@name`` addressing form when no IM channel has
        been opened with the user yet.
        """
        with self._lock:
            for im_id, user in self._ims.items():
                if user.name == user_name:
                    return im_id
        return "@" + user_name
