"""Connection registry: live connections, their asserted identity and call membership."""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from constants import OUTBOX_MAX_SIZE
from logging_config import get_logger

logger = get_logger(__name__)


class Identity(NamedTuple):
    user_id: str
    username: Optional[str]


@dataclass(frozen=True)
class Delivery:
    """One outbound event addressed to exactly one connection."""
    connection_id: str
    event: str
    payload: Any


@dataclass
class Connection:
    connection_id: str
    outbox: asyncio.Queue
    user_id: Optional[str] = None
    username: Optional[str] = None
    voice_channel_id: Optional[str] = None
    screen_sharing: bool = False
    # Set only from a token checked by the store, never from client claims
    verified: Optional[Identity] = None

    @property
    def identity(self) -> Optional[Identity]:
        if self.user_id is None:
            return None
        return Identity(self.user_id, self.username)

    def to_participant(self) -> dict:
        return {
            "userId": self.user_id,
            "username": self.username,
            "socketId": self.connection_id,
        }


UnregisterHook = Callable[[Connection], List[Delivery]]


class ConnectionRegistry:
    """Owns every live Connection. Not thread-safe: callers hold the hub lock."""

    def __init__(self, outbox_max_size: int = OUTBOX_MAX_SIZE):
        self._connections: Dict[str, Connection] = {}
        self._unregister_hooks: List[UnregisterHook] = []
        self._outbox_max_size = outbox_max_size

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def add_unregister_hook(self, hook: UnregisterHook) -> None:
        """Run `hook` for a connection before it is dropped; it returns the events to send."""
        self._unregister_hooks.append(hook)

    def register(self) -> str:
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = Connection(
            connection_id=connection_id,
            outbox=asyncio.Queue(maxsize=self._outbox_max_size),
        )
        logger.debug(f"Registered connection {connection_id} (live connections: {len(self._connections)})")
        return connection_id

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def set_identity(self, connection_id: str, user_id: str, username: Optional[str]) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        connection.user_id = user_id
        connection.username = username

    def set_verified_identity(self, connection_id: str, identity: Identity) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        connection.verified = identity
        connection.user_id = identity.user_id
        connection.username = identity.username

    def set_voice_room(self, connection_id: str, channel_id: Optional[str]) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        connection.voice_channel_id = channel_id
        if channel_id is None:
            connection.screen_sharing = False

    def identity_of(self, connection_id: str) -> Optional[Identity]:
        connection = self._connections.get(connection_id)
        return connection.identity if connection else None

    def verified_identity_of(self, connection_id: str) -> Optional[Identity]:
        connection = self._connections.get(connection_id)
        return connection.verified if connection else None

    def unregister(self, connection_id: str) -> List[Delivery]:
        """Drop a connection after running the cleanup hooks. Idempotent."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return []

        deliveries: List[Delivery] = []
        for hook in self._unregister_hooks:
            deliveries.extend(hook(connection))

        del self._connections[connection_id]
        logger.debug(f"Unregistered connection {connection_id} (live connections: {len(self._connections)})")
        # The departing connection never receives anything again
        return [d for d in deliveries if d.connection_id != connection_id]

    def deliver(self, delivery: Delivery) -> bool:
        """Queue an event on the target's outbox. Returns False when it was dropped."""
        connection = self._connections.get(delivery.connection_id)
        if connection is None:
            return False
        try:
            connection.outbox.put_nowait((delivery.event, delivery.payload))
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for connection {delivery.connection_id}, dropping '{delivery.event}'")
            return False
        return True
