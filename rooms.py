"""Room multiplexer.

Two independent namespaces keyed by channel id:
- text rooms: connections subscribed to a channel's message stream
- voice rooms: connections currently in that channel's call

Broadcasts do no I/O; they return the Delivery list for the caller to send.
"""

from typing import Any, Dict, List, Optional, Set

from logging_config import get_logger
from registry import Delivery

logger = get_logger(__name__)


class RoomMultiplexer:
    def __init__(self):
        # channel_id -> subscriber connection ids
        self._text_rooms: Dict[str, Set[str]] = {}
        # connection_id -> channel ids, for cleanup on disconnect
        self._text_subscriptions: Dict[str, Set[str]] = {}
        # channel_id -> participants; dict keys keep join order
        self._voice_rooms: Dict[str, Dict[str, None]] = {}

    # --- text rooms ---

    def subscribe_text(self, channel_id: str, connection_id: str) -> bool:
        """Subscribe a connection to a text room. Returns False if it already was."""
        subscribers = self._text_rooms.setdefault(channel_id, set())
        if connection_id in subscribers:
            return False
        subscribers.add(connection_id)
        self._text_subscriptions.setdefault(connection_id, set()).add(channel_id)
        logger.debug(f"Connection {connection_id} subscribed to text room {channel_id} ({len(subscribers)} subscribers)")
        return True

    def unsubscribe_text(self, channel_id: str, connection_id: str) -> None:
        subscribers = self._text_rooms.get(channel_id)
        if subscribers is not None:
            subscribers.discard(connection_id)
            if not subscribers:
                del self._text_rooms[channel_id]
        channels = self._text_subscriptions.get(connection_id)
        if channels is not None:
            channels.discard(channel_id)
            if not channels:
                del self._text_subscriptions[connection_id]

    def unsubscribe_all(self, connection_id: str) -> None:
        for channel_id in list(self._text_subscriptions.get(connection_id, ())):
            self.unsubscribe_text(channel_id, connection_id)

    def text_subscribers(self, channel_id: str) -> Set[str]:
        return set(self._text_rooms.get(channel_id, ()))

    def broadcast_text(
        self,
        channel_id: str,
        event: str,
        payload: Any,
        exclude_connection_id: Optional[str] = None,
    ) -> List[Delivery]:
        return [
            Delivery(connection_id, event, payload)
            for connection_id in self._text_rooms.get(channel_id, ())
            if connection_id != exclude_connection_id
        ]

    # --- voice rooms ---

    def join_voice(self, channel_id: str, connection_id: str) -> List[str]:
        """Add a connection to a voice room.

        Returns the participants that were already there, in join order. The
        snapshot and the insertion happen in the same step, so a participant
        is either in the snapshot or joins afterwards, never both.
        """
        participants = self._voice_rooms.setdefault(channel_id, {})
        snapshot = [cid for cid in participants if cid != connection_id]
        participants[connection_id] = None
        logger.debug(f"Connection {connection_id} joined voice room {channel_id} ({len(participants)} participants)")
        return snapshot

    def leave_voice(self, channel_id: str, connection_id: str) -> bool:
        """Remove a connection from a voice room. Returns False if it was not there."""
        participants = self._voice_rooms.get(channel_id)
        if participants is None or connection_id not in participants:
            return False
        del participants[connection_id]
        if not participants:
            del self._voice_rooms[channel_id]
            logger.debug(f"Voice room {channel_id} is empty, destroyed")
        return True

    def voice_participants(self, channel_id: str) -> List[str]:
        return list(self._voice_rooms.get(channel_id, ()))

    def has_voice_room(self, channel_id: str) -> bool:
        return channel_id in self._voice_rooms

    def broadcast_voice(
        self,
        channel_id: str,
        event: str,
        payload: Any,
        exclude_connection_id: Optional[str] = None,
    ) -> List[Delivery]:
        return [
            Delivery(connection_id, event, payload)
            for connection_id in self._voice_rooms.get(channel_id, ())
            if connection_id != exclude_connection_id
        ]
