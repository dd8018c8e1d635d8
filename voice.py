"""Voice session lifecycle and presence events.

Per connection the state is either Idle (voice_channel_id is None) or
InVoice(channel_id). Screen sharing is a flag on InVoice and only produces
presence notifications; toggling it while Idle does nothing.
"""

from typing import List, Optional

from errors import ValidationError
from logging_config import get_logger
from registry import Connection, ConnectionRegistry, Delivery
from rooms import RoomMultiplexer

logger = get_logger(__name__)

USER_JOINED_VOICE = "userJoinedVoice"
USER_LEFT_VOICE = "userLeftVoice"
USERS_IN_CALL = "usersInCall"
USER_STARTED_SCREEN_SHARE = "userStartedScreenShare"
USER_STOPPED_SCREEN_SHARE = "userStoppedScreenShare"


class VoiceSessionManager:
    def __init__(self, registry: ConnectionRegistry, rooms: RoomMultiplexer):
        self.registry = registry
        self.rooms = rooms
        registry.add_unregister_hook(self._on_unregister)

    def participants(self, channel_id: str) -> List[dict]:
        """Who is currently in the voice room, in join order."""
        result = []
        for connection_id in self.rooms.voice_participants(channel_id):
            connection = self.registry.get(connection_id)
            if connection is not None:
                result.append(connection.to_participant())
        return result

    def join(self, connection_id: str, channel_id: str, user_id: str, username: Optional[str]) -> List[Delivery]:
        connection = self.registry.get(connection_id)
        if connection is None:
            return []

        deliveries: List[Delivery] = []

        if connection.voice_channel_id == channel_id:
            # Already in this call: resend the roster only
            others = [p for p in self.participants(channel_id) if p["socketId"] != connection_id]
            logger.debug(f"Connection {connection_id} re-joined voice room {channel_id}, resending roster")
            deliveries.append(Delivery(connection_id, USERS_IN_CALL, others))
            return deliveries

        if connection.voice_channel_id is not None:
            deliveries.extend(self.leave(connection_id))

        self.registry.set_identity(connection_id, user_id, username)
        snapshot = self.rooms.join_voice(channel_id, connection_id)
        self.registry.set_voice_room(connection_id, channel_id)
        logger.info(f"User {user_id} ({username}) joined voice channel {channel_id} as {connection_id}")

        deliveries.extend(
            self.rooms.broadcast_voice(
                channel_id,
                USER_JOINED_VOICE,
                connection.to_participant(),
                exclude_connection_id=connection_id,
            )
        )

        users_in_call = []
        for other_id in snapshot:
            other = self.registry.get(other_id)
            if other is not None:
                users_in_call.append(other.to_participant())
        deliveries.append(Delivery(connection_id, USERS_IN_CALL, users_in_call))
        return deliveries

    def leave(self, connection_id: str) -> List[Delivery]:
        """Leave the current call. A no-op for an Idle connection."""
        connection = self.registry.get(connection_id)
        if connection is None or connection.voice_channel_id is None:
            return []

        channel_id = connection.voice_channel_id
        self.rooms.leave_voice(channel_id, connection_id)
        self.registry.set_voice_room(connection_id, None)
        logger.info(f"User {connection.user_id} ({connection.username}) left voice channel {channel_id}")

        return self.rooms.broadcast_voice(channel_id, USER_LEFT_VOICE, connection.to_participant())

    def _on_unregister(self, connection: Connection) -> List[Delivery]:
        return self.leave(connection.connection_id)

    def start_screen_share(self, connection_id: str, channel_id: Optional[str] = None) -> List[Delivery]:
        return self._set_screen_share(connection_id, channel_id, True)

    def stop_screen_share(self, connection_id: str, channel_id: Optional[str] = None) -> List[Delivery]:
        return self._set_screen_share(connection_id, channel_id, False)

    def _set_screen_share(self, connection_id: str, channel_id: Optional[str], sharing: bool) -> List[Delivery]:
        connection = self.registry.get(connection_id)
        if connection is None:
            return []
        if connection.voice_channel_id is None:
            # Nobody to tell outside a call
            return []
        if channel_id is not None and channel_id != connection.voice_channel_id:
            raise ValidationError("Not in this voice channel")
        if connection.screen_sharing == sharing:
            return []

        connection.screen_sharing = sharing
        event = USER_STARTED_SCREEN_SHARE if sharing else USER_STOPPED_SCREEN_SHARE
        logger.debug(f"Connection {connection_id} {'started' if sharing else 'stopped'} screen share in {connection.voice_channel_id}")
        return self.rooms.broadcast_voice(
            connection.voice_channel_id,
            event,
            connection.to_participant(),
            exclude_connection_id=connection_id,
        )
