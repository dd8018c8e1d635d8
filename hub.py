"""Single-writer dispatcher for inbound socket events.

One RealtimeHub exists per server process and owns the registry, the rooms and
the voice sessions. Every state transition runs while `_lock` is held and
returns the deliveries it produced; those are queued on the target outboxes
before the lock is released, so each connection sees events in transition
order. Only chat persistence awaits, and it does so outside the lock.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import pydantic

from errors import CoreError, ValidationError
from logging_config import get_logger
from messaging import MessageBroadcastService
from registry import Connection, ConnectionRegistry, Delivery, Identity
from rooms import RoomMultiplexer
from schemas.events import (
    ChatMessage,
    JoinChannelRequest,
    JoinVoiceRequest,
    ScreenShareRequest,
    SendMessageRequest,
    SignalRequest,
)
from signaling import SIGNAL_KINDS, SignalingRelay
from voice import VoiceSessionManager

logger = get_logger(__name__)

ERROR = "error"
CONNECTED = "connected"
INTERNAL_ERROR_MESSAGE = "Internal server error"

Handler = Callable[[str, Any], Awaitable[None]]


def parse_payload(model, data: Any):
    """Validate an inbound payload, turning pydantic failures into ValidationError."""
    try:
        return model.model_validate(data if data is not None else {})
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        raise ValidationError(f"Missing or invalid field: {field}") from e


class RealtimeHub:
    def __init__(self, store):
        self.registry = ConnectionRegistry()
        self.rooms = RoomMultiplexer()
        self.registry.add_unregister_hook(self._drop_text_subscriptions)
        self.voice = VoiceSessionManager(self.registry, self.rooms)
        self.relay = SignalingRelay(self.registry)
        self.messages = MessageBroadcastService(store, self.rooms)
        self._lock = asyncio.Lock()

        self._handlers: Dict[str, Handler] = {
            "joinChannel": self._on_join_channel,
            "joinVoice": self._on_join_voice,
            "leaveVoice": self._on_leave_voice,
            "sendMessage": self._on_send_message,
            "startScreenShare": self._on_start_screen_share,
            "stopScreenShare": self._on_stop_screen_share,
        }
        for kind in SIGNAL_KINDS:
            self._handlers[kind] = self._signal_handler(kind)

    @property
    def events(self) -> List[str]:
        return list(self._handlers)

    def _apply(self, deliveries: Iterable[Delivery]) -> int:
        delivered = 0
        for delivery in deliveries:
            if self.registry.deliver(delivery):
                delivered += 1
        return delivered

    def _drop_text_subscriptions(self, connection: Connection) -> List[Delivery]:
        self.rooms.unsubscribe_all(connection.connection_id)
        return []

    # --- connection lifecycle ---

    async def connect(self, identity: Optional[Identity] = None) -> Connection:
        async with self._lock:
            connection_id = self.registry.register()
            if identity is not None:
                self.registry.set_verified_identity(connection_id, identity)
            connection = self.registry.get(connection_id)
            self._apply([Delivery(connection_id, CONNECTED, {"socketId": connection_id})])
        logger.info(f"Connection {connection_id} opened (live connections: {len(self.registry)})")
        return connection

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            self._apply(self.registry.unregister(connection_id))
        logger.info(f"Connection {connection_id} closed (live connections: {len(self.registry)})")

    # --- inbound events ---

    async def dispatch(self, connection_id: str, event: str, data: Any = None) -> None:
        """Handle one inbound event. Failures go back to the sender as `error`, never up."""
        handler = self._handlers.get(event)
        try:
            if handler is None:
                raise ValidationError(f"Unknown event: {event}")
            await handler(connection_id, data)
        except CoreError as e:
            logger.info(f"Event '{event}' from {connection_id} rejected: {e.message}")
            await self.send_error(connection_id, e.message)
        except Exception as e:
            logger.error(f"Error handling '{event}' from {connection_id}: {e}", exc_info=True)
            await self.send_error(connection_id, INTERNAL_ERROR_MESSAGE)

    async def send_error(self, connection_id: str, message: str) -> None:
        async with self._lock:
            self._apply([Delivery(connection_id, ERROR, {"message": message})])

    async def _on_join_channel(self, connection_id: str, data: Any) -> None:
        # Clients send the bare channel id
        if isinstance(data, (str, int)):
            data = {"channelId": str(data)}
        request = parse_payload(JoinChannelRequest, data)
        async with self._lock:
            if connection_id in self.registry:
                self.rooms.subscribe_text(request.channel_id, connection_id)

    async def _on_join_voice(self, connection_id: str, data: Any) -> None:
        request = parse_payload(JoinVoiceRequest, data)
        async with self._lock:
            verified = self.registry.verified_identity_of(connection_id)
            if verified is not None:
                # A token-checked identity is never replaced by a client claim
                user_id, username = verified
            else:
                user_id, username = request.user_id, request.username
            if not user_id:
                raise ValidationError("Missing or invalid field: userId")
            self._apply(self.voice.join(connection_id, request.channel_id, user_id, username))

    async def _on_leave_voice(self, connection_id: str, data: Any) -> None:
        async with self._lock:
            self._apply(self.voice.leave(connection_id))

    async def _on_start_screen_share(self, connection_id: str, data: Any) -> None:
        request = parse_payload(ScreenShareRequest, data)
        async with self._lock:
            self._apply(self.voice.start_screen_share(connection_id, request.channel_id))

    async def _on_stop_screen_share(self, connection_id: str, data: Any) -> None:
        request = parse_payload(ScreenShareRequest, data)
        async with self._lock:
            self._apply(self.voice.stop_screen_share(connection_id, request.channel_id))

    def _signal_handler(self, kind: str) -> Handler:
        field = SIGNAL_KINDS[kind]

        async def handle(connection_id: str, data: Any) -> None:
            request = parse_payload(SignalRequest, data)
            async with self._lock:
                self._apply(self.relay.relay(kind, connection_id, request.target, getattr(request, field)))

        return handle

    async def _on_send_message(self, connection_id: str, data: Any) -> None:
        request = parse_payload(SendMessageRequest, data)
        await self.post_message(
            request.channel_id,
            request.message,
            token=request.token,
            connection_id=connection_id,
        )

    # --- shared with the HTTP routes ---

    async def post_message(
        self,
        channel_id: str,
        content: Optional[str],
        token: Optional[str] = None,
        identity: Optional[Identity] = None,
        connection_id: Optional[str] = None,
    ) -> ChatMessage:
        """Persist a chat message, then fan it out to the channel's text room.

        Identity comes from, in order: `identity`, `token`, the identity
        verified when the connection opened. The userId a client asserts in
        `joinVoice` is never used to post.
        """
        if identity is None and not token and connection_id is not None:
            identity = self.registry.verified_identity_of(connection_id)

        message = await self.messages.submit(identity, channel_id, content, token=token)

        async with self._lock:
            delivered = self._apply(self.messages.broadcast(message))
        logger.debug(f"Message {message.id} delivered to {delivered} connections")
        return message

    def voice_participants(self, channel_id: str) -> List[dict]:
        return self.voice.participants(channel_id)
