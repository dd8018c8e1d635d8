"""Chat message submission: validate, authorize, persist, then fan out to the text room."""

import asyncio
import functools
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from errors import AuthenticationError, AuthorizationError, PersistenceError, ValidationError
from logging_config import get_logger
from registry import Delivery, Identity
from rooms import RoomMultiplexer
from schemas.events import ChatMessage

logger = get_logger(__name__)

NEW_MESSAGE = "newMessage"


async def run_blocking(fn, *args):
    """Run a blocking store call on the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args))


class MessageBroadcastService:
    def __init__(self, store, rooms: RoomMultiplexer):
        self.store = store
        self.rooms = rooms

    async def authenticate(self, token: Optional[str]) -> Identity:
        """Map an opaque token to the user it was issued to."""
        if not token:
            raise AuthenticationError("Missing token")
        user = await run_blocking(self.store.find_user_by_token, token)
        if not user:
            raise AuthenticationError("Invalid token")
        return Identity(user["id"], user.get("username"))

    async def authorize(self, identity: Optional[Identity], channel_id: str) -> None:
        if identity is None:
            raise AuthenticationError("Unknown user")
        # NotFoundError from the store propagates as is
        allowed = await run_blocking(self.store.can_post, identity.user_id, channel_id)
        if not allowed:
            logger.warning(f"User {identity.user_id} denied access to channel {channel_id}")
            raise AuthorizationError("Access denied")

    async def submit(
        self,
        identity: Optional[Identity],
        channel_id: str,
        raw_content: Optional[str],
        token: Optional[str] = None,
    ) -> ChatMessage:
        """Validate and persist a message. Nothing is broadcast here.

        A `token` takes precedence over `identity`. The returned message is
        exactly what was stored; `broadcast` must only be called with it after
        this returns.
        """
        if not channel_id:
            raise ValidationError("Channel is required")
        content = raw_content.strip() if isinstance(raw_content, str) else ""
        if not content:
            raise ValidationError("Message is required")

        if token:
            identity = await self.authenticate(token)
        await self.authorize(identity, channel_id)

        message = ChatMessage(
            id=uuid.uuid4().hex,
            channel_id=channel_id,
            user_id=identity.user_id,
            username=identity.username,
            content=content,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        try:
            await run_blocking(self.store.append_message, message.to_record())
        except Exception as e:
            logger.error(f"Failed to persist message {message.id} for channel {channel_id}: {e}", exc_info=True)
            raise PersistenceError() from e

        logger.info(f"Message {message.id} from {identity.user_id} stored in channel {channel_id}")
        return message

    def broadcast(self, message: ChatMessage) -> List[Delivery]:
        deliveries = self.rooms.broadcast_text(message.channel_id, NEW_MESSAGE, message.to_record())
        logger.debug(f"Fanning out message {message.id} to {len(deliveries)} subscribers of {message.channel_id}")
        return deliveries

    async def history(self, identity: Optional[Identity], channel_id: str) -> List[dict]:
        await self.authorize(identity, channel_id)
        return await run_blocking(self.store.channel_messages, channel_id)
