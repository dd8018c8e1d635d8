from fastapi import APIRouter, HTTPException, Header, Request
from typing import Optional
from errors import CoreError
from schemas.channels import PostMessageRequest
from schemas.events import ChatMessage, VoiceParticipant
from logging_config import get_logger

logger = get_logger(__name__)

channels_router = APIRouter(prefix="/channels", tags=["channels"])


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return authorization.strip() or None


def as_http_error(e: CoreError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


@channels_router.get("/{channel_id}/messages")
async def list_messages(channel_id: str, request: Request, authorization: Optional[str] = Header(None)):
    """Message history of a channel the caller may read."""
    hub = request.app.state.hub
    logger.info(f"Message history request for channel {channel_id}")
    try:
        identity = await hub.messages.authenticate(bearer_token(authorization))
        return await hub.messages.history(identity, channel_id)
    except CoreError as e:
        logger.warning(f"Message history for channel {channel_id} failed: {e.message}")
        raise as_http_error(e)


@channels_router.post("/{channel_id}/messages")
async def post_message(
    channel_id: str,
    body: PostMessageRequest,
    request: Request,
    authorization: Optional[str] = Header(None),
):
    # Goes through the same path as the `sendMessage` socket event, so the
    # broadcast reaches the channel's text room only.
    hub = request.app.state.hub
    token = bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing token")
    try:
        message: ChatMessage = await hub.post_message(channel_id, body.message, token=token)
    except CoreError as e:
        logger.warning(f"Posting to channel {channel_id} failed: {e.message}")
        raise as_http_error(e)
    return message.to_record()


@channels_router.get("/{channel_id}/voice", response_model=list[VoiceParticipant], response_model_by_alias=True)
async def voice_participants(channel_id: str, request: Request):
    """Who is currently in the channel's call, in join order."""
    return request.app.state.hub.voice_participants(channel_id)
