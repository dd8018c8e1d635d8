from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional


class EventModel(BaseModel):
    # Wire payloads are camelCase, attributes stay snake_case
    model_config = ConfigDict(populate_by_name=True)


class JoinChannelRequest(EventModel):
    channel_id: str = Field(alias="channelId", min_length=1)

class JoinVoiceRequest(EventModel):
    channel_id: str = Field(alias="channelId", min_length=1)
    user_id: Optional[str] = Field(default=None, alias="userId")
    username: Optional[str] = None

class SendMessageRequest(EventModel):
    channel_id: str = Field(alias="channelId", min_length=1)
    message: str
    token: Optional[str] = None

class SignalRequest(EventModel):
    target: str = Field(min_length=1)
    offer: Any = None
    answer: Any = None
    candidate: Any = None

class ScreenShareRequest(EventModel):
    channel_id: Optional[str] = Field(default=None, alias="channelId")

class VoiceParticipant(EventModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    username: Optional[str] = None
    socket_id: str = Field(alias="socketId")

class ChatMessage(EventModel):
    id: str
    channel_id: str = Field(alias="channelId")
    user_id: str = Field(alias="userId")
    username: Optional[str] = None
    content: str
    created_at: str = Field(alias="createdAt")

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)
