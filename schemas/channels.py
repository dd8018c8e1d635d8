from pydantic import BaseModel
from typing import Optional


class PostMessageRequest(BaseModel):
    message: Optional[str] = None
