# barstock/schemas/ai.py
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    text: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: List[ChatMessage] = []
    model: Optional[str] = None


class ChatResponse(BaseModel):
    reply: str
    model: str
