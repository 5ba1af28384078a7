"""Request and response models for the HTTP API."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .conversation import Conversation, ConversationSummary, Role, Turn


class TurnIn(BaseModel):
    """A turn as sent by the client."""
    role: Role = Field(description="Message role: user, assistant or system")
    content: str = Field(description="Message content")

    def to_turn(self) -> Turn:
        return Turn(role=self.role, content=self.content)


class TurnOut(BaseModel):
    """A stored turn."""
    role: Role
    content: str
    timestamp: datetime

    @classmethod
    def from_turn(cls, turn: Turn) -> "TurnOut":
        return cls(role=turn.role, content=turn.content, timestamp=turn.timestamp)


class ConsolidateRequest(BaseModel):
    """Full running context of a chat plus the conversation it belongs to."""
    model_config = ConfigDict(populate_by_name=True)

    turns: List[TurnIn] = Field(description="Ordered turns, newest last")
    existing_id: Optional[str] = Field(
        default=None,
        alias="existingId",
        description="Conversation to append to; omit to start a new one",
    )


class ConsolidateResponse(BaseModel):
    """Reply produced for a consolidation request."""
    model_config = ConfigDict(populate_by_name=True)

    reply: TurnOut
    conversation_id: str = Field(alias="conversationId")


class ConversationSummaryOut(BaseModel):
    """Entry of the conversation history list."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    last_updated: datetime = Field(alias="lastUpdated")

    @classmethod
    def from_summary(cls, summary: ConversationSummary) -> "ConversationSummaryOut":
        return cls(
            id=summary.conversation_id,
            title=summary.title,
            last_updated=summary.last_updated,
        )


class ConversationOut(BaseModel):
    """Full stored conversation."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    turns: List[TurnOut]
    last_updated: datetime = Field(alias="lastUpdated")

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationOut":
        return cls(
            id=conversation.conversation_id,
            turns=[TurnOut.from_turn(t) for t in conversation.turns],
            last_updated=conversation.last_updated,
        )


class ErrorResponse(BaseModel):
    """Error body returned for failed requests."""
    error: str
    message: str
