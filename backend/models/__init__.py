"""Data models for the chat history relay."""
from .conversation import Conversation, ConversationSummary, Role, Turn, utcnow
from .api import (
    ConsolidateRequest,
    ConsolidateResponse,
    ConversationOut,
    ConversationSummaryOut,
    ErrorResponse,
    TurnIn,
    TurnOut,
)

__all__ = [
    "Conversation",
    "ConversationSummary",
    "Role",
    "Turn",
    "utcnow",
    "ConsolidateRequest",
    "ConsolidateResponse",
    "ConversationOut",
    "ConversationSummaryOut",
    "ErrorResponse",
    "TurnIn",
    "TurnOut",
]
