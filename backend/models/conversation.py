"""Conversation data models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utcnow() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Author of a turn."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Turn:
    """Represents a single message in a conversation."""
    role: Role
    content: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_message(self) -> dict:
        """Chat-completion message dict for this turn."""
        return {"role": self.role.value, "content": self.content}


@dataclass
class Conversation:
    """
    Represents a persisted multi-turn conversation.

    Attributes:
        conversation_id: Assigned by the store on first save, None before that
        turns: Chronological, append-only sequence of turns
        last_updated: Instant of the most recent save
        version: Optimistic-concurrency counter, bumped by the store on each save
    """
    conversation_id: Optional[str] = None
    turns: List[Turn] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utcnow)
    version: int = 0


@dataclass(frozen=True)
class ConversationSummary:
    """Display summary of a conversation for history listings."""
    conversation_id: str
    title: str
    last_updated: datetime
