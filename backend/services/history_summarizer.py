"""Summaries of stored conversations for the history list."""
from typing import List

from config import DEFAULT_TITLE, TITLE_MAX_LENGTH
from models.conversation import Conversation, ConversationSummary, Role
from services.conversation_store import ConversationStore

ELLIPSIS = "..."


def conversation_title(conversation: Conversation) -> str:
    """First user turn's content, cut to TITLE_MAX_LENGTH characters."""
    for turn in conversation.turns:
        if turn.role == Role.USER:
            if len(turn.content) > TITLE_MAX_LENGTH:
                return turn.content[:TITLE_MAX_LENGTH] + ELLIPSIS
            return turn.content
    return DEFAULT_TITLE


def summarize(conversation: Conversation) -> ConversationSummary:
    return ConversationSummary(
        conversation_id=conversation.conversation_id,
        title=conversation_title(conversation),
        last_updated=conversation.last_updated,
    )


def list_summaries(store: ConversationStore) -> List[ConversationSummary]:
    """Summaries of every stored conversation, most recently updated first."""
    summaries = [summarize(c) for c in store.list_all()]
    return sorted(summaries, key=lambda s: s.last_updated, reverse=True)
