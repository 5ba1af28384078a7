"""Services for the chat history relay."""
from .errors import (
    ChatServiceError,
    ConflictError,
    ErrorInfo,
    InvalidInputError,
    NotFoundError,
    ProviderRejectedError,
    ProviderUnavailableError,
    StoreError,
)
from .llm_client import LLMClient, CompletionParams
from .conversation_store import ConversationStore, InMemoryConversationStore, SupabaseConversationStore
from .history_consolidator import HistoryConsolidator, ConsolidationResult
from .history_summarizer import summarize, list_summaries

__all__ = ['ChatServiceError', 'ConflictError', 'ErrorInfo', 'InvalidInputError', 'NotFoundError', 'ProviderRejectedError', 'ProviderUnavailableError', 'StoreError', 'LLMClient', 'CompletionParams', 'ConversationStore', 'InMemoryConversationStore', 'SupabaseConversationStore', 'HistoryConsolidator', 'ConsolidationResult', 'summarize', 'list_summaries']
