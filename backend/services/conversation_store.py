"""Conversation persistence: Supabase-backed store and an in-memory store."""
import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError
from supabase import create_client, Client

from config import CONVERSATIONS_TABLE, SUPABASE_KEY, SUPABASE_URL
from models.conversation import Conversation, Role, Turn
from services.errors import ConflictError, NotFoundError, StoreError

logger = logging.getLogger(__name__)


def generate_conversation_id() -> str:
    """
    Generate a unique conversation ID.

    Returns:
        Unique conversation ID string
    """
    return f"conv_{uuid.uuid4().hex[:12]}"


class ConversationStore(ABC):
    """Load/save/list contract for persisted conversations."""

    @abstractmethod
    def load(self, conversation_id: str) -> Conversation:
        """Return the stored conversation or raise NotFoundError."""

    @abstractmethod
    def save(self, conversation: Conversation) -> Conversation:
        """
        Create or overwrite a conversation.

        A conversation without an id is created and gets one assigned. An
        existing one is overwritten only if its version matches the stored
        version; otherwise ConflictError is raised. The returned copy carries
        the bumped version.
        """

    @abstractmethod
    def list_all(self) -> List[Conversation]:
        """Return every conversation, most recently updated first."""


class InMemoryConversationStore(ConversationStore):
    """Process-local store keeping conversations in a dict."""

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._lock = threading.Lock()

    def load(self, conversation_id: str) -> Conversation:
        with self._lock:
            stored = self._conversations.get(conversation_id)
            if stored is None:
                raise NotFoundError(
                    "Chat not found", details={"conversation_id": conversation_id}
                )
            return copy.deepcopy(stored)

    def save(self, conversation: Conversation) -> Conversation:
        with self._lock:
            if conversation.conversation_id is None:
                conversation_id = generate_conversation_id()
                while conversation_id in self._conversations:
                    conversation_id = generate_conversation_id()
            else:
                conversation_id = conversation.conversation_id
                current = self._conversations.get(conversation_id)
                current_version = current.version if current else 0
                if current_version != conversation.version:
                    raise ConflictError(
                        "Conversation was modified concurrently",
                        details={
                            "conversation_id": conversation_id,
                            "expected_version": conversation.version,
                            "actual_version": current_version,
                        },
                    )

            saved = replace(
                conversation,
                conversation_id=conversation_id,
                turns=list(conversation.turns),
                version=conversation.version + 1,
            )
            self._conversations[conversation_id] = saved
            return copy.deepcopy(saved)

    def list_all(self) -> List[Conversation]:
        with self._lock:
            items = [copy.deepcopy(c) for c in self._conversations.values()]
        return sorted(items, key=lambda c: c.last_updated, reverse=True)


class SupabaseConversationStore(ConversationStore):
    """Stores each conversation as one row of the conversations table using Supabase PostgreSQL."""

    def __init__(self, client: Optional[Client] = None, table: str = CONVERSATIONS_TABLE):
        """
        Initialize the store with a Supabase client.

        Args:
            client: Existing Supabase client (created from SUPABASE_URL/SUPABASE_KEY if omitted)
            table: Name of the conversations table
        """
        if client is None:
            if not SUPABASE_URL or not SUPABASE_KEY:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")
            client = create_client(SUPABASE_URL, SUPABASE_KEY)

        self.client: Client = client
        self.table = table
        logger.info("SupabaseConversationStore initialized")

    def load(self, conversation_id: str) -> Conversation:
        try:
            result = (
                self.client.table(self.table)
                .select("*")
                .eq("conversation_id", conversation_id)
                .execute()
            )
        except (PostgrestAPIError, httpx.HTTPError) as e:
            raise StoreError(
                f"Error retrieving conversation {conversation_id}",
                details={"conversation_id": conversation_id, "original_error": str(e)},
            ) from e

        if not result.data:
            raise NotFoundError("Chat not found", details={"conversation_id": conversation_id})

        conversation = self._from_row(result.data[0])
        logger.info(
            f"Retrieved conversation {conversation_id} with {len(conversation.turns)} turns"
        )
        return conversation

    def save(self, conversation: Conversation) -> Conversation:
        is_new = conversation.conversation_id is None
        conversation_id = generate_conversation_id() if is_new else conversation.conversation_id
        saved = replace(
            conversation,
            conversation_id=conversation_id,
            turns=list(conversation.turns),
            version=conversation.version + 1,
        )
        row = self._to_row(saved)

        try:
            if is_new:
                result = self.client.table(self.table).insert(row).execute()
            else:
                # Only overwrite the row this conversation was loaded from
                result = (
                    self.client.table(self.table)
                    .update(row)
                    .eq("conversation_id", conversation_id)
                    .eq("version", conversation.version)
                    .execute()
                )
        except (PostgrestAPIError, httpx.HTTPError) as e:
            raise StoreError(
                f"Error saving conversation {conversation_id}",
                details={"conversation_id": conversation_id, "original_error": str(e)},
            ) from e

        if not result.data:
            if is_new:
                raise StoreError(
                    "Insert returned no row", details={"conversation_id": conversation_id}
                )
            raise ConflictError(
                "Conversation was modified concurrently",
                details={
                    "conversation_id": conversation_id,
                    "expected_version": conversation.version,
                },
            )

        logger.info(f"Saved conversation {conversation_id} (version {saved.version})")
        return saved

    def list_all(self) -> List[Conversation]:
        try:
            result = (
                self.client.table(self.table)
                .select("*")
                .order("last_updated", desc=True)
                .execute()
            )
        except (PostgrestAPIError, httpx.HTTPError) as e:
            raise StoreError(
                "Error fetching history list", details={"original_error": str(e)}
            ) from e

        return [self._from_row(row) for row in result.data or []]

    @staticmethod
    def _to_row(conversation: Conversation) -> Dict[str, Any]:
        return {
            "conversation_id": conversation.conversation_id,
            "turns": [
                {
                    "role": turn.role.value,
                    "content": turn.content,
                    "timestamp": turn.timestamp.isoformat(),
                }
                for turn in conversation.turns
            ],
            "last_updated": conversation.last_updated.isoformat(),
            "version": conversation.version,
        }

    def _from_row(self, row: Dict[str, Any]) -> Conversation:
        turns = [
            Turn(
                role=Role(t["role"]),
                content=t["content"],
                timestamp=self._parse_timestamp(t["timestamp"]),
            )
            for t in row.get("turns") or []
        ]
        return Conversation(
            conversation_id=row["conversation_id"],
            turns=turns,
            last_updated=self._parse_timestamp(row["last_updated"]),
            version=int(row.get("version") or 0),
        )

    @staticmethod
    def _parse_timestamp(timestamp_str: str) -> datetime:
        """
        Parse timestamp string from Supabase, handling various formats.

        Supabase can return timestamps with varying microsecond precision,
        which Python's fromisoformat() can't always handle. This method
        normalizes the timestamp format.

        Args:
            timestamp_str: Timestamp string from Supabase

        Returns:
            datetime object
        """
        # Replace 'Z' with '+00:00' for timezone
        timestamp_str = timestamp_str.replace("Z", "+00:00")

        # Format: 2026-02-21T02:08:26.18976+00:00
        if "." in timestamp_str:
            date_part, fraction = timestamp_str.split(".", 1)
            for sign in ("+", "-"):
                if sign in fraction:
                    microseconds, tz = fraction.split(sign, 1)
                    # Truncate or pad microseconds to 6 digits
                    microseconds = microseconds[:6].ljust(6, '0')
                    timestamp_str = f"{date_part}.{microseconds}{sign}{tz}"
                    break

        return datetime.fromisoformat(timestamp_str)
