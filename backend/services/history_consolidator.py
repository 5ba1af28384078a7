"""History consolidation: merge an incoming turn batch and the model reply into stored history."""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Dict, Iterator, Optional, Sequence

from models.conversation import Conversation, Role, Turn, utcnow
from services.conversation_store import ConversationStore
from services.errors import InvalidInputError
from services.llm_client import CompletionParams, LLMClient

logger = logging.getLogger(__name__)


@dataclass
class ConsolidationResult:
    """Outcome of one consolidation request."""
    conversation: Conversation
    reply: Turn


def latest_user_turn(turns: Sequence[Turn]) -> Optional[Turn]:
    """Return the last turn with role user, by position, or None."""
    for turn in reversed(turns):
        if turn.role == Role.USER:
            return turn
    return None


class HistoryConsolidator:
    """
    Reconciles an incoming turn batch with a stored conversation.

    The client always sends its full running context. The whole batch goes to
    the completion provider, but only the newest user turn and the reply are
    appended to the stored conversation.
    """

    def __init__(
        self,
        store: ConversationStore,
        llm_client: LLMClient,
        params: Optional[CompletionParams] = None
    ):
        self.store = store
        self.llm_client = llm_client
        self.params = params
        # conversation id -> [lock, number of requests holding or waiting on it]
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _conversation_lock(self, conversation_id: Optional[str]) -> Iterator[None]:
        """Serialize consolidations of the same conversation within this process."""
        if conversation_id is None:
            yield
            return
        with self._locks_guard:
            entry = self._locks.setdefault(conversation_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[conversation_id]

    def consolidate(
        self,
        incoming_turns: Sequence[Turn],
        existing_id: Optional[str] = None
    ) -> ConsolidationResult:
        """
        Append the newest user turn and a fresh model reply to a conversation.

        Args:
            incoming_turns: Full running context from the client, newest last
            existing_id: Conversation to append to; a new one is created if None

        Returns:
            ConsolidationResult with the saved conversation and the reply turn

        Raises:
            InvalidInputError: Empty batch or empty content. Also raised when
                neither the batch nor the stored conversation holds a user turn
                (a new conversation needs one), since a reply is never stored
                without a user turn before it
            NotFoundError: existing_id does not name a stored conversation
            ProviderUnavailableError, ProviderRejectedError: Completion failed
            StoreError: Load or save failed (ConflictError on a concurrent write)
        """
        if not incoming_turns:
            raise InvalidInputError("at least one turn required")

        with self._conversation_lock(existing_id):
            if existing_id is not None:
                target = self.store.load(existing_id)
            else:
                target = Conversation()

            user_turn = latest_user_turn(incoming_turns)
            if user_turn is None and latest_user_turn(target.turns) is None:
                raise InvalidInputError(
                    "at least one user turn required",
                    details={"conversation_id": existing_id},
                )

            reply = self.llm_client.complete(list(incoming_turns), self.params)

            now = utcnow()
            appended = []
            if user_turn is not None:
                appended.append(Turn(role=Role.USER, content=user_turn.content, timestamp=now))
            appended.append(Turn(role=Role.ASSISTANT, content=reply.content, timestamp=now))

            # Build a new value so the loaded conversation is untouched if save fails
            updated = replace(
                target,
                turns=list(target.turns) + appended,
                last_updated=max(now, target.last_updated),
            )
            saved = self.store.save(updated)

        logger.info(
            f"Consolidated conversation {saved.conversation_id}: "
            f"appended {len(appended)} turns, total {len(saved.turns)}",
            extra={"conversation_id": saved.conversation_id},
        )
        return ConsolidationResult(conversation=saved, reply=appended[-1])
