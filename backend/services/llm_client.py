"""LLM Client for Groq chat completions."""
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence
from groq import Groq
from groq import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    RateLimitError,
)
import logging

from config import (
    COMPLETION_MAX_TOKENS,
    COMPLETION_MODEL,
    COMPLETION_TEMPERATURE,
    GROQ_API_KEY,
)
from models.conversation import Role, Turn, utcnow
from services.errors import (
    ChatServiceError,
    InvalidInputError,
    ProviderRejectedError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionParams:
    """Model selection and sampling settings for one completion."""
    model: str = COMPLETION_MODEL
    temperature: float = COMPLETION_TEMPERATURE
    max_tokens: int = COMPLETION_MAX_TOKENS


def validate_turns(turns: Sequence[Turn]) -> None:
    """
    Check that a turn sequence can be sent to the provider.

    Raises:
        InvalidInputError: If the sequence is empty or a turn has no content
    """
    if not turns:
        raise InvalidInputError("at least one turn required")
    for index, turn in enumerate(turns):
        if not isinstance(turn.content, str) or not turn.content.strip():
            raise InvalidInputError(
                f"turn {index} has empty content",
                details={"index": index, "role": turn.role.value},
            )


class LLMClient:
    """Client for interfacing with Groq API for chat completions."""

    def __init__(self, api_key: Optional[str] = None):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.client = Groq(api_key=self.api_key)
        logger.info("LLMClient initialized successfully")

    def complete(
        self,
        turns: Sequence[Turn],
        params: Optional[CompletionParams] = None
    ) -> Turn:
        """
        Ask the provider for the next assistant turn.

        The whole sequence is sent in order so the model sees the full context.
        No retries are attempted.

        Args:
            turns: Ordered conversation turns, newest last
            params: Model and sampling settings (defaults from config)

        Returns:
            Assistant Turn with a fresh timestamp

        Raises:
            InvalidInputError: Empty sequence or empty turn content
            ProviderUnavailableError: Network or transport failure
            ProviderRejectedError: Provider returned an error status
        """
        validate_turns(turns)
        params = params or CompletionParams()
        start_time = time.time()

        try:
            logger.debug(f"Requesting completion: model={params.model}, turns={len(turns)}")

            response = self.client.chat.completions.create(
                model=params.model,
                messages=[turn.to_message() for turn in turns],
                temperature=params.temperature,
                max_tokens=params.max_tokens
            )
        except RateLimitError as e:
            raise self._provider_error(
                ProviderRejectedError,
                "Rate limit exceeded. Please try again in a few moments.",
                params, start_time, e,
                retry_after=60,
                status_code=e.status_code
            )
        except AuthenticationError as e:
            raise self._provider_error(
                ProviderRejectedError,
                "Authentication failed. Please check your API key.",
                params, start_time, e,
                status_code=e.status_code
            )
        except APITimeoutError as e:
            raise self._provider_error(
                ProviderUnavailableError,
                "Request timed out. Please try again.",
                params, start_time, e
            )
        except APIConnectionError as e:
            raise self._provider_error(
                ProviderUnavailableError,
                "Could not reach the completion provider.",
                params, start_time, e
            )
        except APIStatusError as e:
            raise self._provider_error(
                ProviderRejectedError,
                f"Groq API error: {str(e)}",
                params, start_time, e,
                status_code=e.status_code
            )
        except APIError as e:
            raise self._provider_error(
                ProviderRejectedError,
                f"Groq API error: {str(e)}",
                params, start_time, e
            )

        latency_ms = int((time.time() - start_time) * 1000)
        text = response.choices[0].message.content if response.choices else None
        if not text or not text.strip():
            raise ProviderRejectedError(
                "Completion provider returned an empty reply.",
                details={"model": params.model, "latency_ms": latency_ms}
            )

        usage = getattr(response, "usage", None)
        logger.info(
            f"Generated reply: model={params.model}, "
            f"input_tokens={getattr(usage, 'prompt_tokens', None)}, "
            f"output_tokens={getattr(usage, 'completion_tokens', None)}, "
            f"latency={latency_ms}ms"
        )

        return Turn(role=Role.ASSISTANT, content=text, timestamp=utcnow())

    @staticmethod
    def _provider_error(
        error_class: type,
        message: str,
        params: CompletionParams,
        start_time: float,
        cause: Exception,
        **extra: Any
    ) -> ChatServiceError:
        """Build a structured provider error and log it."""
        latency_ms = int((time.time() - start_time) * 1000)
        details: Dict[str, Any] = {
            "model": params.model,
            "latency_ms": latency_ms,
            "original_error": str(cause),
        }
        details.update({k: v for k, v in extra.items() if v is not None})
        error = error_class(message, details=details)
        error.__cause__ = cause
        logger.debug(
            f"{type(cause).__name__}: model={params.model}, latency={latency_ms}ms, error={cause}",
            extra={"error_code": error.error.code, "error_details": details}
        )
        return error
