"""
Metered OpenAI client wrapper.

Sends chat completions on behalf of a project and records the tokens they
cost in the usage ledger.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..core.model_selector import ModelSelector
from ..core.pricing import calculate_cost
from ..core.token_counter import TokenUsage
from ..storage.models import LLMUsageEvent
from ..storage.repository import insert_usage_event

logger = logging.getLogger(__name__)


class MeteredOpenAI:
    """OpenAI chat-completions client that meters usage per project.

    A fresh SDK client is built for every call because the credential can
    differ from one project to the next.
    """

    def __init__(
        self,
        model: ModelSelector,
        source: str,
        db_path: str,
        base_url: Optional[str] = None
    ):
        """Initialize metered OpenAI client.

        Args:
            model: Completion model to call
            source: Label identifying the job in the usage ledger
            db_path: Database file holding the usage ledger
            base_url: Optional API base URL override

        Raises:
            ValueError: If source is missing/empty
        """
        if not source or not source.strip():
            raise ValueError("source is required and cannot be empty")

        self.model = model
        self.source = source
        self.db_path = db_path
        self.base_url = base_url

    def chat(
        self,
        messages: List[Dict[str, str]],
        api_key: Optional[str] = None,
        **params: Any
    ) -> Any:
        """Create a chat completion.

        Args:
            messages: List of message dictionaries (required)
            api_key: Credential to use; the SDK falls back to ``$OPENAI_API_KEY``
            **params: Sampling parameters passed through to the API

        Returns:
            OpenAI chat completion response

        Raises:
            ValueError: If messages is empty
            openai.OpenAIError: Transport, authentication and API errors
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        client = OpenAI(api_key=api_key, base_url=self.base_url)
        return client.chat.completions.create(
            model=self.model.value,
            messages=messages,
            **params
        )

    def record_usage(self, project_id: str, response: Any) -> LLMUsageEvent:
        """Append the usage reported in ``response`` to the ledger.

        A response without usage information is recorded with zero tokens.

        Raises:
            sqlite3.Error: If the ledger write fails
        """
        usage = getattr(response, "usage", None)
        token_usage = TokenUsage(
            prompt_tokens=_safe_int(getattr(usage, "prompt_tokens", 0)),
            completion_tokens=_safe_int(getattr(usage, "completion_tokens", 0))
        )
        total_tokens = _safe_int(getattr(usage, "total_tokens", None), token_usage.total_tokens)
        if usage is None:
            logger.warning("[QUERY-STATS] Completion response for %s has no usage", project_id)

        event = LLMUsageEvent(
            timestamp=datetime.now(),
            project_id=project_id,
            source=self.source,
            model=self.model.llm_info,
            prompt_tokens=token_usage.prompt_tokens,
            completion_tokens=token_usage.completion_tokens,
            total_tokens=total_tokens,
            estimated_cost=calculate_cost(self.model.value, token_usage),
            request_id=getattr(response, "id", None)
        )
        insert_usage_event(event, self.db_path)
        return event


def completion_text(response: Any) -> str:
    """Extract the text of the first choice of a chat completion."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    return choices[0].message.content or ""


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
