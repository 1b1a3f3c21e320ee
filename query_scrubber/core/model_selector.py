"""
Completion model registry.

Describes which chat-completion model the job talks to and how large its
context window is.
"""

from dataclasses import dataclass
from typing import Dict

CHAT_COMPLETIONS = "chat_completions"

# Hard context-window cutoffs, kept slightly under the documented limits.
CONTEXT_TOKENS_CUTOFF: Dict[str, int] = {
    "gpt-3.5-turbo": 4000,
    "gpt-4": 8000,
}

DEFAULT_MODEL = "gpt-3.5-turbo"


@dataclass(frozen=True)
class ModelSelector:
    """Immutable description of the completion model variant in use."""
    value: str = DEFAULT_MODEL
    type: str = CHAT_COMPLETIONS

    def __post_init__(self):
        if self.value not in CONTEXT_TOKENS_CUTOFF:
            raise ValueError(f"Unsupported model: {self.value}")
        if self.type != CHAT_COMPLETIONS:
            raise ValueError(f"Unsupported model type: {self.type}")

    @property
    def context_tokens_cutoff(self) -> int:
        return CONTEXT_TOKENS_CUTOFF[self.value]

    @property
    def llm_info(self) -> str:
        """Model descriptor recorded in the usage ledger."""
        return f"openai:{self.value}"
