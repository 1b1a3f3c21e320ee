"""
Token counting and usage tracking.

Approximates prompt sizes without a tokenizer and carries exact usage
reported back by the completion endpoint.
"""

import json
import math
from dataclasses import dataclass

from query_scrubber.storage.models import QueryRecord

# Fewer bytes per token than real tokenizers average, so estimates run high.
BYTES_PER_TOKEN = 3


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains exact token counts as reported by the model provider.
    """
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens


def approximated_token_count(text: str) -> int:
    """Estimate the number of tokens in ``text`` from its UTF-8 byte size."""
    return math.ceil(len(text.encode("utf-8")) / BYTES_PER_TOKEN)


def estimate_record_tokens(record: QueryRecord) -> int:
    """Estimate the tokens a record occupies once serialized into a prompt."""
    serialized = json.dumps(record.to_payload(), ensure_ascii=False, separators=(",", ":"))
    return approximated_token_count(serialized)
