"""
Anonymization round trip.

Sends a batch to the completion model, parses the scrubbed records it
returns and writes them back. Failures never propagate: they are logged
and count as zero processed records, so the batch is simply retried on
the next scheduled run.
"""

import json
import logging
import re
import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from openai import OpenAIError

from query_scrubber.config.loader import JobConfig
from query_scrubber.sdk.openai_client import MeteredOpenAI, completion_text
from query_scrubber.storage.models import QueryRecord
from query_scrubber.storage.repository import QueryStatsRepository, RecordNotFoundError
from .batching import Batch

logger = logging.getLogger(__name__)

PROMPT_PREAMBLE = (
    "The following is a list of questions and responses in JSON format. "
    "Please keep the JSON, and don't touch the ids, but remove any personally "
    "identifiable information from the prompt and response entry:"
)
PROMPT_SUFFIX = "Return as a JSON with the exact same structure."

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n?```$", re.DOTALL)


class BatchOutcome(Enum):
    """How the processing of one batch ended."""
    EMPTY = "empty"
    PROCESSED = "processed"
    COMPLETION_ERROR = "completion_error"
    PARSE_ERROR = "parse_error"
    STORE_ERROR = "store_error"


class CompletionParseError(ValueError):
    """Raised when the model's answer is not a JSON array of records."""

    def __init__(self, message: str, text: str):
        super().__init__(message)
        self.text = text


@dataclass(frozen=True)
class AnonymizedEntry:
    """One record as returned by the model."""
    id: str
    prompt: Optional[str]
    response: Optional[str]


def build_prompt(records: List[QueryRecord]) -> str:
    """Build the instruction prompt embedding ``records`` as JSON."""
    payload = json.dumps([record.to_payload() for record in records], indent=2, ensure_ascii=False)
    return f"{PROMPT_PREAMBLE}\n\n{payload}\n\n{PROMPT_SUFFIX}"


def build_messages(prompt: str) -> List[Dict[str, str]]:
    return [{"role": "user", "content": prompt}]


def completion_params(config: JobConfig) -> Dict[str, object]:
    """Sampling parameters for a near-deterministic single answer."""
    return {
        "temperature": config.completion.temperature,
        "top_p": 1,
        "frequency_penalty": 0,
        "presence_penalty": 0,
        "max_tokens": config.completion.max_tokens,
        "stream": False,
        "n": 1,
    }


def resolve_api_key(
    repository: QueryStatsRepository,
    project_id: str,
    config: JobConfig
) -> Optional[str]:
    """Prefer the project's own OpenAI key, else the process-wide default."""
    try:
        project_config = repository.get_project_config(project_id)
    except sqlite3.Error as e:
        logger.error("[QUERY-STATS] Error reading config of %s: %s", project_id, e)
        return config.openai_api_key
    return project_config.byo_openai_key or config.openai_api_key


def parse_completion(text: str) -> List[AnonymizedEntry]:
    """Parse the model's answer into anonymized entries.

    A Markdown code fence around the JSON is tolerated.

    Raises:
        CompletionParseError: If the text is not a JSON array of objects
            each carrying a string ``id``
    """
    stripped = text.strip()
    fenced = _CODE_FENCE.match(stripped)
    if fenced:
        stripped = fenced.group(1)

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise CompletionParseError(f"Completion is not valid JSON: {e}", text)

    if not isinstance(data, list):
        raise CompletionParseError("Completion is not a JSON array", text)

    entries = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or not isinstance(item.get("id"), str):
            raise CompletionParseError(f"Entry at index {i} has no string id", text)
        entries.append(AnonymizedEntry(
            id=item["id"],
            prompt=_optional_text(item.get("prompt")),
            response=_optional_text(item.get("response"))
        ))
    return entries


def _optional_text(value: object) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def process_batch(
    repository: QueryStatsRepository,
    completions: MeteredOpenAI,
    project_id: str,
    batch: Batch,
    config: JobConfig
) -> int:
    """Anonymize a batch and write the results back.

    Args:
        repository: Store holding the project's records
        completions: Metered completion client
        project_id: Project owning the batch
        batch: Records selected for this prompt
        config: Job configuration

    Returns:
        Number of entries parsed from the model's answer; entries whose
        update failed are still counted
    """
    if batch.is_empty:
        outcome = BatchOutcome.STORE_ERROR if batch.fetch_failed else BatchOutcome.EMPTY
        _log_outcome(project_id, outcome, 0)
        return 0

    messages = build_messages(build_prompt(batch.records))
    params = completion_params(config)
    api_key = resolve_api_key(repository, project_id, config)

    logger.info(
        "[QUERY-STATS] Processing %d prompts for %s. Prompt length: %d",
        len(batch), project_id, len(json.dumps({"messages": messages, **params}))
    )

    try:
        response = completions.chat(messages, api_key=api_key, **params)
    except OpenAIError as e:
        logger.error("[QUERY-STATS] Error fetching completions for %s: %s", project_id, e)
        _log_outcome(project_id, BatchOutcome.COMPLETION_ERROR, 0)
        return 0

    try:
        completions.record_usage(project_id, response)
    except sqlite3.Error as e:
        logger.error("[QUERY-STATS] Error recording token usage for %s: %s", project_id, e)

    text = completion_text(response)
    try:
        entries = parse_completion(text)
    except CompletionParseError as e:
        logger.error("[QUERY-STATS] Error updating response (%s): %s", e, e.text)
        _log_outcome(project_id, BatchOutcome.PARSE_ERROR, 0)
        return 0

    logger.info("[QUERY-STATS] Processed %d prompts", len(entries))
    for entry in entries:
        logger.debug("[QUERY-STATS] Updating %s", entry.id)
        try:
            repository.mark_processed(project_id, entry.id, entry.prompt, entry.response)
        except (sqlite3.Error, RecordNotFoundError, UnicodeEncodeError) as e:
            logger.error("[QUERY-STATS] Error updating query %s: %s", entry.id, e)

    _log_outcome(project_id, BatchOutcome.PROCESSED, len(entries))
    return len(entries)


def _log_outcome(project_id: str, outcome: BatchOutcome, processed: int) -> None:
    logger.info(
        "[QUERY-STATS] project=%s outcome=%s processed=%d",
        project_id, outcome.value, processed,
        extra={"project_id": project_id, "outcome": outcome.value, "processed": processed}
    )
