"""
Batch selection for the anonymization prompt.

Picks the unprocessed records of a project that fit together in a single
prompt. Every record is sized with the token estimator, then:

1. Records too large to ever share a prompt are deleted from the store.
   Left alone they would sit at the head of the queue forever.
2. The remaining records are trimmed to the longest prefix that stays
   under the token budget.

The budget is a fraction (half by default) of the model's context window,
leaving room for the instructions and for the completion itself.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import List

from query_scrubber.config.loader import JobConfig
from query_scrubber.storage.models import QueryRecord
from query_scrubber.storage.repository import QueryStatsRepository
from .token_counter import estimate_record_tokens

logger = logging.getLogger(__name__)


@dataclass
class Batch:
    """Records of one project assembled for a single prompt."""
    project_id: str
    records: List[QueryRecord] = field(default_factory=list)
    evicted_ids: List[str] = field(default_factory=list)
    fetch_failed: bool = False

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def ids(self) -> List[str]:
        return [record.id for record in self.records]

    @property
    def estimated_tokens(self) -> int:
        return sum(estimate_record_tokens(record) for record in self.records)


def token_budget(config: JobConfig) -> int:
    """Token budget of one batch, also the overflow threshold of a record."""
    cutoff = config.completion.selector.context_tokens_cutoff
    return int(cutoff * config.batching.budget_ratio)


def find_overflowing(records: List[QueryRecord], max_tokens: int) -> List[QueryRecord]:
    """Records whose own estimated size exceeds ``max_tokens``."""
    return [record for record in records if estimate_record_tokens(record) > max_tokens]


def trim_records(records: List[QueryRecord], max_tokens: int) -> List[QueryRecord]:
    """Return the longest prefix of ``records`` whose total size is below ``max_tokens``.

    Order is preserved; the first record that would bring the running total
    to or above the budget ends the batch, even if later records are small.
    """
    token_count = 0
    trimmed: List[QueryRecord] = []
    for record in records:
        token_count += estimate_record_tokens(record)
        if token_count >= max_tokens:
            break
        trimmed.append(record)
    return trimmed


def select_batch(
    repository: QueryStatsRepository,
    project_id: str,
    config: JobConfig
) -> Batch:
    """Select the next batch of unprocessed records of a project.

    Oversized records are permanently deleted as a side effect. Store read
    failures yield an empty batch flagged with ``fetch_failed``; delete
    failures are logged and ignored.

    Args:
        repository: Store holding the project's records
        project_id: Project to select from
        config: Job configuration (page size, model, budget ratio)

    Returns:
        Batch, possibly empty
    """
    try:
        records = repository.fetch_unprocessed(project_id, limit=config.batching.page_size)
    except sqlite3.Error as e:
        logger.error("[QUERY-STATS] Error fetching queries for %s: %s", project_id, e)
        return Batch(project_id=project_id, fetch_failed=True)

    if not records:
        return Batch(project_id=project_id)

    max_tokens = token_budget(config)

    overflowing_ids = [record.id for record in find_overflowing(records, max_tokens)]
    if overflowing_ids:
        logger.info(
            "[QUERY-STATS] Too long %d, deleting from %s: %s",
            len(overflowing_ids), project_id, overflowing_ids
        )
        try:
            repository.delete_records(project_id, overflowing_ids)
        except sqlite3.Error as e:
            logger.error("[QUERY-STATS] Error deleting queries for %s: %s", project_id, e)

    remaining = [record for record in records if record.id not in overflowing_ids]
    return Batch(
        project_id=project_id,
        records=trim_records(remaining, max_tokens),
        evicted_ids=overflowing_ids
    )
