"""
Scheduled job entry points.

Runs the batch selector and the anonymization driver for one project, or
for the projects with the stalest backlog, strictly one after another.
"""

import logging
import sqlite3
from typing import Optional

from query_scrubber.config.loader import JobConfig
from query_scrubber.sdk.openai_client import MeteredOpenAI
from query_scrubber.storage.repository import QueryStatsRepository
from .anonymizer import process_batch
from .batching import select_batch

logger = logging.getLogger(__name__)


def process_project(
    repository: QueryStatsRepository,
    completions: MeteredOpenAI,
    project_id: str,
    config: JobConfig
) -> int:
    """Select and anonymize one batch of a project's records."""
    batch = select_batch(repository, project_id, config)
    return process_batch(repository, completions, project_id, batch, config)


def run_job(
    repository: QueryStatsRepository,
    completions: MeteredOpenAI,
    config: JobConfig,
    project_id: Optional[str] = None
) -> int:
    """Run one invocation of the job.

    Args:
        repository: Store holding records and project configuration
        completions: Metered completion client
        config: Job configuration
        project_id: Project to process; when omitted, up to
            ``config.batching.max_projects`` projects with unprocessed
            records are processed, oldest backlog first

    Returns:
        Total number of records processed
    """
    if project_id:
        return process_project(repository, completions, project_id, config)

    try:
        project_ids = repository.list_backlogged_projects(limit=config.batching.max_projects)
    except sqlite3.Error as e:
        logger.error("[QUERY-STATS] Error listing projects with backlog: %s", e)
        return 0

    total_processed = 0
    for backlogged_id in project_ids:
        if backlogged_id:
            total_processed += process_project(repository, completions, backlogged_id, config)

    logger.info(
        "[QUERY-STATS] Run over %d projects processed %d queries",
        len(project_ids), total_processed
    )
    return total_processed


def build_completions(config: JobConfig) -> MeteredOpenAI:
    """Create the metered completion client described by ``config``."""
    return MeteredOpenAI(
        model=config.completion.selector,
        source=config.source,
        db_path=config.db_path,
        base_url=config.completion.base_url
    )
