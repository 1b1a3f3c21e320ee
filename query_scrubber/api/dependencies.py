"""FastAPI dependencies wiring the job's collaborators."""

from functools import lru_cache

from fastapi import Depends

from query_scrubber.config.loader import JobConfig, load_job_config_from_env
from query_scrubber.core.job import build_completions
from query_scrubber.sdk.openai_client import MeteredOpenAI
from query_scrubber.storage.repository import QueryStatsRepository


@lru_cache(maxsize=1)
def get_config() -> JobConfig:
    """Process-wide configuration, read once from YAML and the environment."""
    return load_job_config_from_env()


def get_repository(config: JobConfig = Depends(get_config)) -> QueryStatsRepository:
    return QueryStatsRepository(config.db_path)


def get_completions(config: JobConfig = Depends(get_config)) -> MeteredOpenAI:
    return build_completions(config)
