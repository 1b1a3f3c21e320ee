"""HTTP trigger for the scheduled query stats job."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from query_scrubber.api.dependencies import get_completions, get_config, get_repository
from query_scrubber.config.loader import JobConfig
from query_scrubber.core.job import run_job
from query_scrubber.sdk.openai_client import MeteredOpenAI
from query_scrubber.storage.repository import QueryStatsRepository

router = APIRouter(prefix="/api/cron", tags=["cron"])


class QueryStatsResult(BaseModel):
    status: str = "ok"
    processed: int


@router.get("/query-stats", response_model=QueryStatsResult)
def run_query_stats(
    project_id: Optional[str] = Query(None, alias="projectId"),
    config: JobConfig = Depends(get_config),
    repository: QueryStatsRepository = Depends(get_repository),
    completions: MeteredOpenAI = Depends(get_completions),
) -> QueryStatsResult:
    """Anonymize one batch for a project, or for the projects with the oldest backlog."""

    processed = run_job(repository, completions, config, project_id=project_id or None)
    return QueryStatsResult(status="ok", processed=processed)

