"""
Shared fixtures for the test suite.
"""

import json
import os
from datetime import datetime, timedelta
from typing import List, Optional
from unittest.mock import Mock

import pytest

from query_scrubber.config.loader import JobConfig
from query_scrubber.storage.models import QueryRecord
from query_scrubber.storage.repository import QueryStatsRepository, initialize_schema

PROJECT_ID = "proj-1"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep real credentials and config files out of the tests."""
    for name in ("OPENAI_API_KEY", "QUERY_SCRUBBER_CONFIG", "QUERY_SCRUBBER_DB"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_path(tmp_path):
    path = os.path.join(str(tmp_path), "test.db")
    initialize_schema(path)
    return path


@pytest.fixture
def repository(db_path):
    repository = QueryStatsRepository(db_path)
    repository.insert_project(PROJECT_ID, name="Test project")
    return repository


@pytest.fixture
def config(db_path):
    return JobConfig(db_path=db_path, openai_api_key="sk-default")


def make_records(
    ids: List[str],
    project_id: str = PROJECT_ID,
    prompt: str = "My name is John Smith, what is my balance?",
    response: Optional[str] = "John, your balance is $10.",
    start: Optional[datetime] = None
) -> List[QueryRecord]:
    """Build records created one minute apart, in the order given."""
    start = start or datetime(2024, 1, 1, 12, 0, 0)
    return [
        QueryRecord(
            id=record_id,
            project_id=project_id,
            created_at=start + timedelta(minutes=i),
            prompt=prompt,
            response=response
        )
        for i, record_id in enumerate(ids)
    ]


def make_completion(
    text: str,
    prompt_tokens: int = 100,
    completion_tokens: int = 50,
    request_id: str = "chatcmpl-1"
) -> Mock:
    """Build a chat completion response as returned by the OpenAI SDK."""
    response = Mock()
    response.id = request_id
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    response.usage.total_tokens = prompt_tokens + completion_tokens
    choice = Mock()
    choice.message.content = text
    response.choices = [choice]
    return response


def scrubbed_json(ids: List[str]) -> str:
    """A well-formed model answer anonymizing the given ids."""
    return json.dumps([
        {"id": record_id, "prompt": "My name is [NAME], what is my balance?", "response": "[NAME], your balance is $10."}
        for record_id in ids
    ])
