"""
Tests for the CLI interface.
"""
from datetime import datetime
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from query_scrubber.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from query_scrubber.storage.models import LLMUsageEvent
from query_scrubber.storage.repository import (
    QueryStatsRepository,
    initialize_schema,
    insert_usage_event
)

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_logging_setup():
    """Keep log handlers from binding to the runner's temporary streams."""
    with patch("query_scrubber.cli.main.setup_logging"):
        yield


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    """Point the CLI at a temporary database through the environment."""
    db_path = str(tmp_path / "cli.db")
    monkeypatch.setenv("QUERY_SCRUBBER_DB", db_path)
    return db_path


class TestCLI:
    """Test CLI commands."""

    def test_no_command_prints_hint(self):
        """Test running without a command prints a hint."""
        result = runner.invoke(app, [])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Query Scrubber" in result.output

    def test_init_creates_schema(self, cli_db):
        """Test init creates the database schema."""
        result = runner.invoke(app, ["init"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized" in result.output
        assert QueryStatsRepository(cli_db).list_backlogged_projects() == []

    def test_invalid_config_fails(self, tmp_path):
        """Test an invalid config file exits with failure."""
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("batching:\n  page_size: 0\n", encoding="utf-8")

        result = runner.invoke(app, ["run", "--config", str(config_path)])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output

    def test_missing_config_file_fails(self):
        """Test a missing config file exits with failure."""
        result = runner.invoke(app, ["init", "--config", "does-not-exist.yaml"])

        assert result.exit_code == EXIT_CODE_FAIL

    def test_run_for_project(self, cli_db):
        """Test run forwards the project id and database path."""
        with patch("query_scrubber.cli.main.run_job", return_value=3) as mock_run:
            result = runner.invoke(app, ["run", "--project-id", "proj-1"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Processed 3 queries" in result.output
        args, kwargs = mock_run.call_args
        assert kwargs["project_id"] == "proj-1"
        assert args[0].db_path == cli_db

    def test_run_without_project(self, cli_db):
        """Test run without a project processes the backlog."""
        with patch("query_scrubber.cli.main.run_job", return_value=0) as mock_run:
            result = runner.invoke(app, ["run"])

        assert result.exit_code == EXIT_CODE_PASS
        assert mock_run.call_args.kwargs["project_id"] is None

    def test_seed_demo(self, cli_db):
        """Test seed-demo inserts the demo project and queries."""
        result = runner.invoke(app, ["seed-demo"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Inserted 3 demo queries" in result.output
        assert QueryStatsRepository(cli_db).list_backlogged_projects() == ["demo-project"]

    def test_usage_without_schema(self, cli_db):
        """Test usage on a fresh database."""
        result = runner.invoke(app, ["usage"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage recorded yet" in result.output

    def test_usage_table(self, cli_db):
        """Test usage lists the ledger rows of one project."""
        initialize_schema(cli_db)
        for minute, project_id in enumerate(["proj-1", "proj-2"]):
            insert_usage_event(LLMUsageEvent(
                timestamp=datetime(2024, 1, 1, 12, minute, 0),
                project_id=project_id,
                source="query-stats",
                model="openai:gpt-3.5-turbo",
                prompt_tokens=1000,
                completion_tokens=200,
                total_tokens=1200,
                estimated_cost=0.0019
            ), cli_db)

        result = runner.invoke(app, ["usage", "--project-id", "proj-1"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "proj-1" in result.output
        assert "proj-2" not in result.output
        assert "1,200" in result.output
        assert "Total tokens: 1,200" in result.output
