"""
Unit tests for the scheduled job.

Tests single-project runs and iteration over the stalest backlogs.
"""

import sqlite3
from datetime import datetime
from unittest.mock import Mock, patch

from conftest import PROJECT_ID, make_completion, make_records, scrubbed_json
from query_scrubber.config.loader import BatchingConfig, JobConfig
from query_scrubber.core.job import build_completions, process_project, run_job
from query_scrubber.storage.repository import fetch_usage_events


def _echo_completions():
    """Completions double answering every prompt with its records scrubbed."""
    completions = Mock()

    def chat(messages, api_key=None, **params):
        content = messages[0]["content"]
        ids = [line.split('"id": "')[1].rstrip('",') for line in content.splitlines() if '"id": "' in line]
        return make_completion(scrubbed_json(ids))

    completions.chat.side_effect = chat
    return completions


class TestProcessProject:
    """Test one batch of one project."""

    def test_no_records_is_a_no_op(self, repository, config):
        """Test a project without records makes no calls."""
        completions = Mock()

        with patch.object(repository, "mark_processed") as mock_mark, \
                patch.object(repository, "delete_records") as mock_delete:
            processed = process_project(repository, completions, PROJECT_ID, config)

        assert processed == 0
        completions.chat.assert_not_called()
        mock_mark.assert_not_called()
        mock_delete.assert_not_called()

    def test_processes_selected_batch(self, repository, config):
        """Test the selected batch is processed."""
        repository.insert_query_records(make_records(["a", "b", "c"]))

        processed = process_project(repository, _echo_completions(), PROJECT_ID, config)

        assert processed == 3
        assert repository.fetch_unprocessed(PROJECT_ID) == []


class TestRunJob:
    """Test the invocation modes of the job."""

    def _seed(self, repository):
        repository.insert_project("stale")
        repository.insert_project("fresh")
        repository.insert_query_records(make_records(["s1", "s2"], project_id="stale", start=datetime(2024, 1, 1)))
        repository.insert_query_records(make_records(["f1"], project_id="fresh", start=datetime(2024, 3, 1)))
        repository.insert_query_records(make_records(["m1", "m2", "m3"], start=datetime(2024, 2, 1)))

    def test_single_project(self, repository, config):
        """Test only the given project is processed."""
        self._seed(repository)
        completions = _echo_completions()

        processed = run_job(repository, completions, config, project_id="fresh")

        assert processed == 1
        assert completions.chat.call_count == 1
        assert [r.id for r in repository.fetch_unprocessed("stale")] == ["s1", "s2"]

    def test_all_backlogged_projects_oldest_first(self, repository, config):
        """Test projects are processed stalest backlog first."""
        self._seed(repository)
        completions = _echo_completions()

        processed = run_job(repository, completions, config)

        visited = [call.args[0][0]["content"] for call in completions.chat.call_args_list]
        assert processed == 6
        assert len(visited) == 3
        assert '"s1"' in visited[0]
        assert '"m1"' in visited[1]
        assert '"f1"' in visited[2]
        assert repository.list_backlogged_projects() == []

    def test_project_fan_out_is_bounded(self, repository, db_path):
        """Test the number of projects per run is bounded."""
        self._seed(repository)
        config = JobConfig(db_path=db_path, batching=BatchingConfig(max_projects=2))

        processed = run_job(repository, _echo_completions(), config)

        assert processed == 5
        assert repository.list_backlogged_projects() == ["fresh"]

    def test_nothing_to_do(self, repository, config):
        """Test an empty backlog returns 0 without calls."""
        completions = Mock()

        assert run_job(repository, completions, config) == 0
        completions.chat.assert_not_called()

    def test_backlog_read_failure_returns_zero(self, repository, config):
        """Test a failed backlog read returns 0."""
        with patch.object(repository, "list_backlogged_projects", side_effect=sqlite3.OperationalError("boom")):
            assert run_job(repository, Mock(), config) == 0

    def test_empty_project_ids_are_skipped(self, repository, config):
        """Test empty project ids are skipped."""
        with patch.object(repository, "list_backlogged_projects", return_value=["", None]):
            with patch("query_scrubber.core.job.process_project") as mock_process:
                assert run_job(repository, Mock(), config) == 0

        mock_process.assert_not_called()

    @patch('query_scrubber.sdk.openai_client.OpenAI')
    def test_failure_in_one_project_does_not_stop_others(self, mock_openai_class, repository, config, db_path):
        """Test one failing project does not stop the run."""
        self._seed(repository)
        good = make_completion(scrubbed_json(["m1", "m2", "m3"]))
        mock_openai_class.return_value.chat.completions.create.side_effect = [
            make_completion("not json"),
            good,
            make_completion(scrubbed_json(["f1"])),
        ]

        processed = run_job(repository, build_completions(config), config)

        assert processed == 4
        assert [r.id for r in repository.fetch_unprocessed("stale")] == ["s1", "s2"]
        assert len(fetch_usage_events(db_path=db_path)) == 3
