"""
Repository pattern for data access.

Handles the query stats store, project configuration and the usage ledger.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import LLMUsageEvent, ProjectConfig, QueryRecord


BACKLOG_VIEW = "v_distinct_unprocessed_query_stats_project_ids"


class RecordNotFoundError(LookupError):
    """Raised when an update targets a query record that does not exist."""

    def __init__(self, project_id: str, record_id: str):
        super().__init__(f"Query record {record_id!r} not found in project {project_id!r}")
        self.project_id = project_id
        self.record_id = record_id


class QueryStatsRepository:
    """Repository for the query records and per-project configuration.

    Each instance is bound to a single database; callers construct it
    explicitly and hand it to the batch selector and the anonymization
    driver. Every method opens and closes its own connection.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def fetch_unprocessed(self, project_id: str, limit: int = 10) -> List[QueryRecord]:
        """Get a page of unprocessed query records for a project.

        Args:
            project_id: Project owning the records
            limit: Maximum number of records to return

        Returns:
            Records ordered by creation time (oldest first), then id
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT id, prompt, response, processed, project_id, created_at
                FROM query_stats
                WHERE project_id = ? AND processed = 0
                ORDER BY created_at ASC, id ASC
                LIMIT ?
            """, (project_id, limit))
            return [_row_to_record(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def delete_records(self, project_id: str, record_ids: Iterable[str]) -> int:
        """Permanently delete records of a project by id.

        Args:
            project_id: Project owning the records
            record_ids: Ids of the records to delete

        Returns:
            Number of rows deleted
        """
        ids = list(record_ids)
        if not ids:
            return 0

        conn = get_connection(self.db_path)
        try:
            placeholders = ", ".join("?" for _ in ids)
            cursor = conn.execute(
                f"DELETE FROM query_stats WHERE project_id = ? AND id IN ({placeholders})",
                [project_id, *ids]
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def mark_processed(
        self,
        project_id: str,
        record_id: str,
        prompt: Optional[str],
        response: Optional[str]
    ) -> None:
        """Store the anonymized text of a record and flag it as processed.

        Raises:
            RecordNotFoundError: If no record with this id exists in the project
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                UPDATE query_stats
                SET processed = 1, prompt = ?, response = ?
                WHERE project_id = ? AND id = ?
            """, (prompt, response, project_id, record_id))
            conn.commit()
            if cursor.rowcount == 0:
                raise RecordNotFoundError(project_id, record_id)
        finally:
            conn.close()

    def get_project_config(self, project_id: str) -> ProjectConfig:
        """Read the configuration of a project.

        Unknown projects get an empty configuration.
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT byo_openai_key FROM projects WHERE id = ?",
                (project_id,)
            ).fetchone()
            return ProjectConfig(
                project_id=project_id,
                byo_openai_key=row[0] if row and row[0] else None
            )
        finally:
            conn.close()

    def list_backlogged_projects(self, limit: int = 20) -> List[str]:
        """List projects with unprocessed records, stalest backlog first.

        Args:
            limit: Maximum number of project ids to return
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT project_id FROM {BACKLOG_VIEW} "
                "ORDER BY oldest_created_at ASC, project_id ASC LIMIT ?",
                (limit,)
            )
            return [row[0] for row in cursor.fetchall()]
        finally:
            conn.close()

    def insert_project(
        self,
        project_id: str,
        name: Optional[str] = None,
        byo_openai_key: Optional[str] = None
    ) -> None:
        """Insert a project row, or update it in place if it exists."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO projects (id, name, byo_openai_key) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    byo_openai_key = excluded.byo_openai_key
            """, (project_id, name, byo_openai_key))
            conn.commit()
        finally:
            conn.close()

    def insert_query_records(self, records: List[QueryRecord]) -> None:
        """Insert query records atomically.

        Records without ``created_at`` are stamped with the current time.
        """
        if not records:
            return

        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN TRANSACTION")
            for record in records:
                created_at = record.created_at or datetime.now()
                conn.execute("""
                    INSERT INTO query_stats
                    (id, project_id, created_at, prompt, response, processed)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    record.id,
                    record.project_id,
                    created_at.isoformat(),
                    record.prompt,
                    record.response,
                    int(record.processed)
                ))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get_record(self, project_id: str, record_id: str) -> Optional[QueryRecord]:
        """Get a single record, processed or not."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("""
                SELECT id, prompt, response, processed, project_id, created_at
                FROM query_stats
                WHERE project_id = ? AND id = ?
            """, (project_id, record_id)).fetchone()
            return _row_to_record(row) if row else None
        finally:
            conn.close()


def _row_to_record(row) -> QueryRecord:
    return QueryRecord(
        id=row[0],
        prompt=row[1],
        response=row[2],
        processed=bool(row[3]),
        project_id=row[4],
        created_at=datetime.fromisoformat(row[5]) if row[5] else None
    )


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the tables and the backlog view if they don't exist.

    ``llm_usage_event`` is an append-only ledger: no UPDATE or DELETE
    operations should ever be performed on it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                name TEXT,
                byo_openai_key TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS query_stats (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                created_at TEXT NOT NULL,
                prompt TEXT,
                response TEXT,
                processed INTEGER NOT NULL DEFAULT 0
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_query_stats_backlog
            ON query_stats (project_id, processed, created_at)
        """)
        conn.execute(f"""
            CREATE VIEW IF NOT EXISTS {BACKLOG_VIEW} AS
            SELECT project_id, MIN(created_at) AS oldest_created_at
            FROM query_stats
            WHERE processed = 0
            GROUP BY project_id
            ORDER BY oldest_created_at ASC
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS llm_usage_event (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                project_id TEXT NOT NULL,
                source TEXT NOT NULL,
                model TEXT NOT NULL,
                prompt_tokens INTEGER NOT NULL,
                completion_tokens INTEGER NOT NULL,
                total_tokens INTEGER NOT NULL,
                estimated_cost REAL NOT NULL,
                request_id TEXT
            )
        """)
        conn.commit()
    finally:
        conn.close()


def insert_usage_event(event: LLMUsageEvent, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a single usage event into the append-only ledger.

    Args:
        event: The usage event to record
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO llm_usage_event
            (timestamp, project_id, source, model, prompt_tokens,
             completion_tokens, total_tokens, estimated_cost, request_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            event.timestamp.isoformat(),
            event.project_id,
            event.source,
            event.model,
            event.prompt_tokens,
            event.completion_tokens,
            event.total_tokens,
            event.estimated_cost,
            event.request_id
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_usage_events(
    project_id: Optional[str] = None,
    source: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[LLMUsageEvent]:
    """Fetch recent usage events, optionally filtered by project and source.

    Args:
        project_id: Optional filter for a specific project
        source: Optional filter for the job that spent the tokens
        limit: Maximum number of events to return
        db_path: Path to SQLite database file

    Returns:
        List of usage events ordered by timestamp (newest first)
    """
    conn = get_connection(db_path)
    try:
        query = """
            SELECT timestamp, project_id, source, model, prompt_tokens,
                   completion_tokens, total_tokens, estimated_cost, request_id
            FROM llm_usage_event
        """
        params = []
        conditions = []

        if project_id:
            conditions.append("project_id = ?")
            params.append(project_id)
        if source:
            conditions.append("source = ?")
            params.append(source)

        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = conn.execute(query, params)
        events = []
        for row in cursor.fetchall():
            events.append(LLMUsageEvent(
                timestamp=datetime.fromisoformat(row[0]),
                project_id=row[1],
                source=row[2],
                model=row[3],
                prompt_tokens=row[4],
                completion_tokens=row[5],
                total_tokens=row[6],
                estimated_cost=row[7],
                request_id=row[8]
            ))
        return events
    finally:
        conn.close()
