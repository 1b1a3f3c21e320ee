# query_scrubber/demo/seed_demo_data.py

from datetime import datetime, timedelta

from query_scrubber.storage.db import DEFAULT_DB_PATH
from query_scrubber.storage.models import QueryRecord
from query_scrubber.storage.repository import QueryStatsRepository, initialize_schema

DEMO_PROJECT_ID = "demo-project"


def seed_demo_data(db_path: str = DEFAULT_DB_PATH) -> int:
    """Insert a demo project with a few unprocessed queries; returns the record count."""
    initialize_schema(db_path)
    repository = QueryStatsRepository(db_path)
    repository.insert_project(DEMO_PROJECT_ID, name="Demo project")

    start = datetime.now() - timedelta(hours=1)
    records = [
        QueryRecord(
            id="demo-1",
            project_id=DEMO_PROJECT_ID,
            created_at=start,
            prompt="Hi, I'm Jane Doe (jane.doe@example.com). How do I reset my password?",
            response="Hi Jane! Open Settings > Security and click 'Reset password'."
        ),
        QueryRecord(
            id="demo-2",
            project_id=DEMO_PROJECT_ID,
            created_at=start + timedelta(minutes=5),
            prompt="Can you ship my order to 42 Baker Street, call me at +1 555 0100?",
            response="We ship to that address in 3-5 business days."
        ),
        QueryRecord(
            id="demo-3",
            project_id=DEMO_PROJECT_ID,
            created_at=start + timedelta(minutes=10),
            prompt="What plans do you offer?",
            response=None
        ),
    ]
    repository.insert_query_records(records)
    return len(records)


if __name__ == "__main__":
    count = seed_demo_data()
    print(f"Inserted {count} demo queries")
