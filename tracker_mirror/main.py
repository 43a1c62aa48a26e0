"""Main entry point for the Jira tracker mirror.

Runs one full synchronization pass from Jira into the local SQLite mirror
and prints a summary of the run.
"""

import argparse
import sys
from collections.abc import Sequence

from tracker_mirror import config
from tracker_mirror.clients.exceptions import ClientError
from tracker_mirror.clients.jira_client import JiraClient
from tracker_mirror.config import logger
from tracker_mirror.display import console, render_sync_summary
from tracker_mirror.models import ProviderContractError, SyncResult
from tracker_mirror.persistence import Repository, connect
from tracker_mirror.sync import TrackerImportService


def run_sync() -> SyncResult:
    """Connect to the mirror database and Jira and run the import."""
    db_path = config.get_database_path()
    logger.info("Using mirror database %s", db_path)
    connection = connect(db_path)
    try:
        service = TrackerImportService(
            provider=JiraClient(),
            repository=Repository(connection),
            initial_status=config.sync_config.get("initial_status", "OPEN"),
        )
        return service.run_import()
    finally:
        connection.close()


def main(argv: Sequence[str] | None = None) -> None:
    """Parse arguments and run the synchronization.

    Exits with 0 once the run completes, even when single issues were
    skipped, and with 1 when the run could not complete.
    """
    parser = argparse.ArgumentParser(
        description="Mirror Jira issues, users, worklogs and history into a local database",
    )
    parser.parse_args(argv)

    if not config.validate_config():
        sys.exit(1)

    console.rule("[bold]Tracker synchronization started")
    try:
        result = run_sync()
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)
    except ProviderContractError as e:
        logger.error("Tracker returned unusable data, aborting: %s", e.message)
        sys.exit(1)
    except ClientError as e:
        logger.error("Tracker request failed: %s", e)
        sys.exit(1)
    except Exception as e:  # noqa: BLE001
        logger.exception("Unexpected error occurred during synchronization: %s", e)
        sys.exit(1)

    console.rule("[bold]Tracker synchronization finished")
    render_sync_summary(result)
    sys.exit(0)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Synchronization interrupted by user")
        sys.exit(1)
