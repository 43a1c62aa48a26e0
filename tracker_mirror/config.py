"""Process-wide settings for the tracker mirror.

Importing this module loads ``config/config.yaml`` plus ``TM_*`` environment
overrides once, prepares the ``var/`` working tree and configures logging.
"""

from pathlib import Path

from tracker_mirror.config_loader import ConfigLoader
from tracker_mirror.display import configure_logging
from tracker_mirror.type_definitions import DirType, LogLevel

DEFAULT_DATABASE_PATH = "var/data/tracker_mirror.db"

_loader = ConfigLoader()

jira_config = _loader.get_jira_config()
database_config = _loader.get_database_config()
sync_config = _loader.get_sync_config()

root_dir = Path(__file__).resolve().parent.parent
var_dirs: dict[DirType, Path] = {
    "root": root_dir / "var",
    "data": root_dir / "var" / "data",
    "logs": root_dir / "var" / "logs",
}

_new_dirs = [path for path in var_dirs.values() if not path.exists()]
for path in _new_dirs:
    path.mkdir(parents=True, exist_ok=True)

LOG_LEVEL: LogLevel = sync_config.get("log_level", "INFO")
logger = configure_logging(LOG_LEVEL, var_dirs["logs"] / "tracker_mirror.log")

for path in _new_dirs:
    logger.debug("Created directory: %s", path)


def get_database_path() -> Path:
    """Return the mirror database file, creating its parent directory.

    Relative paths are taken from the project root, not the working directory.
    """
    path = Path(database_config.get("path") or DEFAULT_DATABASE_PATH)
    if not path.is_absolute():
        path = root_dir / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def validate_config() -> bool:
    """Check that the tracker can be reached with the loaded settings.

    Returns:
        False, after logging which ``TM_*`` variables are missing, if the Jira
        URL or API token is unset; True otherwise
    """
    missing = []
    for key in ("url", "api_token"):
        match jira_config.get(key):
            case None | "":
                missing.append(f"TM_JIRA_{key.upper()}")
            case _:
                pass

    if missing:
        logger.error("Missing required environment variables: %s", ", ".join(missing))
        return False

    if not jira_config.get("username"):
        logger.debug("No Jira username set, authenticating with the API token only")
    return True
