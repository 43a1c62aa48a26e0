"""Configuration loading for the tracker mirror.

Settings come from three layers, later ones winning: built-in defaults,
``config/config.yaml`` and ``TM_*`` environment variables (optionally read
from ``.env`` files).
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from tracker_mirror.type_definitions import (
    Config,
    ConfigValue,
    DatabaseConfig,
    JiraConfig,
    SectionName,
    SyncConfig,
)

# Logging is not configured yet while settings load
logging.basicConfig(level=logging.INFO, format="%(message)s")
config_logger = logging.getLogger("config_loader")

DEFAULT_CONFIG_FILE = Path("config/config.yaml")

DEFAULT_JIRA_CONFIG: JiraConfig = {
    "url": "",
    "username": "",
    "api_token": "",
    "verify_ssl": True,
    "issues_jql": "project = SS ORDER BY created ASC",
    "current_sprint_jql": "project = SS AND sprint in openSprints()",
    "page_size": 100,
}

DEFAULT_DATABASE_CONFIG: DatabaseConfig = {
    "path": "var/data/tracker_mirror.db",
}

DEFAULT_SYNC_CONFIG: SyncConfig = {
    "log_level": "INFO",
    "initial_status": "OPEN",
}

LOG_LEVELS = ("DEBUG", "INFO", "NOTICE", "WARNING", "ERROR", "CRITICAL", "SUCCESS")
FALSE_VALUES = ("false", "0", "no", "n", "f")

# Jira keys whose environment values are not plain strings
INT_JIRA_KEYS = frozenset({"page_size"})
BOOL_JIRA_KEYS = frozenset({"verify_ssl"})
SECRET_JIRA_KEYS = frozenset({"api_token"})


def is_test_environment() -> bool:
    """Return True under pytest or when ``TM_TEST_MODE`` is set."""
    if "PYTEST_CURRENT_TEST" in os.environ:
        return True
    return os.environ.get("TM_TEST_MODE", "").lower() in ("true", "1", "yes")


def dotenv_files() -> list[Path]:
    """List the ``.env`` files to load, lowest precedence first.

    ``.env`` is always read; ``.env.local`` when present. The ``.env.test``
    pair is only considered in a test environment.
    """
    names = [".env", ".env.local"]
    if is_test_environment():
        names += [".env.test", ".env.test.local"]
    return [Path(name) for name in names]


class ConfigLoader:
    """Merges defaults, the YAML file and the environment into one ``Config``."""

    def __init__(self, config_file_path: Path | None = None) -> None:
        """Load every configuration layer.

        Args:
            config_file_path: YAML file to read. Defaults to ``TM_CONFIG_FILE``
                or ``config/config.yaml``.

        """
        self._load_dotenv_files()

        if config_file_path is None:
            config_file_path = Path(os.environ.get("TM_CONFIG_FILE", DEFAULT_CONFIG_FILE))

        loaded = self._load_yaml_config(config_file_path)
        self.config: Config = {
            "jira": {**DEFAULT_JIRA_CONFIG, **(loaded.get("jira") or {})},
            "database": {**DEFAULT_DATABASE_CONFIG, **(loaded.get("database") or {})},
            "sync": {**DEFAULT_SYNC_CONFIG, **(loaded.get("sync") or {})},
        }

        self._apply_environment_overrides()

    def _load_dotenv_files(self) -> None:
        for index, path in enumerate(dotenv_files()):
            if not path.exists():
                continue
            # Only the base .env leaves already-set variables alone
            if load_dotenv(path, override=index > 0):
                config_logger.debug("Loaded environment from %s", path)

    def _load_yaml_config(self, config_file_path: Path) -> dict[str, Any]:
        """Read the YAML file, or return an empty mapping when it is missing."""
        try:
            with config_file_path.open("r") as config_file:
                return yaml.safe_load(config_file) or {}
        except FileNotFoundError:
            config_logger.warning(
                "Config file not found: %s, using defaults and environment",
                config_file_path,
            )
            return {}

    def _apply_environment_overrides(self) -> None:
        for env_var, env_value in os.environ.items():
            if not env_var.startswith("TM_"):
                continue

            match env_var.split("_"):
                case ["TM", "LOG", "LEVEL"]:
                    log_level = env_value.upper()
                    if log_level in LOG_LEVELS:
                        self.config["sync"]["log_level"] = log_level
                        config_logger.debug("Applied log level: %s", log_level)
                    else:
                        config_logger.warning("Ignoring unknown TM_LOG_LEVEL %r", env_value)

                case ["TM", "JIRA", *rest] if rest:
                    key = "_".join(rest).lower()
                    self.config["jira"][key] = self._convert_jira_value(key, env_value)
                    if key not in SECRET_JIRA_KEYS:
                        config_logger.debug("Applied Jira config: %s=%s", key, env_value)

                case ["TM", "DATABASE", "PATH"]:
                    self.config["database"]["path"] = env_value

                case ["TM", "INITIAL", "STATUS"]:
                    self.config["sync"]["initial_status"] = env_value

                case ["TM", "SSL", "VERIFY"]:
                    self.config["jira"]["verify_ssl"] = env_value.lower() not in FALSE_VALUES

    def _convert_jira_value(self, key: str, value: str) -> ConfigValue:
        if key in INT_JIRA_KEYS and value.isdigit():
            return int(value)
        if key in BOOL_JIRA_KEYS:
            return value.lower() not in FALSE_VALUES
        return value

    def get_jira_config(self) -> JiraConfig:
        """Get the ``jira`` section."""
        return self.config["jira"]

    def get_database_config(self) -> DatabaseConfig:
        """Get the ``database`` section."""
        return self.config["database"]

    def get_sync_config(self) -> SyncConfig:
        """Get the ``sync`` section."""
        return self.config["sync"]

    def get_value(self, section: SectionName, key: str, default: Any = None) -> Any:
        """Get one setting, or ``default`` when the section lacks it."""
        return self.config[section].get(key, default)
