"""Configuration settings for SecretSync."""

import json
import os
from pathlib import Path

from pydantic import ValidationError

from .errors import ConfigError
from .schemas.config import RepoConfig, SyncConfigFile


class Config:
    """Base configuration class."""

    # Repository descriptor file
    SYNC_CONFIG_PATH = os.environ.get("SYNC_CONFIG_PATH", "./config.json")

    # Vault Configuration
    VAULT_TOKEN = os.environ.get("VAULT_TOKEN")  # Bypasses token lifecycle when set
    VAULT_USER = os.environ.get("VAULT_USER")
    VAULT_PASSWORD = os.environ.get("VAULT_PASSWORD")
    VAULT_AUTH_MOUNT = os.environ.get("VAULT_AUTH_MOUNT", "userpass")
    VAULT_TOKEN_INCREMENT = int(os.environ.get("VAULT_TOKEN_INCREMENT", 3600))
    VAULT_RENEW_FRACTION = float(os.environ.get("VAULT_RENEW_FRACTION", 0.67))
    VAULT_LOGIN_BACKOFF_INITIAL = float(
        os.environ.get("VAULT_LOGIN_BACKOFF_INITIAL", 1)
    )
    VAULT_LOGIN_BACKOFF_MAX = float(os.environ.get("VAULT_LOGIN_BACKOFF_MAX", 300))
    VAULT_TOKEN_WAIT_TIMEOUT = float(os.environ.get("VAULT_TOKEN_WAIT_TIMEOUT", 30))

    # Bitwarden Configuration
    BW_PASSWORD = os.environ.get("BW_PASSWORD")
    BW_SERVE_COMMAND = os.environ.get("BW_SERVE_COMMAND", "bw serve")
    BW_SERVE_STARTUP_WAIT = float(os.environ.get("BW_SERVE_STARTUP_WAIT", 5))

    # HTTP
    HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", 30))
    HTTP_MAX_RETRIES = int(os.environ.get("HTTP_MAX_RETRIES", 3))

    # Sync
    SYNC_MAX_WORKERS = int(os.environ.get("SYNC_MAX_WORKERS", 1))

    # Logging Configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "false").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    LOG_FILE = os.environ.get("LOG_FILE", "secretsync.log")
    LOG_MAX_BYTES = int(os.environ.get("LOG_MAX_BYTES", 10485760))  # 10MB
    LOG_BACKUP_COUNT = int(os.environ.get("LOG_BACKUP_COUNT", 10))
    LOG_FORMAT = os.environ.get(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
    )

    # Structured Logging Options
    ENABLE_JSON_LOGGING = (
        os.environ.get("ENABLE_JSON_LOGGING", "false").lower() == "true"
    )

    # Separate Log Files
    SYNC_LOG_FILE = os.environ.get("SYNC_LOG_FILE", "sync.log")
    ERROR_LOG_FILE = os.environ.get("ERROR_LOG_FILE", "error.log")

    @property
    def bw_serve_command(self) -> list:
        """Split the configured `bw serve` command line."""
        import shlex

        return shlex.split(self.BW_SERVE_COMMAND)


class DevelopmentConfig(Config):
    """Development configuration."""

    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class ProductionConfig(Config):
    """Production configuration."""

    DEBUG = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    ENABLE_JSON_LOGGING = (
        os.environ.get("ENABLE_JSON_LOGGING", "true").lower() == "true"
    )


class TestingConfig(Config):
    """Testing configuration."""

    TESTING = True
    DEBUG = False
    LOG_LEVEL = "ERROR"
    LOG_TO_FILE = False
    VAULT_TOKEN = None
    VAULT_USER = "sync-user"
    VAULT_PASSWORD = "sync-password"
    BW_PASSWORD = "bw-master-password"
    VAULT_LOGIN_BACKOFF_INITIAL = 0.01
    VAULT_LOGIN_BACKOFF_MAX = 0.05
    VAULT_TOKEN_WAIT_TIMEOUT = 2
    BW_SERVE_STARTUP_WAIT = 0
    HTTP_MAX_RETRIES = 1


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": ProductionConfig,
}


def get_config(config_name=None) -> Config:
    """Instantiate the settings class selected by name or SECRETSYNC_ENV."""
    if config_name is None:
        config_name = os.environ.get("SECRETSYNC_ENV", "default")
    try:
        return config[config_name]()
    except KeyError:
        raise ConfigError(
            f"Unknown configuration '{config_name}'", error_code="unknown_config"
        )


def load_sync_config(path) -> SyncConfigFile:
    """Read and validate the repository descriptor file."""
    config_path = Path(path)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(
            f"Config file not found: {config_path}",
            error_code="config_missing",
            original_error=e,
        ) from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(
            f"Failed to read config {config_path}: {str(e)}",
            error_code="config_unreadable",
            original_error=e,
        ) from e

    try:
        return SyncConfigFile.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid config {config_path}: {str(e)}",
            error_code="config_invalid",
            original_error=e,
        ) from e


def resolve_repo(sync_config: SyncConfigFile, repo_id: str) -> RepoConfig:
    """Look up a repository descriptor by id."""
    repo = sync_config.find_repo(repo_id)
    if repo is None:
        known = ", ".join(r.id for r in sync_config.repos) or "none"
        raise ConfigError(
            f"Repository '{repo_id}' not found in config (known: {known})",
            error_code="repo_not_found",
        )
    return repo
