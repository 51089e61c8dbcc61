"""Application factory: logging, store wiring and sync orchestration."""

import json
import logging
import logging.handlers
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
import hvac

from .config import Config, get_config, load_sync_config, resolve_repo
from .errors import SecretSyncError
from .models.repo import RepoType, SyncDirection
from .models.sync_report import SyncReport
from .schemas.config import RepoConfig, SyncConfigFile
from .services.audit_logger import get_sync_event_logger
from .services.bitwarden_client import BitwardenStore
from .services.bw_serve import BitwardenServeProcess
from .services.secret_store import SecretStore
from .services.sync_service import SyncEngine
from .services.token_lifecycle import CredentialLifecycleManager
from .services.vault_client import VaultStore, VaultTokenAuth

logger = logging.getLogger("secretsync")

HvacClientFactory = Callable[[str], hvac.Client]
HttpClientFactory = Callable[[RepoConfig], httpx.Client]

_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
    )
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Add extra fields from the log record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def _rotating_handler(settings: Config, log_dir: Path, filename: str, level: int):
    handler = logging.handlers.RotatingFileHandler(
        str(log_dir / filename),
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
    )
    handler.setLevel(level)
    return handler


def setup_logging(settings: Config) -> None:
    """Configure logging for the secretsync package."""
    # Clear existing handlers
    logger.handlers.clear()
    sync_logger = logging.getLogger("secretsync.sync")
    sync_logger.handlers.clear()

    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logger.setLevel(log_level)

    # Choose formatter based on configuration
    if settings.ENABLE_JSON_LOGGING:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(settings.LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.LOG_TO_FILE:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        app_handler = _rotating_handler(settings, log_dir, settings.LOG_FILE, log_level)
        app_handler.setFormatter(formatter)
        logger.addHandler(app_handler)

        # Error log file (for WARNING and above)
        error_handler = _rotating_handler(
            settings, log_dir, settings.ERROR_LOG_FILE, logging.WARNING
        )
        error_handler.setFormatter(formatter)
        logger.addHandler(error_handler)

        # One record per synced path, kept apart from the main log
        sync_handler = _rotating_handler(
            settings, log_dir, settings.SYNC_LOG_FILE, logging.DEBUG
        )
        sync_handler.setFormatter(formatter)
        sync_logger.addHandler(sync_handler)

    logger.debug(
        f"Logging configured - Level: {settings.LOG_LEVEL}, "
        f"JSON: {settings.ENABLE_JSON_LOGGING}"
    )


class SyncApplication:
    """Owns the stores, token lifecycles and `bw serve` process of one run."""

    def __init__(
        self,
        settings: Config,
        sync_config: SyncConfigFile,
        cancel_event: Optional[threading.Event] = None,
        hvac_client_factory: Optional[HvacClientFactory] = None,
        http_client_factory: Optional[HttpClientFactory] = None,
    ):
        self.settings = settings
        self.sync_config = sync_config
        self.cancel_event = cancel_event or threading.Event()
        self.event_logger = get_sync_event_logger()
        self.engine = SyncEngine(
            max_workers=settings.SYNC_MAX_WORKERS,
            cancel_event=self.cancel_event,
            event_logger=self.event_logger,
        )
        self._hvac_client_factory = hvac_client_factory
        self._http_client_factory = http_client_factory
        self._stores: Dict[str, SecretStore] = {}
        self._managers: List[CredentialLifecycleManager] = []
        self._bw_serve: Optional[BitwardenServeProcess] = None

    @property
    def repos(self) -> List[RepoConfig]:
        return list(self.sync_config.repos)

    def resolve(self, repo_id: str) -> RepoConfig:
        return resolve_repo(self.sync_config, repo_id)

    def open_store(self, repo_id: str) -> SecretStore:
        """Return an authenticated store for a repo, creating it on first use.

        Raises:
            ConfigError: If the repo id is unknown
            AuthError: If the initial login or unlock fails
        """
        if repo_id in self._stores:
            return self._stores[repo_id]

        repo = self.resolve(repo_id)
        if repo.type is RepoType.VAULT:
            store = self._open_vault(repo)
        else:
            store = self._open_bitwarden(repo)

        self._stores[repo_id] = store
        return store

    def _hvac_client(self, addr: str) -> Optional[hvac.Client]:
        if self._hvac_client_factory is None:
            return None
        return self._hvac_client_factory(addr)

    def _open_vault(self, repo: RepoConfig) -> VaultStore:
        settings = self.settings

        if settings.VAULT_TOKEN:
            logger.info(f"Using VAULT_TOKEN for {repo.id}, token lifecycle disabled")
            static_token = settings.VAULT_TOKEN
            return VaultStore(
                repo, lambda: static_token, client=self._hvac_client(repo.addr)
            )

        manager = CredentialLifecycleManager(
            VaultTokenAuth(
                repo.addr,
                settings.VAULT_USER,
                settings.VAULT_PASSWORD,
                mount_point=settings.VAULT_AUTH_MOUNT,
                client=self._hvac_client(repo.addr),
            ),
            store_id=repo.id,
            renew_increment=settings.VAULT_TOKEN_INCREMENT,
            renew_fraction=settings.VAULT_RENEW_FRACTION,
            backoff_initial=settings.VAULT_LOGIN_BACKOFF_INITIAL,
            backoff_max=settings.VAULT_LOGIN_BACKOFF_MAX,
            token_wait_timeout=settings.VAULT_TOKEN_WAIT_TIMEOUT,
            cancel_event=self.cancel_event,
            on_event=self.event_logger.log_lifecycle_event,
        )
        manager.start()
        self._managers.append(manager)
        return VaultStore(repo, manager.token, client=self._hvac_client(repo.addr))

    def _open_bitwarden(self, repo: RepoConfig) -> BitwardenStore:
        settings = self.settings

        if self.sync_config.bitwarden.local and self._bw_serve is None:
            self._bw_serve = BitwardenServeProcess(
                settings.bw_serve_command,
                startup_wait=settings.BW_SERVE_STARTUP_WAIT,
                cancel_event=self.cancel_event,
            ).start()

        http_client = None
        if self._http_client_factory is not None:
            http_client = self._http_client_factory(repo)

        store = BitwardenStore(
            repo,
            settings.BW_PASSWORD,
            timeout=settings.HTTP_TIMEOUT,
            max_retries=settings.HTTP_MAX_RETRIES,
            http_client=http_client,
        )
        try:
            store.unlock()
        except SecretSyncError:
            store.close()
            raise
        return store

    def sync(
        self, source_id: str, destination_id: str, dry_run: bool = False
    ) -> SyncReport:
        """Run one directional sync between two configured repos.

        Raises:
            ConfigError: If either repo is unknown or the pair is unsupported
            AuthError: If a store cannot be authenticated
        """
        source_repo = self.resolve(source_id)
        destination_repo = self.resolve(destination_id)
        direction = SyncDirection.between(source_repo.type, destination_repo.type)

        source = self.open_store(source_id)
        destination = self.open_store(destination_id)

        logger.info(
            f"Syncing {len(source_repo.paths)} paths {source_id} -> {destination_id}"
            + (" (dry run)" if dry_run else "")
        )
        return self.engine.sync(source, destination, direction, dry_run=dry_run)

    def test_connection(self, repo_id: str) -> Dict[str, object]:
        """Open a repo's store and check that it answers."""
        store = self.open_store(repo_id)
        return self.engine.test_backends(store)

    def close(self) -> None:
        """Lock item stores, stop token lifecycles and the local server."""
        for store in self._stores.values():
            if isinstance(store, BitwardenStore) and store.is_unlocked:
                try:
                    store.lock()
                except SecretSyncError as e:
                    logger.error(
                        f"Failed to lock Bitwarden store {store.repo_id}: {e.message}"
                    )
            store.close()
        self._stores.clear()

        for manager in self._managers:
            manager.stop()
        self._managers.clear()

        if self._bw_serve is not None:
            self._bw_serve.stop()
            self._bw_serve = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def create_app(
    config_name: Optional[str] = None,
    config_file: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    hvac_client_factory: Optional[HvacClientFactory] = None,
    http_client_factory: Optional[HttpClientFactory] = None,
) -> SyncApplication:
    """Create and configure the sync application.

    Raises:
        ConfigError: If the settings name or repo descriptor file is invalid
    """
    settings = get_config(config_name)

    # Setup logging first, before any other operations
    setup_logging(settings)

    sync_config = load_sync_config(config_file or settings.SYNC_CONFIG_PATH)

    app = SyncApplication(
        settings,
        sync_config,
        cancel_event=cancel_event,
        hvac_client_factory=hvac_client_factory,
        http_client_factory=http_client_factory,
    )
    logger.debug(f"SecretSync started with {len(sync_config.repos)} repos")
    return app
