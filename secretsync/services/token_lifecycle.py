"""Token lifecycle management for stores that hand out leased tokens.

The manager logs in, keeps the lease renewed from a background thread and
falls back to a fresh login (with exponential backoff) whenever renewal
fails or the lease can no longer be extended. Store calls obtain the
current token through `token()`, which never returns an expired one.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from ..errors import AuthError, SecretSyncError, TokenRenewalError
from ..models.secret_record import Credential
from ..schemas.vault import VaultAuthInfo

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleState(Enum):
    """Enumeration of token lifecycle states."""

    LOGGED_OUT = "logged_out"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    RENEWING = "renewing"
    RELOGIN_REQUIRED = "relogin_required"
    STOPPED = "stopped"


class LifecycleEventType(Enum):
    """Enumeration of events reported to the lifecycle observer."""

    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    RENEWED = "renewed"
    RENEWAL_FAILED = "renewal_failed"
    LEASE_TERMINATED = "lease_terminated"
    STOPPED = "stopped"


@dataclass(frozen=True)
class LifecycleEvent:
    """A lifecycle transition reported to the observer."""

    event_type: LifecycleEventType
    store_id: str
    state: LifecycleState
    message: str = ""
    error: Optional[SecretSyncError] = None
    lease_duration: Optional[float] = None
    retry_in: Optional[float] = None
    occurred_at: datetime = field(default_factory=utcnow)


class TokenAuthenticator(ABC):
    """Abstract base class for token issuing backends."""

    @abstractmethod
    def login(self) -> VaultAuthInfo:
        """
        Exchange the configured credentials for a token.

        Raises:
            AuthError: If the login is rejected or cannot be performed
        """
        pass

    @abstractmethod
    def renew(self, token: str, increment: int) -> VaultAuthInfo:
        """
        Extend the lease of a token.

        Raises:
            TokenRenewalError: If the renewal fails
        """
        pass


class CredentialLifecycleManager:
    """Keeps one store's leased token valid for the life of the process."""

    def __init__(
        self,
        authenticator: TokenAuthenticator,
        store_id: str = "vault",
        renew_increment: int = 3600,
        renew_fraction: float = 0.67,
        backoff_initial: float = 1.0,
        backoff_max: float = 300.0,
        token_wait_timeout: float = 30.0,
        cancel_event: Optional[threading.Event] = None,
        on_event: Optional[Callable[[LifecycleEvent], None]] = None,
        clock: Callable[[], datetime] = utcnow,
        poll_interval: float = 1.0,
    ):
        if not 0 < renew_fraction < 1:
            raise ValueError("renew_fraction must be between 0 and 1")

        self.authenticator = authenticator
        self.store_id = store_id
        self.renew_increment = renew_increment
        self.renew_fraction = renew_fraction
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.token_wait_timeout = token_wait_timeout
        self.poll_interval = poll_interval
        self._on_event = on_event
        self._clock = clock

        self._cond = threading.Condition()
        self._credential: Optional[Credential] = None
        self._state = LifecycleState.LOGGED_OUT
        self._relogin = False
        # Monotonic deadline for replacing a non-renewable login token.
        self._reissue_at: Optional[float] = None
        self._reissue_attempt = 0
        self._cancel = cancel_event or threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> LifecycleState:
        with self._cond:
            return self._state

    @property
    def credential(self) -> Optional[Credential]:
        with self._cond:
            return self._credential

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _set_state(self, state: LifecycleState) -> None:
        with self._cond:
            self._state = state

    def _install(self, credential: Credential) -> None:
        """Replace the current credential and wake any waiting callers."""
        with self._cond:
            self._credential = credential
            self._state = LifecycleState.AUTHENTICATED
            self._cond.notify_all()

    def _emit(self, event_type: LifecycleEventType, message: str = "", **kwargs) -> None:
        event = LifecycleEvent(
            event_type=event_type,
            store_id=self.store_id,
            state=self.state,
            message=message,
            **kwargs,
        )
        if self._on_event is None:
            logger.debug(f"{self.store_id}: {event_type.value} {message}")
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception(f"Lifecycle observer failed for {event_type.value}")

    def login(self) -> Credential:
        """Perform one login attempt and install the resulting credential."""
        self._set_state(LifecycleState.AUTHENTICATING)
        try:
            info = self.authenticator.login()
        except SecretSyncError:
            with self._cond:
                self._state = (
                    LifecycleState.RELOGIN_REQUIRED
                    if self._credential is not None
                    else LifecycleState.LOGGED_OUT
                )
            raise

        credential = Credential.issue(
            token=info.client_token,
            lease_duration=info.lease_duration,
            renewable=info.renewable,
            issued_at=self._clock(),
        )
        with self._cond:
            if credential.renewable:
                self._reissue_at = None
                self._reissue_attempt = 0
            else:
                # Single-use tokens are replaced by the next login straight
                # away; consecutive ones are spaced out by the backoff.
                delay = self._backoff(self._reissue_attempt)
                self._reissue_at = time.monotonic() + delay
                self._reissue_attempt += 1
        self._install(credential)
        self._emit(
            LifecycleEventType.LOGIN_SUCCEEDED,
            "logged in" + ("" if credential.renewable else " (token not renewable)"),
            lease_duration=credential.lease_duration,
        )
        return credential

    def start(self) -> "CredentialLifecycleManager":
        """Log in (if needed) and start the background renewal thread.

        Raises:
            AuthError: If the initial login fails
        """
        if self.is_running:
            return self

        if self.credential is None:
            try:
                self.login()
            except SecretSyncError as e:
                self._emit(LifecycleEventType.LOGIN_FAILED, e.message, error=e)
                raise AuthError(
                    f"Initial login to '{self.store_id}' failed: {e.message}",
                    error_code="initial_login_failed",
                    original_error=e,
                ) from e

        self._thread = threading.Thread(
            target=self._run, name=f"token-lifecycle-{self.store_id}", daemon=True
        )
        self._thread.start()
        return self

    def stop(self, timeout: float = 5.0) -> None:
        """Signal cancellation and wait for the background thread to exit."""
        self._cancel.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._set_state(LifecycleState.STOPPED)

    def token(self, timeout: Optional[float] = None) -> str:
        """Return a non-expired token, waiting for a fresh one if necessary.

        Raises:
            TokenRenewalError: If no valid token becomes available in time
        """
        if timeout is None:
            timeout = self.token_wait_timeout
        deadline = time.monotonic() + timeout

        with self._cond:
            while True:
                credential = self._credential
                if credential is not None and not credential.is_expired(self._clock()):
                    return credential.token

                if self._cancel.is_set():
                    raise TokenRenewalError(
                        f"Token lifecycle for '{self.store_id}' is stopped "
                        "and no valid token is available",
                        error_code="lifecycle_stopped",
                    )

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TokenRenewalError(
                        f"No valid token for '{self.store_id}' within {timeout}s",
                        error_code="token_unavailable",
                    )

                # Ask the background thread to log in again now.
                self._wake.set()
                self._cond.wait(min(remaining, self.poll_interval))

    def _run(self) -> None:
        attempt = 0
        try:
            while not self._cancel.is_set():
                try:
                    self._step()
                    attempt = 0
                except Exception as e:
                    delay = self._backoff(attempt)
                    attempt += 1
                    logger.exception(
                        f"Unexpected error in token lifecycle for {self.store_id}, "
                        f"retrying in {delay:.1f}s"
                    )
                    self._relogin = True
                    if self._cancel.wait(delay):
                        break
        finally:
            self._set_state(LifecycleState.STOPPED)
            self._emit(LifecycleEventType.STOPPED, "token lifecycle stopped")

    def _step(self) -> None:
        """Run one pass of the lifecycle loop."""
        credential = self.credential

        if credential is None or self._relogin or credential.is_expired(self._clock()):
            self._login_with_backoff()
            return

        if not credential.renewable and self._reissue_at is not None:
            self._wait_for_reissue(credential, self._reissue_at)
            return

        renew_at = credential.renew_at(self.renew_fraction)
        if not self._wait_until(renew_at):
            return

        if self.credential is not credential:
            return

        now = self._clock()
        if credential.is_expired(now):
            self._set_state(LifecycleState.RELOGIN_REQUIRED)
            self._relogin = True
            return

        if renew_at is None or now < renew_at:
            # Woken early; re-evaluate.
            return

        if credential.renewable:
            self._renew(credential)
        else:
            # Non-renewable tokens are replaced by a fresh login.
            self._set_state(LifecycleState.RELOGIN_REQUIRED)
            self._relogin = True

    def _renew(self, credential: Credential) -> None:
        self._set_state(LifecycleState.RENEWING)
        try:
            info = self.authenticator.renew(credential.token, self.renew_increment)
        except SecretSyncError as e:
            self._set_state(LifecycleState.RELOGIN_REQUIRED)
            self._relogin = True
            self._emit(
                LifecycleEventType.RENEWAL_FAILED,
                f"failed to renew token, re-attempting login: {e.message}",
                error=e,
            )
            return

        # Vault stops extending once the token reaches its max TTL: the
        # returned lease is then shorter than both the increment and the
        # previous lease.
        capped = (
            info.lease_duration < self.renew_increment
            and info.lease_duration < credential.lease_duration
        )
        renewed = Credential.issue(
            token=info.client_token or credential.token,
            lease_duration=info.lease_duration,
            renewable=info.renewable and not capped,
            issued_at=self._clock(),
        )
        self._install(renewed)

        if capped or not info.renewable:
            self._emit(
                LifecycleEventType.LEASE_TERMINATED,
                "lease can no longer be extended, will log in again",
                lease_duration=renewed.lease_duration,
            )
        else:
            self._emit(
                LifecycleEventType.RENEWED,
                "successfully renewed the token",
                lease_duration=renewed.lease_duration,
            )

    def _login_with_backoff(self) -> bool:
        """Log in until it succeeds or the manager is cancelled."""
        attempt = 0
        while not self._cancel.is_set():
            try:
                self.login()
                self._relogin = False
                return True
            except SecretSyncError as e:
                delay = self._backoff(attempt)
                attempt += 1
                self._emit(
                    LifecycleEventType.LOGIN_FAILED,
                    f"login failed, retrying in {delay:.1f}s: {e.message}",
                    error=e,
                    retry_in=delay,
                )
                if self._cancel.wait(delay):
                    return False
        return False

    def _wait_for_reissue(self, credential: Credential, deadline: float) -> None:
        while not self._cancel.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                if self.credential is credential:
                    self._set_state(LifecycleState.RELOGIN_REQUIRED)
                    self._relogin = True
                return
            if self._wake.wait(min(remaining, self.poll_interval)):
                self._wake.clear()
                return

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_initial * (2**attempt), self.backoff_max)

    def _wait_until(self, when: Optional[datetime]) -> bool:
        """Sleep until `when` (indefinitely if None).

        Returns False when cancelled, True when the time is reached or the
        thread was woken early.
        """
        while not self._cancel.is_set():
            if when is not None:
                remaining = (when - self._clock()).total_seconds()
                if remaining <= 0:
                    return True
                timeout = min(remaining, self.poll_interval)
            else:
                timeout = self.poll_interval

            if self._wake.wait(timeout):
                self._wake.clear()
                return not self._cancel.is_set()
        return False

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
