"""Bitwarden `bw serve` REST integration service."""

import logging
from threading import Lock
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import ValidationError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import (
    AmbiguousMatchError,
    AuthError,
    NotFoundError,
    SecretSyncError,
    TransportError,
)
from ..models.repo import RepoType
from ..models.secret_record import SecretRecord
from ..schemas.bitwarden import (
    ITEM_TYPE_LOGIN,
    BitwardenItem,
    BitwardenLogin,
    BitwardenResponse,
    ItemResponse,
    ListItemsResponse,
    UnlockResponse,
)
from ..schemas.config import RepoConfig
from .mapper import BitwardenItemMapper
from .secret_store import SecretStore

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BitwardenResponse)


class BitwardenStore(SecretStore):
    """Secret store backed by the local Bitwarden item API."""

    repo_type = RepoType.BITWARDEN

    def __init__(
        self,
        repo: RepoConfig,
        password: Optional[str],
        timeout: float = 30.0,
        max_retries: int = 3,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize Bitwarden store."""
        super().__init__(repo, BitwardenItemMapper())
        self.base_url = repo.addr
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._password = password
        self._session_token: Optional[str] = None
        self._token_lock = Lock()
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def http(self) -> httpx.Client:
        """Lazy initialization of the HTTP client."""
        if self._http is None:
            self._http = httpx.Client(base_url=self.base_url, timeout=self.timeout)
        return self._http

    @property
    def is_unlocked(self) -> bool:
        return self._session_token is not None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._session_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, retrying only failures to connect."""
        retrying = Retrying(
            retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            reraise=True,
        )
        try:
            return retrying(
                self.http.request, method, url, headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as e:
            raise TransportError(
                f"Bitwarden request {method} {url} failed: {str(e)}",
                error_code="http_error",
                original_error=e,
            ) from e

    def _parse(
        self,
        response: httpx.Response,
        schema: Type[ResponseT],
        error_cls: Type[SecretSyncError] = TransportError,
    ) -> ResponseT:
        """Validate a response body against its schema."""
        try:
            payload = response.json()
        except ValueError as e:
            raise error_cls(
                f"Non-JSON response from Bitwarden (HTTP {response.status_code})",
                error_code=f"http_{response.status_code}",
                original_error=e,
            ) from e

        try:
            parsed = schema.model_validate(payload)
        except ValidationError as e:
            raise error_cls(
                f"Malformed Bitwarden response: {str(e)}",
                error_code="malformed_response",
                original_error=e,
            ) from e

        if not parsed.success or response.is_error:
            raise error_cls(
                parsed.message or f"Bitwarden request failed (HTTP {response.status_code})",
                error_code=f"http_{response.status_code}",
            )
        return parsed

    def unlock(self) -> None:
        """Unlock the vault and keep the session key for later calls."""
        if not self._password:
            raise AuthError(
                "Bitwarden password not set in BW_PASSWORD",
                error_code="credentials_missing",
            )

        try:
            response = self._send("POST", "/unlock", json={"password": self._password})
        except TransportError as e:
            raise AuthError(
                f"Unable to authenticate to Bitwarden at {self.base_url}: {e.message}",
                error_code="unlock_unreachable",
                original_error=e,
            ) from e

        parsed = self._parse(response, UnlockResponse, error_cls=AuthError)
        if parsed.data is None:
            raise AuthError(
                "Bitwarden unlock returned no session key", error_code="no_session"
            )

        with self._token_lock:
            self._session_token = parsed.data.raw
        logger.info(f"Unlocked Bitwarden vault at {self.base_url}")

    def lock(self) -> Dict[str, Any]:
        """Lock the vault; must be called once the store is no longer used."""
        response = self._send("POST", "/lock")
        self._parse(response, BitwardenResponse)

        with self._token_lock:
            self._session_token = None
        logger.info(f"Locked Bitwarden vault at {self.base_url}")
        return {"status": "success", "message": "Bitwarden vault locked"}

    def test_connection(self) -> Dict[str, Any]:
        """Test Bitwarden connectivity and unlock state."""
        try:
            if not self.is_unlocked:
                self.unlock()

            response = self._send("GET", "/status")
            self._parse(response, BitwardenResponse)
            template = (response.json().get("data") or {}).get("template") or {}

            return {
                "status": "success",
                "url": self.base_url,
                "vault_status": template.get("status", "unknown"),
                "message": "Successfully connected to Bitwarden",
            }

        except SecretSyncError as e:
            return {"status": "error", "message": e.message}
        except Exception as e:
            return {"status": "error", "message": f"Connection failed: {str(e)}"}

    def list(self, search_filter: str = "") -> List[BitwardenItem]:
        """List items matching a search term."""
        response = self._send(
            "GET", "/list/object/items", params={"search": search_filter}
        )
        parsed = self._parse(response, ListItemsResponse)
        if parsed.data is None:
            return []
        return parsed.data.data

    def _find_by_name(self, name: str) -> List[BitwardenItem]:
        return [item for item in self.list(name) if item.name == name]

    def get(self, path: str) -> BitwardenItem:
        """Retrieve the single item whose name equals the path."""
        matches = self._find_by_name(path)
        if not matches:
            raise NotFoundError(f"No Bitwarden item named '{path}'")
        if len(matches) > 1:
            raise AmbiguousMatchError(
                f"{len(matches)} Bitwarden items named '{path}'", matches=len(matches)
            )
        return matches[0]

    def put(self, path: str, record: SecretRecord) -> Dict[str, Any]:
        """Create the item, or update the one item already carrying this name."""
        item = self.mapper.to_native(record, name=path)
        matches = self._find_by_name(path)

        # Only login items can hold credentials; a same-name note or card
        # would silently drop them on update.
        others = [m for m in matches if m.type != ITEM_TYPE_LOGIN]
        if others:
            raise AmbiguousMatchError(
                f"Bitwarden item '{path}' exists with type {others[0].type}, "
                "not a login, refusing to write",
                matches=len(matches),
                error_code="not_a_login",
            )

        if len(matches) > 1:
            raise AmbiguousMatchError(
                f"{len(matches)} Bitwarden items named '{path}', refusing to write",
                matches=len(matches),
            )

        if not matches:
            response = self._send("POST", "/object/item", json=item.to_payload())
            created = self._parse(response, ItemResponse)
            item_id = created.data.id if created.data else None
            logger.info(f"Created Bitwarden item '{path}' ({item_id})")
            return {
                "status": "success",
                "operation": "create",
                "id": item_id,
                "message": f"Item '{path}' created in Bitwarden",
            }

        existing = matches[0]
        if existing.login and (
            existing.login.username == record.username
            and existing.login.password == record.password
        ):
            return {
                "status": "success",
                "operation": "unchanged",
                "id": existing.id,
                "message": f"Item '{path}' already up to date",
            }

        login = (existing.login or BitwardenLogin()).model_copy(
            update={"username": record.username, "password": record.password}
        )
        updated = existing.model_copy(update={"login": login})
        response = self._send(
            "PUT", f"/object/item/{existing.id}", json=updated.to_payload()
        )
        self._parse(response, ItemResponse)
        logger.info(f"Updated Bitwarden item '{path}' ({existing.id})")
        return {
            "status": "success",
            "operation": "update",
            "id": existing.id,
            "message": f"Item '{path}' updated in Bitwarden",
        }

    def delete(self, path: str) -> Dict[str, Any]:
        """Delete the item whose name equals the path."""
        item = self.get(path)
        response = self._send("DELETE", f"/object/item/{item.id}")
        self._parse(response, BitwardenResponse)
        return {
            "status": "success",
            "id": item.id,
            "message": f"Item '{path}' deleted from Bitwarden",
        }

    def close(self) -> None:
        if self._http is not None and self._owns_http:
            self._http.close()
            self._http = None
