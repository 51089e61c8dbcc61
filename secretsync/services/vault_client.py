"""HashiCorp Vault integration service."""

import logging
import posixpath
from typing import Any, Callable, Dict, List, Optional

import hvac
from pydantic import ValidationError

from ..errors import (
    AuthError,
    NotFoundError,
    SecretSyncError,
    TokenRenewalError,
    TransportError,
)
from ..models.repo import RepoType
from ..models.secret_record import SecretRecord
from ..schemas.config import RepoConfig
from ..schemas.vault import KVReadResponse, VaultAuthInfo, VaultAuthResponse, VaultSecret
from .mapper import VaultSecretMapper
from .secret_store import SecretStore
from .token_lifecycle import TokenAuthenticator

logger = logging.getLogger(__name__)


class VaultTokenAuth(TokenAuthenticator):
    """Userpass login and token renewal against a Vault server."""

    def __init__(
        self,
        url: str,
        username: Optional[str],
        password: Optional[str],
        mount_point: str = "userpass",
        client: Optional[hvac.Client] = None,
    ):
        self.url = url
        self.username = username
        self.password = password
        self.mount_point = mount_point
        self._client = client

    @property
    def client(self):
        """Lazy initialization of the hvac client used for auth calls only."""
        if self._client is None:
            self._client = hvac.Client(url=self.url)
        return self._client

    def login(self) -> VaultAuthInfo:
        """Exchange username/password for a token."""
        if not self.username or not self.password:
            raise AuthError(
                "Vault credentials not configured (VAULT_USER/VAULT_PASSWORD)",
                error_code="credentials_missing",
            )

        try:
            response = self.client.auth.userpass.login(
                username=self.username,
                password=self.password,
                mount_point=self.mount_point,
                use_token=False,
            )
            return VaultAuthResponse.model_validate(response).auth

        except (hvac.exceptions.InvalidRequest, hvac.exceptions.Unauthorized) as e:
            raise AuthError(
                f"Vault rejected login for user '{self.username}'",
                error_code="login_rejected",
                original_error=e,
            ) from e
        except hvac.exceptions.Forbidden as e:
            raise AuthError(
                "Insufficient permissions to log in to Vault",
                error_code="forbidden",
                original_error=e,
            ) from e
        except ValidationError as e:
            raise AuthError(
                f"Malformed login response from Vault: {str(e)}",
                error_code="malformed_response",
                original_error=e,
            ) from e
        except Exception as e:
            raise AuthError(
                f"Failed to log in to Vault: {str(e)}", original_error=e
            ) from e

    def renew(self, token: str, increment: int) -> VaultAuthInfo:
        """Extend the lease of a token."""
        try:
            self.client.token = token
            response = self.client.auth.token.renew_self(increment=increment)
            return VaultAuthResponse.model_validate(response).auth

        except hvac.exceptions.VaultError as e:
            raise TokenRenewalError(
                f"Vault refused token renewal: {str(e)}",
                error_code="renew_rejected",
                original_error=e,
            ) from e
        except ValidationError as e:
            raise TokenRenewalError(
                f"Malformed renewal response from Vault: {str(e)}",
                error_code="malformed_response",
                original_error=e,
            ) from e
        except Exception as e:
            raise TokenRenewalError(
                f"Failed to renew token: {str(e)}", original_error=e
            ) from e


class VaultStore(SecretStore):
    """Secret store backed by a Vault KV v2 mount."""

    repo_type = RepoType.VAULT

    def __init__(
        self,
        repo: RepoConfig,
        token_provider: Callable[[], str],
        client: Optional[hvac.Client] = None,
    ):
        """Initialize Vault store."""
        super().__init__(repo, VaultSecretMapper(repo.user_field, repo.pass_field))
        self.url = repo.addr
        self.mount_point = repo.mount_path
        self._token_provider = token_provider
        self._client = client

    @property
    def client(self):
        """Lazy initialization of hvac client, refreshed with the current token."""
        if self._client is None:
            self._client = hvac.Client(url=self.url)
        self._client.token = self._token_provider()
        return self._client

    def test_connection(self) -> Dict[str, Any]:
        """Test Vault connectivity and authentication."""
        try:
            client = self.client

            if not client.is_authenticated():
                return {
                    "status": "error",
                    "message": "Authentication failed - invalid token",
                }

            # Test read capability
            try:
                client.secrets.kv.v2.list_secrets(mount_point=self.mount_point, path="")
            except hvac.exceptions.Forbidden:
                return {
                    "status": "warning",
                    "message": "Connected but limited permissions",
                }
            except hvac.exceptions.InvalidPath:
                # Mount point might not exist or be empty
                pass

            return {
                "status": "success",
                "url": self.url,
                "mount_point": self.mount_point,
                "message": "Successfully connected to Vault",
            }

        except SecretSyncError as e:
            return {"status": "error", "message": e.message}
        except hvac.exceptions.VaultError as e:
            return {"status": "error", "message": f"Vault error: {str(e)}"}
        except Exception as e:
            return {"status": "error", "message": f"Connection failed: {str(e)}"}

    def get(self, path: str) -> VaultSecret:
        """Retrieve a secret from Vault."""
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                mount_point=self.mount_point,
                path=path,
                raise_on_deleted_version=True,
            )
            parsed = KVReadResponse.model_validate(response)

        except SecretSyncError:
            raise
        except hvac.exceptions.InvalidPath as e:
            raise NotFoundError(
                f"Secret '{self.mount_point}/{path}' not found in Vault",
                original_error=e,
            ) from e
        except hvac.exceptions.Forbidden as e:
            raise TransportError(
                "Insufficient permissions to read secret from Vault",
                error_code="forbidden",
                original_error=e,
            ) from e
        except ValidationError as e:
            raise TransportError(
                f"Malformed secret response for '{path}': {str(e)}",
                error_code="malformed_response",
                original_error=e,
            ) from e
        except Exception as e:
            raise TransportError(
                f"Failed to retrieve secret: {str(e)}", original_error=e
            ) from e

        if parsed.data.data is None or parsed.data.metadata.destroyed:
            raise NotFoundError(f"Secret '{self.mount_point}/{path}' has been deleted")

        return VaultSecret(
            path=path, data=parsed.data.data, version=parsed.data.metadata.version
        )

    def put(self, path: str, record: SecretRecord) -> Dict[str, Any]:
        """Create or update a secret in Vault.

        Fields already stored at the path other than the username and
        password are kept. Updates are written with check-and-set against
        the version that was read.
        """
        secret_data = self.mapper.to_native(record)

        try:
            existing = self.get(path)
        except NotFoundError:
            existing = None

        kwargs: Dict[str, Any] = {}
        if existing is not None:
            if all(existing.data.get(k) == v for k, v in secret_data.items()):
                return {
                    "status": "success",
                    "path": path,
                    "version": existing.version,
                    "message": f"Secret '{path}' already up to date",
                }
            secret_data = {**existing.data, **secret_data}
            if existing.version is not None:
                kwargs["cas"] = existing.version

        try:
            response = self.client.secrets.kv.v2.create_or_update_secret(
                mount_point=self.mount_point, path=path, secret=secret_data, **kwargs
            )
            version = (response or {}).get("data", {}).get("version")

            logger.info(f"Wrote secret {self.mount_point}/{path} (version {version})")

            return {
                "status": "success",
                "path": path,
                "version": version,
                "message": f"Secret '{path}' written successfully to Vault",
            }

        except SecretSyncError:
            raise
        except hvac.exceptions.InvalidPath as e:
            raise TransportError(
                f"Invalid path: {path}", error_code="invalid_path", original_error=e
            ) from e
        except hvac.exceptions.Forbidden as e:
            raise TransportError(
                "Insufficient permissions to write secret to Vault",
                error_code="forbidden",
                original_error=e,
            ) from e
        except hvac.exceptions.InvalidRequest as e:
            raise TransportError(
                f"Vault rejected the write to '{path}': {str(e)}",
                error_code="invalid_request",
                original_error=e,
            ) from e
        except Exception as e:
            raise TransportError(
                f"Failed to write secret: {str(e)}", original_error=e
            ) from e

    def delete(self, path: str, destroy: bool = False) -> Dict[str, Any]:
        """Delete a secret from Vault."""
        try:
            if destroy:
                # Permanently remove all versions and metadata
                self.client.secrets.kv.v2.delete_metadata_and_all_versions(
                    mount_point=self.mount_point, path=path
                )
                message = f"Secret '{path}' permanently destroyed in Vault"
            else:
                # Soft delete (mark for deletion)
                self.client.secrets.kv.v2.delete_latest_version_of_secret(
                    mount_point=self.mount_point, path=path
                )
                message = f"Secret '{path}' deleted in Vault (can be undeleted)"

            return {"status": "success", "path": path, "message": message}

        except SecretSyncError:
            raise
        except hvac.exceptions.InvalidPath as e:
            raise NotFoundError(
                f"Secret '{path}' not found in Vault", original_error=e
            ) from e
        except hvac.exceptions.Forbidden as e:
            raise TransportError(
                "Insufficient permissions to delete secret from Vault",
                error_code="forbidden",
                original_error=e,
            ) from e
        except Exception as e:
            raise TransportError(
                f"Failed to delete secret: {str(e)}", original_error=e
            ) from e

    def list(self, search_filter: str = "") -> List[VaultSecret]:
        """List secrets whose path contains the filter.

        Only the directory containing the filter is scanned; sub-folders are
        not descended into.
        """
        directory = posixpath.dirname(search_filter.rstrip("/"))

        try:
            response = self.client.secrets.kv.v2.list_secrets(
                mount_point=self.mount_point, path=directory
            )
        except SecretSyncError:
            raise
        except hvac.exceptions.InvalidPath:
            return []
        except hvac.exceptions.Forbidden as e:
            raise TransportError(
                "Insufficient permissions to list secrets",
                error_code="forbidden",
                original_error=e,
            ) from e
        except Exception as e:
            raise TransportError(
                f"Failed to list secrets: {str(e)}", original_error=e
            ) from e

        secrets = []
        for key in (response or {}).get("data", {}).get("keys", []):
            if key.endswith("/"):
                continue
            full_path = f"{directory}/{key}".strip("/")
            if search_filter in full_path:
                try:
                    secrets.append(self.get(full_path))
                except NotFoundError:
                    # Deleted between list and read
                    continue
        return secrets
