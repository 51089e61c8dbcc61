"""Test configuration and fixtures for SecretSync test suite."""

import json
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import httpx
import hvac
import pytest

from secretsync.schemas.config import RepoConfig
from secretsync.schemas.vault import VaultAuthInfo
from secretsync.services.bitwarden_client import BitwardenStore
from secretsync.services.token_lifecycle import TokenAuthenticator
from secretsync.services.vault_client import VaultStore

BW_PASSWORD = "bw-master-password"
BW_SESSION = "bw-session-key"
VAULT_TOKEN = "s.test-token"


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll until predicate() is truthy or the timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by setup_logging so streams do not leak between tests."""
    yield
    for name in ("secretsync", "secretsync.sync"):
        log = logging.getLogger(name)
        for handler in list(log.handlers):
            handler.close()
            log.removeHandler(handler)
        log.setLevel(logging.NOTSET)


class FakeBitwardenServer:
    """In-memory stand-in for the `bw serve` REST API."""

    def __init__(self, password: str = BW_PASSWORD, items: Optional[List[Dict]] = None):
        self.password = password
        self.items: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self.unlocked = False
        self._next_id = 1
        for item in items or []:
            self.add_item(**item)

    def add_item(self, name: str, username=None, password=None, **extra) -> Dict:
        item = {
            "object": "item",
            "id": f"item-{self._next_id}",
            "folderId": None,
            "type": 1,
            "name": name,
            "revisionDate": "2024-01-01T00:00:00.000Z",
            "deletedDate": None,
            **extra,
        }
        if username is not None or password is not None:
            item["login"] = {"username": username, "password": password, "uris": []}
        self._next_id += 1
        self.items.append(item)
        return item

    def find(self, name: str) -> List[Dict]:
        return [item for item in self.items if item["name"] == name]

    def writes(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/object/item")]

    @staticmethod
    def _json(payload: Dict, status_code: int = 200) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        method = request.method

        if method == "POST" and path == "/unlock":
            body = json.loads(request.content or b"{}")
            if body.get("password") != self.password:
                return self._json(
                    {"success": False, "message": "Invalid master password."}, 400
                )
            self.unlocked = True
            return self._json(
                {
                    "success": True,
                    "data": {
                        "noColor": False,
                        "object": "message",
                        "title": "Your vault is now unlocked!",
                        "raw": BW_SESSION,
                    },
                }
            )

        if method == "POST" and path == "/lock":
            self.unlocked = False
            return self._json(
                {"success": True, "data": {"object": "message", "title": "Your vault is locked."}}
            )

        if method == "GET" and path == "/status":
            status = "unlocked" if self.unlocked else "locked"
            return self._json(
                {"success": True, "data": {"object": "template", "template": {"status": status}}}
            )

        if method == "GET" and path == "/list/object/items":
            search = request.url.params.get("search", "").lower()
            matches = [i for i in self.items if search in i["name"].lower()]
            return self._json(
                {"success": True, "data": {"object": "list", "data": matches}}
            )

        if method == "POST" and path == "/object/item":
            body = json.loads(request.content)
            item = self.add_item(
                body["name"],
                body["login"]["username"],
                body["login"]["password"],
            )
            return self._json(
                {
                    "success": True,
                    "data": item,
                    "revisionDate": item["revisionDate"],
                    "deleteDate": None,
                }
            )

        if path.startswith("/object/item/"):
            item_id = path.rsplit("/", 1)[-1]
            existing = [i for i in self.items if i["id"] == item_id]
            if not existing:
                return self._json({"success": False, "message": "Not found."}, 404)

            if method == "PUT":
                body = json.loads(request.content)
                existing[0].update(body)
                return self._json({"success": True, "data": existing[0]})

            if method == "DELETE":
                self.items.remove(existing[0])
                return self._json({"success": True})

        return self._json({"success": False, "message": "Unknown route"}, 404)

    def client(self, base_url: str) -> httpx.Client:
        return httpx.Client(base_url=base_url, transport=httpx.MockTransport(self.handler))


def make_vault_client(
    secrets: Optional[Dict[str, Dict[str, Any]]] = None,
    lease_duration: int = 3600,
    renewable: bool = True,
) -> MagicMock:
    """Build a MagicMock hvac client backed by an in-memory KV v2 mount."""
    kv_data: Dict[str, Dict[str, Any]] = dict(secrets or {})
    client = MagicMock(name="hvac.Client")
    client.kv_data = kv_data
    client.is_authenticated.return_value = True

    def read_secret_version(path, mount_point="secret", **kwargs):
        if path not in kv_data:
            raise hvac.exceptions.InvalidPath(f"no secret at {path}")
        return {
            "data": {
                "data": dict(kv_data[path]),
                "metadata": {"version": 1, "destroyed": False},
            }
        }

    def create_or_update_secret(path, secret, mount_point="secret", **kwargs):
        kv_data[path] = dict(secret)
        return {"data": {"version": 1}}

    def list_secrets(path, mount_point="secret", **kwargs):
        directory = path.strip("/")
        prefix = f"{directory}/" if directory else ""
        keys = set()
        for key in kv_data:
            if key.startswith(prefix):
                head, sep, _ = key[len(prefix):].partition("/")
                keys.add(head + sep)
        if not keys:
            raise hvac.exceptions.InvalidPath(f"nothing under {path}")
        return {"data": {"keys": sorted(keys)}}

    kv = client.secrets.kv.v2
    kv.read_secret_version.side_effect = read_secret_version
    kv.create_or_update_secret.side_effect = create_or_update_secret
    kv.list_secrets.side_effect = list_secrets

    auth = {
        "auth": {
            "client_token": VAULT_TOKEN,
            "lease_duration": lease_duration,
            "renewable": renewable,
            "accessor": "accessor-1",
            "policies": ["default"],
        }
    }
    client.auth.userpass.login.return_value = auth
    client.auth.token.renew_self.return_value = auth
    return client


class ScriptedAuthenticator(TokenAuthenticator):
    """Authenticator returning queued results; the last one repeats."""

    def __init__(self, logins: List[Any], renewals: Optional[List[Any]] = None):
        self.logins = list(logins)
        self.renewals = list(renewals or [])
        self.login_calls = 0
        self.renew_calls: List[str] = []
        self._lock = threading.Lock()

    @staticmethod
    def _next(queue: List[Any]):
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, Exception):
            raise result
        return result

    def login(self) -> VaultAuthInfo:
        with self._lock:
            self.login_calls += 1
            return self._next(self.logins)

    def renew(self, token: str, increment: int) -> VaultAuthInfo:
        with self._lock:
            self.renew_calls.append(token)
            return self._next(self.renewals)


def auth_info(token: str, lease: float = 3600, renewable: bool = True) -> VaultAuthInfo:
    return VaultAuthInfo(client_token=token, lease_duration=lease, renewable=renewable)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def vault_repo():
    """Vault repo using custom field names."""
    return RepoConfig(
        id="vault",
        type="vault",
        addr="https://vault.example.com:8200",
        user_field="user",
        pass_field="pass",
        paths=["services/x"],
        prefix="",
        mount_path="secret",
    )


@pytest.fixture
def bitwarden_repo():
    """Bitwarden repo served locally."""
    return RepoConfig(
        id="bitwarden",
        type="bitwarden",
        addr="http://localhost:8087",
        paths=["services/y"],
        prefix="",
    )


@pytest.fixture
def bw_server():
    return FakeBitwardenServer()


@pytest.fixture
def bitwarden_store(bitwarden_repo, bw_server):
    """Unlocked Bitwarden store talking to the fake server."""
    store = BitwardenStore(
        bitwarden_repo,
        BW_PASSWORD,
        max_retries=1,
        http_client=bw_server.client(bitwarden_repo.addr),
    )
    store.unlock()
    yield store
    store.close()


@pytest.fixture
def vault_client():
    return make_vault_client(
        {"services/x": {"user": "alice", "pass": "wonderland"}}
    )


@pytest.fixture
def vault_store(vault_repo, vault_client):
    """Vault store using a static token."""
    return VaultStore(vault_repo, lambda: VAULT_TOKEN, client=vault_client)


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def config_file(tmp_path):
    """Repo descriptor file using capitalised keys."""
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "Bitwarden": {"Local": False},
                "Repos": [
                    {
                        "ID": "vault",
                        "Type": "vault",
                        "Addr": "https://vault.example.com:8200",
                        "UserField": "user",
                        "PassField": "pass",
                        "Paths": ["services/x"],
                        "Prefix": "",
                        "MountPath": "secret",
                    },
                    {
                        "ID": "bitwarden",
                        "Type": "bitwarden",
                        "Addr": "http://localhost:8087",
                        "Paths": ["services/y"],
                        "Prefix": "",
                    },
                ],
            }
        )
    )
    return path
