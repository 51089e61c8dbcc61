"""Pydantic schemas for the repository descriptor file."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.repo import RepoType


def _normalize_keys(data: Any, fields: Dict[str, Any]) -> Any:
    """Map `UserField`, `user_field`, `userfield` ... onto declared field names."""
    if not isinstance(data, dict):
        return data
    lookup = {name.replace("_", "").lower(): name for name in fields}
    normalized = {}
    for key, value in data.items():
        canonical = lookup.get(str(key).replace("_", "").replace("-", "").lower(), key)
        normalized[canonical] = value
    return normalized


class RepoConfig(BaseModel):
    """A single secret repository descriptor."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Repository identifier")
    type: RepoType = Field(..., description="Store type (vault or bitwarden)")
    addr: str = Field(..., min_length=1, description="Store address")
    user_field: str = Field("username", min_length=1)
    pass_field: str = Field("password", min_length=1)
    paths: List[str] = Field(default_factory=list)
    prefix: str = Field("", description="Destination path prefix")
    mount_path: str = Field("secret", min_length=1, description="KV v2 mount")

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        return _normalize_keys(data, cls.model_fields)

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v):
        """Accept repo types case-insensitively."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("addr")
    @classmethod
    def validate_addr(cls, v):
        return v.rstrip("/")

    @field_validator("paths")
    @classmethod
    def validate_paths(cls, v):
        """Reject empty path entries."""
        if any(not p.strip() for p in v):
            raise ValueError("Paths cannot contain empty entries")
        return v


class BitwardenSettings(BaseModel):
    """Settings for the locally spawned `bw serve` process."""

    model_config = ConfigDict(extra="ignore")

    local: bool = False

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        return _normalize_keys(data, cls.model_fields)


class SyncConfigFile(BaseModel):
    """Top-level layout of `config.json`."""

    model_config = ConfigDict(extra="ignore")

    bitwarden: BitwardenSettings = Field(default_factory=BitwardenSettings)
    repos: List[RepoConfig] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        return _normalize_keys(data, cls.model_fields)

    @field_validator("repos")
    @classmethod
    def validate_unique_ids(cls, v):
        """Repository ids must be unique."""
        seen = set()
        for repo in v:
            if repo.id in seen:
                raise ValueError(f"Duplicate repository id '{repo.id}'")
            seen.add(repo.id)
        return v

    def find_repo(self, repo_id: str) -> Optional[RepoConfig]:
        for repo in self.repos:
            if repo.id == repo_id:
                return repo
        return None
