"""Pydantic schemas for HashiCorp Vault auth and KV v2 responses."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VaultAuthInfo(BaseModel):
    """The `auth` block of a login or renew-self response."""

    model_config = ConfigDict(extra="ignore")

    client_token: str = Field(..., min_length=1)
    lease_duration: float = Field(0, ge=0, description="Lease in seconds, 0 = none")
    renewable: bool = False
    accessor: Optional[str] = None
    policies: List[str] = Field(default_factory=list)


class VaultAuthResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    auth: VaultAuthInfo


class KVMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: Optional[int] = None
    created_time: Optional[str] = None
    deletion_time: Optional[str] = None
    destroyed: bool = False


class KVReadData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: Optional[Dict[str, Any]] = None
    metadata: KVMetadata = Field(default_factory=KVMetadata)


class KVReadResponse(BaseModel):
    """Response of `GET {mount}/data/{path}`."""

    model_config = ConfigDict(extra="ignore")

    data: KVReadData


class VaultSecret(BaseModel):
    """A KV v2 secret resolved to its path and field map."""

    path: str
    data: Dict[str, Any] = Field(default_factory=dict)
    version: Optional[int] = None
