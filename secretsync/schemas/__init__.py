"""Pydantic schemas for store payloads and configuration."""

from .bitwarden import (
    ITEM_TYPE_LOGIN,
    BitwardenItem,
    BitwardenLogin,
    BitwardenResponse,
    ItemResponse,
    ListItemsResponse,
    UnlockResponse,
)
from .config import BitwardenSettings, RepoConfig, SyncConfigFile
from .vault import KVReadResponse, VaultAuthInfo, VaultAuthResponse, VaultSecret

__all__ = [
    "ITEM_TYPE_LOGIN",
    "BitwardenItem",
    "BitwardenLogin",
    "BitwardenResponse",
    "ItemResponse",
    "ListItemsResponse",
    "UnlockResponse",
    "BitwardenSettings",
    "RepoConfig",
    "SyncConfigFile",
    "KVReadResponse",
    "VaultAuthInfo",
    "VaultAuthResponse",
    "VaultSecret",
]
