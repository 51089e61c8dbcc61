"""Pydantic schemas for the Bitwarden `bw serve` REST API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

ITEM_TYPE_LOGIN = 1


class BitwardenLogin(BaseModel):
    """Login section of a Bitwarden item."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    username: Optional[str] = None
    password: Optional[str] = None


class BitwardenItem(BaseModel):
    """A vault item as returned by `/list/object/items`.

    Unknown fields (uris, notes, collection ids, ...) are kept so that an
    updated item can be written back without losing them.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    object: Optional[str] = None
    folder_id: Optional[str] = Field(None, alias="folderId")
    type: int = Field(ITEM_TYPE_LOGIN, description="Bitwarden item type")
    name: str = Field(..., description="Item name")
    login: Optional[BitwardenLogin] = None
    revision_date: Optional[datetime] = Field(None, alias="revisionDate")
    deleted_date: Optional[datetime] = Field(None, alias="deletedDate")

    @classmethod
    def for_login(cls, name: str, username: str, password: str) -> "BitwardenItem":
        """Build a new login item with no folder."""
        return cls(
            folder_id=None,
            type=ITEM_TYPE_LOGIN,
            name=name,
            login=BitwardenLogin(username=username, password=password),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for POST/PUT `/object/item`."""
        payload = self.model_dump(
            by_alias=True,
            mode="json",
            exclude={"id", "object", "revision_date", "deleted_date"},
        )
        payload["folderId"] = self.folder_id
        return payload


class BitwardenResponse(BaseModel):
    """Envelope shared by every `bw serve` response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: bool
    message: Optional[str] = None


class UnlockData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    raw: str = Field(..., min_length=1, description="Session key")


class UnlockResponse(BitwardenResponse):
    data: Optional[UnlockData] = None


class ItemList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: str = "list"
    data: List[BitwardenItem] = Field(default_factory=list)


class ListItemsResponse(BitwardenResponse):
    data: Optional[ItemList] = None


class ItemResponse(BitwardenResponse):
    data: Optional[BitwardenItem] = None
    revision_date: Optional[datetime] = Field(None, alias="revisionDate")
    delete_date: Optional[datetime] = Field(None, alias="deleteDate")
