"""Capability interface shared by every secret store backend."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ..models.repo import RepoType
from ..models.secret_record import SecretRecord
from ..schemas.config import RepoConfig
from .mapper import Mapper


class SecretStore(ABC):
    """Abstract base class for secret store backends.

    `list` and `get` return store-native items so callers can decide how to
    treat zero, one or many matches before mapping; `mapper` converts them.
    """

    repo_type: RepoType

    def __init__(self, repo: RepoConfig, mapper: Mapper):
        self.repo = repo
        self.mapper = mapper

    @property
    def repo_id(self) -> str:
        return self.repo.id

    @abstractmethod
    def list(self, search_filter: str) -> List[Any]:
        """
        List native items matching a search filter.

        Raises:
            TransportError: If the store cannot be reached
        """
        pass

    @abstractmethod
    def get(self, path: str) -> Any:
        """
        Read the native item stored at a path.

        Raises:
            NotFoundError: If nothing is stored at the path
            AmbiguousMatchError: If the path does not identify a single item
            TransportError: If the store cannot be reached
        """
        pass

    @abstractmethod
    def put(self, path: str, record: SecretRecord) -> Dict[str, Any]:
        """
        Write a record at a path, creating or updating it.

        Raises:
            MappingError: If the record violates the username/password invariant
            AmbiguousMatchError: If the path does not identify a single item
            TransportError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, path: str) -> Dict[str, Any]:
        """
        Delete the item stored at a path.

        Raises:
            NotFoundError: If nothing is stored at the path
            TransportError: If the delete fails
        """
        pass

    @abstractmethod
    def test_connection(self) -> Dict[str, Any]:
        """Test store connectivity and authentication."""
        pass

    def close(self) -> None:
        """Release resources held by the store."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
