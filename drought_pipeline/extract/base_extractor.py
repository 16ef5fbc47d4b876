from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Tuple
from pymongo import DESCENDING
from pymongo.database import Database

class BaseExtractor(ABC):
    """
    Abstract Base Class for reading persisted documents.
    Enforces a standard interface for all extraction adapters.
    """

    def __init__(self, db: Database):
        """
        Args:
            db (Database): The source database handle.
        """
        self.db = db

    @abstractmethod
    def fetch_batch(
        self,
        collection: str,
        query: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
        batch_size: int = 1000,
        sort: Optional[List[Tuple[str, int]]] = None
    ) -> Iterator[Dict[str, Any]]:
        """
        Yields documents from the specified collection, cursor-batched.

        Args:
            collection: Name of the collection to read from.
            query: MongoDB filter dictionary.
            projection: Fields to include/exclude (0 or 1).
            batch_size: Cursor batch size.
            sort: Optional [(field, direction)] ordering.
        """
        pass

    @abstractmethod
    def find_latest(
        self,
        collection: str,
        query: Dict[str, Any],
        field: str
    ) -> Optional[Dict[str, Any]]:
        """Returns the document with the highest `field` matching `query`, or None."""
        pass

    @abstractmethod
    def distinct(self, collection: str, field: str, query: Optional[Dict[str, Any]] = None) -> List[Any]:
        """Distinct values of `field`."""
        pass

class MongoExtractor(BaseExtractor):
    """
    Concrete implementation for MongoDB extraction.
    """

    def fetch_batch(
        self,
        collection: str,
        query: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
        batch_size: int = 1000,
        sort: Optional[List[Tuple[str, int]]] = None
    ) -> Iterator[Dict[str, Any]]:

        if query is None:
            query = {}

        cursor = self.db[collection].find(query, projection).batch_size(batch_size)
        if sort:
            cursor = cursor.sort(sort)

        for document in cursor:
            yield document

    def find_latest(
        self,
        collection: str,
        query: Dict[str, Any],
        field: str
    ) -> Optional[Dict[str, Any]]:
        return self.db[collection].find_one(
            query or {},
            {"_id": 0},
            sort=[(field, DESCENDING)]
        )

    def distinct(self, collection: str, field: str, query: Optional[Dict[str, Any]] = None) -> List[Any]:
        return self.db[collection].distinct(field, query or {})
