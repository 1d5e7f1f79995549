from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional

from .types import ItsiObject, SearchJob


class ObjectStore(ABC):
    """
    Abstract interface for the catalog object store.
    """

    @abstractmethod
    def iter_objects(self, object_type: str, filter_expr: Optional[str] = None) -> Iterator[ItsiObject]:
        """
        Streams objects of the given type, transparently following pagination.

        Args:
            object_type: The catalog object type (e.g., "service").
            filter_expr: Optional JSON filter expression understood by the store
                (e.g., '{"title": {"$regex": "..."}}').

        Yields:
            ItsiObject instances whose `raw` document may be mutated and saved with update().
        """

    @abstractmethod
    def update(self, obj: ItsiObject) -> Dict[str, Any]:
        """
        Saves the object's current `raw` document.

        Returns:
            The store's response document. Raises PersistError on failure.
        """


class SearchClient(ABC):
    """
    Abstract interface for running searches.
    """

    @abstractmethod
    def execute(self, job: SearchJob) -> List[Dict[str, Any]]:
        """
        Runs a search to completion.

        Returns:
            Result rows (field -> value). Raises SearchError if the search fails, or if it
            returns no/partial results while the job disallows them.
        """
