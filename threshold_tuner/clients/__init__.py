from .base import ObjectStore, SearchClient
from .object_store import ItsiObjectStore
from .search import SplunkSearchClient
from .session import build_session
from .types import ItsiObject, SearchJob

__all__ = [
    "ItsiObject",
    "ItsiObjectStore",
    "ObjectStore",
    "SearchClient",
    "SearchJob",
    "SplunkSearchClient",
    "build_session",
]
