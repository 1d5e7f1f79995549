from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(eq=False)
class ItsiObject:
    """
    A catalog object fetched from the object store.

    `raw` is the object's full JSON document and is mutated in place by the workflows.
    Equality is identity: two fetches of the same object are distinct references.
    """

    object_type: str
    key: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return str(self.raw.get("title", ""))

    def kpis(self) -> List[Dict[str, Any]]:
        kpis = self.raw.get("kpis") or []
        if not isinstance(kpis, list):
            raise TypeError(f"{self.object_type} {self.key}: 'kpis' is not a list")
        return kpis

    def __repr__(self) -> str:
        return f"ItsiObject({self.object_type}/{self.key})"


@dataclass(frozen=True)
class SearchJob:
    query: str
    earliest_time: str
    latest_time: str
    app: str = "search"
    user: str = "nobody"
    timeout: Optional[float] = None
    allow_no_results: bool = False
    allow_partial_results: bool = False
