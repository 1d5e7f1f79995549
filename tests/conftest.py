import copy
import json
import re
import threading
from typing import Any, Dict, Iterator, List, Optional
from unittest.mock import MagicMock

import pytest

from threshold_tuner.clients.base import ObjectStore, SearchClient
from threshold_tuner.clients.types import ItsiObject
from threshold_tuner.config import TunerConfig
from threshold_tuner.errors import PersistError


class InMemoryObjectStore(ObjectStore):
    """Object store double that understands the `_key` OR-filter and the `$regex` filter."""

    def __init__(self, documents: List[Dict[str, Any]], object_type: str = "service"):
        self.object_type = object_type
        self.documents = documents
        self.filters: List[Optional[str]] = []
        self.updates: List[ItsiObject] = []
        self.fail_updates_for: set = set()
        self._lock = threading.Lock()

    def _matches(self, doc: Dict[str, Any], filter_expr: Optional[str]) -> bool:
        if not filter_expr:
            return True
        expr = json.loads(filter_expr)
        if "$or" in expr:
            return any(doc.get("_key") == cond["_key"] for cond in expr["$or"])
        (field_name, cond), = expr.items()
        return re.search(cond["$regex"], str(doc.get(field_name, ""))) is not None

    def iter_objects(self, object_type: str, filter_expr: Optional[str] = None) -> Iterator[ItsiObject]:
        self.filters.append(filter_expr)
        for doc in self.documents:
            if self._matches(doc, filter_expr):
                yield ItsiObject(object_type, doc["_key"], copy.deepcopy(doc))

    def update(self, obj: ItsiObject) -> Dict[str, Any]:
        if obj.key in self.fail_updates_for:
            raise PersistError(f"failed to save service {obj.key}")
        with self._lock:
            self.updates.append(obj)
        return {"_key": obj.key}

    def saved(self, key: str) -> ItsiObject:
        (obj,) = [o for o in self.updates if o.key == key]
        return obj


def make_kpi(key: str, title: str, ml: bool = True, window: str = "-7d", start: int = 1700000000, direction: str = "both", **extra: Any) -> Dict[str, Any]:
    kpi = {
        "_key": key,
        "title": title,
        "is_recommended_time_policies": ml,
        "recommendation_training_window": window,
        "recommendation_start_date": start,
        "threshold_direction": direction,
        "adaptive_thresholds_is_enabled": False,
        "time_variate_thresholds": False,
        "aggregate_thresholds": {"thresholdLevels": [{"severityLabel": "high", "thresholdValue": 42}]},
    }
    kpi.update(extra)
    return kpi


def make_service(key: str, title: str, kpis: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"_key": key, "title": title, "kpis": kpis}


def stdev_row(kpi_id: str, service_id: str, mean: str = "10", std: str = "2", thresholds: str = "{'critical': [3]}", cron: str = "None", **extra: Any) -> Dict[str, Any]:
    row = {
        "itsi_kpi_id": kpi_id,
        "itsi_service_id": service_id,
        "Algorithm": "stdev",
        "Recommendation Flag": "OK",
        "Mean": mean,
        "Std": std,
        "Sensitivity": "5",
        "Thresholds": thresholds,
        "Cron Expression": cron,
        "Duration": "60",
    }
    row.update(extra)
    return row


@pytest.fixture
def config():
    return TunerConfig(concurrency=4, access_token="token")


@pytest.fixture
def svc1_documents():
    return [
        make_service(
            "svc1",
            "Sample Service One",
            [
                make_kpi("k-err", "Errors"),
                make_kpi("k-net", "Network In"),
                make_kpi("k-cpu", "CPU Utilization"),
            ],
        )
    ]


@pytest.fixture
def store(svc1_documents):
    return InMemoryObjectStore(svc1_documents)


@pytest.fixture
def mock_search_client():
    client = MagicMock(spec=SearchClient)
    client.execute.return_value = []
    return client
