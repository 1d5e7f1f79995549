from __future__ import annotations

import json
import logging
from itertools import chain
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, TypeVar

from .clients.base import ObjectStore
from .clients.types import ItsiObject
from .config import TunerConfig
from .constants import LOG_CONTEXT_KEY, SERVICE_KEYS_PER_QUERY, SERVICE_OBJECT_TYPE
from .errors import ExecutionError
from .selectors import SelectorMatcher, wildcard_to_regex_str

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_key_filter(keys: List[str]) -> str:
    if not keys:
        raise ValueError("keys list is empty")
    return json.dumps({"$or": [{"_key": key} for key in keys]})


def build_regex_filter(field_name: str, pattern: str) -> str:
    return json.dumps({field_name: {"$regex": pattern}})


def chunks(items: List[str], size: int) -> Iterator[List[str]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class ThresholdWorkflow:
    """
    Shared plumbing for threshold workflows: service streaming, KPI selection and commits.

    Service selectors may be service ids or (wildcard) titles; KPI selectors may be KPI ids
    or (wildcard) titles. All title matching is case-insensitive.
    """

    def __init__(
        self,
        config: TunerConfig,
        store: ObjectStore,
        services: Iterable[str] = (),
        kpis: Iterable[str] = (),
        dry_run: bool = False,
    ):
        self.config = config
        self.store = store
        self.service_selectors: List[str] = list(services)
        self.kpi_matcher = SelectorMatcher(kpis)
        self.dry_run = dry_run

        self.errors: List[BaseException] = []

    @property
    def concurrency(self) -> int:
        return self.config.concurrency

    def _services_iter(self, filter_expr: Optional[str] = None) -> Iterator[ItsiObject]:
        return self.store.iter_objects(SERVICE_OBJECT_TYPE, filter_expr)

    def services(self) -> Iterator[ItsiObject]:
        """
        Streams the services matching the service selectors (all services if there are none).

        Selectors are queried as ids (in chunks) and then as title patterns; the sub-streams
        are concatenated in that order and are not deduplicated.
        """
        if not self.service_selectors:
            return self._services_iter()

        streams = [
            self._services_iter(build_key_filter(chunk))
            for chunk in chunks(self.service_selectors, SERVICE_KEYS_PER_QUERY)
        ]
        streams.extend(
            self._services_iter(build_regex_filter("title", wildcard_to_regex_str(selector)))
            for selector in self.service_selectors
        )
        return chain.from_iterable(streams)

    def unique_services(self) -> Iterator[ItsiObject]:
        """
        Same as services(), skipping services already yielded in this run.

        A service selected both by id and by title would otherwise be written twice.
        """
        seen: Set[str] = set()
        for svc in self.services():
            if svc.key in seen:
                logger.debug("Skipping duplicate service", extra={LOG_CONTEXT_KEY: {"service_id": svc.key}})
                continue
            seen.add(svc.key)
            yield svc

    def kpi_match(self, kpi: Dict[str, Any]) -> bool:
        return self.kpi_matcher.matches(str(kpi.get("_key", "")), str(kpi.get("title", "")))

    def save(self, svc: ItsiObject) -> None:
        """Persists the service document unless this is a dry run. Raises PersistError."""
        if not self.dry_run:
            self.store.update(svc)

    def record(self, err: BaseException) -> None:
        """
        Collects a per-unit failure. Fatal failures are re-raised, together with everything
        collected so far, to stop the run.
        """
        errors = err.errors if isinstance(err, ExecutionError) else [err]
        for e in errors:
            logger.error(str(e))
        self.errors.extend(errors)

        if any(getattr(e, "fatal", False) for e in errors):
            raise self.result_error() or err

    def collecting(self, items: Iterable[T]) -> Iterator[T]:
        """
        Yields from `items`. If the stream itself fails (listing error, malformed KPI
        config), the failure is raised together with everything collected so far.
        """
        try:
            yield from items
        except Exception as e:
            logger.error(str(e))
            self.errors.append(e)
            raise ExecutionError(self.errors) from e

    def result_error(self) -> Optional[ExecutionError]:
        return ExecutionError.join(self.errors)

    def finish(self) -> None:
        err = self.result_error()
        if err is not None:
            raise err

    def display_services(self) -> List[str]:
        return self.service_selectors if self.service_selectors else ["*"]
