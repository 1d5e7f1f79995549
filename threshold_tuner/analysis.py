from __future__ import annotations

import logging
import threading
from string import Template
from typing import Dict, List, Optional, Sequence, Tuple

from .clients.base import SearchClient
from .clients.types import ItsiObject, SearchJob
from .constants import (
    ANALYSIS_SEARCH_APP,
    ANALYSIS_SEARCH_USER,
    FLAG_INSUFFICIENT_DATA,
    LOG_CONTEXT_KEY,
    NO_DATA_KPI_ID,
    TRAINING_SEARCH_TIMEOUT_SEC,
)
from .errors import InvariantViolation, SearchError, UnknownServiceForKPI
from .executor import process_in_parallel
from .models import Batch, KpiRef, PoliciesByKpi, PolicyRow, TrainingConfig, kpi_filter_expression

logger = logging.getLogger(__name__)

PoliciesByService = Dict[ItsiObject, PoliciesByKpi]

ANALYSIS_QUERY = Template(
    """
| mstats latest(alert_value) AS alert_value latest(alert_level) AS alert_level
WHERE `get_itsi_summary_metrics_index`
$filter
AND is_filled_gap_event!=1 AND is_null_alert_value=0
`metrics_service_level_kpi_only` by itsi_kpi_id, itsi_service_id span=1m
| where alert_level!=-2
| table _time, alert_value, alert_level, itsi_kpi_id, itsi_service_id
| sort 0 itsi_kpi_id | recommendthresholdtemplate threshold_direction=$direction
"""
)


def render_analysis_query(config: TrainingConfig, kpis: Sequence[KpiRef]) -> str:
    filter_expr = kpi_filter_expression(kpis)
    try:
        return ANALYSIS_QUERY.substitute(filter=filter_expr, direction=config.direction)
    except (KeyError, ValueError) as e:
        logger.critical(
            "unexpected error while rendering a Splunk search for running ML thresholding analysis",
            extra={LOG_CONTEXT_KEY: {"filter": filter_expr, "direction": config.direction}},
        )
        raise InvariantViolation(f"failed to render analysis search: {e}") from e


def analysis_search_job(config: TrainingConfig, kpis: Sequence[KpiRef]) -> SearchJob:
    return SearchJob(
        query=render_analysis_query(config, kpis),
        earliest_time=str(config.start_time),
        latest_time=str(config.end_time),
        app=ANALYSIS_SEARCH_APP,
        user=ANALYSIS_SEARCH_USER,
        timeout=TRAINING_SEARCH_TIMEOUT_SEC,
        allow_no_results=False,
        allow_partial_results=False,
    )


class AnalysisRunner:
    """
    Runs the ML threshold recommendation searches for a group of batches.

    Batches run concurrently (one worker per batch) and every batch runs its searches
    concurrently, bounded by `parallel_searches`. Parsed policy rows are merged into
    `results` under a lock. Only KPIs of batches whose searches all succeeded are reported
    by `training_config_by_kpi`, so a failed search never leads to KPIs being treated as
    having insufficient data.
    """

    def __init__(self, search_client: SearchClient, batches: Sequence[Batch], parallel_searches: int):
        self.search_client = search_client
        self.batches = list(batches)
        self.parallel_searches = parallel_searches

        self._kpis: Dict[Tuple[str, str], KpiRef] = {}
        self._kpis_by_id: Dict[str, KpiRef] = {}
        self._training_configs: Dict[KpiRef, TrainingConfig] = {}
        for batch in self.batches:
            for config, kpis in batch.items():
                for kpi in kpis:
                    self._kpis[(kpi.service.key, kpi.kpi_id)] = kpi
                    self._kpis_by_id[kpi.kpi_id] = kpi
                    self._training_configs[kpi] = config

        self.results: PoliciesByService = {}
        self.completed: List[Batch] = []
        self._lock = threading.Lock()

    @property
    def training_config_by_kpi(self) -> Dict[KpiRef, TrainingConfig]:
        with self._lock:
            completed = list(self.completed)
        return {kpi: self._training_configs[kpi] for batch in completed for kpi in batch.kpi_refs()}

    def services(self) -> List[ItsiObject]:
        """Services whose analysis completed, in batch order."""
        with self._lock:
            completed = list(self.completed)
        return [svc for batch in completed for svc in batch.services()]

    def _lookup(self, service_id: Optional[str], kpi_id: str) -> Optional[KpiRef]:
        if service_id is not None:
            return self._kpis.get((service_id, kpi_id))
        return self._kpis_by_id.get(kpi_id)

    def parse_rows(self, rows: Sequence[PolicyRow]) -> PoliciesByService:
        results: PoliciesByService = {}

        for row in rows:
            flag = row.get("Recommendation Flag")
            if not isinstance(flag, str):
                raise SearchError("unexpected results from ML analysis search: recommendation flag is missing")

            kpi_id = row.get("itsi_kpi_id")
            if not isinstance(kpi_id, str):
                raise SearchError(f"unexpected results from ML analysis search: itsi_kpi_id is missing: {row!r}")

            service_id = row.get("itsi_service_id")
            kpi = self._lookup(service_id if isinstance(service_id, str) else None, kpi_id)
            if kpi is None:
                if kpi_id == NO_DATA_KPI_ID and flag == FLAG_INSUFFICIENT_DATA:
                    continue
                raise UnknownServiceForKPI(f"unknown service for {kpi_id} KPI ID: {row!r}")

            results.setdefault(kpi.service, {}).setdefault(kpi.kpi_id, []).append(row)

        return results

    def run_batch(self, batch: Batch) -> None:
        jobs = [analysis_search_job(config, kpis) for config, kpis in batch.items()]
        rows_by_job: List[List[PolicyRow]] = [[] for _ in jobs]

        def search(i: int) -> None:
            rows_by_job[i] = self.search_client.execute(jobs[i])

        process_in_parallel(range(len(jobs)), search, self.parallel_searches, name="search")

        results = self.parse_rows([row for rows in rows_by_job for row in rows])

        with self._lock:
            for svc, policies in results.items():
                merged = self.results.setdefault(svc, {})
                for kpi_id, kpi_rows in policies.items():
                    merged.setdefault(kpi_id, []).extend(kpi_rows)
            self.completed.append(batch)

    def run(self, parallel_batches: int) -> None:
        """Raises ExecutionError after all batches ran if any of them failed."""
        process_in_parallel(self.batches, self.run_batch, parallel_batches, name="analysis")
