from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set

from .analysis import AnalysisRunner
from .batcher import TrainingConfigBatcher, latest_data_start_times
from .clients.base import ObjectStore, SearchClient
from .clients.types import ItsiObject
from .config import TunerConfig
from .constants import INSUFFICIENT_DATA_ACTIONS, INSUFFICIENT_DATA_RESET, INSUFFICIENT_DATA_SKIP, LOG_CONTEXT_KEY
from .errors import ExecutionError
from .executor import process_in_parallel
from .logs import to_yaml
from .models import Batch
from .planner import plan_parallelism
from .synthesis import PolicySynthesizer
from .workflow import ThresholdWorkflow

logger = logging.getLogger(__name__)


class ThresholdRecommendationWorkflow(ThresholdWorkflow):
    """
    Analyzes historical data of ML-enabled KPIs and applies the recommended thresholds.

    Services are streamed and packed into analysis batches; each group of batches is
    analyzed, then the affected services are configured and saved before the next group is
    scanned.
    """

    def __init__(
        self,
        config: TunerConfig,
        store: ObjectStore,
        search_client: SearchClient,
        services: Iterable[str] = (),
        kpis: Iterable[str] = (),
        dry_run: bool = False,
        use_latest_data: bool = False,
        insufficient_data_action: str = INSUFFICIENT_DATA_SKIP,
        latest_start_times: Optional[Dict[int, int]] = None,
    ):
        if insufficient_data_action not in INSUFFICIENT_DATA_ACTIONS:
            raise ValueError(
                f"invalid insufficient data action {insufficient_data_action!r}: "
                f"must be one of {', '.join(INSUFFICIENT_DATA_ACTIONS)}"
            )

        super().__init__(config, store, services, kpis, dry_run)
        self.search_client = search_client
        self.use_latest_data = use_latest_data
        self.insufficient_data_action = insufficient_data_action
        self.latest_start_times = latest_start_times if latest_start_times is not None else latest_data_start_times()

    def batcher(self) -> TrainingConfigBatcher:
        return TrainingConfigBatcher(self.kpi_match, self.use_latest_data, self.latest_start_times)

    def log_batches(self, batches: List[Batch]) -> None:
        details = []
        n_kpis = 0
        n_searches = 0
        services: Set[ItsiObject] = set()

        for batch in batches:
            batch_details: Dict[str, List[str]] = {}
            for config, kpis in batch.items():
                n_searches += 1
                n_kpis += len(kpis)
                services.update(kpi.service for kpi in kpis)
                batch_details[str(config)] = [str(kpi) for kpi in kpis]
            details.append(batch_details)

        logger.info(
            f"Running {n_searches} Splunk searches to analyze {n_kpis} KPIs across {len(services)} services",
            extra={LOG_CONTEXT_KEY: {"batches": to_yaml(details)}},
        )

    def configure_service(self, svc: ItsiObject, runner: AnalysisRunner) -> PolicySynthesizer:
        training_config_by_kpi = runner.training_config_by_kpi
        kpi_ids = {kpi.kpi_id for kpi in training_config_by_kpi if kpi.service is svc}

        synthesizer = PolicySynthesizer(
            svc,
            kpi_ids,
            runner.results.get(svc),
            training_config_by_kpi,
            self.insufficient_data_action,
        )
        synthesizer.configure()
        self.save(svc)
        self.log_service_summary(synthesizer)
        return synthesizer

    def log_service_summary(self, synthesizer: PolicySynthesizer) -> None:
        level = logging.INFO
        msg = ""
        if not self.dry_run:
            msg = f"Service [ {synthesizer.service.title} ] has been saved. "
        msg += f"Thresholds have been configured successfully for {synthesizer.configured_count} KPIs."

        if synthesizer.failed_kpis:
            level = logging.WARNING
            msg += (
                f" {len(synthesizer.failed_kpis)} KPIs have not been configured due to insufficient data"
                " or KPI value being constant over the training period."
            )

        failed_label = "kpis_reset" if self.insufficient_data_action == INSUFFICIENT_DATA_RESET else "kpis_skipped"
        logger.log(
            level,
            msg,
            extra={
                LOG_CONTEXT_KEY: {
                    "service_id": synthesizer.service.key,
                    "kpis_processed": len(synthesizer.kpis_to_configure),
                    "kpis_configured": synthesizer.configured_count,
                    failed_label: len(synthesizer.failed_kpis),
                    "kpis_update_summary": to_yaml(synthesizer.change_summary),
                }
            },
        )

    def process_group(self, batches: List[Batch], parallel_searches: int, parallel_batches: int) -> None:
        self.log_batches(batches)

        runner = AnalysisRunner(self.search_client, batches, parallel_searches)
        try:
            runner.run(parallel_batches)
        except ExecutionError as e:
            self.record(e)

        try:
            process_in_parallel(
                runner.services(),
                lambda svc: self.configure_service(svc, runner),
                self.concurrency,
                name="configure",
            )
        except ExecutionError as e:
            self.record(e)

    def execute(self) -> None:
        """Runs the workflow; raises ExecutionError with every failure once done."""
        parallel_searches, parallel_batches = plan_parallelism(self.concurrency)

        logger.info(
            "Starting threshold recommendation workflow",
            extra={
                LOG_CONTEXT_KEY: {
                    "service_selectors": self.display_services(),
                    "kpi_selectors": self.kpi_matcher.display(),
                    "use_latest_data": self.use_latest_data,
                    "insufficient_data_action": self.insufficient_data_action,
                    "parallel_batches": parallel_batches,
                    "parallel_searches": parallel_searches,
                    "concurrency": self.concurrency,
                    "dry_run": self.dry_run,
                }
            },
        )

        groups = self.batcher().batches(self.unique_services(), parallel_batches)
        for batches in self.collecting(groups):
            self.process_group(batches, parallel_searches, parallel_batches)

        self.finish()
