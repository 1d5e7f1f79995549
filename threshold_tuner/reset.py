from __future__ import annotations

import logging
from typing import Any, Dict, List

from .clients.types import ItsiObject
from .constants import LOG_CONTEXT_KEY, SHARED_KPI_PREFIX
from .errors import ExecutionError
from .executor import process_in_parallel
from .logs import to_yaml
from .thresholds import reset_thresholding
from .workflow import ThresholdWorkflow

logger = logging.getLogger(__name__)


class ThresholdResetWorkflow(ThresholdWorkflow):
    """
    Resets the thresholding configuration of every matching KPI to the disabled baseline:
    normal-severity aggregate and entity thresholds, with adaptive thresholds, time variate
    thresholds and outlier detection turned off.
    """

    def reset_kpis(self, kpis: List[Dict[str, Any]]) -> List[str]:
        reset = []
        for kpi in kpis:
            kpi_id, kpi_title = str(kpi.get("_key", "")), str(kpi.get("title", ""))
            if kpi_id.startswith(SHARED_KPI_PREFIX):
                continue

            if self.kpi_match(kpi):
                reset_thresholding(kpi)
                reset.append(f"{kpi_title} ({kpi_id})")
        return reset

    def reset_service(self, svc: ItsiObject) -> List[str]:
        kpis = svc.kpis()
        kpis_reset = self.reset_kpis(kpis)
        if not kpis_reset:
            return kpis_reset

        svc.raw["kpis"] = kpis
        self.save(svc)

        msg = ""
        if not self.dry_run:
            msg = f"Service [ {svc.title} ] has been saved. "
        msg += f"Thresholds have been reset for {len(kpis_reset)} KPIs."

        logger.info(msg, extra={LOG_CONTEXT_KEY: {"service_id": svc.key, "kpis_reset": to_yaml(kpis_reset)}})
        return kpis_reset

    def process_group(self, services: List[ItsiObject]) -> None:
        try:
            process_in_parallel(services, self.reset_service, self.concurrency, name="reset")
        except ExecutionError as e:
            self.record(e)

    def execute(self) -> None:
        """Runs the workflow; raises ExecutionError with every failure once done."""
        logger.info(
            "Starting threshold reset workflow",
            extra={
                LOG_CONTEXT_KEY: {
                    "service_selectors": self.display_services(),
                    "kpi_selectors": self.kpi_matcher.display(),
                    "concurrency": self.concurrency,
                    "dry_run": self.dry_run,
                }
            },
        )

        group: List[ItsiObject] = []
        for svc in self.collecting(self.unique_services()):
            group.append(svc)
            if len(group) == self.concurrency:
                self.process_group(group)
                group = []

        self.process_group(group)
        self.finish()
