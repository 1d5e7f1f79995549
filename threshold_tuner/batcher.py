from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .clients.types import ItsiObject
from .constants import LATEST_DATA_WINDOW_DAYS, MAX_SERVICES_PER_BATCH, SECONDS_PER_DAY
from .errors import ConfigParseError
from .models import Batch, KpiRef, TrainingConfig, parse_training_window_size

logger = logging.getLogger(__name__)


def latest_data_start_times(now: Optional[float] = None) -> Dict[int, int]:
    """
    One start time per supported training window, anchored at `now`.

    Every KPI with the same window size shares the anchor, so their analysis can run in
    the same search.
    """
    now_ts = int(time.time() if now is None else now)
    return {days: now_ts - days * SECONDS_PER_DAY for days in LATEST_DATA_WINDOW_DAYS}


class TrainingConfigBatcher:
    """
    Groups ML-enabled KPIs by training config into capacity-bounded analysis batches.
    """

    def __init__(
        self,
        kpi_match: Callable[[Dict[str, Any]], bool],
        use_latest_data: bool = False,
        latest_start_times: Optional[Dict[int, int]] = None,
    ):
        self.kpi_match = kpi_match
        self.use_latest_data = use_latest_data
        self.latest_start_times = latest_start_times if latest_start_times is not None else latest_data_start_times()

    def analysis_start_time(self, kpi: Dict[str, Any]) -> int:
        if self.use_latest_data:
            days = parse_training_window_size(kpi.get("recommendation_training_window"))
            try:
                return self.latest_start_times[days]
            except KeyError:
                raise ConfigParseError(f"unsupported training window: {days} days") from None

        start_date = kpi.get("recommendation_start_date")
        if isinstance(start_date, bool) or not isinstance(start_date, (int, float)):
            raise ConfigParseError(f"KPI {kpi.get('_key')}: invalid recommendation_start_date {start_date!r}")
        return int(start_date)

    def training_config(self, kpi: Dict[str, Any]) -> TrainingConfig:
        direction = kpi.get("threshold_direction")
        if not isinstance(direction, str):
            raise ConfigParseError(f"KPI {kpi.get('_key')}: invalid threshold_direction {direction!r}")

        start_time = self.analysis_start_time(kpi)
        window_days = parse_training_window_size(kpi.get("recommendation_training_window"))
        return TrainingConfig(start_time, window_days, direction)

    def service_batch(self, svc: ItsiObject) -> Batch:
        """KPIs of a single service that are selected and configured for ML-assisted thresholds."""
        batch = Batch()
        for kpi in svc.kpis():
            if not self.kpi_match(kpi):
                continue
            if kpi.get("is_recommended_time_policies") is not True:
                continue

            batch.setdefault(self.training_config(kpi), []).append(KpiRef(svc, str(kpi["_key"])))
        return batch

    def batches(self, services: Iterable[ItsiObject], group_size: int) -> Iterator[List[Batch]]:
        """
        Lazily yields lists of up to `group_size` batches while services are still streaming in.

        A service's KPIs always land in a single batch. The open batch takes a service only
        if it has fewer than MAX_SERVICES_PER_BATCH contributors and no shared search would
        grow past the per-search KPI limit; otherwise it is closed and a new one is started.
        """
        if group_size < 1:
            raise ValueError(f"group_size must be a positive integer, got {group_size}")

        group: List[Batch] = []
        current = Batch()
        service_count = 0

        for svc in services:
            svc_batch = self.service_batch(svc)
            if not svc_batch:
                continue

            if service_count < MAX_SERVICES_PER_BATCH and current.has_capacity_for(svc_batch):
                current.merge(svc_batch)
                service_count += 1
            else:
                group.append(current)
                current = svc_batch
                service_count = 1

            if len(group) == group_size:
                yield group
                group = []

        if current:
            group.append(current)
        if group:
            yield group
