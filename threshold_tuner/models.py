from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from .clients.types import ItsiObject
from .constants import KPIS_PER_SEARCH_THRESHOLD, SECONDS_PER_DAY
from .errors import ConfigParseError

_TRAINING_WINDOW_RE = re.compile(r"^-(\d+)d$")

PolicyRow = Dict[str, Any]
PoliciesByKpi = Dict[str, List[PolicyRow]]


def parse_training_window_size(size_str: Any) -> int:
    """Parses a training window such as "-7d" into a number of days."""
    match = _TRAINING_WINDOW_RE.match(size_str) if isinstance(size_str, str) else None
    if not match:
        raise ConfigParseError(f"{size_str!r} is not a valid training window")
    return int(match.group(1))


@dataclass(frozen=True)
class TrainingConfig:
    start_time: int  # epoch seconds
    window_days: int
    direction: str

    @property
    def end_time(self) -> int:
        return self.start_time + self.window_days * SECONDS_PER_DAY

    @property
    def window(self) -> str:
        return f"-{self.window_days}d"

    def __str__(self) -> str:
        start = datetime.fromtimestamp(self.start_time, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        return f"{start}/{self.window_days}d/{self.direction}"


@dataclass(frozen=True)
class KpiRef:
    service: ItsiObject
    kpi_id: str

    def __str__(self) -> str:
        return f"{self.service.key}/{self.kpi_id}"


def kpi_ids_by_service(kpis: Iterable[KpiRef]) -> Dict[ItsiObject, List[str]]:
    res: Dict[ItsiObject, List[str]] = {}
    for kpi in kpis:
        res.setdefault(kpi.service, []).append(kpi.kpi_id)
    return res


def kpi_filter_expression(kpis: Iterable[KpiRef]) -> str:
    """
    Renders a search filter matching exactly the given KPIs:
    AND ( (itsi_service_id="s1" AND itsi_kpi_id IN ("k1","k2")) OR ... )
    """
    conditions = []
    for svc, ids in kpi_ids_by_service(kpis).items():
        id_list = ",".join(f'"{kpi_id}"' for kpi_id in ids)
        conditions.append(f'(itsi_service_id="{svc.key}" AND itsi_kpi_id IN ({id_list}))')

    if not conditions:
        return ""
    return f"AND ( {' OR '.join(conditions)} )"


class Batch(Dict[TrainingConfig, List[KpiRef]]):
    """KPIs grouped by training config; each key becomes one analysis search."""

    def has_capacity_for(self, other: "Batch") -> bool:
        """Whether `other` can be merged without any shared search exceeding the KPI limit."""
        for config, kpis in other.items():
            if config in self and len(self[config]) + len(kpis) > KPIS_PER_SEARCH_THRESHOLD:
                return False
        return True

    def merge(self, other: "Batch") -> None:
        for config, kpis in other.items():
            self.setdefault(config, []).extend(kpis)

    def kpi_refs(self) -> List[KpiRef]:
        return [kpi for kpis in self.values() for kpi in kpis]

    def services(self) -> List[ItsiObject]:
        # dict preserves first-seen order
        return list({kpi.service: None for kpi in self.kpi_refs()})
