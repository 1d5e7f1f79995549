"""
Translation of ML threshold recommendations into KPI thresholding configuration.

Each analysis row describes one recommended policy for a KPI:

- `Algorithm`: "stdev" (adaptive; thresholds are standard-deviation multiples added to the
  mean), "static" (thresholds are absolute values) or "none" (no recommendation, e.g. a
  constant KPI).
- `Cron Expression`: "None" for the KPI's single always-active policy; any other value
  schedules a time-variate policy together with `Duration`.
- `Thresholds`: severity label -> threshold parameter(s), as a JSON object which may use
  single quotes.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from .clients.types import ItsiObject
from .constants import (
    CRON_NOT_SCHEDULED,
    FLAG_CONSTANT_KPI,
    INSUFFICIENT_DATA_RESET,
    LOG_CONTEXT_KEY,
    OUTLIER_DETECTION_ALGO,
)
from .errors import ConfigParseError, InvalidRecommendation, UnsupportedAlgorithm
from .logs import to_yaml
from .models import KpiRef, PoliciesByKpi, PolicyRow, TrainingConfig
from .thresholds import default_policies, aggregate_thresholds, reset_thresholding, threshold_level, time_variate_policy

logger = logging.getLogger(__name__)

SUMMARY_TIME_VARIATE = "time variate"
SUMMARY_ADAPTIVE = "adaptive (stdev)"
SUMMARY_STATIC = "static"
SUMMARY_CONSTANT = "None (constant KPI)"
SUMMARY_INSUFFICIENT_DATA = "None (insufficient data / no policies generated)"


def parse_thresholds(raw: Any) -> Dict[str, List[float]]:
    """Normalizes a Thresholds payload to severity label -> list of parameters."""
    if isinstance(raw, str):
        try:
            # the analysis command emits python-style dicts
            raw = json.loads(raw.replace("'", '"'))
        except json.JSONDecodeError as e:
            raise ConfigParseError(f"failed to parse thresholds JSON {raw!r}: {e}") from e

    if not isinstance(raw, Mapping):
        raise ConfigParseError(f"failed to parse thresholds JSON: expected an object, got {raw!r}")

    thresholds: Dict[str, List[float]] = {}
    for label, value in raw.items():
        values = value if isinstance(value, list) else [value]
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
            raise ConfigParseError(f"failed to parse thresholds JSON: {label!r} has non-numeric values {value!r}")
        thresholds[str(label)] = [float(v) for v in values]
    return thresholds


def format_duration(duration: float) -> str:
    """Shortest exact rendering: 60.0 -> "60", 1000000.4 -> "1000000.4"."""
    return str(int(duration)) if duration.is_integer() else repr(duration)


def policy_key(title: str) -> str:
    return hashlib.sha256(title.encode("utf-8")).hexdigest()


@dataclass
class KpiSynthesis:
    """Outcome of synthesizing one KPI's configuration."""

    config: Dict[str, Any] = field(default_factory=dict)
    time_variate: bool = False
    adaptive: bool = False
    constant_kpi: bool = False
    insufficient_data: bool = False

    @property
    def ok(self) -> bool:
        return not (self.constant_kpi or self.insufficient_data)

    def summary(self) -> str:
        if not self.ok:
            return SUMMARY_CONSTANT if self.constant_kpi else SUMMARY_INSUFFICIENT_DATA

        details = []
        if self.time_variate:
            details.append(SUMMARY_TIME_VARIATE)
        details.append(SUMMARY_ADAPTIVE if self.adaptive else SUMMARY_STATIC)
        return ", ".join(details)


class PolicySynthesizer:
    """
    Applies ML-recommended policies to the selected KPIs of one service.

    KPIs the analysis could not produce a recommendation for (insufficient data, constant
    value) are left untouched, or reset when `insufficient_data_action` is "reset".
    """

    def __init__(
        self,
        service: ItsiObject,
        kpi_ids: Set[str],
        policies: Optional[PoliciesByKpi],
        training_config_by_kpi: Mapping[KpiRef, TrainingConfig],
        insufficient_data_action: str,
    ):
        self.service = service
        self.policies: PoliciesByKpi = policies or {}
        self.training_config_by_kpi = training_config_by_kpi
        self.insufficient_data_action = insufficient_data_action

        self.kpis = service.kpis()
        self.kpis_to_configure = [kpi for kpi in self.kpis if kpi.get("_key") in kpi_ids]

        self.change_summary: Dict[str, str] = {}
        self.failed_kpis: Set[str] = set()

    @property
    def configured_count(self) -> int:
        return len(self.kpis_to_configure) - len(self.failed_kpis)

    def _error(self, kpi_id: str, kpi_title: str, message: str) -> str:
        return f"[{self.service.title}/{kpi_title}] ({self.service.key}/{kpi_id}) {message}"

    def _float(self, row: PolicyRow, name: str, kpi_id: str, kpi_title: str) -> float:
        value = row.get(name)
        try:
            if isinstance(value, bool):
                raise ValueError(name)
            return float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise InvalidRecommendation(self._error(kpi_id, kpi_title, f"could not parse {name}")) from None

    def synthesize(self, kpi: Dict[str, Any]) -> KpiSynthesis:
        """Builds the new configuration for one KPI without modifying it."""
        kpi_id, kpi_title = str(kpi["_key"]), str(kpi.get("title", ""))
        rows = self.policies.get(kpi_id, [])
        result = KpiSynthesis()

        if not rows:
            result.insufficient_data = True
            return result

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"Updating thresholding configuration for the [{self.service.title} / {kpi_title}] KPI",
                extra={LOG_CONTEXT_KEY: {"service_id": self.service.key, "kpi_id": kpi_id, "policies": to_yaml(rows)}},
            )

        time_variate_policies = default_policies()
        sensitivity = 0.0

        for row in rows:
            flag = row.get("Recommendation Flag")
            if flag is None:
                raise InvalidRecommendation(
                    self._error(kpi_id, kpi_title, f"unexpected KPI policy ({row!r}): Recommendation Flag was not found")
                )

            algo = row.get("Algorithm")
            if not isinstance(algo, str):
                raise InvalidRecommendation(
                    self._error(kpi_id, kpi_title, f"unexpected KPI policy ({row!r}): Algorithm is not provided")
                )
            algo = algo.lower()

            if algo == "stdev":
                result.adaptive = True
            elif algo == "none" and flag == FLAG_CONSTANT_KPI and len(rows) == 1:
                result.constant_kpi = True
                continue
            elif algo != "static":
                raise UnsupportedAlgorithm(
                    self._error(kpi_id, kpi_title, f"{algo} ({flag}) recommendation is not supported yet")
                )

            cron = row.get("Cron Expression")
            if not isinstance(cron, str):
                raise InvalidRecommendation(self._error(kpi_id, kpi_title, "cron expression is missing"))

            is_time_variate = cron != CRON_NOT_SCHEDULED
            result.time_variate = result.time_variate or is_time_variate

            mean = self._float(row, "Mean", kpi_id, kpi_title)
            std = self._float(row, "Std", kpi_id, kpi_title)
            if result.adaptive:
                sensitivity = self._float(row, "Sensitivity", kpi_id, kpi_title)

            levels = []
            for label, params in parse_thresholds(row.get("Thresholds")).items():
                for param in params:
                    value = mean + std * param if algo == "stdev" else param
                    levels.append(threshold_level(label, value, param))

            if is_time_variate:
                duration = self._float(row, "Duration", kpi_id, kpi_title)
                title = f"[{cron}] {format_duration(duration)}"
                time_variate_policies[policy_key(title)] = time_variate_policy(title, algo, levels, cron, duration)
            elif len(rows) == 1:
                result.config["aggregate_thresholds"] = aggregate_thresholds(levels)
                break
            else:
                raise InvalidRecommendation(self._error(kpi_id, kpi_title, "unexpected KPI policy recommendations"))

        result.config["time_variate_thresholds"] = result.time_variate
        result.config["adaptive_thresholds_is_enabled"] = result.adaptive

        if result.adaptive:
            training_config = self.training_config_by_kpi[KpiRef(self.service, kpi_id)]
            result.config["adaptive_thresholding_training_window"] = training_config.window
            result.config["aggregate_outlier_detection_enabled"] = True
            result.config["outlier_detection_algo"] = OUTLIER_DETECTION_ALGO
            result.config["outlier_detection_sensitivity"] = sensitivity
        if result.time_variate:
            result.config["time_variate_thresholds_specification"] = {"policies": time_variate_policies}

        return result

    def configure_kpi(self, kpi: Dict[str, Any]) -> KpiSynthesis:
        result = self.synthesize(kpi)
        kpi_id = str(kpi["_key"])

        if result.ok:
            reset_thresholding(kpi)
            kpi.update(result.config)
        else:
            self.failed_kpis.add(kpi_id)
            if self.insufficient_data_action == INSUFFICIENT_DATA_RESET:
                reset_thresholding(kpi)

        self.change_summary[f"{kpi.get('title', '')} ({kpi_id})"] = result.summary()
        return result

    def configure(self) -> None:
        """Configures every selected KPI and writes the KPI list back to the service document."""
        for kpi in self.kpis_to_configure:
            self.configure_kpi(kpi)

        self.service.raw["kpis"] = self.kpis
