"""
Builders for ITSI threshold documents and the disabled baseline every reset applies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .errors import ConfigParseError

BASE_SEVERITY = "normal"


@dataclass(frozen=True)
class SeverityInfo:
    label: str
    value: int
    color: str
    color_light: str


SEVERITIES: Dict[str, SeverityInfo] = {
    "critical": SeverityInfo("critical", 6, "#B50101", "#E5A6A6"),
    "high": SeverityInfo("high", 5, "#F26A35", "#FBCBB9"),
    "medium": SeverityInfo("medium", 4, "#FCB64E", "#FEE6C1"),
    "low": SeverityInfo("low", 3, "#FFE98C", "#FFF4C5"),
    "normal": SeverityInfo("normal", 2, "#99D18B", "#DCEFD7"),
    "info": SeverityInfo("info", 1, "#AED3E5", "#E3F0F6"),
}


def severity(label: str) -> SeverityInfo:
    try:
        return SEVERITIES[label]
    except KeyError:
        raise ConfigParseError(f"unknown severity label: {label!r}") from None


def threshold_level(label: str, threshold_value: float, dynamic_param: float) -> Dict[str, Any]:
    info = severity(label)
    return {
        "severityLabel": info.label,
        "severityValue": info.value,
        "severityColor": info.color,
        "severityColorLight": info.color_light,
        "thresholdValue": threshold_value,
        "dynamicParam": dynamic_param,
    }


def _thresholds(threshold_levels: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    base = SEVERITIES[BASE_SEVERITY]
    return {
        "baseSeverityLabel": base.label,
        "baseSeverityValue": base.value,
        "baseSeverityColor": base.color,
        "baseSeverityColorLight": base.color_light,
        "metricField": "",
        "renderBoundaryMin": 0,
        "renderBoundaryMax": 100,
        "isMaxStatic": False,
        "isMinStatic": False,
        "gaugeMin": 0,
        "gaugeMax": 100,
        "thresholdLevels": list(threshold_levels),
    }


def aggregate_thresholds(threshold_levels: Optional[Sequence[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return _thresholds(threshold_levels or [])


def entity_thresholds() -> Dict[str, Any]:
    return _thresholds([])


def default_policies() -> Dict[str, Any]:
    return {
        "default_policy": {
            "title": "Default",
            "aggregate_thresholds": aggregate_thresholds(),
            "entity_thresholds": entity_thresholds(),
            "policy_type": "static",
            "time_blocks": [],
        }
    }


def time_variate_policy(title: str, policy_type: str, levels: List[Dict[str, Any]], cron: str, duration: float) -> Dict[str, Any]:
    return {
        "title": title,
        "aggregate_thresholds": aggregate_thresholds(levels),
        "entity_thresholds": entity_thresholds(),
        "policy_type": policy_type,
        "time_blocks": [[cron, duration]],
    }


_CLEARED_FIELDS = (
    "outlier_detection_algo",
    "outlier_detection_sensitivity",
    "time_variate_thresholds_specification",
    "adaptive_thresholding_training_window",
    "threshold_recommendations",
)


def reset_thresholding(kpi: Dict[str, Any]) -> None:
    """Overwrites a KPI's thresholding configuration, in place, with the disabled baseline."""
    kpi["aggregate_thresholds"] = aggregate_thresholds()
    kpi["entity_thresholds"] = entity_thresholds()
    kpi["aggregate_outlier_detection_enabled"] = False
    kpi["time_variate_thresholds"] = False
    kpi["adaptive_thresholds_is_enabled"] = False

    for name in _CLEARED_FIELDS:
        kpi.pop(name, None)
