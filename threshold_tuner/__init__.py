from .config import TunerConfig, load_config
from .executor import ConcurrentExecutor, process_in_parallel
from .planner import plan_parallelism
from .recommend import ThresholdRecommendationWorkflow
from .reset import ThresholdResetWorkflow
from .selectors import SelectorMatcher

__all__ = [
    "ConcurrentExecutor",
    "SelectorMatcher",
    "ThresholdRecommendationWorkflow",
    "ThresholdResetWorkflow",
    "TunerConfig",
    "load_config",
    "plan_parallelism",
    "process_in_parallel",
]
