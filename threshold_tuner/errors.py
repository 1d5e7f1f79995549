from __future__ import annotations

from typing import List, Sequence


class ThresholdTunerError(Exception):
    """Base class for every error raised by the threshold pipeline."""

    # Fatal errors stop the run once the fan-out they were raised in has finished.
    fatal = False


class ConfigParseError(ThresholdTunerError):
    """A training window string or a Thresholds payload could not be parsed."""

    fatal = True


class UnknownServiceForKPI(ThresholdTunerError):
    """An analysis result row references a KPI that was not part of the batch."""


class UnsupportedAlgorithm(ThresholdTunerError):
    """A recommended algorithm/flag combination the synthesizer does not implement."""


class InvalidRecommendation(ThresholdTunerError):
    """An analysis row lacks a required field or carries an unparseable value."""


class SearchError(ThresholdTunerError):
    """A search failed, or returned empty/partial results where they are not allowed."""


class PersistError(ThresholdTunerError):
    """Saving an object to the object store failed."""


class InvariantViolation(ThresholdTunerError):
    """Internal bug (e.g. a template that failed to render); never caused by input data."""

    fatal = True


class ExecutionError(ThresholdTunerError):
    """Aggregates the failures of a concurrent fan-out."""

    def __init__(self, errors: Sequence[BaseException]):
        self.errors: List[BaseException] = list(errors)
        super().__init__("\n".join(str(e) for e in self.errors))

    @property
    def fatal(self) -> bool:  # type: ignore[override]
        return any(getattr(e, "fatal", False) for e in self.errors)

    @classmethod
    def join(cls, errors: Sequence[BaseException]) -> "ExecutionError | None":
        """Flattens nested aggregates; returns None when there is nothing to report."""
        flat: List[BaseException] = []
        for e in errors:
            if isinstance(e, ExecutionError):
                flat.extend(e.errors)
            elif e is not None:
                flat.append(e)
        return cls(flat) if flat else None