from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

import requests

from ..constants import LOG_CONTEXT_KEY
from ..errors import SearchError
from .base import SearchClient
from .types import SearchJob

logger = logging.getLogger(__name__)

ERROR_NO_RESULTS = "Splunk search returned no results"
ERROR_INCOMPLETE_RESULTS = "Splunk search returned incomplete results"
ERROR_TIMEOUT = "Splunk search did not complete within its timeout"


class SplunkSearchClient(SearchClient):
    """
    Runs blocking searches through the `search/jobs/export` endpoint (JSON output).

    The export endpoint streams one JSON object per line: {"result": {...}, "lastrow": true}.
    A response whose final row is not flagged `lastrow` was cut short.
    """

    def __init__(self, session: requests.Session, base_url: str):
        self.session = session
        self.base_url = base_url.rstrip("/")

    def _url(self, job: SearchJob) -> str:
        return f"{self.base_url}/servicesNS/{job.user}/{job.app}/search/jobs/export"

    def execute(self, job: SearchJob) -> List[Dict[str, Any]]:
        data = {
            "search": job.query,
            "output_mode": "json",
            "preview": "false",
            "earliest_time": job.earliest_time,
            "latest_time": job.latest_time,
            "allow_partial_results": str(job.allow_partial_results).lower(),
        }

        start = time.monotonic()
        deadline = start + job.timeout if job.timeout is not None else None
        try:
            # `timeout` only bounds each socket read; the deadline bounds the whole export
            response = self.session.post(self._url(job), data=data, timeout=job.timeout, stream=True)
            try:
                response.raise_for_status()
                rows, last_row = self._parse(response.iter_lines(decode_unicode=True), deadline)
            finally:
                response.close()
        except requests.RequestException as e:
            raise SearchError(f"Splunk search failed: {e}") from e

        logger.debug(
            "search_complete",
            extra={
                LOG_CONTEXT_KEY: {
                    "earliest_time": job.earliest_time,
                    "latest_time": job.latest_time,
                    "rows": len(rows),
                    "elapsed_sec": round(time.monotonic() - start, 3),
                }
            },
        )

        if not rows:
            if not job.allow_no_results:
                raise SearchError(ERROR_NO_RESULTS)
            logger.warning(ERROR_NO_RESULTS)
        elif not last_row:
            if not job.allow_partial_results:
                raise SearchError(ERROR_INCOMPLETE_RESULTS)
            logger.warning(ERROR_INCOMPLETE_RESULTS)

        return rows

    @staticmethod
    def _parse(lines: Iterable[str], deadline: Optional[float] = None) -> "tuple[List[Dict[str, Any]], bool]":
        rows: List[Dict[str, Any]] = []
        last_row = False

        for line in lines:
            if deadline is not None and time.monotonic() > deadline:
                raise SearchError(ERROR_TIMEOUT)

            line = line.strip() if line else ""
            if not line:
                continue

            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise SearchError(f"unexpected Splunk search output: {e}") from e

            for message in record.get("messages") or []:
                if message.get("type") in ("ERROR", "FATAL"):
                    raise SearchError(f"Splunk search failed: {message.get('text')}")

            result = record.get("result")
            if isinstance(result, dict):
                rows.append(result)
                last_row = bool(record.get("lastrow", False))

        return rows, last_row
