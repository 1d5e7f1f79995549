from __future__ import annotations

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import TunerConfig

# Client errors are terminal; anything else (throttling, server errors, connection resets) is retried
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


def build_retry(config: TunerConfig) -> Retry:
    return Retry(
        total=config.max_retries,
        connect=config.max_retries,
        read=config.max_retries,
        status=config.max_retries,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=None,  # retry POST and PUT too
        backoff_factor=config.backoff_factor,
        backoff_max=config.backoff_max,
        backoff_jitter=config.backoff_jitter,
        raise_on_status=False,
    )


def build_session(config: TunerConfig) -> requests.Session:
    """Creates an authenticated session shared by the object store and the search client."""
    session = requests.Session()

    if config.access_token:
        session.headers["Authorization"] = f"Bearer {config.access_token}"
    else:
        session.auth = (config.user, config.password)

    if config.insecure:
        session.verify = False
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    pool_size = max(config.concurrency, 10)
    adapter = HTTPAdapter(max_retries=build_retry(config), pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session
